"""Identity provider: password credentials in, signed identity tokens out.

Tokens are HS256 JWTs carrying::

    sub       user id
    username  username at issue time
    mod       moderator flag
    iat, exp  issue / expiry (seconds since epoch)

``verify`` fails closed: a missing, malformed, expired or orphaned token
always raises :class:`AuthError` and never yields a partial identity.
"""
import hashlib
import hmac
import logging
import secrets
import time
from typing import Iterable, Optional, Tuple

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from parley.errors import AuthError, ConflictError
from parley.store.schemas import User
from parley.store.service import ChatStore

from .schemas import Identity

logger = logging.getLogger(__name__)

_HASH_SCHEME = "pbkdf2_sha256"
_HASH_ITERATIONS = 100_000


def hash_password(password: str, iterations: int = _HASH_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{_HASH_SCHEME}${iterations}${salt}${digest.hex()}"


def check_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class IdentityProvider:
    """Registers users and issues/verifies identity tokens."""

    def __init__(
        self,
        store: ChatStore,
        secret_key: str,
        algorithm: str = "HS256",
        token_expire_minutes: int = 60,
        moderators: Iterable[str] = (),
    ) -> None:
        self._store = store
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._token_ttl = token_expire_minutes * 60
        self._moderators = set(moderators)

    async def register(self, username: str, email: str, password: str) -> User:
        """Create a user account.

        Raises:
            ConflictError: If the username or email is already taken.
        """
        if await self._store.call(self._store.get_user_by_email, email):
            raise ConflictError("Email already registered.")
        if await self._store.call(self._store.get_user_by_username, username):
            raise ConflictError("Username already taken.")
        user = User(username=username, email=email, password_hash=hash_password(password))
        await self._store.call(self._store.create_user, user)
        logger.info("[Auth] Registered user %s (%s)", user.username, user.id)
        return user

    async def login(self, email: str, password: str) -> Tuple[str, User]:
        """Check credentials and issue a token.

        Raises:
            AuthError: If the email is unknown or the password is wrong.
        """
        user = await self._store.call(self._store.get_user_by_email, email)
        if user is None or not check_password(password, user.password_hash):
            raise AuthError("Invalid credentials")
        return self.issue_token(user), user

    def issue_token(self, user: User) -> str:
        now = int(time.time())
        claims = {
            "sub": user.id,
            "username": user.username,
            "mod": user.username in self._moderators,
            "iat": now,
            "exp": now + self._token_ttl,
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    async def verify(self, credential: Optional[str]) -> Identity:
        """Turn a bearer credential into an identity.

        Raises:
            AuthError: On any missing, malformed, expired or unknown credential.
        """
        if not credential:
            raise AuthError("No token provided.")
        try:
            claims = jwt.decode(credential, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise AuthError("Token has expired.")
        except JWTError as exc:
            logger.warning("[Auth] Token verification failed: %s", exc)
            raise AuthError("Invalid token.")

        user_id = claims.get("sub")
        if not user_id:
            raise AuthError("Invalid token.")
        user = await self._store.call(self._store.get_user, user_id)
        if user is None:
            raise AuthError("Unknown user.")
        return Identity(
            user_id=user.id,
            username=user.username,
            is_moderator=bool(claims.get("mod", False)),
        )
