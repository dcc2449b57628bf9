"""DuckDB-backed persistence store for users, rooms, messages, favorites and files.

The store is the only component that touches the database. It is a plain
synchronous object; async callers go through :meth:`ChatStore.call`, which
runs the operation on the default executor so a slow write never blocks the
event loop.

Database Schema:
    users:     id, username (unique), email (unique), password_hash, created_at
    rooms:     id, name (unique), description, members (JSON), created_at
    messages:  id, seq, room_id, sender_id, content, created_at, file_id,
               reply_to, thread_id, mentions/reactions/read_by (JSON), status,
               edited_at, deleted_at, deleted_by, pinned, pinned_by, pinned_at
    favorites: (user_id, message_id) primary key, created_at
    files:     id, room_id, uploaded_by, original_filename, reference,
               mime_type, size_bytes, uploaded_at

Thread Safety:
    A DuckDB connection must not be used from two threads at once. Every
    public method takes ``self._lock``, which also makes
    :meth:`update_message` an atomic read-modify-write.

Usage:
    store = ChatStore(":memory:")
    room = await store.call(store.create_room, Room(name="general"))
"""
import asyncio
import json
import logging
import threading
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import duckdb

from parley.errors import ChatError, ConflictError, InfrastructureError, NotFoundError

from .schemas import Favorite, Message, Reaction, ReadReceipt, Room, StoredFile, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id            VARCHAR PRIMARY KEY,
        username      VARCHAR NOT NULL UNIQUE,
        email         VARCHAR NOT NULL UNIQUE,
        password_hash VARCHAR NOT NULL,
        created_at    DOUBLE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id          VARCHAR PRIMARY KEY,
        name        VARCHAR NOT NULL UNIQUE,
        description VARCHAR,
        members     VARCHAR NOT NULL DEFAULT '[]',
        created_at  DOUBLE NOT NULL
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id         VARCHAR PRIMARY KEY,
        seq        BIGINT DEFAULT nextval('messages_seq'),
        room_id    VARCHAR NOT NULL,
        sender_id  VARCHAR NOT NULL,
        content    VARCHAR NOT NULL,
        created_at DOUBLE NOT NULL,
        file_id    VARCHAR,
        reply_to   VARCHAR,
        thread_id  VARCHAR,
        mentions   VARCHAR NOT NULL DEFAULT '[]',
        status     VARCHAR NOT NULL DEFAULT 'sent',
        reactions  VARCHAR NOT NULL DEFAULT '[]',
        read_by    VARCHAR NOT NULL DEFAULT '[]',
        edited_at  DOUBLE,
        deleted_at DOUBLE,
        deleted_by VARCHAR,
        pinned     BOOLEAN NOT NULL DEFAULT FALSE,
        pinned_by  VARCHAR,
        pinned_at  DOUBLE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)",
    """
    CREATE TABLE IF NOT EXISTS favorites (
        user_id    VARCHAR NOT NULL,
        message_id VARCHAR NOT NULL,
        created_at DOUBLE NOT NULL,
        PRIMARY KEY (user_id, message_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id                VARCHAR PRIMARY KEY,
        room_id           VARCHAR NOT NULL,
        uploaded_by       VARCHAR NOT NULL,
        original_filename VARCHAR NOT NULL,
        reference         VARCHAR NOT NULL,
        mime_type         VARCHAR NOT NULL,
        size_bytes        BIGINT NOT NULL,
        uploaded_at       DOUBLE NOT NULL
    )
    """,
]

_USER_COLUMNS = ["id", "username", "email", "password_hash", "created_at"]
_ROOM_COLUMNS = ["id", "name", "description", "members", "created_at"]
_MESSAGE_COLUMNS = [
    "id", "room_id", "sender_id", "content", "created_at", "file_id",
    "reply_to", "thread_id", "mentions", "status", "reactions", "read_by",
    "edited_at", "deleted_at", "deleted_by", "pinned", "pinned_by", "pinned_at",
]
_FILE_COLUMNS = [
    "id", "room_id", "uploaded_by", "original_filename", "reference",
    "mime_type", "size_bytes", "uploaded_at",
]

# Listing order: pinned first, then newest first. seq breaks timestamp ties.
_LIST_ORDER = "ORDER BY pinned DESC, created_at DESC, seq DESC"
_SEARCH_ORDER = "ORDER BY created_at DESC, seq DESC"


class ChatStore:
    """Persistence store over a single DuckDB connection."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("[Store] Initialized with db=%s", db_path)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run a store operation off the event loop.

        Domain errors raised by the store pass through unchanged; database
        failures are logged and surfaced as :class:`InfrastructureError`.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(fn, *args, **kwargs))
        except ChatError:
            raise
        except duckdb.Error as exc:
            logger.exception("[Store] %s failed", getattr(fn, "__name__", fn))
            raise InfrastructureError() from exc

    def _db(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise InfrastructureError("Store is closed")
        return self._conn

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        with self._lock:
            try:
                self._db().execute(
                    "INSERT INTO users (id, username, email, password_hash, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [user.id, user.username, user.email, user.password_hash, user.created_at],
                )
            except duckdb.ConstraintException:
                raise ConflictError("Username or email already registered.")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._find_user("id", user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._find_user("username", username)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._find_user("email", email)

    def _find_user(self, column: str, value: str) -> Optional[User]:
        with self._lock:
            row = self._db().execute(
                f"SELECT {', '.join(_USER_COLUMNS)} FROM users WHERE {column} = ?",
                [value],
            ).fetchone()
        return User(**dict(zip(_USER_COLUMNS, row))) if row else None

    def resolve_usernames(self, usernames: List[str]) -> Dict[str, str]:
        """Map each known username to its user id; unknown names are absent."""
        if not usernames:
            return {}
        placeholders = ", ".join("?" for _ in usernames)
        with self._lock:
            rows = self._db().execute(
                f"SELECT username, id FROM users WHERE username IN ({placeholders})",
                list(usernames),
            ).fetchall()
        return {username: user_id for username, user_id in rows}

    def get_usernames(self, user_ids: List[str]) -> Dict[str, str]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        with self._lock:
            rows = self._db().execute(
                f"SELECT id, username FROM users WHERE id IN ({placeholders})",
                list(user_ids),
            ).fetchall()
        return {user_id: username for user_id, username in rows}

    # -----------------------------------------------------------------------
    # Rooms
    # -----------------------------------------------------------------------

    def create_room(self, room: Room) -> Room:
        with self._lock:
            try:
                self._db().execute(
                    "INSERT INTO rooms (id, name, description, members, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [room.id, room.name, room.description, json.dumps(room.members), room.created_at],
                )
            except duckdb.ConstraintException:
                raise ConflictError(f"Room '{room.name}' already exists.")
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._find_room("id", room_id)

    def get_room_by_name(self, name: str) -> Optional[Room]:
        return self._find_room("name", name)

    def list_rooms(self) -> List[Room]:
        with self._lock:
            rows = self._db().execute(
                f"SELECT {', '.join(_ROOM_COLUMNS)} FROM rooms ORDER BY created_at ASC"
            ).fetchall()
        return [self._row_to_room(r) for r in rows]

    def _find_room(self, column: str, value: str) -> Optional[Room]:
        with self._lock:
            row = self._db().execute(
                f"SELECT {', '.join(_ROOM_COLUMNS)} FROM rooms WHERE {column} = ?",
                [value],
            ).fetchone()
        return self._row_to_room(row) if row else None

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def insert_message(self, message: Message) -> Message:
        with self._lock:
            self._db().execute(
                f"INSERT INTO messages ({', '.join(_MESSAGE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _MESSAGE_COLUMNS)})",
                self._message_values(message),
            )
        return message

    def get_message(self, message_id: str) -> Optional[Message]:
        """Direct lookup by id. Soft-deleted messages are returned too."""
        with self._lock:
            return self._get_message_locked(message_id)

    def update_message(
        self,
        message_id: str,
        mutate: Callable[[Message], bool],
    ) -> Tuple[Message, bool]:
        """Atomically load, mutate and save one message.

        ``mutate`` edits the message in place and returns whether anything
        changed; nothing is written when it returns False. Exceptions raised
        by ``mutate`` abort the write and propagate.

        Returns:
            Tuple of (message after mutation, changed flag).

        Raises:
            NotFoundError: If no message has this id.
        """
        with self._lock:
            message = self._get_message_locked(message_id)
            if message is None:
                raise NotFoundError("Message not found.")
            changed = mutate(message)
            if changed:
                values = self._message_values(message)
                assignments = ", ".join(f"{col} = ?" for col in _MESSAGE_COLUMNS[1:])
                self._db().execute(
                    f"UPDATE messages SET {assignments} WHERE id = ?",
                    values[1:] + [message.id],
                )
        return message, changed

    def list_messages(
        self,
        room_id: str,
        limit: int,
        offset: int,
        include_deleted: bool = False,
    ) -> Tuple[List[Message], int]:
        where = "room_id = ?"
        if not include_deleted:
            where += " AND deleted_at IS NULL"
        return self._page(where, [room_id], _LIST_ORDER, limit, offset)

    def search_messages(
        self,
        room_id: str,
        query: str,
        limit: int,
        offset: int,
    ) -> Tuple[List[Message], int]:
        where = "room_id = ? AND deleted_at IS NULL AND contains(lower(content), lower(?))"
        return self._page(where, [room_id, query], _SEARCH_ORDER, limit, offset)

    def _page(
        self,
        where: str,
        params: list,
        order: str,
        limit: int,
        offset: int,
    ) -> Tuple[List[Message], int]:
        with self._lock:
            total = self._db().execute(
                f"SELECT count(*) FROM messages WHERE {where}", params
            ).fetchone()[0]
            rows = self._db().execute(
                f"SELECT {', '.join(_MESSAGE_COLUMNS)} FROM messages WHERE {where} "
                f"{order} LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()
        return [self._row_to_message(r) for r in rows], total

    def _get_message_locked(self, message_id: str) -> Optional[Message]:
        row = self._db().execute(
            f"SELECT {', '.join(_MESSAGE_COLUMNS)} FROM messages WHERE id = ?",
            [message_id],
        ).fetchone()
        return self._row_to_message(row) if row else None

    # -----------------------------------------------------------------------
    # Favorites
    # -----------------------------------------------------------------------

    def add_favorite(self, favorite: Favorite) -> Favorite:
        with self._lock:
            try:
                self._db().execute(
                    "INSERT INTO favorites (user_id, message_id, created_at) VALUES (?, ?, ?)",
                    [favorite.user_id, favorite.message_id, favorite.created_at],
                )
            except duckdb.ConstraintException:
                raise ConflictError("Message already in favorites.")
        return favorite

    def remove_favorite(self, user_id: str, message_id: str) -> bool:
        with self._lock:
            result = self._db().execute(
                "DELETE FROM favorites WHERE user_id = ? AND message_id = ? RETURNING message_id",
                [user_id, message_id],
            ).fetchone()
        return result is not None

    def list_favorites(
        self, user_id: str, limit: int, offset: int
    ) -> Tuple[List[Tuple[Favorite, Optional[Message]]], int]:
        with self._lock:
            total = self._db().execute(
                "SELECT count(*) FROM favorites WHERE user_id = ?", [user_id]
            ).fetchone()[0]
            rows = self._db().execute(
                "SELECT user_id, message_id, created_at FROM favorites WHERE user_id = ? "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                [user_id, limit, offset],
            ).fetchall()
            items = []
            for user, message_id, created_at in rows:
                favorite = Favorite(user_id=user, message_id=message_id, created_at=created_at)
                items.append((favorite, self._get_message_locked(message_id)))
        return items, total

    # -----------------------------------------------------------------------
    # Files
    # -----------------------------------------------------------------------

    def insert_file(self, stored: StoredFile) -> StoredFile:
        with self._lock:
            self._db().execute(
                f"INSERT INTO files ({', '.join(_FILE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _FILE_COLUMNS)})",
                [getattr(stored, col) for col in _FILE_COLUMNS],
            )
        return stored

    def get_file(self, file_id: str) -> Optional[StoredFile]:
        with self._lock:
            row = self._db().execute(
                f"SELECT {', '.join(_FILE_COLUMNS)} FROM files WHERE id = ?", [file_id]
            ).fetchone()
        return StoredFile(**dict(zip(_FILE_COLUMNS, row))) if row else None

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    @staticmethod
    def _message_values(message: Message) -> list:
        return [
            message.id,
            message.room_id,
            message.sender_id,
            message.content,
            message.created_at,
            message.file_id,
            message.reply_to,
            message.thread_id,
            json.dumps(message.mentions),
            message.status.value,
            json.dumps([r.model_dump() for r in message.reactions]),
            json.dumps([r.model_dump() for r in message.read_by]),
            message.edited_at,
            message.deleted_at,
            message.deleted_by,
            message.pinned,
            message.pinned_by,
            message.pinned_at,
        ]

    @staticmethod
    def _row_to_room(row) -> Room:
        d = dict(zip(_ROOM_COLUMNS, row))
        d["members"] = json.loads(d["members"] or "[]")
        return Room(**d)

    @staticmethod
    def _row_to_message(row) -> Message:
        d = dict(zip(_MESSAGE_COLUMNS, row))
        d["mentions"] = json.loads(d["mentions"] or "[]")
        d["reactions"] = [Reaction(**r) for r in json.loads(d["reactions"] or "[]")]
        d["read_by"] = [ReadReceipt(**r) for r in json.loads(d["read_by"] or "[]")]
        return Message(**d)
