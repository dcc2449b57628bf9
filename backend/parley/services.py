"""Service container and FastAPI dependencies.

One ``Services`` instance is built per application and stored on
``app.state.services``. Nothing in the real-time core is a module-level
singleton; tests build their own container with ``build_services``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from starlette.requests import HTTPConnection

from parley.auth.schemas import Identity
from parley.auth.service import IdentityProvider, bearer_token
from parley.config import AppSettings, get_config
from parley.files.blobs import BlobStore
from parley.files.service import FileService
from parley.messages.delivery import DeliveryScheduler
from parley.messages.service import MessageService
from parley.realtime.broadcaster import Broadcaster
from parley.realtime.notifier import Notifier
from parley.realtime.registry import RoomRegistry
from parley.realtime.session import SessionManager
from parley.realtime.typing_tracker import TypingTracker
from parley.rooms.service import RoomService
from parley.store.service import ChatStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: AppSettings
    store: ChatStore
    blobs: BlobStore
    identity: IdentityProvider
    rooms: RoomService
    messages: MessageService
    files: FileService
    registry: RoomRegistry
    typing: TypingTracker
    broadcaster: Broadcaster
    notifier: Notifier
    delivery: DeliveryScheduler
    sessions: SessionManager

    async def shutdown(self) -> None:
        """Close sessions, cancel timers, close the store."""
        await self.sessions.shutdown()
        await self.delivery.shutdown()
        self.store.close()
        logger.info("Services shut down")


def build_services(config: Optional[AppSettings] = None) -> Services:
    config = config or get_config()
    chat = config.chat

    store = ChatStore(config.storage.db_path)
    blobs = BlobStore(config.storage.upload_dir)
    identity = IdentityProvider(
        store,
        secret_key=config.secrets.jwt.secret_key,
        algorithm=config.secrets.jwt.algorithm,
        token_expire_minutes=config.auth.token_expire_minutes,
        moderators=config.auth.moderators,
    )
    rooms = RoomService(store)
    messages = MessageService(
        store,
        rooms,
        max_content_length=chat.max_content_length,
        max_emoji_length=chat.max_emoji_length,
        default_page_size=chat.default_page_size,
        max_page_size=chat.max_page_size,
    )
    files = FileService(
        store, blobs, rooms, messages, max_file_size_bytes=config.storage.max_file_size_bytes
    )

    registry = RoomRegistry()
    broadcaster = Broadcaster(registry, send_timeout_seconds=chat.send_timeout_seconds)
    notifier = Notifier(broadcaster)
    typing = TypingTracker(chat.typing_timeout_seconds, on_expire=notifier.typing_expired)
    delivery = DeliveryScheduler(
        messages, chat.delivery_delay_seconds, on_delivered=notifier.message_delivered
    )
    sessions = SessionManager(
        identity, rooms, messages, registry, typing, broadcaster, notifier, delivery
    )

    return Services(
        config=config,
        store=store,
        blobs=blobs,
        identity=identity,
        rooms=rooms,
        messages=messages,
        files=files,
        registry=registry,
        typing=typing,
        broadcaster=broadcaster,
        notifier=notifier,
        delivery=delivery,
        sessions=sessions,
    )


def ensure_services(app) -> Services:
    """The container stored on ``app.state``, built from config on first use."""
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services()
        app.state.services = services
    return services


def get_services(conn: HTTPConnection) -> Services:
    """Dependency: the container of the running app."""
    return ensure_services(conn.app)


async def get_current_identity(
    conn: HTTPConnection,
    services: Services = Depends(get_services),
) -> Identity:
    """Dependency: the identity behind the request's Bearer token.

    Raises:
        AuthError: Missing, malformed or expired token.
    """
    token = bearer_token(conn.headers.get("authorization"))
    return await services.identity.verify(token)
