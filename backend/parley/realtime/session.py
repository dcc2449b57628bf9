"""Session manager: owns every live socket connection.

Per-connection state machine::

    connecting --verify ok--> authenticated --close--> disconnected
        └──────verify fails (socket refused)──────────────▲

While authenticated, each inbound frame is dispatched to one handler. The
transport awaits ``handle`` before reading the next frame, so events of one
session are processed in receipt order; different sessions run in their own
tasks and interleave freely.

Every handler failure is reported to the originating session as an
``error`` event and never escapes ``handle``. On disconnect the session
leaves every room, its user's typing state is cleared (with stop
notifications) and the record is released.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as PayloadError

from parley.auth.schemas import Identity
from parley.auth.service import IdentityProvider
from parley.errors import ChatError, InfrastructureError, ValidationError
from parley.messages.delivery import DeliveryScheduler
from parley.messages.service import MessageService
from parley.rooms.service import RoomService
from parley.store.schemas import MessageStatus

from .broadcaster import Broadcaster
from .notifier import Notifier
from .registry import RoomRegistry
from .schemas import (
    CreateRoomPayload,
    EditMessagePayload,
    FetchMessagesPayload,
    FileSharePayload,
    ListRoomsPayload,
    MessageRefPayload,
    ReactionPayload,
    RoomPayload,
    SendMessagePayload,
    Session,
    SessionState,
)
from .typing_tracker import TypingTracker

logger = logging.getLogger(__name__)

Handler = Callable[[Session, Any], Awaitable[None]]


class SessionManager:
    def __init__(
        self,
        identity: IdentityProvider,
        rooms: RoomService,
        messages: MessageService,
        registry: RoomRegistry,
        typing: TypingTracker,
        broadcaster: Broadcaster,
        notifier: Notifier,
        delivery: DeliveryScheduler,
    ) -> None:
        self._identity = identity
        self._rooms = rooms
        self._messages = messages
        self._registry = registry
        self._typing = typing
        self._broadcaster = broadcaster
        self._notifier = notifier
        self._delivery = delivery
        self._sessions: Dict[str, Session] = {}
        # cleanups started by release(), detached from the connection task
        self._closing: Set[asyncio.Task] = set()

        self._handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "join-room": (RoomPayload, self._join_room),
            "leave-room": (RoomPayload, self._leave_room),
            "create-room": (CreateRoomPayload, self._create_room),
            "list-rooms": (ListRoomsPayload, self._list_rooms),
            "fetch-messages": (FetchMessagesPayload, self._fetch_messages),
            "send-message": (SendMessagePayload, self._send_message),
            "edit-message": (EditMessagePayload, self._edit_message),
            "delete-message": (MessageRefPayload, self._delete_message),
            "add-reaction": (ReactionPayload, self._add_reaction),
            "remove-reaction": (ReactionPayload, self._remove_reaction),
            "mark-read": (MessageRefPayload, self._mark_read),
            "pin-message": (MessageRefPayload, self._pin_message),
            "typing-start": (RoomPayload, self._typing_start),
            "typing-stop": (RoomPayload, self._typing_stop),
            "file-share": (FileSharePayload, self._file_share),
        }

    @property
    def events(self) -> Tuple[str, ...]:
        return tuple(self._handlers)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def session_count(self) -> int:
        return len(self._sessions)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def authenticate(self, credential: Optional[str]) -> Identity:
        """Verify the handshake credential.

        Raises:
            AuthError: The connection must be refused.
        """
        return await self._identity.verify(credential)

    async def open_session(self, socket: Any, identity: Identity) -> Session:
        """Register an accepted socket and greet it with ``connected``."""
        session = Session(identity=identity, socket=socket)
        session.state = SessionState.AUTHENTICATED
        self._sessions[session.id] = session
        self._broadcaster.attach(session)
        logger.info(
            "[Session] Opened %s for %s (%d open)", session.id, identity.username, len(self._sessions)
        )
        await self._notifier.reply(session.id, "connected", {
            "session_id": session.id,
            "user": {"user_id": identity.user_id, "username": identity.username},
        })
        return session

    async def close_session(self, session: Session) -> None:
        """Release a session. Safe to call more than once."""
        if session.state == SessionState.DISCONNECTED:
            return
        session.state = SessionState.DISCONNECTED
        self._broadcaster.detach(session)
        self._sessions.pop(session.id, None)

        rooms = self._registry.remove_everywhere(session)
        stopped = self._typing.clear_user(session.user_id)
        logger.info(
            "[Session] Closed %s for %s (left %d rooms, cleared %d typing)",
            session.id, session.username, len(rooms), len(stopped),
        )

        for entry in stopped:
            await self._notifier.user_stopped_typing(entry.room_id, entry.user_id, entry.username)
        for room_id in rooms:
            await self._notifier.user_left(room_id, session.user_id, session.username)

    async def release(self, session: Session) -> None:
        """Close on behalf of the transport when its receive loop ends.

        The cleanup runs in its own task, so the stop-typing and left
        notifications still reach the room when the connection task is
        cancelled while they are being sent.
        """
        task = asyncio.create_task(self.close_session(session))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
        await asyncio.shield(task)

    async def shutdown(self) -> None:
        for session in list(self._sessions.values()):
            await self.close_session(session)
        pending = list(self._closing)
        if pending:
            await asyncio.wait(pending)
        self._typing.shutdown()

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    async def handle(self, session: Session, data: Any) -> None:
        """Process one inbound frame. Never raises."""
        event = data.get("type") if isinstance(data, dict) else None
        if not isinstance(event, str) or not event:
            event = None
        try:
            if event is None:
                raise ValidationError("Frame must be a JSON object with a 'type' field.")
            entry = self._handlers.get(event)
            if entry is None:
                raise ValidationError(f"Unknown event '{event}'.")
            model, handler = entry
            try:
                payload = model.model_validate(data)
            except PayloadError as exc:
                raise ValidationError(
                    "Invalid payload",
                    [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()],
                )
            logger.debug("[Session] %s <- %s", session.id, event)
            await handler(session, payload)
        except ChatError as exc:
            logger.info("[Session] %s %s rejected: %s", session.id, event, exc.message)
            await self._reply_error(session, event, exc)
        except Exception:
            logger.exception("[Session] %s %s failed", session.id, event)
            await self._reply_error(session, event, InfrastructureError())

    async def _reply(self, session: Session, event: str, payload: dict) -> None:
        # A session that closed while its handler was awaiting gets nothing.
        if session.is_open:
            await self._notifier.reply(session.id, event, payload)

    async def _reply_error(self, session: Session, event: Optional[str], error: ChatError) -> None:
        if session.is_open:
            await self._notifier.error(session.id, event, error)

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def _join_room(self, session: Session, payload: RoomPayload) -> None:
        room = await self._rooms.get_room(payload.room)
        history, meta = await self._messages.list_messages(room.id)
        if not session.is_open:
            return
        joined = self._registry.join(room.id, session)
        await self._reply(session, "room-joined", {
            "room": room,
            "typing": self._typing.typing_in(room.id),
            "history": history,
            "meta": meta,
        })
        if joined:
            await self._notifier.user_joined(room.id, session.user_id, session.username, session.id)

    async def _create_room(self, session: Session, payload: CreateRoomPayload) -> None:
        room = await self._rooms.create_room(payload.name, payload.description, session.user_id)
        if session.is_open:
            self._registry.join(room.id, session)
        await self._notifier.room_created(room)

    async def _list_rooms(self, session: Session, payload: ListRoomsPayload) -> None:
        rooms = await self._rooms.list_rooms()
        await self._reply(session, "room-list", {"rooms": rooms})

    async def _fetch_messages(self, session: Session, payload: FetchMessagesPayload) -> None:
        room = await self._rooms.get_room(payload.room)
        messages, meta = await self._messages.list_messages(room.id, payload.page, payload.page_size)
        await self._reply(session, "messages", {
            "room_id": room.id,
            "messages": messages,
            "meta": meta,
        })

    async def _leave_room(self, session: Session, payload: RoomPayload) -> None:
        room = await self._rooms.get_room(payload.room)
        left = self._registry.leave(room.id, session)
        stopped = self._typing.stop(room.id, session.user_id)
        await self._reply(session, "room-left", {"room_id": room.id})
        if stopped is not None:
            await self._notifier.user_stopped_typing(room.id, session.user_id, session.username)
        if left:
            await self._notifier.user_left(room.id, session.user_id, session.username)

    async def _send_message(self, session: Session, payload: SendMessagePayload) -> None:
        message = await self._messages.send_message(
            session.user_id,
            payload.room,
            payload.content,
            reply_to=payload.reply_to,
            file_id=payload.file_id,
        )
        if self._typing.stop(message.room_id, session.user_id) is not None:
            await self._notifier.user_stopped_typing(
                message.room_id, session.user_id, session.username, session.id
            )
        await self._notifier.message_sent(message, session.username)
        self._delivery.schedule(message)

    async def _edit_message(self, session: Session, payload: EditMessagePayload) -> None:
        message = await self._messages.edit_message(
            payload.message_id, session.user_id, payload.content
        )
        await self._notifier.message_edited(message)

    async def _delete_message(self, session: Session, payload: MessageRefPayload) -> None:
        message = await self._messages.delete_message(
            payload.message_id, session.user_id, session.identity.is_moderator
        )
        self._delivery.cancel(message.id)
        await self._notifier.message_deleted(message)

    async def _add_reaction(self, session: Session, payload: ReactionPayload) -> None:
        message = await self._messages.add_reaction(
            payload.message_id, session.user_id, payload.emoji
        )
        await self._notifier.reaction_added(message, session.user_id, payload.emoji.strip())

    async def _remove_reaction(self, session: Session, payload: ReactionPayload) -> None:
        message = await self._messages.remove_reaction(
            payload.message_id, session.user_id, payload.emoji
        )
        await self._notifier.reaction_removed(message, session.user_id, payload.emoji.strip())

    async def _mark_read(self, session: Session, payload: MessageRefPayload) -> None:
        message, changed = await self._messages.mark_as_read(payload.message_id, session.user_id)
        if message.status == MessageStatus.READ:
            self._delivery.cancel(message.id)
        if changed:
            await self._notifier.message_read(message, session.user_id)

    async def _pin_message(self, session: Session, payload: MessageRefPayload) -> None:
        message = await self._messages.pin_message(payload.message_id, session.user_id)
        await self._notifier.message_pinned(message)

    async def _typing_start(self, session: Session, payload: RoomPayload) -> None:
        room = await self._rooms.get_room(payload.room)
        if not session.is_open:
            return
        if self._typing.start(room.id, session.user_id, session.username, session.id):
            await self._notifier.user_typing(room.id, session.user_id, session.username, session.id)

    async def _typing_stop(self, session: Session, payload: RoomPayload) -> None:
        room = await self._rooms.get_room(payload.room)
        if self._typing.stop(room.id, session.user_id) is not None:
            await self._notifier.user_stopped_typing(
                room.id, session.user_id, session.username, session.id
            )

    async def _file_share(self, session: Session, payload: FileSharePayload) -> None:
        room = await self._rooms.get_room(payload.room)
        await self._notifier.file_received(
            room.id, session.user_id, session.username, payload.file_ref, payload.file_name
        )
