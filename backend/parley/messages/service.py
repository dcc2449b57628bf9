"""MessageService: orchestrates store calls for every message operation.

Each operation validates its input, checks that the room / message exists,
and applies lifecycle rules from :mod:`parley.messages.state` through one
atomic read-modify-write on the store. Nothing here talks to sockets; the
caller decides what to announce.
"""
import logging
import re
from typing import List, Optional, Tuple

from parley.errors import NotFoundError, ValidationError
from parley.rooms.service import RoomService
from parley.store.schemas import Favorite, Message, MessageStatus
from parley.store.service import ChatStore

from . import state

logger = logging.getLogger(__name__)

# @username tokens; usernames are restricted to word characters at registration.
MENTION_PATTERN = re.compile(r"@(\w+)")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class MessageService:
    def __init__(
        self,
        store: ChatStore,
        rooms: RoomService,
        max_content_length: int = 2000,
        max_emoji_length: int = 32,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self._store = store
        self._rooms = rooms
        self._max_content_length = max_content_length
        self._max_emoji_length = max_emoji_length
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # -----------------------------------------------------------------------
    # Create / read
    # -----------------------------------------------------------------------

    async def send_message(
        self,
        sender_id: str,
        room_ref: str,
        content: str,
        reply_to: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> Message:
        """Persist a new message in state ``sent``.

        Args:
            sender_id: Authenticated sender.
            room_ref: Room id or name.
            content: Message text; mentions are extracted from it.
            reply_to: Optional id of a live message in the same room.
            file_id: Optional attached file id.

        Raises:
            ValidationError: Blank/oversized content, or a cross-room reply.
            NotFoundError: Unknown room, reply target or file.
        """
        content = self._clean_content(content)
        room = await self._rooms.get_room(room_ref)

        thread_id = None
        if reply_to:
            parent = await self._store.call(self._store.get_message, reply_to)
            if parent is None or parent.is_deleted:
                raise NotFoundError("Reply target not found.")
            if parent.room_id != room.id:
                raise ValidationError("Reply target belongs to another room.")
            thread_id = parent.thread_id or parent.id

        if file_id and await self._store.call(self._store.get_file, file_id) is None:
            raise NotFoundError("File not found.")

        message = Message(
            room_id=room.id,
            sender_id=sender_id,
            content=content,
            file_id=file_id,
            reply_to=reply_to,
            thread_id=thread_id,
            mentions=await self.extract_mentions(content),
            status=MessageStatus.SENT,
        )
        await self._store.call(self._store.insert_message, message)
        logger.info(
            "[Messages] %s sent %s to room %s (%d mentions)",
            sender_id, message.id, room.id, len(message.mentions),
        )
        return message

    async def get_message(self, message_id: str) -> Message:
        """Direct lookup by id; soft-deleted messages are returned with ``deleted_at``."""
        message = await self._store.call(self._store.get_message, message_id)
        if message is None:
            raise NotFoundError("Message not found.")
        return message

    async def list_messages(
        self,
        room_ref: str,
        page: int = 1,
        page_size: Optional[int] = None,
        include_deleted: bool = False,
    ) -> Tuple[List[Message], dict]:
        """Pinned messages first, then newest first."""
        room = await self._rooms.get_room(room_ref)
        limit, offset = self._page_window(page, page_size)
        messages, total = await self._store.call(
            self._store.list_messages, room.id, limit, offset, include_deleted
        )
        return messages, {"page": page, "page_size": limit, "total": total}

    async def search_messages(
        self,
        room_ref: str,
        query: str,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Tuple[List[Message], dict]:
        """Case-insensitive substring match on content, newest first, deleted excluded."""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required.")
        room = await self._rooms.get_room(room_ref)
        limit, offset = self._page_window(page, page_size)
        messages, total = await self._store.call(
            self._store.search_messages, room.id, query, limit, offset
        )
        return messages, {"page": page, "page_size": limit, "total": total}

    async def extract_mentions(self, content: str) -> List[str]:
        """Resolve ``@username`` tokens to user ids, in order of first appearance.

        Tokens that do not name a user are dropped.
        """
        usernames = list(dict.fromkeys(MENTION_PATTERN.findall(content)))
        if not usernames:
            return []
        resolved = await self._store.call(self._store.resolve_usernames, usernames)
        return [resolved[name] for name in usernames if name in resolved]

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def edit_message(self, message_id: str, user_id: str, content: str) -> Message:
        content = self._clean_content(content)
        mentions = await self.extract_mentions(content)
        message, _ = await self._transition(
            message_id, lambda m: state.edit(m, user_id, content, mentions)
        )
        logger.info("[Messages] %s edited %s", user_id, message_id)
        return message

    async def delete_message(
        self, message_id: str, user_id: str, is_moderator: bool = False
    ) -> Message:
        message, _ = await self._transition(
            message_id, lambda m: state.soft_delete(m, user_id, is_moderator)
        )
        logger.info("[Messages] %s deleted %s", user_id, message_id)
        return message

    async def add_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        emoji = self._clean_emoji(emoji)
        message, _ = await self._transition(
            message_id, lambda m: state.add_reaction(m, user_id, emoji)
        )
        return message

    async def remove_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        emoji = self._clean_emoji(emoji)
        message, _ = await self._transition(
            message_id, lambda m: state.remove_reaction(m, user_id, emoji)
        )
        return message

    async def mark_as_read(self, message_id: str, user_id: str) -> Tuple[Message, bool]:
        """Returns (message, changed). ``changed`` is False for a repeat read."""
        return await self._transition(message_id, lambda m: state.mark_read(m, user_id))

    async def mark_delivered(self, message_id: str) -> Tuple[Message, bool]:
        return await self._transition(message_id, state.deliver)

    async def pin_message(self, message_id: str, user_id: str) -> Message:
        message, _ = await self._transition(message_id, lambda m: state.toggle_pin(m, user_id))
        logger.info(
            "[Messages] %s %s %s", user_id, "pinned" if message.pinned else "unpinned", message_id
        )
        return message

    # -----------------------------------------------------------------------
    # Favorites
    # -----------------------------------------------------------------------

    async def add_favorite(self, user_id: str, message_id: str) -> Favorite:
        message = await self.get_message(message_id)
        state.ensure_live(message)
        return await self._store.call(
            self._store.add_favorite, Favorite(user_id=user_id, message_id=message_id)
        )

    async def remove_favorite(self, user_id: str, message_id: str) -> None:
        removed = await self._store.call(self._store.remove_favorite, user_id, message_id)
        if not removed:
            raise NotFoundError("Favorite not found.")

    async def list_favorites(
        self, user_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[Tuple[Favorite, Optional[Message]]], dict]:
        limit, offset = self._page_window(page, page_size)
        items, total = await self._store.call(self._store.list_favorites, user_id, limit, offset)
        return items, {"page": page, "page_size": limit, "total": total}

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    async def _transition(self, message_id: str, mutate) -> Tuple[Message, bool]:
        return await self._store.call(self._store.update_message, message_id, mutate)

    def _clean_content(self, content) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content is required.")
        content = content.strip()
        if len(content) > self._max_content_length:
            raise ValidationError(
                f"Message content exceeds {self._max_content_length} characters."
            )
        return content

    def _clean_emoji(self, emoji) -> str:
        if not isinstance(emoji, str) or not emoji.strip():
            raise ValidationError("Emoji is required.")
        emoji = emoji.strip()
        if len(emoji) > self._max_emoji_length:
            raise ValidationError("Emoji is too long.")
        return emoji

    def _page_window(self, page: int, page_size: Optional[int]) -> Tuple[int, int]:
        size = self._default_page_size if page_size is None else page_size
        if page < 1:
            raise ValidationError("page must be >= 1.")
        if size < 1 or size > self._max_page_size:
            raise ValidationError(f"page_size must be between 1 and {self._max_page_size}.")
        return size, (page - 1) * size
