"""RoomService: create and resolve chat rooms."""
import logging
from typing import List, Optional

from parley.errors import NotFoundError, ValidationError
from parley.store.schemas import Room
from parley.store.service import ChatStore

logger = logging.getLogger(__name__)

# /messages/search would shadow a room of this name.
RESERVED_ROOM_NAMES = frozenset({"search"})


class RoomService:
    def __init__(self, store: ChatStore) -> None:
        self._store = store

    async def create_room(
        self,
        name: str,
        description: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> Room:
        """Create a room; the creator becomes its first member.

        Raises:
            ValidationError: If the name is blank or reserved.
            ConflictError: If a room with this name already exists.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Room name is required.")
        if name.lower() in RESERVED_ROOM_NAMES:
            raise ValidationError(f"Room name '{name}' is reserved.")
        room = Room(
            name=name,
            description=description,
            members=[creator_id] if creator_id else [],
        )
        await self._store.call(self._store.create_room, room)
        logger.info("[Rooms] Created room %s (%s)", room.name, room.id)
        return room

    async def list_rooms(self) -> List[Room]:
        return await self._store.call(self._store.list_rooms)

    async def get_room(self, room_ref: str) -> Room:
        """Resolve a room by id, falling back to its unique name.

        Raises:
            NotFoundError: If neither matches.
        """
        room = await self._store.call(self._store.get_room, room_ref)
        if room is None:
            room = await self._store.call(self._store.get_room_by_name, room_ref)
        if room is None:
            raise NotFoundError("Room not found.")
        return room
