"""Room registry: which live sessions are subscribed to which rooms.

A session may be in any number of rooms at once and only ever appears in
rooms it explicitly joined. Leaving a room the session is not in is a
no-op.

Thread Safety:
    Confined to the event loop. Methods never await, so a handler cannot be
    interleaved halfway through a mutation.
"""
import logging
from typing import Dict, List, Set

from .schemas import Session

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(self) -> None:
        # room_id -> sessions subscribed to it
        self._members: Dict[str, Set[Session]] = {}
        # session id -> room ids, for disconnect cleanup
        self._rooms: Dict[str, Set[str]] = {}

    def join(self, room_id: str, session: Session) -> bool:
        """Subscribe ``session`` to ``room_id``. Returns False if it already was."""
        members = self._members.setdefault(room_id, set())
        if session in members:
            return False
        members.add(session)
        self._rooms.setdefault(session.id, set()).add(room_id)
        logger.debug("[Registry] %s joined %s (%d members)", session.id, room_id, len(members))
        return True

    def leave(self, room_id: str, session: Session) -> bool:
        """Unsubscribe ``session`` from ``room_id``. Returns False if it was not in it."""
        members = self._members.get(room_id)
        if not members or session not in members:
            return False
        members.discard(session)
        if not members:
            del self._members[room_id]
        rooms = self._rooms.get(session.id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._rooms[session.id]
        return True

    def members_of(self, room_id: str) -> Set[Session]:
        """Snapshot of the sessions in a room; safe to iterate across awaits."""
        return set(self._members.get(room_id, ()))

    def rooms_of(self, session: Session) -> Set[str]:
        return set(self._rooms.get(session.id, ()))

    def is_member(self, room_id: str, session: Session) -> bool:
        return session in self._members.get(room_id, ())

    def remove_everywhere(self, session: Session) -> List[str]:
        """Drop ``session`` from every room; returns the rooms it was in."""
        rooms = sorted(self._rooms.get(session.id, ()))
        for room_id in rooms:
            self.leave(room_id, session)
        return rooms

    def room_count(self) -> int:
        return len(self._members)
