"""Transient "user is typing" state with auto-expiry.

Entries are keyed by (room_id, user_id). ``start`` on an active entry is a
no-op and does not push the expiry back. When the timer fires the entry is
removed and ``on_expire`` runs exactly once for it; ``stop`` and
``clear_user`` cancel the timer so it never fires afterwards.

Thread Safety:
    Loop-confined, like the registry. Timers are asyncio tasks.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT = 3.0


@dataclass(eq=False)
class TypingEntry:
    room_id: str
    user_id: str
    username: str
    # Session that started typing; excluded from the stop broadcast.
    session_id: Optional[str] = None
    timer: Optional[asyncio.Task] = None


OnExpire = Callable[[TypingEntry], Awaitable[None]]


class TypingTracker:
    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TYPING_TIMEOUT,
        on_expire: Optional[OnExpire] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._on_expire = on_expire
        self._entries: Dict[Tuple[str, str], TypingEntry] = {}

    def start(
        self,
        room_id: str,
        user_id: str,
        username: str,
        session_id: Optional[str] = None,
    ) -> bool:
        """Mark the user as typing. Returns False if they already were."""
        key = (room_id, user_id)
        if key in self._entries:
            return False
        entry = TypingEntry(room_id, user_id, username, session_id)
        entry.timer = asyncio.create_task(self._expire_later(entry))
        self._entries[key] = entry
        logger.debug("[Typing] %s started typing in %s", username, room_id)
        return True

    def stop(self, room_id: str, user_id: str) -> Optional[TypingEntry]:
        """Clear the entry and cancel its timer. Returns it, or None if inactive."""
        entry = self._entries.pop((room_id, user_id), None)
        if entry is None:
            return None
        self._cancel(entry)
        logger.debug("[Typing] %s stopped typing in %s", entry.username, room_id)
        return entry

    def clear_user(self, user_id: str) -> List[TypingEntry]:
        """Stop every entry owned by ``user_id`` (disconnect path)."""
        keys = [key for key in self._entries if key[1] == user_id]
        return [entry for entry in (self.stop(*key) for key in keys) if entry is not None]

    def is_typing(self, room_id: str, user_id: str) -> bool:
        return (room_id, user_id) in self._entries

    def typing_in(self, room_id: str) -> List[str]:
        """Usernames currently typing in a room."""
        return [e.username for (room, _), e in self._entries.items() if room == room_id]

    def shutdown(self) -> None:
        for entry in self._entries.values():
            self._cancel(entry)
        self._entries.clear()

    @staticmethod
    def _cancel(entry: TypingEntry) -> None:
        if entry.timer is not None and entry.timer is not asyncio.current_task():
            entry.timer.cancel()
        entry.timer = None

    async def _expire_later(self, entry: TypingEntry) -> None:
        await asyncio.sleep(self._timeout)
        key = (entry.room_id, entry.user_id)
        if self._entries.get(key) is not entry:
            return
        del self._entries[key]
        entry.timer = None
        logger.debug("[Typing] %s expired in %s", entry.username, entry.room_id)
        if self._on_expire is None:
            return
        try:
            await self._on_expire(entry)
        except Exception:
            logger.exception("[Typing] Expiry callback failed for %s", entry.username)
