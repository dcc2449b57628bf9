"""Event fan-out to sockets.

Every outbound frame is ``{"type": <event>, ...payload}``. Delivery is
best-effort: all target sessions are sent to concurrently with
``asyncio.gather``, each send is bounded by ``send_timeout_seconds``, and a
failed or slow socket is logged and skipped. Nothing here raises to the
caller.

The public surface is ``to_room`` / ``to_session`` / ``to_user`` /
``to_all``. A multi-process deployment would put a relay behind these
methods; the callers do not need to change.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi.encoders import jsonable_encoder

from .registry import RoomRegistry
from .schemas import Session

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 5.0


def make_frame(event: str, payload: Optional[Dict[str, Any]] = None) -> dict:
    frame = {"type": event}
    if payload:
        frame.update(jsonable_encoder(payload))
    return frame


class Broadcaster:
    def __init__(self, registry: RoomRegistry, send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT) -> None:
        self._registry = registry
        self._send_timeout = send_timeout_seconds
        # session id -> session, for to_session / to_user
        self._sessions: Dict[str, Session] = {}

    def attach(self, session: Session) -> None:
        self._sessions[session.id] = session

    def detach(self, session: Session) -> None:
        self._sessions.pop(session.id, None)

    def session_count(self) -> int:
        return len(self._sessions)

    def sessions_of(self, user_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    async def to_room(
        self,
        room_id: str,
        event: str,
        payload: Optional[Dict[str, Any]] = None,
        exclude_session_id: Optional[str] = None,
    ) -> int:
        """Send to every session in the room. Returns how many sends succeeded."""
        targets = [
            s for s in self._registry.members_of(room_id) if s.id != exclude_session_id
        ]
        return await self._fan_out(targets, make_frame(event, payload))

    async def to_session(self, session_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("[Broadcast] Dropping %s for gone session %s", event, session_id)
            return False
        return await self._safe_send(session, make_frame(event, payload))

    async def to_user(self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Send to every open session of one user (a user may have several)."""
        return await self._fan_out(self.sessions_of(user_id), make_frame(event, payload))

    async def to_all(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Send to every attached session, joined to a room or not."""
        return await self._fan_out(self._sessions.values(), make_frame(event, payload))

    async def _fan_out(self, sessions: Iterable[Session], frame: dict) -> int:
        sessions = list(sessions)
        if not sessions:
            return 0
        results = await asyncio.gather(
            *[self._safe_send(s, frame) for s in sessions],
            return_exceptions=True,
        )
        return sum(1 for ok in results if ok is True)

    async def _safe_send(self, session: Session, frame: dict) -> bool:
        """Send one frame to one session.

        Returns:
            True if sent, False if the socket failed or timed out.
        """
        try:
            await asyncio.wait_for(session.socket.send_json(frame), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "[Broadcast] Send of %s to session %s timed out", frame.get("type"), session.id
            )
            return False
        except Exception as e:
            # The session stays registered until its transport loop releases it.
            logger.warning(
                "[Broadcast] Failed to send %s to session %s: %s", frame.get("type"), session.id, e
            )
            return False
