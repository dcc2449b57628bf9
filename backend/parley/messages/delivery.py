"""Delayed ``sent -> delivered`` transitions.

Each scheduled message owns one cancellable asyncio task. The task sleeps
for the configured delay, applies the transition through the
MessageService, and hands the delivered message to ``on_delivered`` (the
notifier announces ``message-delivered`` to the room).

A message that was read or deleted before its timer fired is skipped
quietly; that is the normal race between a fast reader and the timer.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from parley.errors import ChatError
from parley.store.schemas import Message

from .service import MessageService

logger = logging.getLogger(__name__)

OnDelivered = Callable[[Message], Awaitable[None]]


class DeliveryScheduler:
    def __init__(
        self,
        messages: MessageService,
        delay_seconds: float = 1.0,
        on_delivered: Optional[OnDelivered] = None,
    ) -> None:
        self._messages = messages
        self._delay = delay_seconds
        self._on_delivered = on_delivered
        # message_id -> pending timer task
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_scheduled(self, message_id: str) -> bool:
        return message_id in self._tasks

    def schedule(self, message: Message) -> None:
        """Start the delivery timer for a freshly sent message."""
        self.cancel(message.id)
        self._tasks[message.id] = asyncio.create_task(self._fire_later(message.id))

    async def deliver_now(self, message_id: str) -> Message:
        """Explicit delivery trigger. Errors propagate to the caller.

        Raises:
            NotFoundError: Unknown or deleted message.
            InvalidTransitionError: Message was already read.
        """
        self.cancel(message_id)
        message, changed = await self._messages.mark_delivered(message_id)
        if changed:
            await self._announce(message)
        return message

    def cancel(self, message_id: str) -> bool:
        task = self._tasks.pop(message_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("[Delivery] Cancelled %d pending timers", len(tasks))

    async def _fire_later(self, message_id: str) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            logger.debug("[Delivery] Timer cancelled for %s", message_id)
            raise
        # From here on the transition runs to completion.
        if self._tasks.get(message_id) is asyncio.current_task():
            del self._tasks[message_id]

        try:
            message, changed = await self._messages.mark_delivered(message_id)
        except ChatError as exc:
            logger.debug("[Delivery] Skipped %s: %s", message_id, exc.message)
            return
        if changed:
            await self._announce(message)

    async def _announce(self, message: Message) -> None:
        if self._on_delivered is None:
            return
        try:
            await self._on_delivered(message)
        except Exception:
            logger.exception("[Delivery] Failed to announce delivery of %s", message.id)
