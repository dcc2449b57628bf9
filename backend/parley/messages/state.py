"""Lifecycle rules for a single message.

Delivery status is monotonic::

    sent ──deliver──▶ delivered ──read──▶ read
      └───────────────read─────────────────▲

Orthogonal to the status are three flags: ``edited`` (``edited_at`` set),
``deleted`` (soft, ``deleted_at`` set) and ``pinned`` (a toggle).

Every transition below mutates the message in place and returns whether it
changed anything, so it can be passed straight to
``ChatStore.update_message`` as the mutate step of an atomic
read-modify-write. A soft-deleted message is logically absent: every
transition on it raises :class:`NotFoundError`.
"""
import time
from typing import List, Optional

from parley.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from parley.store.schemas import Message, MessageStatus, Reaction, ReadReceipt


def ensure_live(message: Message) -> None:
    if message.is_deleted:
        raise NotFoundError("Message not found.")


def ensure_sender(message: Message, user_id: str, action: str, is_moderator: bool = False) -> None:
    if message.sender_id != user_id and not is_moderator:
        raise AuthorizationError(f"Unauthorized to {action} this message.")


def advance_status(message: Message, target: MessageStatus) -> bool:
    """Move the status forward. Same status is a no-op; backwards is rejected."""
    if target.rank < message.status.rank:
        raise InvalidTransitionError(
            f"Cannot move message from {message.status.value} to {target.value}."
        )
    if target == message.status:
        return False
    message.status = target
    return True


def deliver(message: Message) -> bool:
    """System transition sent → delivered. Illegal once read or deleted."""
    ensure_live(message)
    return advance_status(message, MessageStatus.DELIVERED)


def mark_read(message: Message, user_id: str, now: Optional[float] = None) -> bool:
    """Record a read receipt for ``user_id``; idempotent per user.

    ``sent → read`` is allowed directly. Returns False when the user had
    already read the message, in which case nothing changes.
    """
    ensure_live(message)
    if any(receipt.user_id == user_id for receipt in message.read_by):
        return False
    message.read_by.append(ReadReceipt(user_id=user_id, read_at=now or time.time()))
    advance_status(message, MessageStatus.READ)
    return True


def edit(
    message: Message,
    user_id: str,
    content: str,
    mentions: List[str],
    now: Optional[float] = None,
) -> bool:
    """Replace the content (sender only). Delivery status is untouched."""
    ensure_live(message)
    ensure_sender(message, user_id, "edit")
    message.content = content
    message.mentions = list(mentions)
    message.edited_at = now or time.time()
    return True


def soft_delete(
    message: Message,
    user_id: str,
    is_moderator: bool = False,
    now: Optional[float] = None,
) -> bool:
    """Mark deleted (sender or moderator). The record stays addressable by id."""
    ensure_live(message)
    ensure_sender(message, user_id, "delete", is_moderator)
    message.deleted_at = now or time.time()
    message.deleted_by = user_id
    return True


def add_reaction(message: Message, user_id: str, emoji: str, now: Optional[float] = None) -> bool:
    """Add a (user, emoji) pair.

    Raises:
        ConflictError: If this user already reacted with this emoji.
    """
    ensure_live(message)
    if any(r.user_id == user_id and r.emoji == emoji for r in message.reactions):
        raise ConflictError("Reaction already exists.")
    message.reactions.append(Reaction(user_id=user_id, emoji=emoji, ts=now or time.time()))
    return True


def remove_reaction(message: Message, user_id: str, emoji: str) -> bool:
    """Remove a (user, emoji) pair.

    Raises:
        NotFoundError: If the pair is not present.
    """
    ensure_live(message)
    for index, reaction in enumerate(message.reactions):
        if reaction.user_id == user_id and reaction.emoji == emoji:
            del message.reactions[index]
            return True
    raise NotFoundError("Reaction not found.")


def toggle_pin(message: Message, user_id: str, now: Optional[float] = None) -> bool:
    """Flip the pinned flag; pinner and time are recorded on pin, cleared on unpin."""
    ensure_live(message)
    message.pinned = not message.pinned
    if message.pinned:
        message.pinned_by = user_id
        message.pinned_at = now or time.time()
    else:
        message.pinned_by = None
        message.pinned_at = None
    return True
