"""HTTP endpoints for messages and favorites.

Each route maps onto one MessageService operation and announces the same
socket event as its socket twin, so HTTP and socket clients in a room see
one consistent stream.

Endpoints:
    POST   /messages                             - Send a message
    GET    /messages/search?room=&q=             - Search a room
    GET    /messages/by-id/{message_id}          - Direct lookup (includes deleted)
    GET    /messages/{room_ref}                  - List a room (pinned first)
    PUT    /messages/{message_id}                - Edit (sender only)
    DELETE /messages/{message_id}                - Soft delete (sender or moderator)
    POST   /messages/{message_id}/reactions      - Add a reaction
    DELETE /messages/{message_id}/reactions/{e}  - Remove a reaction
    POST   /messages/{message_id}/read           - Mark read
    POST   /messages/{message_id}/pin            - Toggle pin
    POST   /messages/{message_id}/deliver        - Explicit delivery trigger
    POST   /favorites                            - Favorite a message
    DELETE /favorites/{message_id}               - Unfavorite
    GET    /favorites                            - List favorites, newest first
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from parley.auth.schemas import Identity
from parley.envelope import created_response, success_response
from parley.services import Services, get_current_identity, get_services

from .schemas import FavoriteCreate, MessageCreate, MessageEdit, ReactionCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])
favorites_router = APIRouter(prefix="/favorites", tags=["favorites"])


@router.post("", status_code=201)
async def send_message(
    body: MessageCreate,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.send_message(
        identity.user_id, body.room, body.content, reply_to=body.reply_to, file_id=body.file_id
    )
    await services.notifier.message_sent(message, identity.username)
    services.delivery.schedule(message)
    return created_response("Message sent successfully", message)


@router.get("/search")
async def search_messages(
    room: str = Query(..., min_length=1),
    q: str = Query(..., min_length=1),
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    messages, meta = await services.messages.search_messages(room, q, page, page_size)
    return success_response("Search results", messages, meta)


@router.get("/by-id/{message_id}")
async def get_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.get_message(message_id)
    return success_response("Message retrieved successfully", message)


@router.get("/{room_ref}")
async def list_messages(
    room_ref: str,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    include_deleted: bool = Query(False),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    messages, meta = await services.messages.list_messages(
        room_ref, page, page_size, include_deleted
    )
    return success_response("Messages retrieved successfully", messages, meta)


@router.put("/{message_id}")
async def edit_message(
    message_id: str,
    body: MessageEdit,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.edit_message(message_id, identity.user_id, body.content)
    await services.notifier.message_edited(message)
    return success_response("Message updated successfully", message)


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.delete_message(
        message_id, identity.user_id, identity.is_moderator
    )
    services.delivery.cancel(message.id)
    await services.notifier.message_deleted(message)
    return success_response("Message deleted successfully", message)


@router.post("/{message_id}/reactions", status_code=201)
async def add_reaction(
    message_id: str,
    body: ReactionCreate,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.add_reaction(message_id, identity.user_id, body.emoji)
    await services.notifier.reaction_added(message, identity.user_id, body.emoji.strip())
    return created_response("Reaction added successfully", message)


@router.delete("/{message_id}/reactions/{emoji}")
async def remove_reaction(
    message_id: str,
    emoji: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.remove_reaction(message_id, identity.user_id, emoji)
    await services.notifier.reaction_removed(message, identity.user_id, emoji.strip())
    return success_response("Reaction removed successfully", message)


@router.post("/{message_id}/read")
async def mark_read(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message, changed = await services.messages.mark_as_read(message_id, identity.user_id)
    services.delivery.cancel(message.id)
    if changed:
        await services.notifier.message_read(message, identity.user_id)
    return success_response("Message marked as read", message)


@router.post("/{message_id}/pin")
async def pin_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.messages.pin_message(message_id, identity.user_id)
    await services.notifier.message_pinned(message)
    verb = "pinned" if message.pinned else "unpinned"
    return success_response(f"Message {verb} successfully", message)


@router.post("/{message_id}/deliver")
async def deliver_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    message = await services.delivery.deliver_now(message_id)
    return success_response("Message delivered", message)


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


@favorites_router.post("", status_code=201)
async def add_favorite(
    body: FavoriteCreate,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    favorite = await services.messages.add_favorite(identity.user_id, body.message_id)
    return created_response("Message added to favorites", favorite)


@favorites_router.delete("/{message_id}")
async def remove_favorite(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    await services.messages.remove_favorite(identity.user_id, message_id)
    return success_response("Message removed from favorites")


@favorites_router.get("")
async def list_favorites(
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    items, meta = await services.messages.list_favorites(identity.user_id, page, page_size)
    data = [
        {"message_id": fav.message_id, "created_at": fav.created_at, "message": message}
        for fav, message in items
    ]
    return success_response("Favorites retrieved successfully", data, meta)
