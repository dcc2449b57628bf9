"""Room endpoints.

Endpoints:
    POST /rooms             - Create a room (creator becomes first member);
                              announced to every connection as room-created
    GET  /rooms             - List rooms, oldest first
    GET  /rooms/{room_ref}  - Fetch a room by id or name
"""
from fastapi import APIRouter, Depends

from parley.auth.schemas import Identity
from parley.envelope import created_response, success_response
from parley.services import Services, get_current_identity, get_services

from .schemas import RoomCreate

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", status_code=201)
async def create_room(
    body: RoomCreate,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    room = await services.rooms.create_room(body.name, body.description, identity.user_id)
    await services.notifier.room_created(room)
    return created_response("Room created successfully", room)


@router.get("")
async def list_rooms(
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    rooms = await services.rooms.list_rooms()
    return success_response("Rooms retrieved successfully", rooms, {"total": len(rooms)})


@router.get("/{room_ref}")
async def get_room(
    room_ref: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    room = await services.rooms.get_room(room_ref)
    return success_response("Room retrieved successfully", room)
