"""File upload/download endpoints."""
import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse

from parley.auth.schemas import Identity
from parley.envelope import created_response
from parley.services import Services, get_current_identity, get_services

from .schemas import FileUploadResponse, get_file_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


def get_download_url(request: Request, file_id: str) -> str:
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/files/download/{file_id}"


@router.post("/upload/{room_id}", status_code=201)
async def upload_file(
    request: Request,
    room_id: str,
    file: UploadFile = File(...),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Upload a file to a room.

    The file is posted to the room as a ``File: <name>`` message, announced
    like any other sent message.

    Raises:
        ValidationError (400): Empty or oversized file.
        NotFoundError (404): Unknown room.
    """
    content = await file.read()
    stored, message = await services.files.upload(
        room_id,
        identity,
        file.filename or "unnamed",
        content,
        file.content_type or "application/octet-stream",
    )
    await services.notifier.message_sent(message, identity.username)
    services.delivery.schedule(message)

    response = FileUploadResponse(
        file=stored,
        file_type=get_file_type(stored.mime_type),
        download_url=get_download_url(request, stored.id),
        message=message,
    )
    return created_response("File uploaded successfully", response)


@router.get("/download/{file_id}")
async def download_file(
    file_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    stored, path = await services.files.get(file_id)
    return FileResponse(
        path=path,
        filename=stored.original_filename,
        media_type=stored.mime_type,
    )
