"""Pydantic schemas for file upload responses."""
from enum import Enum

from pydantic import BaseModel, Field

from parley.store.schemas import Message, StoredFile


class FileType(str, Enum):
    """File categories derived from the MIME type."""
    IMAGE = "image"
    PDF = "pdf"
    AUDIO = "audio"
    OTHER = "other"


MAX_FILE_SIZE_BYTES = 20 * 1024 * 1024

ALLOWED_MIME_TYPES = {
    FileType.IMAGE: ["image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"],
    FileType.PDF: ["application/pdf"],
    FileType.AUDIO: [
        "audio/mpeg", "audio/mp3", "audio/wav", "audio/ogg",
        "audio/mp4", "audio/x-m4a", "audio/flac",
    ],
}


def get_file_type(mime_type: str) -> FileType:
    """Map a MIME type to its category; unknown types are OTHER.

    >>> get_file_type("image/png")
    <FileType.IMAGE: 'image'>
    """
    for file_type, mime_types in ALLOWED_MIME_TYPES.items():
        if mime_type in mime_types:
            return file_type
    return FileType.OTHER


class FileUploadResponse(BaseModel):
    """``data`` of a successful POST /files/upload/{room_id}."""
    file: StoredFile
    file_type: FileType
    download_url: str = Field(..., description="URL to download the file")
    message: Message
