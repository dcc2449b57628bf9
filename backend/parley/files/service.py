"""File upload flow: store bytes, record metadata, post a file message."""
import asyncio
import logging
from pathlib import Path
from typing import Tuple

from parley.auth.schemas import Identity
from parley.errors import NotFoundError, ValidationError
from parley.messages.service import MessageService
from parley.rooms.service import RoomService
from parley.store.schemas import Message, StoredFile
from parley.store.service import ChatStore

from .blobs import BlobStore
from .schemas import MAX_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255


class FileService:
    def __init__(
        self,
        store: ChatStore,
        blobs: BlobStore,
        rooms: RoomService,
        messages: MessageService,
        max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._rooms = rooms
        self._messages = messages
        self._max_size = max_file_size_bytes

    async def upload(
        self,
        room_ref: str,
        identity: Identity,
        filename: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
    ) -> Tuple[StoredFile, Message]:
        """Save an uploaded file and announce it as a message in the room.

        Returns:
            Tuple of (file metadata, the ``File: <name>`` message).

        Raises:
            ValidationError: Empty, oversized or badly named file.
            NotFoundError: Unknown room.
        """
        filename = Path(filename or "").name.strip()
        if not filename:
            raise ValidationError("A file name is required.")
        if len(filename) > MAX_FILENAME_LENGTH:
            raise ValidationError("File name is too long.")
        if not content:
            raise ValidationError("File is empty.")
        if len(content) > self._max_size:
            raise ValidationError(
                f"File size ({len(content)} bytes) exceeds limit ({self._max_size} bytes)"
            )

        room = await self._rooms.get_room(room_ref)

        loop = asyncio.get_running_loop()
        reference = await loop.run_in_executor(None, self._blobs.put, content, filename)
        stored = StoredFile(
            room_id=room.id,
            uploaded_by=identity.user_id,
            original_filename=filename,
            reference=reference,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=len(content),
        )
        try:
            await self._store.call(self._store.insert_file, stored)
            message = await self._messages.send_message(
                identity.user_id, room.id, f"File: {filename}", file_id=stored.id
            )
        except Exception:
            self._blobs.delete(reference)
            raise

        logger.info(
            "[Files] %s uploaded %s (%d bytes) to room %s",
            identity.username, filename, stored.size_bytes, room.id,
        )
        return stored, message

    async def get(self, file_id: str) -> Tuple[StoredFile, Path]:
        """Metadata and on-disk path of an uploaded file.

        Raises:
            NotFoundError: Unknown file id or missing bytes.
        """
        stored = await self._store.call(self._store.get_file, file_id)
        if stored is None:
            raise NotFoundError("File not found.")
        return stored, self._blobs.path(stored.reference)
