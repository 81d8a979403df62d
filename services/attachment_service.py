import logging
import mimetypes
import re
import uuid
from pathlib import PurePath
from typing import Protocol

from domain.errors import InvalidInput
from domain.message.attachment import (
    ALLOWED_EXTENSIONS,
    MAX_ATTACHMENT_BYTES,
    Attachment,
    media_kind_for,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class FileStorage(Protocol):
    async def save(self, name: str, content: bytes, content_type: str) -> str: ...


def _extension(file_name: str) -> str:
    return PurePath(file_name).suffix.lower().lstrip(".")


def _safe_name(file_name: str) -> str:
    # Remove diretórios enviados pelo navegador e caracteres estranhos
    base = PurePath(file_name.replace("\\", "/")).name
    return _UNSAFE_CHARS.sub("_", base) or "file"


class AttachmentService:
    def __init__(self, storage: FileStorage):
        self._storage = storage

    def validate(self, file_name: str, size: int) -> str:
        """Check name and size before anything is read or written; returns the extension."""
        if not file_name or size <= 0:
            raise InvalidInput("No file uploaded")

        extension = _extension(file_name)
        if extension not in ALLOWED_EXTENSIONS:
            raise InvalidInput("Invalid file type. Allowed: PDF, images, videos")

        if size > MAX_ATTACHMENT_BYTES:
            raise InvalidInput("File size exceeds 10MB limit")
        return extension

    async def store(self, session_id: str, file_name: str, content: bytes) -> Attachment:
        extension = self.validate(file_name, len(content))

        stored_name = f"{uuid.uuid4().hex}_{_safe_name(file_name)}"
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        path = await self._storage.save(stored_name, content, content_type)

        logger.info("Attachment %s stored for chat %s (%d bytes)", stored_name, session_id, len(content))
        return Attachment(
            file_name=file_name,
            media_kind=media_kind_for(extension),
            size_bytes=len(content),
            storage_path=path,
        )
