from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class MediaKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    VIDEO = "video"


ALLOWED_EXTENSIONS = {"pdf", "jpg", "jpeg", "png", "gif", "mp4", "mov", "avi"}
VIDEO_EXTENSIONS = {"mp4", "mov", "avi"}
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def media_kind_for(extension: str) -> MediaKind:
    extension = extension.lower().lstrip(".")
    if extension == "pdf":
        return MediaKind.PDF
    if extension in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.IMAGE


@dataclass
class Attachment:
    """Metadata of one uploaded file; the bytes live in the content store."""
    file_name: str
    media_kind: MediaKind
    size_bytes: int
    storage_path: str
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["media_kind"] = self.media_kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            file_name=data["file_name"],
            media_kind=MediaKind(data["media_kind"]),
            size_bytes=int(data["size_bytes"]),
            storage_path=data["storage_path"],
            uploaded_at=data.get("uploaded_at") or datetime.now(timezone.utc),
        )
