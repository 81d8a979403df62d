import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """Writes attachments to a directory served as static files."""

    def __init__(self, root: str, url_prefix: str = "/chat-attachments"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _write(self, name: str, content: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_bytes(content)

    async def save(self, name: str, content: bytes, content_type: str) -> str:
        await asyncio.to_thread(self._write, name, content)
        logger.debug("Stored %s (%s, %d bytes)", name, content_type, len(content))
        return f"{self.url_prefix}/{name}"
