"""Local-disk storage for raw uploads.

Uploads are written under the configured storage directory as
``<stem>_<epoch millis><ext>`` so two uploads with the same name never
overwrite each other.  File I/O runs via ``asyncio.to_thread`` so the
event loop is not blocked by large files.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import structlog

from src.interfaces.file_storage import IFileStorage
from src.utils.errors import ProcessingError

logger = structlog.get_logger(logger_name=__name__)


def stored_filename(filename: str, millis: int | None = None) -> str:
    """Return the on-disk name for *filename*: ``report.pdf`` -> ``report_1700000000000.pdf``."""
    if millis is None:
        millis = int(time.time() * 1000)
    # Only the final path component; drop any directories the client sent.
    name = Path(filename.replace("\\", "/")).name or "upload"
    path = Path(name)
    return f"{path.stem}_{millis}{path.suffix}"


class LocalFileStorage(IFileStorage):
    """Stores upload bytes in a directory on the local filesystem."""

    def __init__(self, base_dir: str | Path = "./uploads") -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    # -- Sync helpers (executed via asyncio.to_thread) -------------------------

    def _save_sync(self, filename: str, content: bytes) -> str:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        target = self._base_dir / stored_filename(filename)
        target.write_bytes(content)
        return str(target)

    # -- IFileStorage ----------------------------------------------------------

    async def save(self, filename: str, content: bytes) -> str:
        path = await asyncio.to_thread(self._save_sync, filename, content)
        logger.info("file_saved", path=path, size=len(content))
        return path

    async def load(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as exc:
            raise ProcessingError(
                message=f"Stored file unavailable: {path}",
                provider_name="local_storage",
            ) from exc

    async def delete(self, path: str) -> bool:
        target = Path(path)
        if not target.exists():
            return False
        await asyncio.to_thread(target.unlink)
        logger.info("file_deleted", path=path)
        return True
