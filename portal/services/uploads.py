# portal/services/uploads.py
"""
Scoped temporary uploads and the background sweeper for anything left behind.

`temporary_upload` owns the temp file for the duration of one request: it is
removed on the way out whether the handler succeeded or raised. The sweeper
only catches files orphaned by a crashed process.
"""
import asyncio
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from portal.core.config import settings
from portal.core.errors import ValidationError
from portal.services.resume_text import resume_text

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".txt", ".md", ".pdf", ".docx")
_CHUNK = 64 * 1024


def _temp_dir() -> Path:
    path = Path(settings.UPLOAD_TEMP_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


@asynccontextmanager
async def temporary_upload(file: UploadFile, field: str = "resume") -> AsyncIterator[Path]:
    fname = file.filename or ""
    ext = Path(fname).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError.for_field(field, "Unsupported file type")

    path = _temp_dir() / f"{field}-{uuid.uuid4().hex}{ext}"
    try:
        written = 0
        async with aiofiles.open(path, "wb") as out:
            while True:
                chunk = await file.read(_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > settings.UPLOAD_MAX_BYTES:
                    raise ValidationError.for_field(field, "File too large")
                await out.write(chunk)
        yield path
    finally:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove temp upload %s", path, exc_info=True)


async def read_text(path: Path) -> str:
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()
    # pdf and docx parsing is CPU bound
    loop = asyncio.get_event_loop()
    text = await loop.run_in_executor(None, resume_text, data, path.suffix)
    logger.debug("Extracted %d chars from %s upload", len(text), path.suffix)
    return text


def sweep_once(directory: Path, max_age_sec: int, now: Optional[float] = None) -> int:
    """Delete regular files older than `max_age_sec`; returns how many were removed."""
    if not directory.is_dir():
        return 0
    cutoff = (now if now is not None else time.time()) - max_age_sec
    removed = 0
    for entry in os.scandir(directory):
        try:
            if entry.is_file() and entry.stat().st_mtime < cutoff:
                os.remove(entry.path)
                removed += 1
        except OSError:
            logger.warning("Failed to sweep %s", entry.path, exc_info=True)
    return removed


class UploadSweeper:
    """Periodic cleanup of stale temp uploads, owned by the application lifecycle."""

    def __init__(self, directory: Optional[str] = None, interval_sec: Optional[int] = None,
                 max_age_sec: Optional[int] = None):
        self.directory = Path(directory or settings.UPLOAD_TEMP_DIR)
        self.interval_sec = interval_sec if interval_sec is not None else settings.UPLOAD_SWEEP_INTERVAL_SEC
        self.max_age_sec = max_age_sec if max_age_sec is not None else settings.UPLOAD_MAX_AGE_SEC
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_event_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_event_loop()
        while True:
            try:
                removed = await loop.run_in_executor(None, sweep_once, self.directory, self.max_age_sec)
                if removed:
                    logger.info("Removed %d stale uploads from %s", removed, self.directory)
            except Exception:
                logger.exception("Upload sweep failed")
            await asyncio.sleep(self.interval_sec)
