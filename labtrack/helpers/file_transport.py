import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from labtrack.commons.errors import FileNotReadyError
from labtrack.commons.logger import logger


@dataclass
class UploadFile:
    path: Path
    name: str
    mime_type: str

    @classmethod
    def from_path(cls, path, name: Optional[str] = None, mime_type: Optional[str] = None) -> "UploadFile":
        p = Path(path)
        guessed = mimetypes.guess_type(p.name)[0]
        return cls(path=p, name=name or p.name, mime_type=mime_type or guessed or "application/octet-stream")

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            # not created yet: counts as zero bytes
            return 0

    def read_part(self):
        return (self.name, self.path.read_bytes(), self.mime_type)


async def wait_until_ready(
    f: UploadFile,
    attempts: int = 5,
    backoff_sec: float = 0.2,
    size_of: Optional[Callable[[UploadFile], int]] = None,
) -> int:
    """Poll the file size until it is positive; raise FileNotReadyError otherwise."""
    size_of = size_of or UploadFile.size
    for i in range(1, attempts + 1):
        size = size_of(f)
        if size > 0:
            return size
        logger.debug(f"{f.name} not ready ({i}/{attempts})")
        if i < attempts:
            await asyncio.sleep(backoff_sec)
    raise FileNotReadyError(str(f.path), attempts)
