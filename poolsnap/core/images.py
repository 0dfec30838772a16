"""Local image resources for uploaded photos.

Each uploaded photo is written once to a cache directory so the rendering
layer can display it. A ``LocalImage`` must be released exactly once; the
message store takes ownership when the owning entry is appended.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


@dataclass(frozen=True)
class SelectedImage:
    """A photo picked by the user, not yet sent.

    Attributes:
        filename: Original file name, forwarded to the webhook.
        content: Raw image bytes.
        content_type: MIME type reported by the picker.
    """
    filename: str
    content: bytes
    content_type: str = "image/jpeg"


class LocalImage:
    """Displayable on-disk copy of an uploaded photo."""

    def __init__(self, path: Path):
        self.path = path
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Delete the backing file.

        Returns:
            True on the first call, False if the image was already released.
        """
        if self._released:
            logger.warning("image.double_release", path=str(self.path))
            return False
        self._released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("image.already_gone", path=str(self.path))
        logger.debug("image.released", path=str(self.path))
        return True

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"LocalImage({self.path.name}, {state})"


class LocalImageAllocator:
    """Writes selected photos into a cache directory."""

    def __init__(self, directory: str | Path | None = None):
        directory = directory or os.environ.get("IMAGE_CACHE_DIR")
        if directory:
            self.directory = Path(directory)
            self.directory.mkdir(parents=True, exist_ok=True)
        else:
            self.directory = Path(tempfile.mkdtemp(prefix="poolsnap-"))

    def allocate(self, image: SelectedImage) -> LocalImage:
        """Persist the image bytes and return an owning reference."""
        suffix = _EXTENSIONS.get(image.content_type, Path(image.filename).suffix)
        fd, name = tempfile.mkstemp(suffix=suffix, dir=self.directory)
        with os.fdopen(fd, "wb") as fh:
            fh.write(image.content)
        logger.debug("image.allocated", path=name, size=len(image.content))
        return LocalImage(Path(name))
