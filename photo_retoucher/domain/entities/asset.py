"""Asset entity - one imported photo and its processing lifecycle."""

from __future__ import annotations

import io
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ...config import FALLBACK_IMAGE_SIZE, MIME_TYPES, PREVIEW_MAX_DIMENSION

logger = logging.getLogger(__name__)


class AssetStatus(str, Enum):
    """Lifecycle states of an asset."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


def probe_image_size(data: bytes, label: str = "image") -> tuple[int, int]:
    """Read (width, height) from encoded image bytes.

    Unreadable data falls back to a square default size.
    """
    from PIL import Image as PILImage, UnidentifiedImageError

    try:
        with PILImage.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not read dimensions of {label}: {e}")
        return FALLBACK_IMAGE_SIZE


@dataclass(frozen=True, slots=True)
class ImageSource:
    """Raw bytes of an imported image file."""
    name: str
    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    @classmethod
    def from_file(cls, path: Path | str) -> ImageSource:
        """Load source bytes from disk."""
        path = Path(path)
        mime_type = MIME_TYPES.get(path.suffix.lower())
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        return cls(name=path.name, data=path.read_bytes(), mime_type=mime_type)

    def probe_size(self) -> tuple[int, int]:
        """Natural (width, height) of the encoded image."""
        return probe_image_size(self.data, self.name)

    def make_preview(self, max_dimension: int = PREVIEW_MAX_DIMENSION) -> bytes | None:
        """Render a PNG thumbnail, or None when the data is not decodable."""
        from PIL import Image as PILImage, UnidentifiedImageError

        try:
            with PILImage.open(io.BytesIO(self.data)) as img:
                thumb = img.convert("RGBA") if img.mode not in ("RGB", "RGBA") else img.copy()
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not build preview for {self.name}: {e}")
            return None
        thumb.thumbnail((max_dimension, max_dimension))
        buf = io.BytesIO()
        thumb.save(buf, format="PNG")
        return buf.getvalue()


@dataclass(frozen=True, slots=True)
class ResultImage:
    """Image returned by the editing service."""
    data: bytes
    mime_type: str = "image/png"

    @property
    def extension(self) -> str:
        return mimetypes.guess_extension(self.mime_type) or ".png"

    def probe_size(self) -> tuple[int, int]:
        return probe_image_size(self.data, "result")


@dataclass(frozen=True, slots=True)
class ImageAsset:
    """Domain entity for an imported photo.

    Instances are immutable; the registry swaps in a new instance on every
    transition so readers never observe a half-applied change.
    """
    id: str
    source: ImageSource
    natural_size: tuple[int, int]
    preview: bytes | None = None
    status: AssetStatus = AssetStatus.PENDING
    result: ResultImage | None = None
    error_message: str | None = None

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_completed(self) -> bool:
        return self.status is AssetStatus.COMPLETED and self.result is not None

    @property
    def is_candidate(self) -> bool:
        """Eligible for (re-)dispatch by a batch."""
        return self.status in (AssetStatus.PENDING, AssetStatus.ERROR)

    @property
    def display_bytes(self) -> bytes:
        """Bytes to show in single view: the result once available."""
        if self.is_completed:
            return self.result.data
        return self.source.data
