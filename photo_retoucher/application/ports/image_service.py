"""Image edit service port - interface for the generative backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ...domain.entities.asset import ResultImage
from ...domain.value_objects.options import OutputResolution, ProjectSettings


@dataclass(frozen=True, slots=True)
class EditRequest:
    """One edit operation, derived from an asset at dispatch time.

    Never stored: built fresh for every attempt sequence so it always
    carries the settings snapshot current at dispatch.
    """
    source_bytes: bytes
    source_mime: str
    prompt: str
    resolution: OutputResolution
    aspect_ratio: str | None = None
    mask_bytes: bytes | None = None  # PNG, RGBA, transparent except strokes
    replacement_text: str | None = None
    settings: ProjectSettings | None = None

    @property
    def is_masked(self) -> bool:
        return self.mask_bytes is not None


@runtime_checkable
class ImageEditService(Protocol):
    """Port for generative image editing backends.

    Implementations raise the service error taxonomy from
    ``photo_retoucher.exceptions``: ``TransientServiceError`` for
    rate-limit/overload, ``TerminalServiceError`` (and its
    ``CredentialError`` / ``EmptyResponseError`` subclasses) otherwise.
    """

    @property
    def name(self) -> str:
        """Service name."""
        ...

    async def edit(self, request: EditRequest) -> ResultImage:
        """Run one edit request and return the produced image.

        Args:
            request: Source image, optional mask and instructions

        Returns:
            The edited image
        """
        ...
