from __future__ import annotations

from typing import Optional


class FingerspellError(Exception):
    """Base class for pipeline errors."""


class AssetLoadError(FingerspellError):
    """The classifier model files are missing or could not be loaded."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class NotReadyError(FingerspellError):
    """The classifier was used before a successful load."""


class DegenerateInputWarning(UserWarning):
    """A frame carried fewer than 21 landmarks and was treated as no hand."""
