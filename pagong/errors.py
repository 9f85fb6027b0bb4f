from __future__ import annotations

from pathlib import Path
from typing import Optional


class PagongError(Exception):
    """Base class for every error reported while building a site."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.path}: {self.message}"


# Per-file errors: the file is skipped and the rest of the site is built.


class MetadataParseError(PagongError):
    pass


class DirectiveSyntaxError(PagongError):
    pass


class DirectiveResolutionError(PagongError):
    pass


class IoError(PagongError):
    pass


# Run-aborting errors.


class StructuralError(PagongError):
    pass


class FeedAssemblyError(StructuralError):
    pass
