from __future__ import annotations

import os
from typing import Optional


class CellError(Exception):
    """Base class for all errors raised by a file-backed cell or its codecs."""

    def __init__(self, message: str, *, path: Optional[os.PathLike[str] | str] = None) -> None:
        super().__init__(message)
        self.path = os.fspath(path) if path is not None else None

    def __str__(self) -> str:
        msg = super().__str__()
        if self.path is None:
            return msg
        return f"{msg} ({self.path})"


class CellIOError(CellError):
    """Raised when the backing file cannot be opened, read, written or removed."""


class CellDecodeError(CellError):
    """Raised when the stored bytes are not a valid encoding of the value type."""


class CellEncodeError(CellError):
    """Raised when the in-memory value cannot be encoded at flush time."""


class CellClosedError(CellError):
    """Raised when a cell is used after it was closed or deleted."""


class MissingDefaultError(CellError):
    """Raised when a default value is requested but none is defined."""
