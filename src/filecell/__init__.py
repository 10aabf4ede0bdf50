"""
File-backed value container.

A `FileCell` holds a value in memory and persists it to a single file: the
value is loaded when the cell is opened and written back when the cell is
closed (typically at the end of a `with` block).

Modules:
- cell: FileCell and its lifecycle states
- codecs: encode/decode pairs defining the on-disk format (JSON, pydantic,
  pickle, Fernet-encrypted)
- errors: CellError and its subclasses
- config: environment-driven configuration
"""

import logging

from .cell import CellState, FileCell
from .codecs import Codec, FernetCodec, JsonCodec, PickleCodec, PydanticCodec
from .errors import (
    CellClosedError,
    CellDecodeError,
    CellEncodeError,
    CellError,
    CellIOError,
    MissingDefaultError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CellState",
    "FileCell",
    "Codec",
    "FernetCodec",
    "JsonCodec",
    "PickleCodec",
    "PydanticCodec",
    "CellClosedError",
    "CellDecodeError",
    "CellEncodeError",
    "CellError",
    "CellIOError",
    "MissingDefaultError",
]
