from __future__ import annotations

import logging
import os
import warnings
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Generic, Optional, TypeVar

from .codecs import Codec
from .errors import CellClosedError, CellDecodeError, CellEncodeError, CellError, CellIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PathArg = os.PathLike[str] | str


class CellState(str, Enum):
    LIVE = "live"
    CLOSED = "closed"
    DELETED = "deleted"


def _open_truncating(path: Path) -> BinaryIO:
    try:
        return path.open("wb")
    except OSError as ex:
        raise CellIOError(f"Cannot open backing file for writing: {ex}", path=path) from ex


class FileCell(Generic[T]):
    """
    A value whose lifetime and durability are bound to a single file.

    The value is read from the file when the cell is opened (or set explicitly
    / to a default when created), mutated freely through `cell.value`, and
    written back when the cell is closed. Use it as a context manager so the
    flush runs exactly once on every exit path:

        with FileCell.create_with("counter.json", 10, codec=JsonCodec()) as cell:
            cell.value += 1
        # counter.json now holds 11

    Lifecycle: LIVE -> CLOSED (flushed) or LIVE -> DELETED (file removed, no
    flush). A cell never becomes LIVE again.

    Notes
    - Creating a cell truncates the backing file immediately. Until the cell
      is flushed, the file is empty (after `create_with`) or empty again
      (after `open`, which reopens the file in truncating mode once the
      contents have been decoded).
    - Flush failures are logged at ERROR and raised from `flush()`/`close()`.
      When the `with` block is already exiting with an exception, a failed
      flush is only logged and the original exception propagates.
    - A LIVE cell that is garbage collected emits a `ResourceWarning` and
      attempts the flush from its finalizer. When that runs is up to the
      interpreter, so do not rely on it for durability.
    - No locking: at most one live cell per path is the caller's job.
    """

    def __init__(self, path: PathArg, handle: BinaryIO, value: T, codec: Codec[T]) -> None:
        self._path = Path(path)
        self._handle = handle
        self._value = value
        self._codec = codec
        self._state = CellState.LIVE

    # -------- Construction helpers --------
    @classmethod
    def create_with(cls, path: PathArg, value: T, *, codec: Codec[T]) -> "FileCell[T]":
        """Create a cell holding `value`, truncating whatever `path` held.

        Nothing is written until the cell is flushed.
        Raises:
        - CellIOError if the file cannot be created or truncated.
        """
        p = Path(path)
        handle = _open_truncating(p)
        logger.debug("Created cell at %s", p)
        return cls(p, handle, value, codec)

    @classmethod
    def open(cls, path: PathArg, *, codec: Codec[T]) -> "FileCell[T]":
        """Open a cell from the value stored at `path`.

        Raises:
        - CellIOError if the file cannot be read, or cannot be reopened for
          writing after a successful read (the file then keeps its bytes).
        - CellDecodeError if the contents (possibly empty) do not decode.
        """
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as ex:
            raise CellIOError(f"Cannot read backing file: {ex}", path=p) from ex

        try:
            value = codec.decode(data)
        except CellDecodeError as ex:
            if ex.path is None:
                ex.path = os.fspath(p)
            raise

        handle = _open_truncating(p)
        logger.debug("Opened cell at %s (%d bytes)", p, len(data))
        return cls(p, handle, value, codec)

    @classmethod
    def create_default(
        cls,
        path: PathArg,
        *,
        codec: Codec[T],
        default_factory: Optional[Callable[[], T]] = None,
    ) -> "FileCell[T]":
        """Create a cell holding the default value.

        The default comes from `default_factory` when given, else from
        `codec.default()` (which raises `MissingDefaultError` if the codec
        knows none).
        """
        value = default_factory() if default_factory is not None else codec.default()
        return cls.create_with(path, value, codec=codec)

    @classmethod
    def open_or_create_default(
        cls,
        path: PathArg,
        *,
        codec: Codec[T],
        default_factory: Optional[Callable[[], T]] = None,
    ) -> "FileCell[T]":
        """`open` the file if it exists, otherwise `create_default`.

        The existence check and the open are separate steps; a file appearing
        in between is not guarded against.
        """
        p = Path(path)
        if p.exists():
            return cls.open(p, codec=codec)
        return cls.create_default(p, codec=codec, default_factory=default_factory)

    # -------- Value access --------
    @property
    def value(self) -> T:
        self._ensure_live("read")
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self._ensure_live("assign")
        self._value = new_value

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def codec(self) -> Codec[T]:
        return self._codec

    # -------- Core operations --------
    def flush(self) -> None:
        """Encode the current value and overwrite the backing file now.

        The cell stays live. Raises CellEncodeError or CellIOError.
        """
        self._ensure_live("flush")
        try:
            self._write_value()
        except CellError as ex:
            logger.error("Failed to flush cell to %s: %s", self._path, ex)
            raise

    def close(self) -> None:
        """Flush the value and release the file. No-op if already closed.

        The handle is released and the cell becomes CLOSED even if the flush
        fails; the error is then logged and re-raised.
        Raises:
        - CellClosedError if the cell was deleted.
        - CellEncodeError / CellIOError if the flush fails.
        """
        if self._state is CellState.CLOSED:
            return
        self._ensure_live("close")
        try:
            self._write_value()
        except CellError as ex:
            logger.error("Failed to flush cell to %s, contents may be stale: %s", self._path, ex)
            raise
        finally:
            self._release(CellState.CLOSED)
        logger.debug("Closed cell at %s", self._path)

    def delete(self) -> None:
        """Discard the value and remove the backing file without flushing.

        Raises:
        - CellClosedError if the cell is not live.
        - CellIOError if the file cannot be removed. The cell is DELETED and
          its handle released either way.
        """
        self._ensure_live("delete")
        self._value = None  # type: ignore[assignment]
        try:
            self._handle.close()
            self._path.unlink()
        except OSError as ex:
            raise CellIOError(f"Failed to delete backing file: {ex}", path=self._path) from ex
        finally:
            self._state = CellState.DELETED
        logger.debug("Deleted cell at %s", self._path)

    # -------- Scoped acquisition --------
    def __enter__(self) -> "FileCell[T]":
        self._ensure_live("enter")
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._state is not CellState.LIVE:
            return
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except CellError:
            # close() has logged it; the in-flight exception takes precedence
            return

    def __del__(self) -> None:
        if getattr(self, "_state", None) is not CellState.LIVE:
            return
        warnings.warn(f"unclosed {self!r}", ResourceWarning, source=self)
        logger.warning("Cell at %s was never closed; flushing from finalizer", self._path)
        try:
            self.close()
        except CellError:
            pass  # logged by close()

    # -------- Internals --------
    def _ensure_live(self, op: str) -> None:
        if self._state is not CellState.LIVE:
            raise CellClosedError(f"Cannot {op} a {self._state.value} cell", path=self._path)

    def _write_value(self) -> None:
        try:
            data = self._codec.encode(self._value)
        except CellError:
            raise
        except Exception as ex:
            # Codecs should raise CellEncodeError; anything else still counts as one
            raise CellEncodeError(
                f"{type(self._codec).__name__} failed to encode value: {ex!r}", path=self._path
            ) from ex
        try:
            # Rewind so repeated flushes never leave stale trailing bytes
            self._handle.seek(0)
            self._handle.truncate()
            self._handle.write(data)
            self._handle.flush()
        except OSError as ex:
            raise CellIOError(f"Failed to write backing file: {ex}", path=self._path) from ex

    def _release(self, state: CellState) -> None:
        try:
            self._handle.close()
        except OSError as ex:
            raise CellIOError(f"Failed to close backing file: {ex}", path=self._path) from ex
        finally:
            self._state = state

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"FileCell(path={str(self._path)!r}, state={self._state.value!r}, value={self._value!r})"
