"""
Codecs translating a cell's value to and from the bytes stored on disk.

A `FileCell` is polymorphic over a `Codec`: anything that can turn a value
into bytes and back. Codecs must be exact inverses for every value the cell
will hold, and must report failures as `CellEncodeError` / `CellDecodeError`
so callers can tell a corrupt file from a filesystem problem.

Available codecs
- JsonCodec:     deterministic JSON for values that survive a JSON round trip
                 (str keys, lists rather than tuples, finite numbers).
- PydanticCodec: any type pydantic can validate (models, tuples, ints, ...).
- PickleCodec:   arbitrary Python objects. Only for files you trust.
- FernetCodec:   wraps another codec and encrypts the bytes at rest.
"""

from __future__ import annotations

import json
import pickle
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Optional, TypeVar

from cryptography.fernet import Fernet, InvalidToken
from pydantic import TypeAdapter, ValidationError

from .config import fernet_key_from_env
from .errors import CellDecodeError, CellEncodeError, MissingDefaultError

T = TypeVar("T")


class Codec(ABC, Generic[T]):
    """Encode/decode capability pair for values of type `T`.

    Any other exception escaping `encode` during a flush is reported by the
    cell as `CellEncodeError`, with the original as its cause.
    """

    @abstractmethod
    def encode(self, value: T) -> bytes:
        """Serialize `value`; raise `CellEncodeError` if it cannot be encoded."""

    @abstractmethod
    def decode(self, data: bytes) -> T:
        """Parse `data`; raise `CellDecodeError` if it is not a valid encoding."""

    def default(self) -> T:
        """Return the default value of `T`, if the codec knows one."""
        raise MissingDefaultError(f"{type(self).__name__} defines no default value")


class _FactoryDefaultMixin:
    _default_factory: Optional[Callable[[], Any]]

    def default(self) -> Any:
        if self._default_factory is None:
            raise MissingDefaultError(f"{type(self).__name__} was created without a default_factory")
        return self._default_factory()


class JsonCodec(_FactoryDefaultMixin, Codec[Any]):
    """UTF-8 JSON with stable key order and no extra whitespace."""

    def __init__(self, default_factory: Optional[Callable[[], Any]] = None) -> None:
        self._default_factory = default_factory

    def encode(self, value: Any) -> bytes:
        try:
            text = json.dumps(value, separators=(",", ":"), sort_keys=True, allow_nan=False)
        except (TypeError, ValueError) as ex:
            raise CellEncodeError(f"Value is not JSON serializable: {ex}") from ex
        # Tuples and non-str keys serialize fine but read back as lists and str keys
        if json.loads(text) != value:
            raise CellEncodeError("Value would not read back unchanged from JSON (tuple or non-str key?)")
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as ex:
            raise CellDecodeError("Failed to parse stored JSON") from ex


class PydanticCodec(Codec[T]):
    """
    JSON codec validated against a type through pydantic.

    Works for `BaseModel` subclasses as well as plain annotations such as
    `int` or `tuple[int, float]`. Encoding refuses values that do not match
    the type, and decoding re-validates the stored JSON, so a file that parses
    but does not match the type is rejected.

    The default value is `type_()`, e.g. a model built from its field
    defaults, `0` for `int` or `[]` for `list[str]`.
    """

    def __init__(self, type_: Any) -> None:
        self._type = type_
        self._adapter: TypeAdapter[T] = TypeAdapter(type_)

    def encode(self, value: T) -> bytes:
        try:
            return self._adapter.dump_json(value, warnings="error")
        except (TypeError, ValueError) as ex:
            # warnings="error" turns a type mismatch into PydanticSerializationError
            raise CellEncodeError(f"Failed to serialize value as {self._type!r}: {ex}") from ex

    def decode(self, data: bytes) -> T:
        try:
            return self._adapter.validate_json(data)
        except ValidationError as ex:
            raise CellDecodeError(f"Stored data is not a valid {self._type!r}") from ex

    def default(self) -> T:
        origin = getattr(self._type, "__origin__", self._type)
        if not isinstance(origin, type):
            raise MissingDefaultError(f"No default value for {self._type!r}")
        try:
            return self._adapter.validate_python(origin())
        except (TypeError, ValidationError) as ex:
            raise MissingDefaultError(f"No default value for {self._type!r}") from ex


class PickleCodec(_FactoryDefaultMixin, Codec[Any]):
    """
    Binary codec for arbitrary Python objects.

    Unpickling executes code from the file: never open a cell with this codec
    on data you did not write yourself.
    """

    def __init__(
        self,
        default_factory: Optional[Callable[[], Any]] = None,
        *,
        protocol: int = pickle.HIGHEST_PROTOCOL,
    ) -> None:
        self._default_factory = default_factory
        self._protocol = protocol

    def encode(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=self._protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as ex:
            raise CellEncodeError(f"Value cannot be pickled: {ex}") from ex

    def decode(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except Exception as ex:
            raise CellDecodeError("Failed to unpickle stored data") from ex


def _fernet_for(key: str | bytes) -> Fernet:
    # Keys come from Fernet.generate_key(); env vars hand them over as str
    return Fernet(key.encode("ascii") if isinstance(key, str) else key)


class FernetCodec(Codec[T]):
    """
    Encrypts another codec's output at rest using Fernet.

    Usage
    - `FernetCodec(PydanticCodec(Settings), key)` with an explicit key, or
    - `FernetCodec.from_env(inner)` reading `FILECELL_FERNET_KEY`.

    A token that fails authentication (wrong key, tampered or empty file) is
    reported as `CellDecodeError`.
    """

    def __init__(self, inner: Codec[T], key: str | bytes) -> None:
        self._inner = inner
        self._fernet = _fernet_for(key)

    @classmethod
    def from_env(cls, inner: Codec[T]) -> "FernetCodec[T]":
        return cls(inner, fernet_key_from_env())

    def encode(self, value: T) -> bytes:
        return self._fernet.encrypt(self._inner.encode(value))

    def decode(self, data: bytes) -> T:
        try:
            plaintext = self._fernet.decrypt(data)
        except InvalidToken as ex:
            raise CellDecodeError("Failed to decrypt stored data: invalid Fernet token") from ex
        return self._inner.decode(plaintext)

    def default(self) -> T:
        return self._inner.default()
