"""Value types and their mapping onto storage primitives."""

from __future__ import annotations

import dataclasses
import logging
import pickle
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from types import UnionType
from typing import Any, Union, get_args, get_origin
from uuid import UUID

from typed_rows.errors import CoercionError

logger = logging.getLogger(__name__)


class StorageKind(Enum):
    """Primitive column types understood by the relational store."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"
    BLOB = "BLOB"
    UNSUPPORTED = "UNSUPPORTED"

    @property
    def is_numeric(self) -> bool:
        """Return whether values of this kind are numbers."""
        return self in (StorageKind.INTEGER, StorageKind.REAL)


@dataclass(frozen=True)
class ValueCodec:
    """Converts one family of native values to and from a storage primitive.

    A codec is the fine-grained content type of a column: ``bool`` and ``int``
    share the INTEGER kind but restore to different native values.
    """

    name: str
    kind: StorageKind
    python_types: tuple[type, ...]
    to_primitive: Callable[[Any], Any]
    from_primitive: Callable[[Any], Any]
    default: Any = None  # value restored when the column is absent
    exact: bool = False  # match type(value) exactly instead of isinstance

    @property
    def is_supported(self) -> bool:
        return self.kind is not StorageKind.UNSUPPORTED

    def accepts(self, value: Any) -> bool:
        """Check whether a native value can be stored with this codec."""
        if self.exact:
            return type(value) in self.python_types
        return isinstance(value, self.python_types)


def _unsupported(value: Any) -> Any:
    raise CoercionError(f"Values of type {type(value).__name__} cannot be stored")


def _pickle(value: Any) -> bytes:
    try:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError) as e:
        raise CoercionError(f"Cannot serialize {type(value).__name__}: {e}") from e


def _unpickle(data: Any) -> Any:
    # Opaque columns must only be read from trusted databases
    if not data:
        return None
    return pickle.loads(bytes(data))


UNSUPPORTED_CODEC = ValueCodec(
    name="unsupported",
    kind=StorageKind.UNSUPPORTED,
    python_types=(),
    to_primitive=_unsupported,
    from_primitive=_unsupported,
)

OPAQUE_CODEC = ValueCodec(
    name="opaque",
    kind=StorageKind.BLOB,
    python_types=(object,),
    to_primitive=_pickle,
    from_primitive=_unpickle,
)

# Builtin containers stored through the opaque (pickled) fallback
OPAQUE_CONTAINERS: tuple[type, ...] = (list, tuple, dict, set, frozenset)


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Split ``T | None`` into ``(T, True)``; other annotations pass through.

    Unions of more than one non-None member are returned unchanged.
    """
    if get_origin(annotation) in (Union, UnionType):
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return members[0], True
    return annotation, False


def _builtin_codecs() -> list[tuple[type, ValueCodec]]:
    return [
        (str, ValueCodec("string", StorageKind.TEXT, (str,), str, str)),
        (bool, ValueCodec("boolean", StorageKind.INTEGER, (bool,), int, bool, default=False)),
        (int, ValueCodec("integer", StorageKind.INTEGER, (int,), int, int, default=0)),
        (float, ValueCodec("float", StorageKind.REAL, (float, int), float, float, default=0.0)),
        (bytes, ValueCodec("bytes", StorageKind.BLOB, (bytes, bytearray, memoryview), bytes, bytes)),
        (
            bytearray,
            ValueCodec("bytearray", StorageKind.BLOB, (bytes, bytearray, memoryview), bytes, bytearray),
        ),
        (
            datetime,
            ValueCodec(
                "datetime", StorageKind.TEXT, (datetime,), datetime.isoformat, datetime.fromisoformat
            ),
        ),
        (
            date,
            ValueCodec(
                "date", StorageKind.TEXT, (date,), date.isoformat, date.fromisoformat, exact=True
            ),
        ),
        (time, ValueCodec("time", StorageKind.TEXT, (time,), time.isoformat, time.fromisoformat)),
        (Decimal, ValueCodec("decimal", StorageKind.TEXT, (Decimal,), str, Decimal)),
        (UUID, ValueCodec("uuid", StorageKind.TEXT, (UUID,), str, UUID)),
    ]


class ValueTypeRegistry:
    """Registry mapping native value types to codecs.

    Lookup is by exact type, so ``bool`` never falls through to ``int``.
    Types without an exact entry fall back to the opaque codec when they can
    be pickled in a meaningful way (containers, dataclasses, enums, named
    tuples, or anything passed to :meth:`register_opaque`).
    """

    def __init__(self) -> None:
        self._codecs: dict[type, ValueCodec] = {}
        self._opaque_types: set[type] = set()
        self._register_builtins()

    def _register_builtins(self) -> None:
        for python_type, codec in _builtin_codecs():
            self._codecs[python_type] = codec

    def register(self, python_type: type, codec: ValueCodec, replace: bool = False) -> None:
        """Register a codec for a native type.

        Args:
            python_type: The annotated type that selects the codec.
            codec: Codec used for columns declared with that type.
            replace: Allow overriding an existing registration.

        Raises:
            ValueError: If the type already has a codec and ``replace`` is False.
        """
        if python_type in self._codecs and not replace:
            raise ValueError(f"Type '{python_type.__name__}' already has a codec")
        self._codecs[python_type] = codec

    def register_opaque(self, python_type: type) -> None:
        """Allow a type to be stored through the opaque fallback."""
        self._opaque_types.add(python_type)

    def supports_opaque(self, python_type: Any) -> bool:
        """Check whether a type may use the pickled BLOB fallback."""
        origin = get_origin(python_type) or python_type
        if origin in OPAQUE_CONTAINERS:
            return True
        if not isinstance(origin, type):
            return False
        if origin in self._opaque_types:
            return True
        return dataclasses.is_dataclass(origin) or issubclass(origin, (Enum, tuple))

    def resolve(self, python_type: Any) -> ValueCodec:
        """Return the codec for a declared type, or the unsupported codec."""
        try:
            codec = self._codecs.get(python_type)
        except TypeError:  # unhashable annotation
            codec = None
        if codec is not None:
            return codec
        if self.supports_opaque(python_type):
            return OPAQUE_CODEC
        return UNSUPPORTED_CODEC

    def kind_of(self, python_type: Any) -> StorageKind:
        """Return the storage kind for a declared type."""
        return self.resolve(python_type).kind

    def store(self, codec: ValueCodec, value: Any) -> Any:
        """Convert a native value to its storage primitive.

        ``None`` is stored as NULL.

        Raises:
            CoercionError: If the value does not belong to the codec.
        """
        if value is None:
            return None
        if not codec.is_supported or not codec.accepts(value):
            raise CoercionError(
                f"Value of type {type(value).__name__} does not match codec '{codec.name}'"
            )
        return codec.to_primitive(value)

    def restore(self, codec: ValueCodec, primitive: Any, present: bool = True) -> Any:
        """Convert a storage primitive back to a native value.

        Args:
            codec: Codec of the column.
            primitive: Raw value read from the row.
            present: False when the row has no such column at all.

        Returns:
            The native value. Missing or NULL numeric and boolean columns
            restore as zero/False; text, blob and opaque columns as None.
            Values that cannot be decoded restore the same way.
        """
        if not present or primitive is None or not codec.is_supported:
            return codec.default
        try:
            return codec.from_primitive(primitive)
        except Exception as e:  # unpickling can raise nearly anything
            logger.warning("Cannot restore %s value: %s", codec.name, e)
            return codec.default

    def list_types(self) -> list[type]:
        """List all types with an exact codec."""
        return list(self._codecs)

    def __contains__(self, python_type: object) -> bool:
        return python_type in self._codecs
