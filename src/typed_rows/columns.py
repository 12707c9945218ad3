"""Column descriptors mapping entity members to storage columns."""

from __future__ import annotations

import inspect
import logging
import typing
from abc import ABC, abstractmethod
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from typed_rows.annotations import Column, accessor_name, clean_name
from typed_rows.entity import ID_COLUMN, RELATED_ID_COLUMN
from typed_rows.errors import CoercionError, SchemaError
from typed_rows.types import OPAQUE_CODEC, StorageKind, ValueCodec, ValueTypeRegistry, unwrap_optional

if TYPE_CHECKING:
    from typed_rows.store import RowCursor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnDefinition:
    """Name and storage kind of a column, as used to create a relation."""

    name: str
    kind: StorageKind
    primary_key: bool = False


class ColumnDescriptor(ABC):
    """Maps one persistable member of an entity onto one column.

    Two descriptors are equal when their column names are equal, which is
    what duplicate detection relies on.
    """

    def __init__(
        self,
        name: str,
        codec: ValueCodec,
        value_types: ValueTypeRegistry,
        optional: bool = False,
    ) -> None:
        self.name = name
        self.codec = codec
        self.value_types = value_types
        self.optional = optional

    @property
    def kind(self) -> StorageKind:
        return self.codec.kind

    @abstractmethod
    def read(self, entity: Any) -> Any:
        """Return the native value of this member."""

    @abstractmethod
    def write(self, entity: Any, value: Any) -> None:
        """Set the native value of this member."""

    def extract(self, entity: Any) -> Any:
        """Return the storage primitive for this member.

        Raises:
            CoercionError: If the member holds a value of the wrong type.
        """
        return self.value_types.store(self.codec, self.read(entity))

    def inject(self, entity: Any, primitive: Any, present: bool = True) -> None:
        """Restore this member from a storage primitive."""
        if self.optional and present and primitive is None:
            self.write(entity, None)
            return
        self.write(entity, self.value_types.restore(self.codec, primitive, present))

    def store_into(self, entity: Any, values: MutableMapping[str, Any]) -> None:
        """Add this member's primitive to ``values``, skipping it on a type mismatch."""
        try:
            values[self.name] = self.extract(entity)
        except CoercionError as e:
            logger.warning("Column %s of %s not written: %s", self.name, type(entity).__name__, e)

    def restore_from(self, entity: Any, cursor: RowCursor) -> None:
        """Restore this member from the current row of a cursor."""
        if cursor.has_column(self.name):
            self.inject(entity, cursor.get(self.kind, self.name))
        else:
            self.inject(entity, None, present=False)

    def definition(self) -> ColumnDefinition:
        return ColumnDefinition(self.name, self.kind, primary_key=self.name == ID_COLUMN)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnDescriptor):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


class FieldColumn(ColumnDescriptor):
    """Column backed by an attribute of the entity."""

    def __init__(
        self,
        attribute: str,
        name: str,
        codec: ValueCodec,
        value_types: ValueTypeRegistry,
        optional: bool = False,
    ) -> None:
        super().__init__(name, codec, value_types, optional)
        self.attribute = attribute

    @classmethod
    def from_annotation(
        cls,
        owner: type,
        attribute: str,
        value_type: Any,
        marker: Column,
        value_types: ValueTypeRegistry,
    ) -> FieldColumn:
        """Build a column for ``attribute: Annotated[value_type, marker]``.

        Raises:
            SchemaError: If the value type is unsupported or the name is empty.
        """
        name = marker.column_name(attribute)
        if not name:
            raise SchemaError(f"Column name for '{attribute}' contains no letters", owner)
        inner, optional = unwrap_optional(value_type)
        codec = OPAQUE_CODEC if marker.opaque else value_types.resolve(inner)
        if not codec.is_supported:
            raise SchemaError(f"Type {inner!r} of field '{attribute}' is not supported", owner)
        return cls(attribute, name, codec, value_types, optional)

    def read(self, entity: Any) -> Any:
        return getattr(entity, self.attribute, None)

    def write(self, entity: Any, value: Any) -> None:
        setattr(entity, self.attribute, value)

    def __repr__(self) -> str:
        return f"FieldColumn({self.attribute!r} -> {self.name!r}, {self.codec.name})"


def _type_hints(func: Callable[..., Any], owner: type | None) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except NameError as e:
        raise SchemaError(f"Cannot resolve annotations of {func.__name__}(): {e}", owner) from e


def _parameters(func: Callable[..., Any]) -> list[inspect.Parameter]:
    return list(inspect.signature(func).parameters.values())


def _is_getter(func: Callable[..., Any], hints: dict[str, Any]) -> bool:
    return len(_parameters(func)) == 1 and hints.get("return", type(None)) is not type(None)


def _is_setter(func: Callable[..., Any], hints: dict[str, Any]) -> bool:
    return len(_parameters(func)) == 2 and hints.get("return", type(None)) is type(None)


class AccessorColumn(ColumnDescriptor):
    """Column backed by a getter/setter method pair."""

    def __init__(
        self,
        first: Callable[..., Any],
        second: Callable[..., Any],
        value_types: ValueTypeRegistry,
        owner: type | None = None,
    ) -> None:
        """Pair two marked methods into a column.

        The methods may be given in either order.

        Raises:
            SchemaError: If the methods are not marked with the same name, are
                not a getter and a setter, disagree on the value type, or the
                value type is unsupported.
        """
        logical = accessor_name(first)
        if not logical or logical != accessor_name(second):
            raise SchemaError(
                f"{first.__name__}() and {second.__name__}() are not marked with the same column",
                owner,
            )
        first_hints = _type_hints(first, owner)
        second_hints = _type_hints(second, owner)
        if _is_getter(first, first_hints) and _is_setter(second, second_hints):
            getter, setter, getter_hints, setter_hints = first, second, first_hints, second_hints
        elif _is_getter(second, second_hints) and _is_setter(first, first_hints):
            getter, setter, getter_hints, setter_hints = second, first, second_hints, first_hints
        else:
            raise SchemaError(
                f"{first.__name__}() and {second.__name__}() are not a getter and setter pair",
                owner,
            )

        value_param = _parameters(setter)[1].name
        if value_param not in setter_hints:
            raise SchemaError(f"Parameter of {setter.__name__}() is not annotated", owner)
        if getter_hints["return"] != setter_hints[value_param]:
            raise SchemaError(
                f"{getter.__name__}() returns {getter_hints['return']!r} but "
                f"{setter.__name__}() takes {setter_hints[value_param]!r}",
                owner,
            )

        inner, optional = unwrap_optional(getter_hints["return"])
        codec = value_types.resolve(inner)
        if not codec.is_supported:
            raise SchemaError(f"Type {inner!r} of column '{logical}' is not supported", owner)

        super().__init__(clean_name(logical), codec, value_types, optional)
        self.getter = getter
        self.setter = setter

    def read(self, entity: Any) -> Any:
        return self.getter(entity)

    def write(self, entity: Any, value: Any) -> None:
        self.setter(entity, value)

    def __repr__(self) -> str:
        return (
            f"AccessorColumn({self.getter.__name__}/{self.setter.__name__} -> "
            f"{self.name!r}, {self.codec.name})"
        )


def reserved_columns(value_types: ValueTypeRegistry) -> list[FieldColumn]:
    """Return the identity and related-identity columns every schema starts with."""
    integer = value_types.resolve(int)
    return [
        FieldColumn("id", ID_COLUMN, integer, value_types),
        FieldColumn("related_id", RELATED_ID_COLUMN, integer, value_types),
    ]
