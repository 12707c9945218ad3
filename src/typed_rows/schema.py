"""Schema discovery for persistable classes."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from typed_rows.annotations import accessor_name, column_marker
from typed_rows.columns import (
    AccessorColumn,
    ColumnDefinition,
    ColumnDescriptor,
    FieldColumn,
    reserved_columns,
)
from typed_rows.entity import Storable, StorableCollection
from typed_rows.errors import SchemaError
from typed_rows.types import StorageKind, ValueTypeRegistry

if TYPE_CHECKING:
    from typed_rows.store import RowCursor

logger = logging.getLogger(__name__)

# Modules whose classes never declare columns
_LIBRARY_MODULES = frozenset({"builtins", "abc", "typing", "collections.abc", "_collections_abc"})


class SchemaKind(Enum):
    """How the registry treats a schema's entities."""

    PLAIN = "plain"
    COLLECTION = "collection"


@dataclass
class Schema:
    """Columns and construction info for one persistable class."""

    target_type: type
    columns: list[ColumnDescriptor] = field(default_factory=list)
    constructor: Callable[[], Any] | None = None
    kind: SchemaKind = SchemaKind.PLAIN
    child_type: type[Storable] | None = None

    @property
    def name(self) -> str:
        """Return the relation name."""
        return self.target_type.__name__

    @property
    def is_valid(self) -> bool:
        """A schema is valid for a Storable class with a no-argument constructor."""
        return issubclass(self.target_type, Storable) and self.constructor is not None

    @property
    def is_collection(self) -> bool:
        return self.kind is SchemaKind.COLLECTION

    def column(self, name: str) -> ColumnDescriptor | None:
        """Get a column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def definitions(self) -> list[ColumnDefinition]:
        """Return the column definitions used to create the relation."""
        return [
            column.definition()
            for column in self.columns
            if column.kind is not StorageKind.UNSUPPORTED
        ]

    def values(self, entity: Any, exclude: Collection[str] = ()) -> dict[str, Any]:
        """Return the storage primitives of an entity keyed by column name.

        Columns whose value cannot be coerced are left out.
        """
        values: dict[str, Any] = {}
        for column in self.columns:
            if column.name not in exclude:
                column.store_into(entity, values)
        return values

    def restore(self, cursor: RowCursor) -> Any:
        """Construct an entity from the current row of a cursor.

        Raises:
            SchemaError: If the schema has no constructor.
        """
        if self.constructor is None:
            raise SchemaError("No no-argument constructor", self.target_type)
        entity = self.constructor()
        for column in self.columns:
            column.restore_from(entity, cursor)
        return entity


def _is_library_base(klass: type) -> bool:
    return klass is object or klass.__module__ in _LIBRARY_MODULES


def _own_annotations(klass: type, owner: type) -> dict[str, Any]:
    """Return the class's own annotations with string annotations evaluated.

    If evaluation fails, the unresolved string annotations are skipped
    unless one of them looks like a column declaration.
    """
    try:
        return dict(inspect.get_annotations(klass, eval_str=True))
    except (NameError, AttributeError, TypeError, SyntaxError) as e:
        raw = inspect.get_annotations(klass)
        for attribute, annotation in raw.items():
            if isinstance(annotation, str) and "Column" in annotation:
                raise SchemaError(f"Cannot resolve annotation of '{attribute}': {e}", owner) from e
        return {name: value for name, value in raw.items() if not isinstance(value, str)}


def no_arg_constructor(target_type: type) -> Callable[[], Any] | None:
    """Return the class itself if it can be called without arguments."""
    if inspect.isabstract(target_type):
        return None
    try:
        signature = inspect.signature(target_type)
    except (TypeError, ValueError):
        return None
    for parameter in signature.parameters.values():
        if parameter.default is parameter.empty and parameter.kind not in (
            parameter.VAR_POSITIONAL,
            parameter.VAR_KEYWORD,
        ):
            return None
    return target_type


@dataclass
class _Walk:
    """Accumulated state while visiting a class hierarchy."""

    columns: list[ColumnDescriptor] = field(default_factory=list)
    pending: dict[str, Callable[..., Any]] = field(default_factory=dict)
    paired: set[str] = field(default_factory=set)
    seen_fields: set[str] = field(default_factory=set)
    seen_methods: set[str] = field(default_factory=set)
    visited: set[type] = field(default_factory=set)


class SchemaIntrospector:
    """Builds schemas by walking a class, its parent and its mixins.

    Each class in the hierarchy is visited once. Members are collected from
    the class itself first, so a member redefined in a subclass shadows the
    inherited one.
    """

    def __init__(self, value_types: ValueTypeRegistry | None = None) -> None:
        self.value_types = value_types if value_types is not None else ValueTypeRegistry()

    def inspect(self, target_type: type) -> Schema:
        """Discover the schema of a class.

        The returned schema may be invalid (see :attr:`Schema.is_valid`).

        Raises:
            SchemaError: On unsupported member types, mismatched or unpaired
                accessors and duplicate column names.
        """
        if not isinstance(target_type, type):
            raise SchemaError(f"{target_type!r} is not a class")

        columns: list[ColumnDescriptor] = list(reserved_columns(self.value_types))
        if issubclass(target_type, Storable):
            columns.extend(self._collect(target_type))
        self._check_duplicates(columns, target_type)

        schema = Schema(
            target_type=target_type,
            columns=columns,
            constructor=no_arg_constructor(target_type),
        )
        if issubclass(target_type, StorableCollection):
            child_type = getattr(target_type, "child_type", None)
            if not (isinstance(child_type, type) and issubclass(child_type, Storable)):
                raise SchemaError("Collection has no Storable child_type", target_type)
            schema.kind = SchemaKind.COLLECTION
            schema.child_type = child_type

        logger.debug(
            "Inspected %s: %s", target_type.__name__, ", ".join(c.name for c in schema.columns)
        )
        return schema

    def build(self, target_type: type) -> Schema:
        """Discover the schema of a class and require it to be valid.

        Raises:
            SchemaError: If the class is not Storable, has no no-argument
                constructor, or any structural check fails.
        """
        schema = self.inspect(target_type)
        if not issubclass(target_type, Storable):
            raise SchemaError("Not a Storable subclass", target_type)
        if schema.constructor is None:
            raise SchemaError("No no-argument constructor", target_type)
        return schema

    def _collect(self, target_type: type) -> list[ColumnDescriptor]:
        walk = _Walk()
        self._visit(target_type, target_type, walk)
        if walk.pending:
            names = ", ".join(sorted(walk.pending))
            raise SchemaError(f"Accessor without a matching getter or setter: {names}", target_type)
        return walk.columns

    def _visit(self, klass: type, owner: type, walk: _Walk) -> None:
        if klass in walk.visited or _is_library_base(klass):
            return
        walk.visited.add(klass)

        for attribute, annotation in _own_annotations(klass, owner).items():
            if attribute in walk.seen_fields:
                continue
            walk.seen_fields.add(attribute)
            marker = column_marker(annotation)
            if marker is not None:
                value_type, column = marker
                walk.columns.append(
                    FieldColumn.from_annotation(owner, attribute, value_type, column, self.value_types)
                )

        for attribute, member in vars(klass).items():
            if not inspect.isfunction(member) or attribute in walk.seen_methods:
                continue
            walk.seen_methods.add(attribute)
            name = accessor_name(member)
            if name is None:
                continue
            self._pair(name, member, owner, walk)

        for base in klass.__bases__:
            self._visit(base, owner, walk)

    def _pair(self, name: str, method: Callable[..., Any], owner: type, walk: _Walk) -> None:
        partner = walk.pending.pop(name, None)
        if partner is not None:
            walk.columns.append(AccessorColumn(partner, method, self.value_types, owner))
            walk.paired.add(name)
        elif name in walk.paired:
            raise SchemaError(f"More than two accessors for column '{name}'", owner)
        else:
            walk.pending[name] = method

    @staticmethod
    def _check_duplicates(columns: list[ColumnDescriptor], owner: type) -> None:
        # SQLite column names are case-insensitive
        checked: set[str] = set()
        for column in columns:
            key = column.name.casefold()
            if key in checked:
                raise SchemaError(f"Duplicate column name '{column.name}'", owner)
            checked.add(key)
