"""Typed Rows - Map annotated Python classes onto relational tables."""

from typed_rows.annotations import Column, clean_name, column_accessor
from typed_rows.columns import AccessorColumn, ColumnDefinition, ColumnDescriptor, FieldColumn
from typed_rows.config import StoreConfig
from typed_rows.entity import (
    ID_COLUMN,
    INVALID_ID,
    RELATED_ID_COLUMN,
    EntityList,
    SerializedEntity,
    Storable,
    StorableCollection,
)
from typed_rows.errors import (
    CoercionError,
    InvalidPredicateError,
    SchemaError,
    TypedRowsError,
    UnregisteredTypeError,
)
from typed_rows.parsing import parse_filter
from typed_rows.predicate import (
    CompareOperation,
    Comparison,
    Predicate,
    all_of,
    any_of,
    equals_id,
    equals_related_id,
)
from typed_rows.registry import CollectionRegistry, register
from typed_rows.schema import Schema, SchemaIntrospector, SchemaKind
from typed_rows.store import RelationalStore, RowCursor, SQLiteStore
from typed_rows.table import EntityTable
from typed_rows.types import StorageKind, ValueCodec, ValueTypeRegistry

__all__ = [
    # Main API
    "register",
    "CollectionRegistry",
    "EntityTable",
    # Entities
    "Storable",
    "StorableCollection",
    "EntityList",
    "SerializedEntity",
    "INVALID_ID",
    "ID_COLUMN",
    "RELATED_ID_COLUMN",
    # Declarations
    "Column",
    "column_accessor",
    "clean_name",
    # Schemas and columns
    "Schema",
    "SchemaKind",
    "SchemaIntrospector",
    "ColumnDescriptor",
    "FieldColumn",
    "AccessorColumn",
    "ColumnDefinition",
    # Value types
    "StorageKind",
    "ValueCodec",
    "ValueTypeRegistry",
    # Predicates
    "CompareOperation",
    "Comparison",
    "Predicate",
    "all_of",
    "any_of",
    "equals_id",
    "equals_related_id",
    "parse_filter",
    # Storage
    "RelationalStore",
    "RowCursor",
    "SQLiteStore",
    "StoreConfig",
    # Errors
    "TypedRowsError",
    "SchemaError",
    "CoercionError",
    "InvalidPredicateError",
    "UnregisteredTypeError",
]

__version__ = "0.1.0"
