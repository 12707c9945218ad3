"""Parameterized row filters.

A :class:`Comparison` binds one column to one value; a :class:`Predicate`
joins comparisons with a single connective::

    done = Comparison.equal("done", True)
    title = Comparison.equal("title", "x")
    both = done & title      # "done" = ? AND "title" = ?
    either = any_of(done, title)

A predicate without comparisons is invalid and is refused by every query.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from typed_rows.annotations import clean_name
from typed_rows.columns import ColumnDescriptor
from typed_rows.entity import ID_COLUMN, RELATED_ID_COLUMN


class CompareOperation(Enum):
    """Comparison operators and their SQL fragment templates."""

    EQUAL = '"{}" = ?'
    NOT_EQUAL = '"{}" != ?'
    LESS = '"{}" < ?'
    LESS_EQUAL = '"{}" <= ?'
    GREATER = '"{}" > ?'
    GREATER_EQUAL = '"{}" >= ?'
    LIKE = '"{}" LIKE ?'
    NOT_LIKE = '"{}" NOT LIKE ?'

    def fragment(self, column: str) -> str:
        return self.value.format(column)


class Connective(Enum):
    """Boolean connective joining the comparisons of a predicate."""

    AND = " AND "
    OR = " OR "


def bindable(value: Any) -> Any:
    """Convert a comparison value to something the store can bind."""
    if isinstance(value, bool):
        return int(value)
    if value is None or isinstance(value, (int, float, str, bytes)):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _column_name(column: str | ColumnDescriptor) -> str:
    name = column.name if isinstance(column, ColumnDescriptor) else clean_name(column)
    if not name:
        raise ValueError(f"Column name {column!r} contains no letters")
    return name


@dataclass(frozen=True)
class Comparison:
    """A single ``column <operator> value`` test."""

    column: str
    operation: CompareOperation
    value: Any

    @classmethod
    def of(cls, column: str | ColumnDescriptor, operation: CompareOperation, value: Any) -> Comparison:
        return cls(_column_name(column), operation, bindable(value))

    @classmethod
    def equal(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.EQUAL, value)

    @classmethod
    def not_equal(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.NOT_EQUAL, value)

    @classmethod
    def less(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.LESS, value)

    @classmethod
    def less_equal(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.LESS_EQUAL, value)

    @classmethod
    def greater(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.GREATER, value)

    @classmethod
    def greater_equal(cls, column: str | ColumnDescriptor, value: Any) -> Comparison:
        return cls.of(column, CompareOperation.GREATER_EQUAL, value)

    @classmethod
    def like(cls, column: str | ColumnDescriptor, pattern: str) -> Comparison:
        return cls.of(column, CompareOperation.LIKE, pattern)

    @classmethod
    def not_like(cls, column: str | ColumnDescriptor, pattern: str) -> Comparison:
        return cls.of(column, CompareOperation.NOT_LIKE, pattern)

    @property
    def where(self) -> str:
        return self.operation.fragment(self.column)

    @property
    def values(self) -> tuple[Any, ...]:
        return (self.value,)

    def __and__(self, other: Comparison | Predicate) -> Predicate:
        return Predicate((self,)) & other

    def __or__(self, other: Comparison | Predicate) -> Predicate:
        return Predicate((self,), Connective.OR) | other


@dataclass(frozen=True)
class Predicate:
    """Comparisons joined by one connective.

    Attributes:
        comparisons: The comparisons, in placeholder order.
        connective: AND or OR; the same for every pair.
    """

    comparisons: tuple[Comparison, ...] = ()
    connective: Connective = Connective.AND

    @property
    def where(self) -> str:
        """Return the filter fragment with ``?`` placeholders."""
        return self.connective.value.join(c.where for c in self.comparisons)

    @property
    def values(self) -> tuple[Any, ...]:
        """Return the bound values in placeholder order."""
        return tuple(c.value for c in self.comparisons)

    @property
    def is_valid(self) -> bool:
        """A predicate without comparisons must never be executed."""
        return bool(self.comparisons)

    def _extend(self, other: Comparison | Predicate, connective: Connective) -> Predicate:
        if isinstance(other, Comparison):
            added: tuple[Comparison, ...] = (other,)
        elif isinstance(other, Predicate):
            if len(other.comparisons) > 1 and other.connective is not connective:
                raise ValueError("Cannot mix AND and OR in one predicate")
            added = other.comparisons
        else:
            return NotImplemented
        if len(self.comparisons) > 1 and self.connective is not connective:
            raise ValueError("Cannot mix AND and OR in one predicate")
        return Predicate(self.comparisons + added, connective)

    def __and__(self, other: Comparison | Predicate) -> Predicate:
        return self._extend(other, Connective.AND)

    def __or__(self, other: Comparison | Predicate) -> Predicate:
        return self._extend(other, Connective.OR)

    def __len__(self) -> int:
        return len(self.comparisons)


def all_of(*comparisons: Comparison) -> Predicate:
    """Join comparisons with AND."""
    return Predicate(tuple(comparisons), Connective.AND)


def any_of(*comparisons: Comparison) -> Predicate:
    """Join comparisons with OR."""
    return Predicate(tuple(comparisons), Connective.OR)


def equals_id(entity_id: int) -> Predicate:
    """Match the row with the given identity."""
    return all_of(Comparison.equal(ID_COLUMN, entity_id))


def equals_related_id(parent_id: int) -> Predicate:
    """Match the rows whose parent is the given identity."""
    return all_of(Comparison.equal(RELATED_ID_COLUMN, parent_id))
