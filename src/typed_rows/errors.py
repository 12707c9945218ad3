"""Exceptions raised by typed_rows."""

from __future__ import annotations


class TypedRowsError(Exception):
    """Base class for all typed_rows errors."""


class SchemaError(TypedRowsError, TypeError):
    """A class cannot be mapped to a relation.

    Raised at registration time for unsupported member types, mismatched
    accessor pairs, missing no-argument constructors and duplicate column
    names. Only the offending type is rejected.
    """

    def __init__(self, message: str, target_type: type | None = None) -> None:
        if target_type is not None:
            message = f"{target_type.__name__}: {message}"
        super().__init__(message)
        self.target_type = target_type


class CoercionError(TypedRowsError, ValueError):
    """A value does not match the codec of its column."""


class InvalidPredicateError(TypedRowsError, ValueError):
    """A predicate without comparisons was handed to a query."""


class UnregisteredTypeError(TypedRowsError, KeyError):
    """An operation named a class that has no table in the registry."""

    def __init__(self, target_type: type) -> None:
        super().__init__(f"Type '{target_type.__name__}' is not registered")
        self.target_type = target_type

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0])
