"""Declarative markers for persistable members.

Attributes are marked through ``typing.Annotated``::

    class Note(Storable):
        title: Annotated[str, Column()] = ""
        done: Annotated[bool, Column("finished")] = False

Getter/setter pairs are marked with the same column name::

    class Task(Storable):
        @column_accessor("priority")
        def get_priority(self) -> int: ...

        @column_accessor("priority")
        def set_priority(self, value: int) -> None: ...
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any, TypeVar, get_args, get_origin

F = TypeVar("F", bound=Callable[..., Any])

# Attribute set on functions decorated with column_accessor
ACCESSOR_ATTRIBUTE = "__typed_rows_column__"

_NON_LETTERS = re.compile(r"[^A-Za-z]")


def clean_name(name: str) -> str:
    """Strip everything but ASCII letters from a column name."""
    return _NON_LETTERS.sub("", name)


@dataclass(frozen=True)
class Column:
    """Marks an annotated attribute as a persisted column.

    Attributes:
        name: Column name override. Defaults to the attribute name.
        opaque: Store the value pickled in a BLOB regardless of its type.
    """

    name: str | None = None
    opaque: bool = False

    def column_name(self, member_name: str) -> str:
        """Return the sanitized column name for the given member."""
        return clean_name(self.name if self.name else member_name)


def column_accessor(name: str) -> Callable[[F], F]:
    """Mark a getter or setter method as one half of a column.

    Args:
        name: Logical column name shared by the getter and the setter.

    Raises:
        ValueError: If the name contains no letters.
    """
    if not clean_name(name):
        raise ValueError(f"Column name {name!r} contains no letters")

    def decorate(func: F) -> F:
        setattr(func, ACCESSOR_ATTRIBUTE, name)
        return func

    return decorate


def accessor_name(member: object) -> str | None:
    """Return the column name a method was marked with, if any."""
    name = getattr(member, ACCESSOR_ATTRIBUTE, None)
    return name if isinstance(name, str) else None


def column_marker(annotation: Any) -> tuple[Any, Column] | None:
    """Split ``Annotated[T, Column(...)]`` into ``(T, Column)``.

    Returns None for annotations that carry no Column marker.
    """
    if get_origin(annotation) is not Annotated:
        return None
    value_type, *metadata = get_args(annotation)
    for item in metadata:
        if isinstance(item, Column):
            return value_type, item
    return None
