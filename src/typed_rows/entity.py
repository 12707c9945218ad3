"""Base classes for persistable entities."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, MutableSequence
from typing import Annotated, Any, ClassVar, Final, Generic, TypeVar, get_args, get_origin, overload

from typed_rows.annotations import Column

# Identity of an entity that has not been inserted yet
INVALID_ID: Final[int] = -1

# Reserved column names added to every schema
ID_COLUMN: Final[str] = "ID"
RELATED_ID_COLUMN: Final[str] = "ParentID"


class Storable:
    """An entity with an identity and an optional parent back-reference.

    ``id`` is assigned by the table on first insert. ``related_id`` holds the
    identity of the collection the entity belongs to.
    """

    id: int = INVALID_ID
    related_id: int = INVALID_ID

    @property
    def is_persisted(self) -> bool:
        """Return whether the entity has been assigned an identity."""
        return self.id > INVALID_ID


S = TypeVar("S", bound=Storable)
C = TypeVar("C")


class StorableCollection(Storable, ABC, Generic[S]):
    """An entity whose children are stored as rows of their own table.

    Each child's ``related_id`` points at the collection's ``id``. The child
    class is taken from the generic parameter (``class Album(EntityList[Song])``)
    unless ``child_type`` is set explicitly.
    """

    child_type: ClassVar[type[Storable]]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "child_type" in cls.__dict__:
            return
        for base in cls.__dict__.get("__orig_bases__", ()):
            origin = get_origin(base)
            if isinstance(origin, type) and issubclass(origin, StorableCollection):
                args = get_args(base)
                if args and isinstance(args[0], type) and issubclass(args[0], Storable):
                    cls.child_type = args[0]
                    return

    @abstractmethod
    def get_children(self) -> MutableSequence[S]:
        """Return the current children."""

    @abstractmethod
    def set_children(self, children: Iterable[S]) -> None:
        """Replace the children, stamping this collection's identity on them."""


class EntityList(StorableCollection[S], MutableSequence[S]):
    """A list of child entities that keeps their back-references in sync.

    Adding a child stamps the list's ``id`` onto it; removing one resets its
    ``related_id`` to ``INVALID_ID``. Assigning ``id`` re-stamps every child.
    """

    def __init__(self, children: Iterable[S] = ()) -> None:
        self._id = INVALID_ID
        self.related_id = INVALID_ID
        self._items: list[S] = []
        self.extend(children)

    @property  # type: ignore[override]
    def id(self) -> int:
        return self._id

    @id.setter
    def id(self, value: int) -> None:
        self._id = value
        for child in self._items:
            child.related_id = value

    @overload
    def __getitem__(self, index: int) -> S: ...

    @overload
    def __getitem__(self, index: slice) -> list[S]: ...

    def __getitem__(self, index: int | slice) -> S | list[S]:
        return self._items[index]

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            replaced = self._items[index]
            added = list(value)
        else:
            replaced = [self._items[index]]
            added = [value]
        self._items[index] = added if isinstance(index, slice) else value
        for child in replaced:
            child.related_id = INVALID_ID
        for child in added:
            child.related_id = self._id

    def __delitem__(self, index: int | slice) -> None:
        removed = self._items[index] if isinstance(index, slice) else [self._items[index]]
        del self._items[index]
        for child in removed:
            child.related_id = INVALID_ID

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[S]:
        return iter(self._items)

    def insert(self, index: int, value: S) -> None:
        value.related_id = self._id
        self._items.insert(index, value)

    def get_children(self) -> EntityList[S]:
        return self

    def set_children(self, children: Iterable[S]) -> None:
        items = list(children)
        self.clear()
        self.extend(items)

    @property
    def children(self) -> EntityList[S]:
        return self

    def find(self, child_id: int) -> S | None:
        """Return the child with the given identity, if present."""
        for child in self._items:
            if child.id == child_id:
                return child
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id}, children={self._items!r})"


class SerializedEntity(Storable, Generic[C]):
    """Stores a single picklable value in one BLOB column.

    Subclass once per content type; the subclass name becomes the table name::

        class SavedSettings(SerializedEntity[Settings]):
            pass
    """

    content: Annotated[Any, Column("Content", opaque=True)] = None

    def __init__(self, content: C | None = None) -> None:
        self.content = content
