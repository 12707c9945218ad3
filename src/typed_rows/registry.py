"""Registry of entity tables with cascading persistence for collections."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from typed_rows.columns import ColumnDefinition
from typed_rows.errors import SchemaError, UnregisteredTypeError
from typed_rows.predicate import Predicate, equals_related_id
from typed_rows.schema import Schema, SchemaIntrospector
from typed_rows.store import RelationalStore
from typed_rows.table import EntityTable
from typed_rows.types import ValueTypeRegistry

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Holds one :class:`EntityTable` per registered class.

    Operations on collection types cascade to their children: loading a
    collection loads the rows whose ``ParentID`` is the collection's ``id``,
    saving stamps that id onto every child and saves them, and deleting
    removes the children before the collection itself.

    Types that fail registration in the constructor are skipped; their
    errors are kept in :attr:`errors`.
    """

    def __init__(
        self,
        store: RelationalStore,
        types: Iterable[type] = (),
        value_types: ValueTypeRegistry | None = None,
    ) -> None:
        self.store = store
        self.value_types = value_types if value_types is not None else ValueTypeRegistry()
        self.introspector = SchemaIntrospector(self.value_types)
        self.errors: dict[type, SchemaError] = {}
        self._tables: dict[type, EntityTable] = {}
        for target_type in types:
            try:
                self.register(target_type)
            except SchemaError as e:
                logger.warning("Skipping %s: %s", getattr(target_type, "__name__", target_type), e)
                self.errors[target_type] = e

    def register(self, target_type: type) -> EntityTable:
        """Register a class and return its table.

        A collection's child type is registered first.

        Raises:
            SchemaError: If the class (or its child type) cannot be persisted.
        """
        if target_type in self._tables:
            return self._tables[target_type]

        schema = self.introspector.build(target_type)
        self._check_name(schema)
        if schema.is_collection:
            if schema.child_type is None:
                raise SchemaError("Collection has no child type", target_type)
            if schema.child_type is not target_type:
                self.register(schema.child_type)

        table = EntityTable(schema, self.store)
        self._tables[target_type] = table
        self.errors.pop(target_type, None)
        logger.debug("Registered %s as %s", target_type.__qualname__, table.name)
        return table

    def _check_name(self, schema: Schema) -> None:
        for registered, table in self._tables.items():
            if table.name == schema.name:
                raise SchemaError(
                    f"Relation name '{schema.name}' is already used by "
                    f"{registered.__module__}.{registered.__qualname__}",
                    schema.target_type,
                )

    @property
    def types(self) -> list[type]:
        """Return the registered classes in registration order."""
        return list(self._tables)

    def table_for(self, target: type | Any) -> EntityTable:
        """Return the table of a class, or of an entity's class.

        An entity of an unregistered subclass uses the table of its nearest
        registered base class.

        Raises:
            UnregisteredTypeError: If no table matches.
        """
        if isinstance(target, type):
            table = self._tables.get(target)
            if table is None:
                raise UnregisteredTypeError(target)
            return table
        for klass in type(target).__mro__:
            if klass in self._tables:
                return self._tables[klass]
        raise UnregisteredTypeError(type(target))

    def columns_for(self, target_type: type) -> list[ColumnDefinition]:
        return self.table_for(target_type).describe_schema()

    def has_table(self, target_type: type) -> bool:
        """Return whether the class is registered and its relation exists."""
        table = self._tables.get(target_type)
        return table is not None and self.store.has_relation(table.name)

    def create_tables(self, drop_existing: bool = False) -> bool:
        """Create the relation of every registered class.

        Dropping and recreating is the only supported migration.
        """
        results = [table.create(drop_existing) for table in self._tables.values()]
        return all(results)

    def get(self, target_type: type, entity_id: int) -> Any | None:
        """Fetch one entity by identity, with its children if it is a collection."""
        table = self.table_for(target_type)
        entity = table.get(entity_id)
        if entity is not None:
            self._load_children(table.schema, entity)
        return entity

    def get_all(self, target_type: type) -> list[Any]:
        table = self.table_for(target_type)
        entities = table.get_all()
        for entity in entities:
            self._load_children(table.schema, entity)
        return entities

    def get_where(self, target_type: type, predicate: Predicate) -> list[Any]:
        """Fetch the entities matching a predicate, with their children.

        Raises:
            InvalidPredicateError: If the predicate has no comparisons.
        """
        table = self.table_for(target_type)
        entities = table.get_where(predicate)
        for entity in entities:
            self._load_children(table.schema, entity)
        return entities

    def _load_children(self, schema: Schema, entity: Any) -> None:
        if not schema.is_collection or schema.child_type is None:
            return
        children = self.get_where(schema.child_type, equals_related_id(entity.id))
        entity.set_children(children)

    def save(self, entity: Any) -> bool:
        """Save an entity; a collection's children are saved after it.

        The children are not attempted if the collection itself failed.
        """
        table = self.table_for(entity)
        if not table.save(entity):
            return False
        if not table.schema.is_collection:
            return True
        children = list(entity.get_children())
        for child in children:
            child.related_id = entity.id
        return self.save_all(children)

    def save_all(self, entities: Iterable[Any]) -> bool:
        """Save every entity, even after a failure; True only if all succeeded."""
        results = [self.save(entity) for entity in entities]
        return all(results)

    def delete(self, entity: Any) -> bool:
        """Delete an entity; a collection's children are deleted first.

        Returns True only if every child and the entity were deleted.
        """
        table = self.table_for(entity)
        if not table.schema.is_collection:
            return table.delete(entity)
        children_deleted = self.delete_all(list(entity.get_children()))
        parent_deleted = table.delete(entity)
        return children_deleted and parent_deleted

    def delete_all(self, entities: Iterable[Any]) -> bool:
        """Delete every entity, even after a failure; True only if all succeeded."""
        results = [self.delete(entity) for entity in entities]
        return all(results)

    def count(self, target_type: type) -> int:
        return self.table_for(target_type).count()

    def __contains__(self, target_type: object) -> bool:
        return target_type in self._tables

    def __len__(self) -> int:
        return len(self._tables)


def register(store: RelationalStore, *types: type, create_tables: bool = True) -> CollectionRegistry:
    """Build a registry for the given classes and create their relations.

    Types that cannot be persisted are skipped and reported in
    :attr:`CollectionRegistry.errors`.
    """
    registry = CollectionRegistry(store, types)
    if create_tables:
        registry.create_tables()
    return registry
