"""Generic CRUD over one relation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from typed_rows.columns import ColumnDefinition
from typed_rows.entity import ID_COLUMN, INVALID_ID
from typed_rows.errors import InvalidPredicateError, SchemaError
from typed_rows.predicate import Predicate, equals_id
from typed_rows.schema import Schema
from typed_rows.store import RelationalStore, RowCursor

logger = logging.getLogger(__name__)


class EntityTable:
    """Persists the entities of one schema in one relation of a store.

    Store failures are reported through return values: ``False`` from
    :meth:`save` and :meth:`delete`, ``None`` or an empty list from queries.
    """

    def __init__(self, schema: Schema, store: RelationalStore) -> None:
        if not schema.is_valid:
            raise SchemaError("Schema is not valid for persistence", schema.target_type)
        self.schema = schema
        self.store = store

    @property
    def name(self) -> str:
        return self.schema.name

    def create(self, drop_existing: bool = False) -> bool:
        """Create the relation, dropping and recreating it if requested."""
        return self.store.create_relation(self.name, self.describe_schema(), drop_existing)

    def describe_schema(self) -> list[ColumnDefinition]:
        """Return the definitions of all storable columns, identity first."""
        return self.schema.definitions()

    def get(self, entity_id: int) -> Any | None:
        """Fetch the entity with the given identity, or None."""
        with self.store.query(self.name, equals_id(entity_id)) as cursor:
            if not cursor.move_first():
                return None
            return self.schema.restore(cursor)

    def get_all(self) -> list[Any]:
        """Fetch every entity of the relation."""
        return self._materialize(self.store.query(self.name))

    def get_where(self, predicate: Predicate) -> list[Any]:
        """Fetch the entities matching a predicate.

        Raises:
            InvalidPredicateError: If the predicate has no comparisons.
        """
        if not predicate.is_valid:
            raise InvalidPredicateError("Predicate has no comparisons")
        return self._materialize(self.store.query(self.name, predicate))

    def save(self, entity: Any) -> bool:
        """Insert a transient entity or update a persisted one.

        A successful insert assigns the generated identity to ``entity.id``.
        """
        values = self.schema.values(entity, exclude=(ID_COLUMN,))
        if entity.id == INVALID_ID:
            new_id = self.store.insert(self.name, values)
            if new_id < 0:
                logger.warning("Insert into %s failed", self.name)
                return False
            entity.id = new_id
            return True
        return self.store.update(self.name, values, equals_id(entity.id)) > 0

    def save_all(self, entities: Iterable[Any]) -> bool:
        """Save every entity, even after a failure; True only if all succeeded."""
        results = [self.save(entity) for entity in entities]
        return all(results)

    def delete(self, entity: Any) -> bool:
        """Delete a persisted entity and reset its identity.

        Returns False without touching the store for a transient entity.
        """
        if entity.id == INVALID_ID:
            return False
        if self.store.delete(self.name, equals_id(entity.id)) > 0:
            entity.id = INVALID_ID
            return True
        return False

    def count(self) -> int:
        return self.store.row_count(self.name)

    def _materialize(self, cursor: RowCursor) -> list[Any]:
        entities = []
        with cursor:
            if cursor.move_first():
                entities.append(self.schema.restore(cursor))
                while cursor.move_next():
                    entities.append(self.schema.restore(cursor))
        return entities

    def __repr__(self) -> str:
        return f"EntityTable({self.name!r}, columns={[c.name for c in self.schema.columns]})"
