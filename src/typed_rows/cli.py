"""Command line tool for inspecting persisted entities."""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Any

from typed_rows.errors import SchemaError, TypedRowsError
from typed_rows.parsing import parse_filter
from typed_rows.registry import CollectionRegistry
from typed_rows.schema import SchemaIntrospector
from typed_rows.store import SQLiteStore


def load_type(reference: str) -> type:
    """Import a class given as ``module:Class`` (or ``module.Class``).

    Raises:
        ValueError: If the reference cannot be resolved to a class.
    """
    if ":" in reference:
        module_name, _, attribute = reference.partition(":")
    else:
        module_name, _, attribute = reference.rpartition(".")
    if not module_name or not attribute:
        raise ValueError(f"Expected MODULE:CLASS, got '{reference}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import module '{module_name}': {e}") from e
    target: Any = module
    for part in attribute.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'")
    if not isinstance(target, type):
        raise ValueError(f"'{reference}' is not a class")
    return target


def format_entity(entity: Any, registry: CollectionRegistry, indent: str = "") -> list[str]:
    """Render an entity and, for collections, its children."""
    table = registry.table_for(entity)
    fields = ", ".join(f"{c.name}={c.read(entity)!r}" for c in table.schema.columns)
    lines = [f"{indent}{fields}"]
    if table.schema.is_collection:
        for child in entity.get_children():
            lines.extend(format_entity(child, registry, indent + "  "))
    return lines


def cmd_schema(args: argparse.Namespace) -> int:
    introspector = SchemaIntrospector()
    status = 0
    for reference in args.types:
        try:
            schema = introspector.build(load_type(reference))
        except (ValueError, SchemaError) as e:
            print(f"{reference}: {e}", file=sys.stderr)
            status = 1
            continue
        print(schema.name)
        for definition in schema.definitions():
            suffix = " PRIMARY KEY" if definition.primary_key else ""
            print(f"  {definition.name} {definition.kind.value}{suffix}")
        if schema.is_collection and schema.child_type is not None:
            print(f"  children: {schema.child_type.__name__}")
    return status


def _open_registry(args: argparse.Namespace) -> tuple[SQLiteStore, CollectionRegistry]:
    if not args.database.exists():
        raise ValueError(f"Database not found: {args.database}")
    target_type = load_type(args.type)
    store = SQLiteStore.open(str(args.database), echo=args.verbose)
    registry = CollectionRegistry(store)
    try:
        table = registry.register(target_type)
    except SchemaError:
        store.close()
        raise
    if not store.has_relation(table.name):
        store.close()
        raise ValueError(f"Database has no table '{table.name}'")
    return store, registry


def cmd_count(args: argparse.Namespace) -> int:
    store, registry = _open_registry(args)
    with store:
        print(registry.count(load_type(args.type)))
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    predicate = parse_filter(args.where) if args.where else None
    store, registry = _open_registry(args)
    with store:
        target_type = load_type(args.type)
        if predicate is None:
            entities = registry.get_all(target_type)
        else:
            entities = registry.get_where(target_type, predicate)
        for entity in entities:
            for line in format_entity(entity, registry):
                print(line)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        prog="typed-rows", description="Inspect classes and databases persisted with typed_rows"
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging, including every SQL statement",
    )
    subparsers = arg_parser.add_subparsers(dest="command", required=True)

    schema_parser = subparsers.add_parser("schema", help="Print the relation definition of classes")
    schema_parser.add_argument("types", nargs="+", metavar="MODULE:CLASS")
    schema_parser.set_defaults(handler=cmd_schema)

    count_parser = subparsers.add_parser("count", help="Print the number of stored rows")
    count_parser.add_argument("database", type=Path)
    count_parser.add_argument("type", metavar="MODULE:CLASS")
    count_parser.set_defaults(handler=cmd_count)

    query_parser = subparsers.add_parser("query", help="Print stored entities")
    query_parser.add_argument("database", type=Path)
    query_parser.add_argument("type", metavar="MODULE:CLASS")
    query_parser.add_argument(
        "-w", "--where",
        help='Filter such as \'done = true and title = "x"\'',
    )
    query_parser.set_defaults(handler=cmd_query)

    args = arg_parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.handler(args)
    except (ValueError, SyntaxError, TypedRowsError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
