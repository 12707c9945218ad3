"""Parsing module for the textual filter language."""

from typed_rows.parsing.filter_parser import FilterParser, parse_filter

__all__ = [
    "FilterParser",
    "parse_filter",
]
