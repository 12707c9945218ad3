"""Parser for the textual filter language.

Grammar::

    filter     : comparison
               | comparison AND comparison ...
               | comparison OR comparison ...
    comparison : IDENTIFIER op literal
    op         : = | != | < | <= | > | >= | like | not like
    literal    : "string" | integer | float | true | false

A filter uses a single connective; mixing ``and`` with ``or`` is rejected.
"""

from __future__ import annotations

from typing import Any

import ply.yacc as yacc

from typed_rows.parsing.filter_lexer import FilterLexer
from typed_rows.predicate import CompareOperation, Comparison, Predicate, all_of, any_of

_OPERATIONS = {
    "=": CompareOperation.EQUAL,
    "!=": CompareOperation.NOT_EQUAL,
    "<": CompareOperation.LESS,
    "<=": CompareOperation.LESS_EQUAL,
    ">": CompareOperation.GREATER,
    ">=": CompareOperation.GREATER_EQUAL,
}


class FilterParser:
    """Parser turning filter text into a :class:`~typed_rows.predicate.Predicate`."""

    tokens = FilterLexer.tokens

    def __init__(self) -> None:
        self.lexer = FilterLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_filter_single(self, p: yacc.YaccProduction) -> None:
        """filter : comparison"""
        p[0] = all_of(p[1])

    def p_filter_and(self, p: yacc.YaccProduction) -> None:
        """filter : and_chain"""
        p[0] = all_of(*p[1])

    def p_filter_or(self, p: yacc.YaccProduction) -> None:
        """filter : or_chain"""
        p[0] = any_of(*p[1])

    def p_and_chain_pair(self, p: yacc.YaccProduction) -> None:
        """and_chain : comparison AND comparison"""
        p[0] = [p[1], p[3]]

    def p_and_chain_more(self, p: yacc.YaccProduction) -> None:
        """and_chain : and_chain AND comparison"""
        p[0] = p[1] + [p[3]]

    def p_or_chain_pair(self, p: yacc.YaccProduction) -> None:
        """or_chain : comparison OR comparison"""
        p[0] = [p[1], p[3]]

    def p_or_chain_more(self, p: yacc.YaccProduction) -> None:
        """or_chain : or_chain OR comparison"""
        p[0] = p[1] + [p[3]]

    def p_comparison(self, p: yacc.YaccProduction) -> None:
        """comparison : IDENTIFIER operator literal"""
        try:
            p[0] = Comparison.of(p[1], p[2], p[3])
        except ValueError as e:
            raise SyntaxError(str(e)) from e

    def p_operator_symbol(self, p: yacc.YaccProduction) -> None:
        """operator : EQ
                    | NE
                    | LT
                    | LE
                    | GT
                    | GE"""
        p[0] = _OPERATIONS[p[1]]

    def p_operator_like(self, p: yacc.YaccProduction) -> None:
        """operator : LIKE"""
        p[0] = CompareOperation.LIKE

    def p_operator_not_like(self, p: yacc.YaccProduction) -> None:
        """operator : NOT LIKE"""
        p[0] = CompareOperation.NOT_LIKE

    def p_literal_value(self, p: yacc.YaccProduction) -> None:
        """literal : STRING
                   | INTEGER
                   | FLOAT"""
        p[0] = p[1]

    def p_literal_true(self, p: yacc.YaccProduction) -> None:
        """literal : TRUE"""
        p[0] = True

    def p_literal_false(self, p: yacc.YaccProduction) -> None:
        """literal : FALSE"""
        p[0] = False

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> Predicate:
        """Parse a filter expression.

        Raises:
            SyntaxError: If the text is not a valid filter.
        """
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        if not data.strip():
            raise SyntaxError("Empty filter")
        return self.parser.parse(data, lexer=self.lexer.lexer)


def parse_filter(text: str) -> Predicate:
    """Parse filter text into a predicate."""
    return FilterParser().parse(text)
