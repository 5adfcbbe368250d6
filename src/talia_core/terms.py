"""Conversion between Python values, rdflib terms and stored property columns."""

from __future__ import annotations

from typing import Any

from rdflib import BNode, Literal, URIRef
from rdflib.term import Node


class PropertyString(str):
    """A string literal that carries a language tag."""

    lang: str | None

    def __new__(cls, value: str, lang: str | None = None) -> PropertyString:
        obj = super().__new__(cls, value)
        obj.lang = lang or None
        return obj

    def __repr__(self) -> str:
        if self.lang:
            return f"PropertyString({str.__repr__(self)}, lang={self.lang!r})"
        return f"PropertyString({str.__repr__(self)})"


def to_literal(value: Any) -> Literal:
    if isinstance(value, Literal):
        return value
    if isinstance(value, PropertyString):
        return Literal(str(value), lang=value.lang)
    return Literal(value)


def to_term(value: Any) -> Node:
    """Convert a collection value into an rdflib term."""
    if isinstance(value, (URIRef, BNode, Literal)):
        return value
    if hasattr(value, "uri"):
        return URIRef(str(value.uri))
    return to_literal(value)


def literal_columns(value: Any) -> tuple[str, str | None, str | None]:
    """Split a literal value into ``(lexical, datatype, language)`` columns."""
    lit = to_literal(value)
    datatype = str(lit.datatype) if lit.datatype is not None else None
    return str(lit), datatype, lit.language


def lexical(value: Any) -> str:
    return literal_columns(value)[0]


def term_from_columns(
    lexical_value: str, datatype: str | None, language: str | None
) -> Literal:
    if language:
        return Literal(lexical_value, lang=language)
    if datatype:
        return Literal(lexical_value, datatype=URIRef(datatype))
    return Literal(lexical_value)


def value_from_term(term: Node) -> Any:
    """Convert an rdflib literal back into the Python value it stands for."""
    if isinstance(term, Literal):
        if term.language:
            return PropertyString(str(term), term.language)
        if term.datatype is None:
            return str(term)
        return term.toPython()
    return term


def value_from_columns(
    lexical_value: str, datatype: str | None, language: str | None
) -> Any:
    return value_from_term(term_from_columns(lexical_value, datatype, language))
