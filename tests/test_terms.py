"""Tests for value/term/column conversion."""

from rdflib import Literal, URIRef
from rdflib.namespace import XSD

from talia_core.terms import (
    PropertyString,
    literal_columns,
    to_term,
    value_from_columns,
)


class TestLiteralColumns:
    def test_plain_string(self):
        assert literal_columns("abc") == ("abc", None, None)

    def test_integer(self):
        assert literal_columns(3) == ("3", str(XSD.integer), None)

    def test_language_string(self):
        assert literal_columns(PropertyString("Hallo", "de")) == ("Hallo", None, "de")


class TestValueFromColumns:
    def test_integer(self):
        value = value_from_columns("3", str(XSD.integer), None)
        assert value == 3
        assert isinstance(value, int)

    def test_boolean(self):
        assert value_from_columns("true", str(XSD.boolean), None) is True

    def test_language_string(self):
        value = value_from_columns("Hallo", None, "de")
        assert isinstance(value, PropertyString)
        assert value == "Hallo"
        assert value.lang == "de"

    def test_plain_string(self):
        value = value_from_columns("abc", None, None)
        assert value == "abc"
        assert not isinstance(value, PropertyString)


class TestToTerm:
    def test_reference(self):
        class Ref:
            uri = "http://x/a"

        assert to_term(Ref()) == URIRef("http://x/a")

    def test_literal(self):
        assert to_term("abc") == Literal("abc")
        assert to_term(PropertyString("Hi", "en")) == Literal("Hi", lang="en")

    def test_terms_pass_through(self):
        term = URIRef("http://x/a")
        assert to_term(term) is term
