"""Tests for Source: creation, lookup, attributes and lifecycle."""

import pytest
from rdflib import URIRef
from rdflib.namespace import DC, RDF, RDFS

from talia_core import (
    DcResource,
    DuplicateIdentifierError,
    PredicateCollection,
    QueryError,
    RecordNotFound,
    Source,
    TALIA,
    UnsavedSourceError,
    ValidationError,
)

REL = "http://x/rel"


class Book(Source):
    additional_rdf_types = ("http://ex.org/Book",)


class TestCreateAndFind:
    def test_save_and_find(self, store):
        source = store.new_source("http://x/a")
        source.workflow_state = 3
        source.primary_source = False
        source.save_strict()
        assert store.exists("http://x/a")
        found = store.find("http://x/a")
        assert found.workflow_state == 3
        assert found.primary_source is False
        assert found.id == source.id

    def test_timestamps_filled(self, saved_source):
        assert saved_source.created_at is not None
        assert saved_source.updated_at is not None

    def test_existing_uri_with_types(self, saved_source, store):
        with pytest.raises(DuplicateIdentifierError):
            store.new_source(saved_source.uri, "http://ex.org/Book")

    def test_constructor_loads_existing(self, saved_source, store):
        source = Source(store, saved_source.uri)
        assert not source.is_new_record
        assert source.id == saved_source.id

    def test_find_missing(self, store):
        with pytest.raises(RecordNotFound, match="http://x/missing"):
            store.find("http://x/missing")

    def test_find_several(self, store, saved_source):
        store.new_source("http://x/b").save_strict()
        found = store.find("http://x/b", "http://x/a")
        assert [s.uri for s in found] == ["http://x/b", "http://x/a"]
        assert [s.uri for s in store.find(["http://x/a"])] == ["http://x/a"]

    def test_find_several_with_missing(self, store, saved_source):
        with pytest.raises(RecordNotFound):
            store.find("http://x/a", "http://x/missing")

    def test_find_uri_with_options(self, store, saved_source):
        with pytest.raises(QueryError):
            store.find("http://x/a", limit=1)

    def test_bare_name_resolves_to_local_namespace(self, store):
        store.new_source("http://localnode.org/thing").save_strict()
        assert store.exists("thing")
        assert store.find("thing").uri == "http://localnode.org/thing"


class TestValidation:
    def test_malformed_uri(self, store):
        source = store.new_source("not a uri")
        assert not source.save()
        assert "uri" in source.errors
        with pytest.raises(ValidationError, match="uri"):
            source.save_strict()
        assert source.is_new_record

    def test_local_namespace_uri(self, store):
        source = store.new_source("http://localnode.org/")
        assert not source.valid()
        assert source.errors["uri"] == ["cannot be the local namespace"]

    def test_duplicate_uri(self, store):
        first = Source(store, "http://x/d")
        second = Source(store, "http://x/d")
        first.save_strict()
        with pytest.raises(ValidationError, match="already been taken"):
            second.save_strict()

    def test_required_column(self, store):
        source = store.new_source("http://x/a")
        source.workflow_state = None
        assert not source.valid()
        assert source.errors["workflow_state"] == ["can't be blank"]

    def test_valid(self, store):
        assert store.new_source("http://x/a").valid()

    @pytest.mark.parametrize("column", ["id", "uri", "type", "created_at"])
    def test_read_only_columns(self, store, column):
        source = store.new_source("http://x/a")
        with pytest.raises(ValueError):
            source[column] = "x"


class TestAttributeAccess:
    def test_relational_item(self, store):
        source = store.new_source("http://x/a")
        source["name"] = "A"
        assert source["name"] == "A"
        assert source.name == "A"

    def test_id_item(self, store, saved_source):
        assert saved_source["id"] == saved_source.id
        assert saved_source["id"] is not None
        assert store.find(saved_source.uri)["id"] == saved_source.id
        assert store.new_source("http://x/new")["id"] is None

    def test_predicate_item(self, store):
        collection = store.new_source("http://x/a")["dc:title"]
        assert isinstance(collection, PredicateCollection)
        assert collection.predicate == str(DC.title)

    def test_set_predicate_replaces(self, store, saved_source):
        saved_source["dc:title"].append("Old")
        saved_source.save_strict()
        saved_source["dc:title"] = "New"
        assert store.records.count_relations(saved_source.id, DC.title) == 0
        saved_source.save_strict()
        assert store.find(saved_source.uri)["dc:title"].values() == ["New"]

    def test_append_keeps_values(self, store, saved_source):
        saved_source["dc:title"].append("One")
        saved_source.save_strict()
        saved_source["dc:title"].append("Two")
        saved_source.save_strict()
        assert store.find(saved_source.uri)["dc:title"].values() == ["One", "Two"]


class TestUpdateAttributes:
    def test_update(self, store, saved_source):
        assert saved_source.update_attributes({"name": "N", "dc:title": "T"})
        found = store.find(saved_source.uri)
        assert found.name == "N"
        assert found["dc:title"].values() == ["T"]

    def test_update_appends(self, store, saved_source):
        saved_source.update_attributes({"dc:title": "T"})
        saved_source.update_attributes({"dc:title": "U"})
        assert store.find(saved_source.uri)["dc:title"].values() == ["T", "U"]

    def test_rewrite_replaces(self, store, saved_source):
        saved_source.update_attributes({"dc:title": "T"})
        saved_source.rewrite_attributes({"dc:title": "U"})
        assert store.find(saved_source.uri)["dc:title"].values() == ["U"]

    def test_update_invalid(self, store):
        source = store.new_source("bad")
        assert not source.update_attributes({"name": "N"})
        with pytest.raises(ValidationError):
            source.update_attributes_strict({"name": "N"})

    def test_reference_values(self, store, saved_source):
        """``<uri>`` values are stored as relations to Sources."""
        saved_source.update_attributes({REL: "<http://x/c>"})
        assert store.exists("http://x/c")
        target = store.find(saved_source.uri)[REL].first
        assert isinstance(target, Source)
        assert target.uri == "http://x/c"

    def test_prefixed_reference(self, store, saved_source):
        saved_source.update_attributes({REL: "<dc:Agent>"})
        assert store.find(saved_source.uri)[REL].first.uri == str(DC) + "Agent"


class TestPredicates:
    def test_predicate_by_namespace(self, store):
        source = store.new_source("http://x/a")
        assert source.predicate("dc", "title") is source["dc:title"]

    def test_unknown_namespace(self, store):
        with pytest.raises(ValueError, match="Illegal namespace"):
            store.new_source("http://x/a").predicate("nope", "title")

    def test_predicate_set_uniq(self, store):
        source = store.new_source("http://x/a")
        source.predicate_set_uniq("dc", "title", "T")
        source.predicate_set_uniq("dc", "title", "T")
        assert source["dc:title"].values() == ["T"]

    def test_predicate_replace(self, store, saved_source):
        saved_source.predicate_set("dc", "title", "A")
        saved_source.save_strict()
        saved_source.predicate_replace("dc", "title", "B")
        saved_source.save_strict()
        assert store.find(saved_source.uri)["dc:title"].values() == ["B"]

    def test_direct_predicates_unsaved(self, store):
        with pytest.raises(UnsavedSourceError):
            store.new_source("http://x/a").direct_predicates()

    def test_direct_predicates(self, saved_source):
        saved_source.update_attributes({"dc:title": "T"})
        assert saved_source.direct_predicates() == sorted([str(DC.title), str(RDF.type)])

    def test_inverse(self, store, saved_source):
        saved_source.update_attributes({REL: "<http://x/c>"})
        target = store.find("http://x/c")
        assert [s.uri for s in target.inverse[REL]] == [saved_source.uri]
        assert target.inverse_predicates() == [REL]

    def test_inverse_unsaved(self, store):
        assert store.new_source("http://x/a").inverse[REL] == []

    def test_labels(self, saved_source):
        assert saved_source.labels() == ["a"]
        saved_source[RDFS.label].append("Label")
        assert saved_source.label() == "Label"

    def test_write_predicate_direct(self, store, saved_source):
        saved_source.write_predicate_direct("http://x/p", "v")
        assert store.records.count_relations(saved_source.id, "http://x/p") == 1
        assert list(store.triples.triples(URIRef(saved_source.uri), URIRef("http://x/p"), None))

    def test_write_predicate_direct_unsaved(self, store):
        with pytest.raises(UnsavedSourceError):
            store.new_source("http://x/a").write_predicate_direct("http://x/p", "v")


class TestLifecycle:
    def test_destroy(self, store, saved_source):
        saved_source.update_attributes({REL: "<http://x/c>"})
        target = store.find("http://x/c")
        target.destroy()
        assert target.destroyed
        assert not store.exists("http://x/c")
        assert store.find(saved_source.uri)[REL].values() == []
        assert not list(store.triples.triples(None, None, URIRef("http://x/c")))
        assert not list(store.triples.triples(URIRef("http://x/c"), None, None))

    def test_destroy_unsaved(self, store):
        with pytest.raises(UnsavedSourceError):
            store.new_source("http://x/a").destroy()

    def test_reload_discards_changes(self, saved_source):
        saved_source.name = "Changed"
        saved_source.reload()
        assert saved_source.name is None

    def test_reload_deleted(self, store, saved_source):
        store.find(saved_source.uri).destroy()
        with pytest.raises(RecordNotFound):
            saved_source.reload()

    def test_to_dict(self, saved_source):
        data = saved_source.to_dict()
        assert data["uri"] == saved_source.uri
        assert data["workflow_state"] == 3
        assert data["predicates"][str(RDF.type)] == [str(TALIA.Source)]


class TestSubtypes:
    def test_subclass_round_trip(self, store):
        book = store.new_source("http://x/book", source_class=Book)
        book.save_strict()
        found = store.find("http://x/book")
        assert isinstance(found, Book)
        assert found["type"] == "Book"
        assert "http://ex.org/Book" in found.types
        assert str(TALIA.Book) in found.types

    def test_dc_resource(self, store):
        resource = store.new_source("http://x/r", source_class=DcResource)
        resource.title = "T"
        resource.creators.append("Alice")
        resource.save_strict()
        found = store.find("http://x/r")
        assert isinstance(found, DcResource)
        assert found.title == "T"
        assert found.creators.values() == ["Alice"]
        assert str(DC) + "Resource" in found.types

    def test_singular_property_replaces(self, store):
        resource = store.new_source("http://x/r", source_class=DcResource)
        resource.title = "One"
        resource.title = "Two"
        resource.save_strict()
        assert store.find("http://x/r")[DC.title].values() == ["Two"]
