"""Tests for predicate collections and the unsaved-Source cache."""

import pytest
from rdflib import Literal, URIRef

from talia_core import PropertyString, Source, TALIA, UnsavedSourceError

P = "http://x/p"
REL = "http://x/rel"


def _row_count(store, uri):
    return store.records.scalar("SELECT COUNT(*) FROM active_sources WHERE uri = ?", (uri,))


class TestLoading:
    def test_new_source_gets_selftype(self, store):
        source = store.new_source("http://x/a")
        assert str(TALIA.Source) in [t.uri for t in source.types]

    def test_untouched_collection_is_clean(self, saved_source):
        collection = saved_source[P]
        assert collection.clean
        assert collection.flush() == 0

    def test_loaded_empty_flush_is_noop(self, saved_source):
        collection = saved_source[P]
        assert collection.values() == []
        assert not collection.clean
        assert collection.flush() == 0

    def test_len_counts_without_loading(self, store, saved_source):
        saved_source[P].extend(["a", "b"])
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        assert len(collection) == 2
        assert not collection.loaded

    def test_read_loads(self, store, saved_source):
        saved_source[P].extend(["a", "b"])
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        assert collection.values() == ["a", "b"]
        assert collection.loaded
        assert collection.first == "a"
        assert collection.last == "b"
        assert collection.at(5) is None
        assert collection.join("|") == "a|b"

    def test_typed_values_round_trip(self, store, saved_source):
        saved_source[P].append(42)
        saved_source.save_strict()
        assert store.find(saved_source.uri)[P].first == 42

    def test_init_as_empty_skips_backing_rows(self, store, saved_source):
        saved_source[P].append("a")
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        collection.init_as_empty()
        assert collection.values() == []

    def test_inject_into_loaded_raises(self, saved_source):
        collection = saved_source[P]
        collection.values()
        with pytest.raises(RuntimeError):
            collection.inject_fat_item(None)


class TestBufferedWrites:
    def test_append_buffered_until_flush(self, store, saved_source):
        collection = saved_source[P]
        collection.append("v")
        assert collection.dirty
        assert store.records.count_relations(saved_source.id, P) == 0
        assert collection.flush() == 1
        assert store.records.count_relations(saved_source.id, P) == 1
        assert (URIRef(saved_source.uri), URIRef(P), Literal("v")) in store.triples

    def test_append_none_raises(self, saved_source):
        with pytest.raises(ValueError):
            saved_source[P].append(None)

    def test_append_list(self, saved_source):
        saved_source[P].append(["a", "b"])
        assert saved_source[P].values() == ["a", "b"]

    def test_flush_unsaved_owner_raises(self, store):
        source = store.new_source("http://x/new")
        source[P].append("v")
        with pytest.raises(UnsavedSourceError):
            source[P].flush()

    def test_remove_value_is_deferred(self, store, saved_source):
        saved_source[P].extend(["a", "b"])
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        collection.remove("a")
        assert collection.values() == ["b"]
        assert store.records.count_relations(saved_source.id, P) == 2
        collection.flush()
        assert store.records.count_relations(saved_source.id, P) == 1
        subject = URIRef(saved_source.uri)
        assert (subject, URIRef(P), Literal("a")) not in store.triples
        assert (subject, URIRef(P), Literal("b")) in store.triples

    def test_remove_cancels_pending_append(self, saved_source):
        collection = saved_source[P]
        collection.append("x")
        collection.remove("x")
        assert not collection.dirty
        assert collection.values() == []

    def test_remove_duplicate_keeps_triple(self, store, saved_source):
        """The triple stays while another relation holds the same value."""
        saved_source[P].extend(["a", "a"])
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        collection.remove("a")
        collection.flush()
        assert store.records.count_relations(saved_source.id, P) == 1
        assert (URIRef(saved_source.uri), URIRef(P), Literal("a")) in store.triples

    def test_remove_all_is_immediate(self, store, saved_source):
        """remove() without arguments writes through without a save."""
        saved_source[P].extend(["a", "b"])
        saved_source.save_strict()
        store.find(saved_source.uri)[P].remove()
        assert store.find(saved_source.uri)[P].values() == []
        assert not list(store.triples.triples(URIRef(saved_source.uri), URIRef(P), None))

    def test_replace(self, store, saved_source):
        saved_source[P].extend(["a", "b"])
        saved_source.save_strict()
        collection = store.find(saved_source.uri)[P]
        collection.replace("a", "c")
        assert collection.values() == ["c", "b"]
        collection.flush()
        assert set(store.find(saved_source.uri)[P].values()) == {"b", "c"}

    def test_replace_missing_raises(self, saved_source):
        with pytest.raises(ValueError):
            saved_source[P].replace("missing", "new")

    def test_add_with_order(self, store, saved_source):
        saved_source[P].add_with_order("b", 2)
        saved_source[P].add_with_order("a", 1)
        saved_source.save_strict()
        assert store.find(saved_source.uri)[P].values() == ["a", "b"]


class TestTypes:
    def test_type_strings_become_sources(self, store):
        source = store.new_source("http://x/a")
        source.types.append("http://ex.org/Book")
        assert isinstance(source.types.last, Source)
        assert source.types.last.uri == "http://ex.org/Book"

    def test_contains_by_string(self, store):
        source = store.new_source("http://x/a", "http://ex.org/Book")
        assert "http://ex.org/Book" in source.types
        assert "http://ex.org/Other" not in source.types

    def test_prefixed_type(self, store):
        source = store.new_source("http://x/a", "foaf:Person")
        assert "http://xmlns.com/foaf/0.1/Person" in source.types


class TestLanguages:
    def test_values_with_lang(self, saved_source):
        collection = saved_source[P]
        collection.extend([PropertyString("Hello", "en"), PropertyString("Hallo", "de"), "plain"])
        assert collection.values_with_lang("de") == ["Hallo"]
        assert collection.values_with_lang("fr") == ["Hello", "plain"]

    def test_untagged_fallback(self, saved_source):
        collection = saved_source[P]
        collection.append(PropertyString("untagged"))
        assert collection.values_with_lang("en") == ["untagged"]

    def test_language_round_trip(self, store, saved_source):
        saved_source[P].append(PropertyString("Hallo", "de"))
        saved_source.save_strict()
        value = store.find(saved_source.uri)[P].first
        assert isinstance(value, PropertyString)
        assert value.lang == "de"


class TestUnsavedCache:
    def test_same_uri_saved_once(self, store):
        """Two unsaved references to one URI produce one record."""
        a = store.new_source("http://x/a")
        b = store.new_source("http://x/b")
        a[REL].append(Source(store, "http://x/c"))
        b[REL].append(Source(store, "http://x/c"))
        assert a[REL].first is b[REL].first
        a.save_strict()
        b.save_strict()
        assert _row_count(store, "http://x/c") == 1
        assert store.find("http://x/b")[REL].first.uri == "http://x/c"

    def test_entry_cleared_after_save(self, store):
        a = store.new_source("http://x/a")
        a[REL].append(Source(store, "http://x/c"))
        assert "http://x/c" in store.unsaved_cache
        a.save_strict()
        assert "http://x/c" not in store.unsaved_cache

    def test_flush_adopts_existing_record(self, store):
        """A pending Source whose URI got saved elsewhere reuses that row."""
        stale = Source(store, "http://x/c")
        fresh = Source(store, "http://x/c")
        fresh.save_strict()
        a = store.new_source("http://x/a")
        a[REL].append(stale)
        a.save_strict()
        assert stale.id == fresh.id
        assert _row_count(store, "http://x/c") == 1

    def test_import_session_scopes_cache(self, store):
        with store.import_session("test") as cache:
            assert store.unsaved_cache is cache
            a = store.new_source("http://x/a")
            a[REL].append(Source(store, "http://x/c"))
            assert "http://x/c" in cache
        assert store.unsaved_cache is not cache
        assert len(cache) == 0
        assert "http://x/c" not in store.unsaved_cache
