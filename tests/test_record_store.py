"""Tests for RecordStore: transactions, rollback hooks and relation rows."""

import pytest

from talia_core.models import ObjectType
from talia_core.record_store import RecordStore


@pytest.fixture
def records():
    with RecordStore() as r:
        yield r


def _insert(records, uri):
    return records.insert_record(
        {"uri": uri, "type": "Source", "workflow_state": 0, "primary_source": False}
    )


class TestTransactions:
    def test_commit(self, records):
        with records.transaction():
            _insert(records, "http://x/a")
        assert records.exists_by_uri("http://x/a")

    def test_rollback(self, records):
        """An exception inside the block discards all writes."""
        with pytest.raises(RuntimeError):
            with records.transaction():
                _insert(records, "http://x/a")
                raise RuntimeError("boom")
        assert not records.exists_by_uri("http://x/a")

    def test_nested_joins_outer(self, records):
        """A completed inner block is rolled back with the outer one."""
        with pytest.raises(RuntimeError):
            with records.transaction():
                with records.transaction():
                    _insert(records, "http://x/a")
                assert records.in_transaction
                raise RuntimeError("boom")
        assert not records.exists_by_uri("http://x/a")
        assert not records.in_transaction

    def test_rollback_hooks_run(self, records):
        calls = []
        with pytest.raises(RuntimeError):
            with records.transaction():
                records.on_rollback(lambda: calls.append("first"))
                records.on_rollback(lambda: calls.append("second"))
                raise RuntimeError("boom")
        assert calls == ["second", "first"]

    def test_hooks_cleared_on_commit(self, records):
        calls = []
        with records.transaction():
            records.on_rollback(lambda: calls.append(1))
        with pytest.raises(RuntimeError):
            with records.transaction():
                raise RuntimeError("boom")
        assert calls == []

    def test_hook_outside_transaction_ignored(self, records):
        calls = []
        records.on_rollback(lambda: calls.append(1))
        with pytest.raises(RuntimeError):
            with records.transaction():
                raise RuntimeError("boom")
        assert calls == []


class TestColumns:
    def test_column_names(self, records):
        assert records.column_names()[:3] == ["id", "uri", "type"]

    def test_content_columns(self, records):
        """Keys and the class discriminator are not content."""
        names = [c.name for c in records.content_columns()]
        assert names == [
            "uri", "name", "workflow_state", "primary_source", "created_at", "updated_at",
        ]

    def test_notnull_flags(self, records):
        columns = {c.name: c for c in records.content_columns()}
        assert columns["workflow_state"].notnull
        assert not columns["name"].notnull


class TestRecords:
    def test_find_by_uris_ordered_by_id(self, records):
        b = _insert(records, "http://x/b")
        a = _insert(records, "http://x/a")
        rows = records.find_by_uris(["http://x/a", "http://x/b", "http://x/missing"])
        assert [r["id"] for r in rows] == [b, a]

    def test_update_sets_updated_at(self, records):
        source_id = _insert(records, "http://x/a")
        records.update_record(source_id, {"name": "A"})
        row = records.find_by_id(source_id)
        assert row["name"] == "A"
        assert row["updated_at"] is not None

    def test_delete_record_removes_inverse_relations(self, records):
        a = _insert(records, "http://x/a")
        b = _insert(records, "http://x/b")
        records.create_relation(a, "http://x/p", ObjectType.SOURCE, b)
        records.delete_record(b)
        assert records.count_relations(a, "http://x/p") == 0


class TestRelations:
    def test_property_relation(self, records):
        a = _insert(records, "http://x/a")
        prop = records.create_property("hello", None, "en")
        rel = records.create_relation(a, "http://x/p", ObjectType.PROPERTY, prop)
        relation = records.get_relation(rel)
        assert relation.object_type == "property"
        assert relation.object_id == prop

    def test_fat_relations_columns(self, records):
        """Fat rows carry both literal columns and object record columns."""
        a = _insert(records, "http://x/a")
        b = _insert(records, "http://x/b")
        prop = records.create_property("hello", None, "en")
        records.create_relation(a, "http://x/p", ObjectType.PROPERTY, prop)
        records.create_relation(a, "http://x/q", ObjectType.SOURCE, b)
        rows = records.fat_relations([a])
        assert len(rows) == 2
        by_predicate = {r["predicate_uri"]: r for r in rows}
        assert by_predicate["http://x/p"]["prop_value"] == "hello"
        assert by_predicate["http://x/p"]["prop_language"] == "en"
        assert by_predicate["http://x/q"]["obj_uri"] == "http://x/b"

    def test_fat_relations_order(self, records):
        a = _insert(records, "http://x/a")
        for value, order in (("late", 2), ("none", None), ("early", 1)):
            prop = records.create_property(value)
            records.create_relation(a, "http://x/p", ObjectType.PROPERTY, prop, order)
        rows = records.fat_relations([a], "http://x/p")
        assert [r["prop_value"] for r in rows] == ["early", "late", "none"]

    def test_delete_relations_removes_properties(self, records):
        a = _insert(records, "http://x/a")
        for value in ("one", "two"):
            prop = records.create_property(value)
            records.create_relation(a, "http://x/p", ObjectType.PROPERTY, prop)
        assert records.delete_relations(a, "http://x/p") == 2
        assert records.scalar("SELECT COUNT(*) FROM semantic_properties") == 0

    def test_delete_relation_single(self, records):
        a = _insert(records, "http://x/a")
        prop = records.create_property("one")
        rel = records.create_relation(a, "http://x/p", ObjectType.PROPERTY, prop)
        records.delete_relation(rel)
        assert records.get_relation(rel) is None
        assert records.scalar("SELECT COUNT(*) FROM semantic_properties") == 0

    def test_predicates_and_subjects(self, records):
        a = _insert(records, "http://x/a")
        b = _insert(records, "http://x/b")
        records.create_relation(a, "http://x/q", ObjectType.SOURCE, b)
        records.create_relation(a, "http://x/p", ObjectType.SOURCE, b)
        assert records.direct_predicates(a) == ["http://x/p", "http://x/q"]
        assert records.inverse_predicates(b) == ["http://x/p", "http://x/q"]
        assert [r["uri"] for r in records.subjects_of(b, "http://x/p")] == ["http://x/a"]
