"""Lazy predicate collections and the unsaved-Source cache."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from rdflib import URIRef
from rdflib.namespace import RDF

from talia_core.exceptions import UnsavedSourceError
from talia_core.models import ObjectType
from talia_core.terms import (
    PropertyString,
    literal_columns,
    to_term,
    value_from_columns,
)

if TYPE_CHECKING:
    from talia_core.source import Source

logger = logging.getLogger(__name__)

# Predicates whose objects are always Sources
FORCED_SOURCE_PREDICATES = frozenset({str(RDF.type)})


def _is_source(value: Any) -> bool:
    from talia_core.source import Source

    return isinstance(value, Source)


def _value_key(value: Any) -> tuple[str, Any]:
    if hasattr(value, "uri"):
        return ("ref", str(value.uri))
    if isinstance(value, URIRef):
        return ("ref", str(value))
    return ("lit", value)


# ---------------------------------------------------------------------------
# Unsaved-Source cache
# ---------------------------------------------------------------------------

class UnsavedSourceCache:
    """Not-yet-saved Sources keyed by URI.

    A second unsaved Source with a URI already in the cache is replaced by
    the cached instance, so one pending identity is saved only once.
    """

    def __init__(self) -> None:
        self._sources: dict[str, Source] = {}

    def check(self, source: Source) -> Source:
        if not source.is_new_record:
            return source
        cached = self._sources.get(source.uri)
        if cached is None:
            self._sources[source.uri] = source
            return source
        return cached

    def get(self, uri: str) -> Source | None:
        return self._sources.get(str(uri))

    def discard(self, uri: str) -> None:
        self._sources.pop(str(uri), None)

    def clear(self) -> None:
        self._sources.clear()

    def __contains__(self, uri: object) -> bool:
        return str(uri) in self._sources

    def __len__(self) -> int:
        return len(self._sources)


# ---------------------------------------------------------------------------
# Items and pending operations
# ---------------------------------------------------------------------------

@dataclass
class CollectionItem:
    """One object of a collection plus the relation row that stores it."""

    value: Any
    relation_id: int | None = None
    object_id: int | None = None
    order: int | None = None
    fat: bool = False

    @property
    def persisted(self) -> bool:
        return self.relation_id is not None

    def matches(self, value: Any) -> bool:
        return _value_key(self.value) == _value_key(value)


class PendingKind(str, Enum):
    APPEND = "append"
    REMOVE = "remove"


@dataclass
class PendingOperation:
    kind: PendingKind
    item: CollectionItem


def item_from_row(store, row: Mapping[str, Any]) -> CollectionItem:
    """Build a collection item from a fat relation row."""
    if row["object_type"] == ObjectType.SOURCE.value:
        record = {name: row[f"obj_{name}"] for name in store.records.column_names()}
        value = store.source_from_row(record)
    else:
        value = value_from_columns(
            row["prop_value"], row["prop_datatype"], row["prop_language"]
        )
    return CollectionItem(
        value=value,
        relation_id=row["relation_id"],
        object_id=row["object_id"],
        order=row["rel_order"],
        fat=True,
    )


# ---------------------------------------------------------------------------
# Predicate collection
# ---------------------------------------------------------------------------

class PredicateCollection:
    """Ordered values of one predicate on one Source.

    Reads load the backing relation rows on first use. Appends and
    single-value removals are buffered until ``flush()``; ``remove()``
    without arguments clears both stores immediately.
    """

    def __init__(self, source: Source, predicate: str) -> None:
        self._source = source
        self._predicate = str(predicate)
        self._force_source = self._predicate in FORCED_SOURCE_PREDICATES
        # None means clean: never read or written
        self._items: list[CollectionItem] | None = None
        self._loaded = False
        self._pending: list[PendingOperation] = []

    @property
    def source(self) -> Source:
        return self._source

    @property
    def predicate(self) -> str:
        return self._predicate

    @property
    def force_source(self) -> bool:
        return self._force_source

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def clean(self) -> bool:
        return self._items is None

    @property
    def dirty(self) -> bool:
        return bool(self._pending)

    def __repr__(self) -> str:
        state = "loaded" if self._loaded else "unloaded"
        return (
            f"<PredicateCollection {self._source.uri} {self._predicate} "
            f"{state} pending={len(self._pending)}>"
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_items(self) -> list[CollectionItem]:
        if not self._loaded:
            self._load()
        return self._items

    def _load(self) -> None:
        store = self._source.store
        pending = self._items or []
        backing: list[CollectionItem] = []
        if self._source.id is not None:
            rows = store.records.fat_relations([self._source.id], self._predicate)
            backing = [item_from_row(store, row) for row in rows]
        self._items = backing + pending
        self._loaded = True
        logger.debug(
            f"Loaded {len(backing)} items for {self._source.uri} {self._predicate}"
        )

    def inject_fat_item(self, item: CollectionItem) -> None:
        """Add a pre-fetched item to an unloaded collection."""
        if self._loaded:
            raise RuntimeError("Cannot inject items into a loaded collection")
        if self._items is None:
            self._items = []
        self._items.append(item)

    def mark_loaded(self) -> None:
        """Declare the injected items to be the complete backing data."""
        if self._items is None:
            self._items = []
        self._loaded = True

    def init_as_empty(self) -> None:
        """Mark an unloaded collection as loaded with no items."""
        if self._loaded:
            raise RuntimeError("Cannot reset a loaded collection")
        self._items = []
        self._loaded = True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __getitem__(self, index: int) -> Any:
        return self._load_items()[index].value

    def at(self, index: int) -> Any:
        """Value at *index*, or None when out of range."""
        items = self._load_items()
        try:
            return items[index].value
        except IndexError:
            return None

    @property
    def first(self) -> Any:
        return self.at(0)

    @property
    def last(self) -> Any:
        return self.at(-1)

    def values(self) -> list[Any]:
        return [item.value for item in self._load_items()]

    def items(self) -> list[CollectionItem]:
        return list(self._load_items())

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values())

    def __len__(self) -> int:
        if self._items is None:
            # Count without loading
            if self._source.id is None:
                return 0
            return self._source.store.records.count_relations(
                self._source.id, self._predicate
            )
        return len(self._load_items())

    def __bool__(self) -> bool:
        return len(self) > 0

    def __contains__(self, value: Any) -> bool:
        return self.index(value) is not None

    def include(self, value: Any) -> bool:
        return value in self

    def index(self, value: Any) -> int | None:
        value = self._lookup_value(value)
        for position, item in enumerate(self._load_items()):
            if item.matches(value):
                return position
        return None

    def join(self, separator: str = ", ") -> str:
        return separator.join(str(v) for v in self.values())

    def values_with_lang(
        self, language: str | None = None, default_language: str | None = None
    ) -> list[Any]:
        """Values in *language*, falling back to the default language, then untagged ones."""
        default_language = default_language or self._source.store.config.default_language
        language = language or default_language
        real: list[Any] = []
        default: list[Any] = []
        unset: list[Any] = []
        for value in self.values():
            if isinstance(value, PropertyString):
                if value.lang == language:
                    real.append(value)
                if language != default_language and value.lang == default_language:
                    default.append(value)
                if not value.lang:
                    unset.append(value)
            else:
                default.append(value)
        return real or default or unset

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _lookup_value(self, value: Any) -> Any:
        if self._force_source and isinstance(value, str) and not hasattr(value, "uri"):
            return URIRef(self._source.store.namespaces.expand(value))
        return value

    def _coerce(self, value: Any) -> Any:
        if value is None:
            raise ValueError(f"Cannot add None to {self._predicate}")
        store = self._source.store
        if self._force_source or isinstance(value, URIRef):
            value = store.source_for(value)
        if _is_source(value):
            value = store.unsaved_cache.check(value)
        return value

    def _buffer(self, item: CollectionItem, position: int | None = None) -> None:
        if self._items is None:
            self._items = []
        if position is None:
            self._items.append(item)
        else:
            self._items.insert(position, item)
        self._pending.append(PendingOperation(PendingKind.APPEND, item))

    def append(self, value: Any) -> None:
        """Buffer *value* (or each value of a list) for the next flush."""
        if isinstance(value, (list, tuple)):
            for v in value:
                self.append(v)
            return
        self._buffer(CollectionItem(self._coerce(value)))

    def extend(self, values) -> None:
        for value in values:
            self.append(value)

    def add_with_order(self, value: Any, order: int) -> None:
        self._buffer(CollectionItem(self._coerce(value), order=order))

    def _unbuffer(self, position: int) -> CollectionItem:
        items = self._load_items()
        item = items.pop(position)
        for op in self._pending:
            if op.kind is PendingKind.APPEND and op.item is item:
                self._pending.remove(op)
                break
        else:
            if item.persisted:
                self._pending.append(PendingOperation(PendingKind.REMOVE, item))
        return item

    def remove(self, *values: Any) -> None:
        """Remove the first match of each value, or clear everything.

        Without arguments the relation rows and triples of this predicate
        are deleted right away, whether or not the collection was loaded.
        """
        if not values:
            self._clear()
            return
        for value in values:
            position = self.index(value)
            if position is not None:
                self._unbuffer(position)

    def clear(self) -> None:
        self._clear()

    def _clear(self) -> None:
        owner = self._source
        store = owner.store
        if owner.id is not None:
            store.records.delete_relations(owner.id, self._predicate)
        store.triples.delete(owner.uri, URIRef(self._predicate), None)
        self._items = []
        self._loaded = True
        self._pending.clear()
        logger.debug(f"Cleared {owner.uri} {self._predicate}")

    def replace(self, old: Any, new: Any) -> None:
        """Replace the first occurrence of *old* with *new*, keeping its position."""
        position = self.index(old)
        if position is None:
            raise ValueError(f"{old!r} is not a value of {self._predicate}")
        new_item = CollectionItem(self._coerce(new))
        self._unbuffer(position)
        self._buffer(new_item, position)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush(self) -> int:
        """Write buffered changes to both stores.

        Returns the number of operations applied; a clean collection is a
        no-op. Raises UnsavedSourceError if the owner has no record.
        """
        if self._items is None:
            return 0
        if not self._pending:
            if not self._loaded:
                self._items = None
            return 0
        owner = self._source
        if owner.id is None:
            raise UnsavedSourceError(
                f"Cannot save {self._predicate} of {owner.uri}: source has no record"
            )
        store = owner.store
        snapshot = (list(self._pending), list(self._items), self._loaded)
        added: list[CollectionItem] = []
        removed: list[CollectionItem] = []

        def restore() -> None:
            self._pending, self._items, self._loaded = (
                list(snapshot[0]), list(snapshot[1]), snapshot[2]
            )
            for item in added:
                item.relation_id = None
                item.object_id = None

        with store.records.transaction():
            store.records.on_rollback(restore)
            for op in self._pending:
                if op.kind is PendingKind.APPEND:
                    self._persist_item(op.item)
                    added.append(op.item)
                else:
                    store.records.delete_relation(op.item.relation_id)
                    removed.append(op.item)
            self._pending = []
            predicate = URIRef(self._predicate)
            for item in removed:
                if not any(other.matches(item.value) for other in self._items):
                    store.triples.delete(owner.uri, predicate, to_term(item.value))
            for item in added:
                store.triples.add(owner.uri, predicate, to_term(item.value))

        if not self._loaded:
            self._items = None
        logger.debug(
            f"Flushed {owner.uri} {self._predicate}: "
            f"{len(added)} added, {len(removed)} removed"
        )
        return len(added) + len(removed)

    def _persist_item(self, item: CollectionItem) -> None:
        owner = self._source
        records = owner.store.records
        value = item.value
        if _is_source(value):
            if value.is_new_record:
                existing = records.find_by_uri(value.uri)
                if existing is not None:
                    value.adopt_record(existing)
                else:
                    value.save_strict()
            object_type, object_id = ObjectType.SOURCE, value.id
        else:
            object_type = ObjectType.PROPERTY
            object_id = records.create_property(*literal_columns(value))
        item.object_id = object_id
        item.relation_id = records.create_relation(
            owner.id, self._predicate, object_type, object_id, item.order
        )
