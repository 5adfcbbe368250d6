"""SourceStore: main entry point tying the record and triple stores together."""

from __future__ import annotations

import logging
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import Any

from rdflib import URIRef

from talia_core.classifier import AttributeClassifier
from talia_core.collection import UnsavedSourceCache
from talia_core.config import TaliaConfig
from talia_core.exceptions import QueryError
from talia_core.models import FindScope, QuerySpec
from talia_core.namespaces import NamespaceRegistry
from talia_core.query import QueryTranslator, build_query_spec
from talia_core.record_store import RecordStore
from talia_core.source import Source
from talia_core.triple_store import RdflibTripleStore, TripleStore

logger = logging.getLogger(__name__)

# Content columns that are not mirrored as dupe triples
_NOT_DUPED = frozenset({"uri", "created_at", "updated_at"})


class SourceStore:
    """Access to Sources kept in a record store and a triple store."""

    def __init__(
        self,
        config: TaliaConfig | None = None,
        *,
        record_store: RecordStore | None = None,
        triple_store: TripleStore | None = None,
    ) -> None:
        self.config = config or TaliaConfig()
        self.namespaces = NamespaceRegistry.from_config(self.config)
        if record_store is None:
            record_store = RecordStore(self.config.db_path)
        if triple_store is None:
            triple_store = RdflibTripleStore(
                path=self.config.rdf_path,
                format=self.config.rdf_format,
                context=self.config.rdf_context,
            )
        self.records = record_store
        self.triples = triple_store
        self.classifier = AttributeClassifier(self.records.column_names(), self.namespaces)
        self._translator = QueryTranslator(self)
        self._default_cache = UnsavedSourceCache()
        self._session_caches: list[UnsavedSourceCache] = []
        self._dupe_columns = [
            column.name
            for column in self.records.content_columns()
            if column.name not in _NOT_DUPED
        ]
        logger.info(f"Opened source store at {self.records.db_path}")

    def close(self) -> None:
        """Persist the triple store and close the database connection."""
        self.triples.close()
        self.records.close()
        logger.info(f"Closed source store at {self.records.db_path}")

    def __enter__(self) -> SourceStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Sessions and transactions
    # ------------------------------------------------------------------

    def transaction(self):
        return self.records.transaction()

    @property
    def unsaved_cache(self) -> UnsavedSourceCache:
        """The cache of the innermost import session, else the store default."""
        if self._session_caches:
            return self._session_caches[-1]
        return self._default_cache

    @contextmanager
    def import_session(self, name: str | None = None) -> Generator[UnsavedSourceCache, None, None]:
        """Scope the unsaved-Source cache to one import run."""
        cache = UnsavedSourceCache()
        self._session_caches.append(cache)
        logger.info(f"Import session started: {name or '(unnamed)'}")
        try:
            yield cache
        finally:
            self._session_caches.remove(cache)
            pending = len(cache)
            cache.clear()
            logger.info(
                f"Import session ended: {name or '(unnamed)'} "
                f"({pending} unsaved sources discarded)"
            )

    def discard_unsaved(self, uri: str) -> None:
        self._default_cache.discard(uri)
        for cache in self._session_caches:
            cache.discard(uri)

    def dupe_columns(self) -> list[str]:
        return list(self._dupe_columns)

    # ------------------------------------------------------------------
    # Building Sources
    # ------------------------------------------------------------------

    def new_source(
        self, uri: Any, *types: Any, source_class: type[Source] = Source
    ) -> Source:
        """Load the Source for *uri* or build a new one of *source_class*."""
        uri = str(getattr(uri, "uri", uri))
        if not types:
            row = self.records.find_by_uri(uri)
            if row is not None:
                return self.source_from_row(row)
        return source_class(self, uri, *types)

    def source_from_row(self, row: Mapping[str, Any]) -> Source:
        return Source.class_for(row["type"]).from_record(self, row)

    def source_for(self, value: Any) -> Source:
        """Resolve a reference to a Source: existing, pending, or new."""
        if isinstance(value, Source):
            return value
        uri = self.namespaces.expand(str(getattr(value, "uri", value)))
        row = self.records.find_by_uri(uri)
        if row is not None:
            return self.source_from_row(row)
        cached = self.unsaved_cache.get(uri)
        if cached is not None:
            return cached
        return Source(self, uri)

    def target_for(self, value: Any) -> Any:
        """Turn ``"<uri>"`` attribute values into Source references."""
        if isinstance(value, str) and not isinstance(value, URIRef):
            stripped = value.strip()
            if stripped.startswith("<") and stripped.endswith(">"):
                return self.source_for(stripped[1:-1].strip())
        return value

    def build_query_uri(self, name: Any) -> str:
        return self.namespaces.build_query_uri(str(getattr(name, "uri", name)))

    # ------------------------------------------------------------------
    # Finders
    # ------------------------------------------------------------------

    def find(self, *args: Any, **options: Any) -> Any:
        """Find by URI(s), or by scope (``"first"``/``"all"``) and options.

        One URI returns a Source and raises RecordNotFound when missing;
        several URIs (or a list) return a list and fail if any is missing.
        """
        if not args:
            raise QueryError("find needs a URI or a scope")
        head = args[0]
        if isinstance(head, str) and head in (FindScope.FIRST.value, FindScope.ALL.value):
            if len(args) > 1:
                raise QueryError("A find scope cannot be combined with URIs")
            if FindScope(head) is FindScope.FIRST:
                return self.find_first(**options)
            return self.find_all(**options)
        extra = set(options) - {"prefetch_relations"}
        if extra:
            raise QueryError(
                f"Options cannot be combined with a URI lookup: {', '.join(sorted(extra))}"
            )
        single = len(args) == 1 and not isinstance(head, (list, tuple))
        uris: list[Any] = []
        for arg in args:
            uris.extend(arg if isinstance(arg, (list, tuple)) else [arg])
        spec = QuerySpec(
            uris=tuple(self.build_query_uri(u) for u in uris),
            prefetch_relations=bool(options.get("prefetch_relations")),
        )
        sources = self._translator.execute(spec)
        return sources[0] if single else sources

    def find_all(self, **options: Any) -> list[Source]:
        return self._translator.execute(build_query_spec(self, options))

    def find_first(self, **options: Any) -> Source | None:
        options = {**options, "limit": 1, "offset": 0}
        results = self.find_all(**options)
        return results[0] if results else None

    def count(self, **options: Any) -> int:
        options = {k: v for k, v in options.items() if k not in ("limit", "offset")}
        return self._translator.count(build_query_spec(self, options))

    def plan(self, **options: Any):
        """The query plan ``find_all(**options)`` would execute."""
        return self._translator.translate(build_query_spec(self, options))

    def exists(self, uri: Any) -> bool:
        return self.records.exists_by_uri(self.build_query_uri(uri))

    def find_by_partial_uri(self, fragment: str) -> list[Source]:
        rows = self.records.select(
            "SELECT * FROM active_sources WHERE uri LIKE ? ESCAPE '\\' ORDER BY uri",
            (f"%{_escape_like(fragment)}%",),
        )
        return [self.source_from_row(row) for row in rows]

    def find_by_partial_local(self, namespace: str, local_part: str) -> list[Source]:
        ns = self.namespaces.get(namespace)
        if ns is None:
            raise ValueError(f"Illegal namespace given: {namespace}")
        rows = self.records.select(
            "SELECT * FROM active_sources WHERE uri LIKE ? ESCAPE '\\' ORDER BY uri",
            (f"{_escape_like(str(ns))}%{_escape_like(local_part)}%",),
        )
        return [self.source_from_row(row) for row in rows]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
