"""Find options, their normalization, and translation into query plans."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rdflib import URIRef, Variable
from rdflib.namespace import RDF

from talia_core.collection import item_from_row
from talia_core.exceptions import QueryError, RecordNotFound
from talia_core.models import FindThrough, QueryPlanKind, QuerySpec
from talia_core.namespaces import TALIA_DB
from talia_core.terms import lexical, to_literal

if TYPE_CHECKING:
    from talia_core.source import Source
    from talia_core.store import SourceStore

logger = logging.getLogger(__name__)

OPTIONS = frozenset({
    "conditions",
    "exclude",
    "predicates",
    "type",
    "find_through",
    "find_through_inv",
    "limit",
    "offset",
    "order",
    "force_rdf",
    "joins",
    "prefetch_relations",
})

_RELATION_OPTIONS = ("type", "find_through", "find_through_inv")

# Columns that have no dupe triple
_UNMIRRORED = frozenset({"id", "uri", "type", "created_at", "updated_at"})

_QUALIFIED_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\.[A-Za-z_][A-Za-z0-9_]*")
_ORDER_RE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)(?:\s+(ASC|DESC))?\s*", re.IGNORECASE)

SUBJECT = Variable("s")

# Placeholder for the candidate URI list in plan parameters
_CANDIDATES = object()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _uri_of(store: SourceStore, value: Any) -> str:
    if hasattr(value, "uri"):
        return str(value.uri)
    return store.namespaces.expand(str(value))


def _sql_value(value: Any) -> Any:
    if hasattr(value, "uri"):
        return str(value.uri)
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_sql_value(v) for v in value)
    return value


def _conditions(
    name: str, value: Any, columns: frozenset[str], qualified: bool
) -> tuple[tuple[str, Any], ...]:
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        raise QueryError(f"Option '{name}' must be a mapping of column to value")
    result = []
    for key, cond in value.items():
        key = str(key)
        if key in columns:
            pass
        elif qualified and _QUALIFIED_RE.fullmatch(key):
            pass
        elif _QUALIFIED_RE.fullmatch(key):
            raise QueryError(f"Qualified column {key!r} requires the 'joins' option")
        else:
            raise QueryError(f"Unknown column in '{name}': {key!r}")
        result.append((key, _sql_value(cond)))
    return tuple(result)


def _predicate_term(store: SourceStore, value: Any):
    if hasattr(value, "uri"):
        return URIRef(str(value.uri))
    if isinstance(value, URIRef):
        return value
    if isinstance(value, str) and value.startswith("<") and value.endswith(">"):
        return URIRef(store.namespaces.expand(value[1:-1].strip()))
    return to_literal(value)


def _predicate_conditions(store: SourceStore, value: Any) -> tuple[tuple[str, Any], ...]:
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        raise QueryError("Option 'predicates' must be a mapping of predicate to value")
    result = []
    for name, values in value.items():
        try:
            predicate = store.classifier.predicate_for(name)
        except ValueError as e:
            raise QueryError(f"{e}; use 'conditions' for columns") from e
        if not isinstance(values, (list, tuple)):
            values = [values]
        for v in values:
            if v is None:
                raise QueryError(f"Predicate condition for {name!r} cannot be None")
            result.append((predicate, _predicate_term(store, v)))
    return tuple(result)


def _find_through(store: SourceStore, value: Any, inverse: bool) -> FindThrough:
    option = "find_through_inv" if inverse else "find_through"
    if not isinstance(value, (list, tuple)) or len(value) not in ((2,) if inverse else (2, 3)):
        shape = "(predicate, subject)" if inverse else "(predicate, value[, search_literal])"
        raise QueryError(f"Option '{option}' must be a tuple {shape}")
    predicate = store.namespaces.expand(str(getattr(value[0], "uri", value[0])))
    target = value[1]
    if target is None:
        raise QueryError(f"Option '{option}' needs a value")
    if inverse:
        return FindThrough(predicate, _uri_of(store, target), inverse=True)
    if len(value) == 3:
        search_literal = bool(value[2])
    elif hasattr(target, "uri") or isinstance(target, URIRef):
        search_literal = False
    else:
        search_literal = not (isinstance(target, str) and ":" in target)
    target = target if search_literal else _uri_of(store, target)
    return FindThrough(predicate, target, search_literal=search_literal)


def _count_option(name: str, value: Any, default: int | None) -> int | None:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryError(f"Option '{name}' must be a non-negative integer")
    return value


def _order(value: Any, columns: frozenset[str]) -> str | None:
    if value is None:
        return None
    match = _ORDER_RE.fullmatch(str(value))
    if match is None or match.group(1) not in columns:
        raise QueryError(f"Cannot order by {value!r}")
    direction = (match.group(2) or "ASC").upper()
    return f"{match.group(1)} {direction}"


def build_query_spec(store: SourceStore, options: Mapping[str, Any]) -> QuerySpec:
    """Validate find options and normalize them into a QuerySpec.

    Raises:
        QueryError: For unknown options or illegal combinations
    """
    unknown = sorted(set(options) - OPTIONS)
    if unknown:
        raise QueryError(f"Unknown find options: {', '.join(unknown)}")

    joins = options.get("joins")
    force_rdf = bool(options.get("force_rdf"))
    if joins is not None:
        if not isinstance(joins, str):
            raise QueryError("Option 'joins' must be an SQL fragment")
        conflicts = [k for k in _RELATION_OPTIONS if options.get(k) is not None]
        if conflicts:
            raise QueryError(
                f"Option 'joins' cannot be combined with {', '.join(conflicts)}"
            )
        if force_rdf:
            raise QueryError("Option 'joins' cannot be combined with force_rdf")

    columns = store.classifier.columns
    conditions = _conditions("conditions", options.get("conditions"), columns, bool(joins))
    exclude = _conditions("exclude", options.get("exclude"), columns, bool(joins))

    if force_rdf:
        for column, value in conditions + exclude:
            if column in _UNMIRRORED:
                raise QueryError(f"Column {column!r} is not mirrored in the triple store")
            if isinstance(value, tuple):
                raise QueryError(
                    f"List condition on {column!r} cannot be evaluated in the triple store"
                )

    filters: list[FindThrough] = []
    if options.get("type") is not None:
        filters.append(FindThrough(str(RDF.type), _uri_of(store, options["type"])))
    if options.get("find_through") is not None:
        filters.append(_find_through(store, options["find_through"], inverse=False))
    if options.get("find_through_inv") is not None:
        filters.append(_find_through(store, options["find_through_inv"], inverse=True))

    return QuerySpec(
        conditions=conditions,
        exclude=exclude,
        predicates=_predicate_conditions(store, options.get("predicates")),
        relation_filters=tuple(filters),
        limit=_count_option("limit", options.get("limit"), None),
        offset=_count_option("offset", options.get("offset"), 0),
        order=_order(options.get("order"), columns),
        force_rdf=force_rdf,
        joins=joins,
        prefetch_relations=bool(options.get("prefetch_relations")),
    )


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass
class QueryPlan:
    """How one QuerySpec is executed.

    ``patterns`` select candidate subjects in the triple store and
    ``negative`` patterns remove subjects from them; the SQL then hydrates
    (and for FEDERATED plans also filters, orders and pages) the records.
    """

    kind: QueryPlanKind
    sql: str = ""
    params: list[Any] = field(default_factory=list)
    count_sql: str = ""
    count_params: list[Any] = field(default_factory=list)
    patterns: list[tuple] = field(default_factory=list)
    negative: list[tuple] = field(default_factory=list)

    @property
    def uses_triple_store(self) -> bool:
        return self.kind in (QueryPlanKind.FEDERATED, QueryPlanKind.RDF)


def _column_ref(column: str) -> str:
    return column if "." in column else f"s.{column}"


def _condition_sql(column: str, value: Any, negate: bool) -> tuple[str, list[Any]]:
    ref = _column_ref(column)
    if isinstance(value, tuple):
        if not value:
            return ("1" if negate else "0"), []
        marks = ", ".join("?" for _ in value)
        if negate:
            return f"({ref} IS NULL OR {ref} NOT IN ({marks}))", list(value)
        return f"{ref} IN ({marks})", list(value)
    if value is None:
        return (f"{ref} IS NOT NULL" if negate else f"{ref} IS NULL"), []
    return (f"{ref} IS NOT ?" if negate else f"{ref} = ?"), [value]


class QueryTranslator:
    """Turns QuerySpecs into plans and runs them against both stores."""

    def __init__(self, store: SourceStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def translate(self, spec: QuerySpec) -> QueryPlan:
        if spec.is_uri_lookup:
            plan = QueryPlan(
                QueryPlanKind.DIRECT,
                sql="SELECT * FROM active_sources WHERE uri IN "
                "(SELECT value FROM json_each(?)) ORDER BY id",
                params=[json.dumps(list(spec.uris))],
            )
        elif spec.force_rdf:
            plan = self._rdf_plan(spec)
        elif spec.predicates:
            plan = self._federated_plan(spec)
        else:
            plan = self._relational_plan(spec, QueryPlanKind.RELATIONAL)
        logger.debug(f"Query plan {plan.kind.value}: {plan.sql}")
        return plan

    def _relational_plan(
        self, spec: QuerySpec, kind: QueryPlanKind, candidates: bool = False
    ) -> QueryPlan:
        joins: list[str] = []
        where: list[str] = []
        params: list[Any] = []
        for i, ft in enumerate(spec.relation_filters):
            rel, obj = f"r{i}", f"o{i}"
            if ft.inverse:
                joins.append(
                    f"JOIN semantic_relations {rel} "
                    f"ON {rel}.object_type = 'source' AND {rel}.object_id = s.id"
                )
                joins.append(f"JOIN active_sources {obj} ON {obj}.id = {rel}.subject_id")
                where.append(f"{obj}.uri = ?")
                params.append(ft.value)
            elif ft.search_literal:
                joins.append(f"JOIN semantic_relations {rel} ON {rel}.subject_id = s.id")
                joins.append(
                    f"JOIN semantic_properties {obj} "
                    f"ON {rel}.object_type = 'property' AND {obj}.id = {rel}.object_id"
                )
                where.append(f"{obj}.value = ?")
                params.append(lexical(ft.value))
            else:
                joins.append(f"JOIN semantic_relations {rel} ON {rel}.subject_id = s.id")
                joins.append(
                    f"JOIN active_sources {obj} "
                    f"ON {rel}.object_type = 'source' AND {obj}.id = {rel}.object_id"
                )
                where.append(f"{obj}.uri = ?")
                params.append(ft.value)
            where.append(f"{rel}.predicate_uri = ?")
            params.append(ft.predicate)
        if spec.joins:
            joins.append(spec.joins)
        for column, value in spec.conditions:
            clause, values = _condition_sql(column, value, negate=False)
            where.append(clause)
            params.extend(values)
        for column, value in spec.exclude:
            clause, values = _condition_sql(column, value, negate=True)
            where.append(clause)
            params.extend(values)
        if candidates:
            where.append("s.uri IN (SELECT value FROM json_each(?))")
            params.append(_CANDIDATES)

        body = "FROM active_sources s"
        if joins:
            body += " " + " ".join(joins)
        if where:
            body += " WHERE " + " AND ".join(where)

        default_order = "s.uri" if kind is QueryPlanKind.RDF else "s.id"
        if spec.order:
            column, direction = spec.order.split()
            order = f"s.{column} {direction}, {default_order}"
        else:
            order = default_order
        sql = f"SELECT DISTINCT s.* {body} ORDER BY {order}"
        select_params = list(params)
        if spec.limit is not None or spec.offset:
            sql += " LIMIT ? OFFSET ?"
            select_params += [spec.limit if spec.limit is not None else -1, spec.offset]
        return QueryPlan(
            kind,
            sql=sql,
            params=select_params,
            count_sql=f"SELECT COUNT(DISTINCT s.id) {body}",
            count_params=list(params),
        )

    def _federated_plan(self, spec: QuerySpec) -> QueryPlan:
        plan = self._relational_plan(spec, QueryPlanKind.FEDERATED, candidates=True)
        plan.patterns = [(SUBJECT, URIRef(p), term) for p, term in spec.predicates]
        return plan

    def _rdf_plan(self, spec: QuerySpec) -> QueryPlan:
        patterns: list[tuple] = []
        negative: list[tuple] = []
        for column, value in spec.conditions:
            predicate = TALIA_DB[column]
            if value is None:
                negative.append((SUBJECT, predicate, None))
            else:
                patterns.append((SUBJECT, predicate, to_literal(value)))
        for i, (column, value) in enumerate(spec.exclude):
            predicate = TALIA_DB[column]
            if value is None:
                patterns.append((SUBJECT, predicate, Variable(f"x{i}")))
            else:
                negative.append((SUBJECT, predicate, to_literal(value)))
        for ft in spec.relation_filters:
            if ft.inverse:
                patterns.append((URIRef(ft.value), URIRef(ft.predicate), SUBJECT))
            elif ft.search_literal:
                patterns.append((SUBJECT, URIRef(ft.predicate), to_literal(ft.value)))
            else:
                patterns.append((SUBJECT, URIRef(ft.predicate), URIRef(ft.value)))
        patterns.extend((SUBJECT, URIRef(p), term) for p, term in spec.predicates)
        if not patterns:
            patterns.append((SUBJECT, Variable("p"), Variable("o")))

        hydrate = QuerySpec(
            limit=spec.limit,
            offset=spec.offset,
            order=spec.order,
        )
        plan = self._relational_plan(hydrate, QueryPlanKind.RDF, candidates=True)
        plan.patterns = patterns
        plan.negative = negative
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _candidates(self, plan: QueryPlan) -> list[str]:
        triples = self._store.triples
        subjects = {
            b["s"] for b in triples.query(plan.patterns)
            if isinstance(b.get("s"), URIRef)
        }
        for pattern in plan.negative:
            if not subjects:
                break
            subjects -= {b["s"] for b in triples.query([pattern])}
        return sorted(str(s) for s in subjects)

    def _bind(self, plan: QueryPlan, params: list[Any]) -> list[Any] | None:
        """Substitute the candidate list; None when no subject can match."""
        if not plan.uses_triple_store:
            return params
        candidates = self._candidates(plan)
        if not candidates:
            return None
        encoded = json.dumps(candidates)
        return [encoded if p is _CANDIDATES else p for p in params]

    def execute(self, spec: QuerySpec) -> list[Source]:
        store = self._store
        plan = self.translate(spec)
        if plan.kind is QueryPlanKind.DIRECT:
            return self._find_uris(spec)
        params = self._bind(plan, plan.params)
        if params is None:
            return []
        sources = [store.source_from_row(row) for row in store.records.select(plan.sql, params)]
        if spec.prefetch_relations and sources:
            self._prefetch(sources)
        return sources

    def count(self, spec: QuerySpec) -> int:
        plan = self.translate(spec)
        if plan.kind is QueryPlanKind.DIRECT:
            return len(self._store.records.find_by_uris(spec.uris))
        params = self._bind(plan, plan.count_params)
        if params is None:
            return 0
        return self._store.records.scalar(plan.count_sql, params)

    def _find_uris(self, spec: QuerySpec) -> list[Source]:
        store = self._store
        rows = {row["uri"]: row for row in store.records.find_by_uris(spec.uris)}
        missing = [uri for uri in spec.uris if uri not in rows]
        if missing:
            raise RecordNotFound(f"Couldn't find Source with URI: {', '.join(missing)}")
        instances: dict[str, Source] = {}
        for uri in spec.uris:
            if uri not in instances:
                instances[uri] = store.source_from_row(rows[uri])
        sources = [instances[uri] for uri in spec.uris]
        if spec.prefetch_relations:
            self._prefetch(sources)
        return sources

    def _prefetch(self, sources: list[Source]) -> None:
        """Load all relations of *sources* with one query."""
        store = self._store
        by_id = {source.id: source for source in sources}
        sources = list(by_id.values())
        for row in store.records.fat_relations(list(by_id)):
            source = by_id[row["subject_id"]]
            source.collection(row["predicate_uri"]).inject_fat_item(item_from_row(store, row))
        for source in sources:
            for collection in source.collections():
                if not collection.loaded:
                    collection.mark_loaded()
