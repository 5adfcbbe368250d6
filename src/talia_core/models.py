"""Domain model dataclasses and enums for talia-core."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AttributeKind(str, Enum):
    """Where the value of a Source attribute lives."""

    RELATIONAL = "relational"
    PREDICATE = "predicate"


class ObjectType(str, Enum):
    """Kind of object referenced by a semantic relation row."""

    SOURCE = "source"
    PROPERTY = "property"


class FindScope(str, Enum):
    """Scope argument accepted by ``SourceStore.find``."""

    FIRST = "first"
    ALL = "all"


class QueryPlanKind(str, Enum):
    """Execution strategy chosen by the query translator."""

    DIRECT = "direct"
    RELATIONAL = "relational"
    FEDERATED = "federated"
    RDF = "rdf"


class SaveStep(str, Enum):
    """Steps of the dual-store save protocol, in execution order."""

    REMOVE_DUPES = "remove_dupes"
    SAVE_RECORD = "save_record"
    WRITE_DUPES = "write_dupes"
    FLUSH_COLLECTIONS = "flush_collections"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """A column of the source record table."""

    name: str
    type: str
    notnull: bool
    default: Any


@dataclass(frozen=True, slots=True)
class AttributeRoute:
    """Resolved destination of an attribute name.

    ``key`` is the column name for relational attributes and the full
    predicate URI otherwise. ``registered`` is False when a bare name was
    placed into the default namespace.
    """

    name: str
    kind: AttributeKind
    key: str
    registered: bool = True


@dataclass(frozen=True, slots=True)
class RelationModel:
    """One semantic relation row (a triple materialized relationally)."""

    id: int
    subject_id: int
    predicate_uri: str
    object_type: str
    object_id: int
    rel_order: int | None


@dataclass(frozen=True, slots=True)
class FindThrough:
    """A relation filter: subject (or object, when inverse) of a predicate.

    ``search_literal`` selects the literal property table as join target
    instead of the source table.
    """

    predicate: str
    value: Any
    search_literal: bool = False
    inverse: bool = False


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Normalized, immutable description of one find call."""

    uris: tuple[str, ...] = ()
    conditions: tuple[tuple[str, Any], ...] = ()
    exclude: tuple[tuple[str, Any], ...] = ()
    predicates: tuple[tuple[str, Any], ...] = ()
    relation_filters: tuple[FindThrough, ...] = ()
    limit: int | None = None
    offset: int = 0
    order: str | None = None
    force_rdf: bool = False
    joins: str | None = None
    prefetch_relations: bool = False

    @property
    def is_uri_lookup(self) -> bool:
        return bool(self.uris)


@dataclass(slots=True)
class SaveProgress:
    """State record of one run of the save protocol.

    The triple store is not covered by the relational transaction, so a
    failed run can leave ``dupes_removed`` True while nothing was committed.
    """

    uri: str
    completed: list[SaveStep] = field(default_factory=list)
    failed_step: SaveStep | None = None
    error: str | None = None
    committed: bool = False

    @property
    def dupes_removed(self) -> bool:
        return SaveStep.REMOVE_DUPES in self.completed

    @property
    def record_committed(self) -> bool:
        return self.committed and SaveStep.SAVE_RECORD in self.completed

    @property
    def dupes_rewritten(self) -> bool:
        return SaveStep.WRITE_DUPES in self.completed

    @property
    def inconsistent(self) -> bool:
        """True when dupe triples were removed but the run did not commit."""
        return self.dupes_removed and not self.committed
