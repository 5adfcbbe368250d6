"""Source: an entity that is both a relational record and an RDF subject."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rdflib import URIRef
from rdflib.namespace import RDF, RDFS

from talia_core.collection import PredicateCollection
from talia_core.exceptions import (
    DuplicateIdentifierError,
    RecordNotFound,
    TaliaError,
    TripleStoreError,
    UnsavedSourceError,
    ValidationError,
)
from talia_core.models import AttributeKind, ObjectType, SaveProgress, SaveStep
from talia_core.namespaces import TALIA, TALIA_DB, is_uri, local_name
from talia_core.terms import term_from_columns, to_term

if TYPE_CHECKING:
    from talia_core.store import SourceStore

logger = logging.getLogger(__name__)

# Relational defaults for a newly built Source
_DEFAULTS: dict[str, Any] = {"workflow_state": 0, "primary_source": False}

# Columns the caller may not assign
_READ_ONLY = frozenset({"id", "uri", "type", "created_at", "updated_at"})

# Columns filled in by the record store
_TIMESTAMPS = ("created_at", "updated_at")


class Source:
    """A URI-identified resource with relational attributes and predicates.

    ``Source(store, uri)`` loads the existing record for *uri* or builds a
    new one in memory. Passing *types* for a URI that already exists raises
    DuplicateIdentifierError.

    Subclasses are stored in the same table; the ``type`` column holds the
    class name and selects the class when records are loaded.
    """

    additional_rdf_types: tuple[str, ...] = ()

    _subtypes: dict[str, type[Source]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        Source._subtypes[cls.__name__] = cls

    @classmethod
    def class_for(cls, type_name: str | None) -> type[Source]:
        return Source._subtypes.get(type_name or "", Source)

    @classmethod
    def rdf_selftype(cls) -> URIRef:
        return TALIA[cls.__name__]

    def __init__(self, store: SourceStore, uri: Any, *types: Any) -> None:
        self._store = store
        self._reset_state()
        uri = str(getattr(uri, "uri", uri))
        row = store.records.find_by_uri(uri)
        if row is not None:
            if types:
                raise DuplicateIdentifierError(
                    f"Source with URI {uri} already exists"
                )
            self._load_record(row)
        else:
            self._create_record(uri, types)

    @classmethod
    def from_record(cls, store: SourceStore, row: Mapping[str, Any]) -> Source:
        """Build a Source from a record row without querying."""
        source = cls.__new__(cls)
        source._store = store
        source._reset_state()
        source._load_record(row)
        return source

    def _reset_state(self) -> None:
        self._id: int | None = None
        self._attributes: dict[str, Any] = {}
        self._collections: dict[str, PredicateCollection] = {}
        self._destroyed = False
        self.errors: dict[str, list[str]] = {}
        self.last_save: SaveProgress | None = None

    def _load_record(self, row: Mapping[str, Any]) -> None:
        self._id = row["id"]
        self._attributes = {key: row[key] for key in row.keys() if key != "id"}

    def _create_record(self, uri: str, types: tuple[Any, ...]) -> None:
        self._id = None
        self._attributes = {
            name: None for name in self._store.records.column_names() if name != "id"
        }
        self._attributes.update(_DEFAULTS)
        self._attributes["uri"] = uri
        self._attributes["type"] = type(self).__name__
        for rdf_type in types:
            self.types.append(rdf_type)
        self.add_additional_rdf_types()

    def adopt_record(self, row: Mapping[str, Any]) -> None:
        """Attach an unsaved Source to the existing record for its URI."""
        self._load_record(row)
        self._store.discard_unsaved(self.uri)

    # ------------------------------------------------------------------
    # Identity and state
    # ------------------------------------------------------------------

    @property
    def store(self) -> SourceStore:
        return self._store

    @property
    def id(self) -> int | None:
        return self._id

    @property
    def uri(self) -> str:
        return self._attributes["uri"]

    @property
    def is_new_record(self) -> bool:
        return self._id is None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Source):
            return self.uri == other.uri
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.uri)

    def __str__(self) -> str:
        return self.uri

    def __repr__(self) -> str:
        state = "new" if self.is_new_record else f"id={self._id}"
        return f"<{type(self).__name__} {self.uri} {state}>"

    # ------------------------------------------------------------------
    # Relational attributes
    # ------------------------------------------------------------------

    @property
    def name(self) -> str | None:
        return self._attributes.get("name")

    @name.setter
    def name(self, value: str | None) -> None:
        self._write_attribute("name", value)

    @property
    def workflow_state(self) -> int | None:
        return self._attributes.get("workflow_state")

    @workflow_state.setter
    def workflow_state(self, value: int | None) -> None:
        self._write_attribute("workflow_state", value)

    @property
    def primary_source(self) -> bool | None:
        return self._attributes.get("primary_source")

    @primary_source.setter
    def primary_source(self, value: bool | None) -> None:
        self._write_attribute("primary_source", value)

    @property
    def created_at(self) -> str | None:
        return self._attributes.get("created_at")

    @property
    def updated_at(self) -> str | None:
        return self._attributes.get("updated_at")

    def _write_attribute(self, name: str, value: Any) -> None:
        if name in _READ_ONLY:
            raise ValueError(f"Attribute {name!r} cannot be assigned")
        self._attributes[name] = value

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    def __getitem__(self, attribute: Any) -> Any:
        """Column value for relational names, else the predicate collection."""
        route = self._store.classifier.route(attribute)
        if route.kind is AttributeKind.RELATIONAL:
            if route.key == "id":
                return self._id
            return self._attributes.get(route.key)
        return self.collection(route.key)

    def __setitem__(self, attribute: Any, value: Any) -> None:
        """Assign a column, or replace all values of a predicate."""
        route = self._store.classifier.route(attribute)
        if route.kind is AttributeKind.RELATIONAL:
            self._write_attribute(route.key, value)
            return
        collection = self.collection(route.key)
        collection.remove()
        if value is not None:
            collection.append(value)

    def collection(self, predicate: Any) -> PredicateCollection:
        predicate = self._store.classifier.predicate_for(predicate)
        collection = self._collections.get(predicate)
        if collection is None:
            collection = PredicateCollection(self, predicate)
            self._collections[predicate] = collection
        return collection

    def collections(self) -> list[PredicateCollection]:
        """Collections instantiated on this Source so far."""
        return list(self._collections.values())

    @property
    def types(self) -> PredicateCollection:
        return self.collection(str(RDF.type))

    @property
    def inverse(self) -> InverseAccessor:
        return InverseAccessor(self)

    def add_additional_rdf_types(self) -> None:
        """Add the class self-type and ``additional_rdf_types`` if missing."""
        wanted = []
        selftype = str(self.rdf_selftype())
        if selftype != self.uri:
            wanted.append(selftype)
        wanted.extend(self._store.namespaces.expand(t) for t in self.additional_rdf_types)
        types = self.types
        for rdf_type in wanted:
            if rdf_type not in types:
                types.append(rdf_type)

    # ------------------------------------------------------------------
    # Namespace-based predicate access
    # ------------------------------------------------------------------

    def _predicate_uri(self, namespace: str, name: str) -> str:
        ns = self._store.namespaces.get(namespace)
        if ns is None:
            raise ValueError(f"Illegal namespace given: {namespace}")
        return str(ns[name])

    def predicate(self, namespace: str, name: str) -> PredicateCollection:
        return self.collection(self._predicate_uri(namespace, name))

    def predicate_set(self, namespace: str, name: str, value: Any) -> None:
        self.predicate(namespace, name).append(value)

    def predicate_set_uniq(self, namespace: str, name: str, value: Any) -> None:
        collection = self.predicate(namespace, name)
        if value not in collection:
            collection.append(value)

    def predicate_replace(self, namespace: str, name: str, value: Any) -> None:
        collection = self.predicate(namespace, name)
        collection.remove()
        collection.append(value)

    def direct_predicates(self) -> list[str]:
        if self.is_new_record:
            raise UnsavedSourceError(f"Source {self.uri} has no record yet")
        return self._store.records.direct_predicates(self._id)

    def inverse_predicates(self) -> list[str]:
        if self.is_new_record:
            raise UnsavedSourceError(f"Source {self.uri} has no record yet")
        return self._store.records.inverse_predicates(self._id)

    def labels(self, predicate: Any = RDFS.label) -> list[Any]:
        values = self.collection(predicate).values()
        return values or [local_name(self.uri)]

    def label(self, predicate: Any = RDFS.label) -> Any:
        return self.labels(predicate)[0]

    # ------------------------------------------------------------------
    # Bulk updates
    # ------------------------------------------------------------------

    def add_semantic_attributes(
        self, overwrite: bool, attributes: Mapping[str, list[Any]]
    ) -> None:
        """Append (or, with *overwrite*, replace) predicate values."""
        for predicate, values in attributes.items():
            collection = self.collection(predicate)
            if overwrite:
                collection.remove()
            for value in values:
                collection.append(self._store.target_for(value))

    def _assign_attributes(self, attributes: Mapping[str, Any], overwrite: bool) -> None:
        relational, semantic = self._store.classifier.split(attributes)
        for name, value in relational.items():
            self._write_attribute(name, value)
        self.add_semantic_attributes(overwrite, semantic)

    def update_attributes(self, attributes: Mapping[str, Any]) -> bool:
        self._assign_attributes(attributes, overwrite=False)
        return self.save()

    def update_attributes_strict(self, attributes: Mapping[str, Any]) -> SaveProgress:
        self._assign_attributes(attributes, overwrite=False)
        return self.save_strict()

    def rewrite_attributes(self, attributes: Mapping[str, Any]) -> bool:
        self._assign_attributes(attributes, overwrite=True)
        return self.save()

    def rewrite_attributes_strict(self, attributes: Mapping[str, Any]) -> SaveProgress:
        self._assign_attributes(attributes, overwrite=True)
        return self.save_strict()

    # ------------------------------------------------------------------
    # Validation and saving
    # ------------------------------------------------------------------

    def _validate(self) -> dict[str, list[str]]:
        errors: dict[str, list[str]] = {}
        uri = self.uri
        if not uri or not is_uri(uri):
            errors.setdefault("uri", []).append("is not a valid URI")
        elif uri == str(self._store.namespaces.local):
            errors.setdefault("uri", []).append("cannot be the local namespace")
        elif self.is_new_record and self._store.records.exists_by_uri(uri):
            errors.setdefault("uri", []).append("has already been taken")
        for column in self._store.records.content_columns():
            if column.name == "uri" or column.name in _TIMESTAMPS:
                continue
            if column.notnull and self._attributes.get(column.name) is None:
                errors.setdefault(column.name, []).append("can't be blank")
        return errors

    def valid(self) -> bool:
        self.errors = self._validate()
        return not self.errors

    def save(self) -> bool:
        """Save; returns False (and keeps ``errors``) if validation fails."""
        try:
            self.save_strict()
        except ValidationError as e:
            logger.warning(f"Could not save {self.uri}: {e}")
            return False
        return True

    def save_strict(self) -> SaveProgress:
        """Run the save protocol; raises on any failure.

        Dupe triples are removed before the record is written and are not
        restored when the relational transaction rolls back. The returned
        SaveProgress (also kept as ``last_save``) shows how far a run got.
        """
        if self._destroyed:
            raise TaliaError(f"Cannot save destroyed source {self.uri}")
        progress = SaveProgress(uri=self.uri)
        self.last_save = progress
        step = SaveStep.REMOVE_DUPES
        try:
            with self._store.records.transaction():
                self._remove_db_dupes()
                progress.completed.append(step)
                step = SaveStep.SAVE_RECORD
                self._save_record()
                progress.completed.append(step)
                step = SaveStep.WRITE_DUPES
                self._write_db_dupes()
                progress.completed.append(step)
                step = SaveStep.FLUSH_COLLECTIONS
                self._flush_collections()
                progress.completed.append(step)
        except Exception as e:
            progress.failed_step = step
            progress.error = str(e)
            if isinstance(e, TripleStoreError):
                logger.error(f"Triple store failure while saving {self.uri}: {progress}")
            raise
        progress.committed = True
        self._store.discard_unsaved(self.uri)
        logger.debug(f"Saved {self.uri} (id {self._id})")
        return progress

    def _remove_db_dupes(self) -> None:
        subject = URIRef(self.uri)
        for column in self._store.dupe_columns():
            self._store.triples.delete(subject, TALIA_DB[column], None)

    def _write_db_dupes(self) -> None:
        subject = URIRef(self.uri)
        for column in self._store.dupe_columns():
            value = self._attributes.get(column)
            if value is None:
                continue
            self._store.triples.add(subject, TALIA_DB[column], to_term(value))

    def _save_record(self) -> None:
        self.errors = self._validate()
        if self.errors:
            raise ValidationError(self.errors)
        records = self._store.records
        values = {
            key: value
            for key, value in self._attributes.items()
            if key not in _TIMESTAMPS
        }
        if self.is_new_record:
            self._id = records.insert_record(values)
            records.on_rollback(self._revert_to_new)
        else:
            values.pop("uri")
            records.update_record(self._id, values)
        # Dupes mirror the stored values, not the assigned ones
        row = records.find_by_id(self._id)
        self._attributes.update({key: row[key] for key in row.keys() if key != "id"})

    def _revert_to_new(self) -> None:
        self._id = None
        for key in _TIMESTAMPS:
            self._attributes[key] = None

    def _flush_collections(self) -> None:
        for collection in list(self._collections.values()):
            collection.flush()

    def write_predicate_direct(self, predicate: Any, value: Any) -> None:
        """Append *value* and write it to both stores right away."""
        if self.is_new_record:
            raise UnsavedSourceError(
                f"Cannot write {predicate} directly: {self.uri} has no record"
            )
        collection = self.collection(predicate)
        collection.append(value)
        collection.flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Delete the record, its relations and every triple that mentions it."""
        if self.is_new_record:
            raise UnsavedSourceError(f"Cannot destroy unsaved source {self.uri}")
        self._store.records.delete_record(self._id)
        subject = URIRef(self.uri)
        self._store.triples.delete(subject, None, None)
        self._store.triples.delete(None, None, subject)
        self._collections.clear()
        self._destroyed = True
        self._store.discard_unsaved(self.uri)
        logger.debug(f"Destroyed {self.uri}")

    def reload(self) -> Source:
        if self.is_new_record:
            raise UnsavedSourceError(f"Cannot reload unsaved source {self.uri}")
        row = self._store.records.find_by_id(self._id)
        if row is None:
            raise RecordNotFound(f"Source {self.uri} no longer exists")
        self._load_record(row)
        self._collections.clear()
        self.errors = {}
        return self

    def rewrite_rdf(self) -> None:
        """Rebuild every triple of this subject from the record store."""
        if self.is_new_record:
            raise UnsavedSourceError(f"Cannot rewrite RDF of unsaved source {self.uri}")
        subject = URIRef(self.uri)
        triples = self._store.triples
        triples.delete(subject, None, None)
        self._write_db_dupes()
        for row in self._store.records.fat_relations([self._id]):
            if row["object_type"] == ObjectType.SOURCE.value:
                obj = URIRef(row["obj_uri"])
            else:
                obj = term_from_columns(
                    row["prop_value"], row["prop_datatype"], row["prop_language"]
                )
            triples.add(subject, URIRef(row["predicate_uri"]), obj)

    def to_dict(self) -> dict[str, Any]:
        """Relational attributes plus the values of every known predicate."""
        data = dict(self._attributes)
        data["id"] = self._id
        predicates = set() if self.is_new_record else set(self.direct_predicates())
        predicates.update(p for p, c in self._collections.items() if not c.clean)
        data["predicates"] = {
            predicate: [
                str(v) if isinstance(v, Source) else v
                for v in self.collection(predicate).values()
            ]
            for predicate in sorted(predicates)
        }
        return data


class InverseAccessor:
    """``source.inverse[predicate]``: Sources that point at *source*."""

    def __init__(self, source: Source) -> None:
        self._source = source

    def __getitem__(self, predicate: Any) -> list[Source]:
        source = self._source
        if source.is_new_record:
            return []
        store = source.store
        rows = store.records.subjects_of(
            source.id, store.classifier.predicate_for(predicate)
        )
        return [store.source_from_row(row) for row in rows]


# ---------------------------------------------------------------------------
# Typed property accessors
# ---------------------------------------------------------------------------

class SingularProperty:
    """Class attribute exposing the first value of a predicate.

    Assignment replaces all values.
    """

    def __init__(self, predicate: str) -> None:
        self.predicate = predicate

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Source | None, owner: type) -> Any:
        if instance is None:
            return self
        return instance.collection(self.predicate).first

    def __set__(self, instance: Source, value: Any) -> None:
        instance[self.predicate] = value


class MultiProperty:
    """Class attribute exposing the whole collection of a predicate."""

    def __init__(self, predicate: str) -> None:
        self.predicate = predicate

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Source | None, owner: type) -> Any:
        if instance is None:
            return self
        return instance.collection(self.predicate)

    def __set__(self, instance: Source, values: Any) -> None:
        collection = instance.collection(self.predicate)
        collection.remove()
        if values is not None:
            collection.append(list(values) if not isinstance(values, str) else values)
