"""Triple store adapter backed by an rdflib Dataset."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any

from rdflib import BNode, Dataset, Literal, URIRef, Variable
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID
from rdflib.term import Node

from talia_core.exceptions import TripleStoreError

logger = logging.getLogger(__name__)

Pattern = tuple[Any, Any, Any]
Bindings = dict[str, Node]


def _node(value: Any) -> Node | None:
    """Coerce a subject/predicate/object position into an rdflib node."""
    if value is None or isinstance(value, (URIRef, BNode, Literal, Variable)):
        return value
    if hasattr(value, "uri"):
        return URIRef(str(value.uri))
    if isinstance(value, str):
        return URIRef(value)
    raise TypeError(f"Cannot use {value!r} as a triple position")


class TripleStore:
    """Interface of a triple store as seen by Sources and queries."""

    def add(self, subject, predicate, obj, context=None) -> None:
        raise NotImplementedError

    def delete(self, subject=None, predicate=None, obj=None, context=None) -> None:
        raise NotImplementedError

    def query(self, patterns: Sequence[Pattern]) -> list[Bindings]:
        raise NotImplementedError

    def contexts(self) -> bool:
        return False

    def persist(self) -> None:
        """Flush data to durable storage, if the backend has any."""

    def close(self) -> None:
        self.persist()


class RdflibTripleStore(TripleStore):
    """Triple store kept in an rdflib ``Dataset``.

    Writes go to the named graph *context* when one is configured, else to
    the default graph. Reads and wildcard deletes span all graphs. When
    *path* is given the dataset is loaded from it on open and written back
    by ``persist()``.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        format: str = "trig",
        context: str | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._format = format
        self._context = URIRef(context) if context else None
        self._dataset = Dataset(default_union=True)
        if self._path is not None and self._path.exists():
            self._load()

    @property
    def dataset(self) -> Dataset:
        return self._dataset

    def _load(self) -> None:
        try:
            self._dataset.parse(str(self._path), format=self._format)
        except (OSError, SyntaxError, ValueError) as e:
            raise TripleStoreError(f"Cannot read triples from {self._path}: {e}") from e
        logger.info(f"Loaded {len(self)} triples from {self._path}")

    def persist(self) -> None:
        if self._path is None:
            return
        try:
            self._dataset.serialize(destination=str(self._path), format=self._format)
        except (OSError, ValueError) as e:
            raise TripleStoreError(f"Cannot write triples to {self._path}: {e}") from e
        logger.info(f"Persisted {len(self)} triples to {self._path}")

    def _graph(self, context):
        ctx = _node(context) if context is not None else self._context
        if ctx is None:
            ctx = DATASET_DEFAULT_GRAPH_ID
        return self._dataset.graph(ctx)

    def add(self, subject, predicate, obj, context=None) -> None:
        triple = (_node(subject), _node(predicate), obj)
        if any(t is None for t in triple):
            raise ValueError("Cannot add a triple with an empty position")
        self._graph(context).add(triple)

    def delete(self, subject=None, predicate=None, obj=None, context=None) -> None:
        """Delete matching triples; ``None`` matches anything."""
        pattern = (_node(subject), _node(predicate), obj)
        if context is None:
            self._dataset.remove(pattern)
        else:
            self._dataset.graph(_node(context)).remove(pattern)

    def triples(self, subject=None, predicate=None, obj=None) -> Iterator[tuple[Node, Node, Node]]:
        yield from self._dataset.triples((_node(subject), _node(predicate), obj))

    def objects(self, subject, predicate) -> list[Node]:
        return [o for _, _, o in self.triples(subject, predicate, None)]

    def contexts(self) -> bool:
        return True

    def __len__(self) -> int:
        return sum(1 for _ in self._dataset.triples((None, None, None)))

    def __contains__(self, triple: Pattern) -> bool:
        return next(self.triples(*triple), None) is not None

    def query(self, patterns: Sequence[Pattern]) -> list[Bindings]:
        """Evaluate a basic graph pattern.

        Each pattern is a triple whose positions are rdflib terms,
        ``Variable`` objects, or ``None`` (unbound wildcard). Returns one
        dict per solution, keyed by variable name.
        """
        solutions: list[Bindings] = [{}]
        for pattern in patterns:
            solutions = list(self._extend(solutions, pattern))
            if not solutions:
                break
        return solutions

    def _extend(self, solutions: Iterable[Bindings], pattern: Pattern) -> Iterator[Bindings]:
        positions = [_node(p) for p in pattern]
        for bindings in solutions:
            bound = [
                bindings.get(str(p)) if isinstance(p, Variable) else p
                for p in positions
            ]
            for triple in self._dataset.triples(tuple(bound)):
                result = dict(bindings)
                for term, position, value in zip(positions, bound, triple):
                    if isinstance(term, Variable) and position is None:
                        name = str(term)
                        if name in result and result[name] != value:
                            break
                        result[name] = value
                else:
                    yield result
