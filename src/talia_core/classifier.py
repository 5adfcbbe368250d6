"""Attribute classifier: relational column or RDF predicate."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from talia_core.models import AttributeKind, AttributeRoute
from talia_core.namespaces import NamespaceRegistry, is_uri


def attribute_name(name: Any) -> str:
    """Accept strings, rdflib terms and Sources as attribute names."""
    return str(getattr(name, "uri", name))


class AttributeClassifier:
    """Routes attribute names to columns or predicate URIs.

    Routes are resolved once per name and kept in a lookup table.
    """

    def __init__(self, columns: Iterable[str], namespaces: NamespaceRegistry) -> None:
        self._columns = frozenset(columns)
        self._namespaces = namespaces
        self._routes: dict[str, AttributeRoute] = {}

    @property
    def columns(self) -> frozenset[str]:
        return self._columns

    def route(self, name: Any) -> AttributeRoute:
        name = attribute_name(name)
        route = self._routes.get(name)
        if route is None:
            route = self._resolve(name)
            self._routes[name] = route
        return route

    def _resolve(self, name: str) -> AttributeRoute:
        if name in self._columns:
            return AttributeRoute(name, AttributeKind.RELATIONAL, name)
        if self._namespaces.is_registered(name):
            return AttributeRoute(name, AttributeKind.PREDICATE, self._namespaces.expand(name))
        if is_uri(name):
            return AttributeRoute(name, AttributeKind.PREDICATE, name)
        return AttributeRoute(
            name,
            AttributeKind.PREDICATE,
            str(self._namespaces.default[name]),
            registered=False,
        )

    def classify(self, name: Any) -> AttributeKind:
        return self.route(name).kind

    def is_relational(self, name: Any) -> bool:
        return self.route(name).kind is AttributeKind.RELATIONAL

    def predicate_for(self, name: Any) -> str:
        """Full predicate URI for *name*; raises ValueError for columns."""
        route = self.route(name)
        if route.kind is AttributeKind.RELATIONAL:
            raise ValueError(f"{route.name!r} is a relational column, not a predicate")
        return route.key

    def split(
        self, attributes: Mapping[Any, Any]
    ) -> tuple[dict[str, Any], dict[str, list[Any]]]:
        """Split a mixed attribute mapping.

        Returns ``(relational, predicates)`` where predicate keys are full
        URIs and every predicate value is a list, in input order. Values
        given for the same predicate under different spellings are merged.
        """
        relational: dict[str, Any] = {}
        predicates: dict[str, list[Any]] = {}
        for name, value in attributes.items():
            route = self.route(name)
            if route.kind is AttributeKind.RELATIONAL:
                relational[route.key] = value
                continue
            values = predicates.setdefault(route.key, [])
            if isinstance(value, (list, tuple)):
                values.extend(value)
            elif value is not None:
                values.append(value)
        return relational, predicates
