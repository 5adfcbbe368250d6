"""Namespace registry: prefix shortcuts and URI helpers."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping

from rdflib import Namespace
from rdflib.namespace import DC, DCTERMS, FOAF, RDF, RDFS, XSD

TALIA = Namespace("http://talia.discovery-project.eu/wiki/TaliaInternal#")
TALIA_DB = Namespace("http://talia.discovery-project.eu/wiki/DatabaseInternal#")

_BUILTINS: dict[str, str] = {
    "rdf": str(RDF),
    "rdfs": str(RDFS),
    "xsd": str(XSD),
    "dc": str(DC),
    "dcterms": str(DCTERMS),
    "foaf": str(FOAF),
    "talia": str(TALIA),
    "talia_db": str(TALIA_DB),
}

_URI_RE = re.compile(r"\S*:.*", re.DOTALL)
_PREFIXED_RE = re.compile(r"([A-Za-z_][\w.-]*):(.*)", re.DOTALL)


def is_uri(value: str) -> bool:
    """Return True if *value* has the ``scheme:rest`` shape of a URI."""
    return bool(_URI_RE.fullmatch(str(value)))


def local_name(uri: str) -> str:
    """Return the part of *uri* after the last ``#`` or ``/``."""
    uri = str(uri)
    for sep in ("#", "/"):
        head, found, tail = uri.rpartition(sep)
        if found and tail:
            return tail
    return uri.rpartition(":")[2] or uri


class NamespaceRegistry:
    """Maps prefixes (``dc``, ``rdfs``, ...) to rdflib namespaces."""

    def __init__(
        self,
        local_uri: str,
        default_namespace: str,
        extra: Mapping[str, str] | None = None,
    ) -> None:
        self._namespaces: dict[str, Namespace] = {}
        for prefix, uri in _BUILTINS.items():
            self.register(prefix, uri)
        self.register("local", local_uri)
        self.register("default", default_namespace)
        for prefix, uri in (extra or {}).items():
            self.register(prefix, uri)

    @classmethod
    def from_config(cls, config) -> NamespaceRegistry:
        return cls(config.local_uri, config.default_namespace, config.namespaces)

    def register(self, prefix: str, uri: str) -> Namespace:
        ns = Namespace(str(uri))
        self._namespaces[prefix] = ns
        return ns

    def get(self, prefix: str) -> Namespace | None:
        return self._namespaces.get(prefix)

    def __getitem__(self, prefix: str) -> Namespace:
        return self._namespaces[prefix]

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._namespaces

    def __iter__(self) -> Iterator[str]:
        return iter(self._namespaces)

    @property
    def local(self) -> Namespace:
        return self._namespaces["local"]

    @property
    def default(self) -> Namespace:
        return self._namespaces["default"]

    def expand(self, name: str) -> str:
        """Expand ``prefix:local`` for a registered prefix, else return *name*."""
        match = _PREFIXED_RE.fullmatch(str(name))
        if match and match.group(1) in self._namespaces:
            return str(self._namespaces[match.group(1)][match.group(2)])
        return str(name)

    def is_registered(self, name: str) -> bool:
        """Return True if *name* is written with a registered prefix."""
        match = _PREFIXED_RE.fullmatch(str(name))
        return bool(match and match.group(1) in self._namespaces)

    def build_query_uri(self, name: str) -> str:
        """Resolve a bare name into the local namespace.

        Values that already look like URIs are returned after prefix
        expansion.
        """
        name = str(name)
        if is_uri(name):
            return self.expand(name)
        return str(self.local[name])
