"""Custom exception hierarchy for talia-core."""

from __future__ import annotations


class TaliaError(Exception):
    """Base exception for all talia-core errors."""


class ValidationError(TaliaError):
    """Relational validation failed (malformed or duplicate URI, missing field)."""

    def __init__(self, errors: dict[str, list[str]], message: str | None = None):
        self.errors = errors
        if message is None:
            parts = [
                f"{field}: {msg}"
                for field, msgs in errors.items()
                for msg in msgs
            ]
            message = "Validation failed: " + "; ".join(parts)
        super().__init__(message)


class RecordNotFound(TaliaError):
    """No relational record exists for the requested URI."""


class DuplicateIdentifierError(TaliaError):
    """Creating a Source with types for a URI that already exists."""


class QueryError(TaliaError, ValueError):
    """Illegal query shape (conflicting or unsupported find options)."""


class UnsavedSourceError(TaliaError):
    """Operation requires the Source to exist in the record store."""


class TripleStoreError(TaliaError):
    """The triple store adapter failed to read or write."""


class DatabaseError(TaliaError):
    """Schema version mismatch, connection failure."""


class ConfigError(TaliaError):
    """Invalid configuration data."""
