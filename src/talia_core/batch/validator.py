"""
Validation for batch Source imports.

Checks entry structure (uri, mode, attributes, types) and, when a store is
given, warns about entries that would collide with existing Sources.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from talia_core.namespaces import is_uri

from .schema import (
    VALID_MODES,
    EntryError,
    EntryWarning,
    ImportRequest,
    SourceEntry,
    ValidationResult,
)

if TYPE_CHECKING:
    from talia_core.store import SourceStore

logger = logging.getLogger(__name__)


def validate_import_request(
    request: ImportRequest,
    store: Optional["SourceStore"] = None,
) -> ValidationResult:
    """Validate an import request.

    Args:
        request: The import request to validate
        store: If given, check entries against existing Sources

    Returns:
        ValidationResult with errors and warnings
    """
    errors: List[EntryError] = []
    warnings: List[EntryWarning] = []
    seen: dict = {}

    for i, entry in enumerate(request.sources):
        entry_errors, entry_warnings = _validate_entry(entry, i, store)
        errors.extend(entry_errors)
        warnings.extend(entry_warnings)
        if isinstance(entry.uri, str):
            if entry.uri in seen:
                warnings.append(
                    EntryWarning(
                        index=i,
                        uri=entry.uri,
                        message=f"URI also listed in entry #{seen[entry.uri] + 1}",
                        line_number=entry.line_number,
                    )
                )
            else:
                seen[entry.uri] = i

    logger.debug(f"Validated {len(request.sources)} entries: {len(errors)} error(s)")
    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def _validate_entry(
    entry: SourceEntry,
    index: int,
    store: Optional["SourceStore"],
) -> Tuple[List[EntryError], List[EntryWarning]]:
    """Validate a single entry."""
    errors: List[EntryError] = []
    warnings: List[EntryWarning] = []
    uri = str(entry.uri) if entry.uri is not None else ""

    def error(field: str, message: str) -> None:
        errors.append(
            EntryError(
                index=index,
                uri=uri,
                field=field,
                message=message,
                line_number=entry.line_number,
            )
        )

    if not entry.uri:
        error("uri", "Missing required field 'uri'")
    elif not isinstance(entry.uri, str) or not is_uri(entry.uri):
        error("uri", f"Malformed URI: {entry.uri!r}")

    if entry.mode not in VALID_MODES:
        error("mode", f"Unknown mode {entry.mode!r} (expected one of: {', '.join(sorted(VALID_MODES))})")

    if not isinstance(entry.attributes, dict):
        error("attributes", "Field 'attributes' must be a mapping")

    if not isinstance(entry.types, list) or not all(isinstance(t, str) for t in entry.types):
        error("types", "Field 'types' must be a list of URIs")

    for name in entry.extra_fields:
        error(name, f"Unknown field {name!r}")

    if store is not None and not errors and entry.types and store.exists(entry.uri):
        warnings.append(
            EntryWarning(
                index=index,
                uri=uri,
                message="Source already exists; giving types will fail",
                line_number=entry.line_number,
            )
        )

    return errors, warnings
