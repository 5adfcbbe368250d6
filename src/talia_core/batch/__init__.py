"""
Batch import module for talia-core.

Sources are described in YAML and created or updated through a SourceStore
within one import session.

Example usage:
    from talia_core import SourceStore
    from talia_core.batch import (
        load_import_request,
        validate_import_request,
        execute_import_request,
    )

    request = load_import_request("sources.yaml")

    with SourceStore() as store:
        validation = validate_import_request(request, store)
        if not validation.is_valid:
            for error in validation.errors:
                print(f"[{error.index}] {error.uri}: {error.message}")

        result = execute_import_request(request, store)
        print(f"Imported {result.success_count}/{result.total_count} sources")
"""

from .schema import (
    # Enums and constants
    ImportMode as ImportMode,
    VALID_MODES as VALID_MODES,
    # Data classes
    SourceEntry as SourceEntry,
    ImportRequest as ImportRequest,
    EntryError as EntryError,
    EntryWarning as EntryWarning,
    ValidationResult as ValidationResult,
    EntryResult as EntryResult,
    BatchResult as BatchResult,
)

from .parser import (
    load_import_request as load_import_request,
    load_yaml_file as load_yaml_file,
    ParseError as ParseError,
)

from .validator import (
    validate_import_request as validate_import_request,
)

from .executor import (
    execute_import_request as execute_import_request,
)

__all__ = [
    # Enums and constants
    "ImportMode",
    "VALID_MODES",
    # Data classes
    "SourceEntry",
    "ImportRequest",
    "EntryError",
    "EntryWarning",
    "ValidationResult",
    "EntryResult",
    "BatchResult",
    # Functions
    "load_import_request",
    "load_yaml_file",
    "validate_import_request",
    "execute_import_request",
    # Exceptions
    "ParseError",
]
