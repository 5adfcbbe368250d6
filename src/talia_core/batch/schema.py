"""
Data classes and constants for batch Source imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


# =============================================================================
# Import Modes
# =============================================================================

class ImportMode(str, Enum):
    """How an entry's attributes are applied to its Source."""
    ADD = "add"
    REWRITE = "rewrite"


VALID_MODES = {mode.value for mode in ImportMode}

# Keys allowed in a source entry
ENTRY_FIELDS = {"uri", "types", "attributes", "mode"}


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class SourceEntry:
    """One Source to create or update."""
    uri: Any
    types: List[str] = field(default_factory=list)
    attributes: Any = field(default_factory=dict)
    mode: str = ImportMode.ADD.value
    extra_fields: List[str] = field(default_factory=list)
    line_number: Optional[int] = None


@dataclass
class ImportRequest:
    """Parsed import request from YAML."""
    sources: List[SourceEntry]
    session_name: Optional[str] = None
    session_description: Optional[str] = None
    source_file: Optional[Path] = None


@dataclass
class EntryError:
    """Validation error for a specific entry."""
    index: int
    uri: str
    field: str
    message: str
    line_number: Optional[int] = None


@dataclass
class EntryWarning:
    """Validation warning for a specific entry."""
    index: int
    uri: str
    message: str
    line_number: Optional[int] = None


@dataclass
class ValidationResult:
    """Result of validating an import request."""
    is_valid: bool
    errors: List[EntryError] = field(default_factory=list)
    warnings: List[EntryWarning] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


@dataclass
class EntryResult:
    """Result of importing a single entry."""
    index: int
    uri: str
    success: bool
    message: str
    created: bool = False
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Result of executing an import request."""
    session_name: Optional[str]
    total_count: int
    success_count: int
    failure_count: int
    entries: List[EntryResult]
    duration_seconds: float
    dry_run: bool = False

    @property
    def created_count(self) -> int:
        return sum(1 for e in self.entries if e.success and e.created)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session_name,
            "total": self.total_count,
            "success": self.success_count,
            "failed": self.failure_count,
            "dry_run": self.dry_run,
        }
