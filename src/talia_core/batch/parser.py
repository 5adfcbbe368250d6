"""
YAML parser for batch Source imports.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from talia_core.exceptions import TaliaError

from .schema import ENTRY_FIELDS, ImportMode, ImportRequest, SourceEntry


class ParseError(TaliaError):
    """Error parsing an import request file."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        super().__init__(message)


def load_import_request(
    source: Union[str, Path, Dict[str, Any]],
) -> ImportRequest:
    """Load an import request from a YAML file or dictionary.

    Args:
        source: Path to YAML file, YAML string, or parsed dictionary

    Returns:
        ImportRequest object

    Raises:
        ParseError: If the file cannot be parsed or is invalid
        FileNotFoundError: If the file does not exist
    """
    source_path: Optional[Path] = None

    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or (isinstance(source, str) and _is_file_path(source)):
        source_path = Path(source)
        if not source_path.exists():
            raise FileNotFoundError(f"File not found: {source_path}")
        data = _load_yaml_file(source_path)
    else:
        # Assume it's a YAML string
        data = _load_yaml_string(source)

    return _parse_import_request(data, source_path)


def _is_file_path(s: str) -> bool:
    """Check if a string looks like a file path."""
    # Inline YAML spans several lines or holds "key: value" pairs
    if "\n" in s or ": " in s:
        return False
    if "/" in s or "\\" in s:
        return True
    if s.endswith((".yaml", ".yml")):
        return True
    return False


def _check_root(data: Any, empty_message: str) -> Dict[str, Any]:
    if data is None:
        raise ParseError(empty_message)
    if not isinstance(data, dict):
        raise ParseError("YAML root must be a mapping (dictionary)")
    return data


def _yaml_error(e: yaml.YAMLError) -> ParseError:
    mark = getattr(e, "problem_mark", None)
    line_num = mark.line + 1 if mark else None
    return ParseError(f"Invalid YAML: {e}", line=line_num)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load YAML from a file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise _yaml_error(e) from e
    return _check_root(data, "Empty YAML file")


def _load_yaml_string(s: str) -> Dict[str, Any]:
    """Load YAML from a string."""
    try:
        data = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise _yaml_error(e) from e
    return _check_root(data, "Empty YAML content")


def _parse_import_request(
    data: Dict[str, Any],
    source_path: Optional[Path] = None,
) -> ImportRequest:
    """Parse a dictionary into an ImportRequest object."""
    # Extract session info (optional)
    session = data.get("session") or {}
    if not isinstance(session, dict):
        raise ParseError("Field 'session' must be a mapping")

    # Extract sources (required)
    sources_data = data.get("sources")
    if sources_data is None:
        raise ParseError("Missing required field: 'sources'")
    if not isinstance(sources_data, list):
        raise ParseError("Field 'sources' must be a list")
    if len(sources_data) == 0:
        raise ParseError("Field 'sources' cannot be empty")

    return ImportRequest(
        sources=_parse_sources(sources_data),
        session_name=session.get("name"),
        session_description=session.get("description"),
        source_file=source_path,
    )


def _parse_sources(sources_data: List[Any]) -> List[SourceEntry]:
    """Parse a list of entry dictionaries into SourceEntry objects."""
    entries = []

    for i, entry_data in enumerate(sources_data):
        if not isinstance(entry_data, dict):
            raise ParseError(f"Source #{i + 1} must be a mapping (dictionary)")

        types = entry_data.get("types") or []
        if isinstance(types, str):
            types = [types]

        entry = SourceEntry(
            uri=entry_data.get("uri"),
            types=types,
            attributes=entry_data.get("attributes") or {},
            mode=entry_data.get("mode") or ImportMode.ADD.value,
            # Unknown keys are reported by the validator
            extra_fields=sorted(set(entry_data) - ENTRY_FIELDS),
        )
        entries.append(entry)

    return entries


def load_yaml_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load raw YAML from a file (exposed for testing).

    Raises:
        ParseError: If the file cannot be parsed
        FileNotFoundError: If the file does not exist
    """
    return _load_yaml_file(Path(path))
