"""
Command-line interface for batch Source imports.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from talia_core.config import TaliaConfig, configure_logging, load_config
from talia_core.exceptions import TaliaError
from talia_core.store import SourceStore

from .executor import execute_import_request
from .parser import ParseError, load_import_request
from .schema import BatchResult, ValidationResult
from .validator import validate_import_request


def main(argv: Optional[list] = None) -> int:
    """Main entry point for talia-import CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="talia-import",
        description="Batch import of Sources from YAML files",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s (talia-core)",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate an import file",
    )
    validate_parser.add_argument(
        "file",
        type=Path,
        help="YAML file containing the import request",
    )
    _add_store_arguments(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    # apply command
    apply_parser = subparsers.add_parser(
        "apply",
        help="Import Sources from a request file",
    )
    apply_parser.add_argument(
        "file",
        type=Path,
        help="YAML file containing the import request",
    )
    _add_store_arguments(apply_parser)
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would happen without writing",
    )
    apply_parser.set_defaults(func=cmd_apply)

    return parser


def _add_store_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        help="SQLite database file (overrides the configuration)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file",
    )


def _load_config(args: argparse.Namespace) -> TaliaConfig:
    config = load_config(args.config) if args.config else TaliaConfig()
    if args.db:
        config.db_path = str(args.db)
    configure_logging(config)
    return config


def _load_request(path: Path):
    try:
        return load_import_request(path)
    except ParseError as e:
        print(f"\n  [PARSE ERROR] {e}")
        if e.line:
            print(f"               Line: {e.line}")
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
    return None


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    print(f"\nValidating {args.file}...")

    request = _load_request(args.file)
    if request is None:
        return 1

    print(f"  Sources: {len(request.sources)}")
    if request.session_name:
        print(f"  Session: {request.session_name}")

    try:
        config = _load_config(args)
        if args.db or args.config:
            with SourceStore(config) as store:
                result = validate_import_request(request, store)
        else:
            result = validate_import_request(request)
    except (TaliaError, FileNotFoundError) as e:
        print(f"\n  [ERROR] {e}")
        return 1

    print("\nValidation Results:")
    _print_validation_result(result)

    if result.is_valid:
        print("\nValidation passed!")
        return 0
    else:
        print(f"\nFound {result.error_count} error(s), {result.warning_count} warning(s)")
        return 1


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle apply command."""
    print(f"\nLoading {args.file}...")

    request = _load_request(args.file)
    if request is None:
        return 1

    print(f"  Sources: {len(request.sources)}")
    if request.session_name:
        print(f"  Session: \"{request.session_name}\"")

    try:
        config = _load_config(args)
        store = SourceStore(config)
    except (TaliaError, FileNotFoundError) as e:
        print(f"\n  [ERROR] {e}")
        return 1

    with store:
        print("\nValidating...")
        validation = validate_import_request(request, store)
        if not validation.is_valid:
            print("\nValidation failed:")
            _print_validation_result(validation)
            print(f"\nFound {validation.error_count} error(s). Fix errors before applying.")
            return 1

        if validation.warning_count > 0:
            print("\nWarnings:")
            _print_validation_result(validation, warnings_only=True)

        print(f"\n{'Simulating' if args.dry_run else 'Applying'} import...")
        result = execute_import_request(request, store, dry_run=args.dry_run)
        _print_batch_result(result)

    if result.failure_count > 0:
        return 1
    return 0


def _print_validation_result(
    result: ValidationResult,
    warnings_only: bool = False,
) -> None:
    """Print validation errors and warnings."""
    if not warnings_only:
        for error in result.errors:
            line_info = f" (line {error.line_number})" if error.line_number else ""
            print(f"  [ERROR] Source #{error.index + 1} ({error.uri}): {error.message}{line_info}")
            if error.field:
                print(f"          Field: {error.field}")

    for warning in result.warnings:
        line_info = f" (line {warning.line_number})" if warning.line_number else ""
        print(f"  [WARN]  Source #{warning.index + 1} ({warning.uri}): {warning.message}{line_info}")


def _print_batch_result(result: BatchResult) -> None:
    """Print import result."""
    print()
    for entry in result.entries:
        status = "OK" if entry.success else "FAILED"
        print(f"  [{entry.index + 1}/{result.total_count}] {entry.uri}: {status}")
        if entry.message:
            print(f"         {entry.message}")

    print("\nResults:")
    print(f"  Total:   {result.total_count}")
    print(f"  Success: {result.success_count}")
    print(f"  Failed:  {result.failure_count}")
    print(f"  Time:    {result.duration_seconds:.2f}s")


if __name__ == "__main__":
    sys.exit(main())
