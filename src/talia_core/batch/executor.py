"""
Executor for batch Source imports.

Applies each entry through the SourceStore inside one import session.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, List

from .schema import BatchResult, EntryResult, ImportMode, ImportRequest, SourceEntry

if TYPE_CHECKING:
    from talia_core.store import SourceStore

logger = logging.getLogger(__name__)


def execute_import_request(
    request: ImportRequest,
    store: "SourceStore",
    dry_run: bool = False,
) -> BatchResult:
    """Execute an import request.

    A failing entry is logged and recorded; the remaining entries still run.

    Args:
        request: The import request to execute
        store: The store to write to
        dry_run: If True, only report what would happen

    Returns:
        BatchResult with details of each entry
    """
    start_time = time.time()
    results: List[EntryResult] = []

    with store.import_session(request.session_name):
        for i, entry in enumerate(request.sources):
            results.append(_execute_entry(entry, i, store, dry_run))

    success_count = sum(1 for r in results if r.success)
    failure_count = sum(1 for r in results if not r.success)
    duration = time.time() - start_time

    return BatchResult(
        session_name=request.session_name,
        total_count=len(results),
        success_count=success_count,
        failure_count=failure_count,
        entries=results,
        duration_seconds=duration,
        dry_run=dry_run,
    )


def _execute_entry(
    entry: SourceEntry,
    index: int,
    store: "SourceStore",
    dry_run: bool,
) -> EntryResult:
    """Import a single entry.

    Returns:
        EntryResult with success/failure status
    """
    uri = str(entry.uri)
    try:
        existed = store.exists(uri)
        if dry_run:
            if existed and entry.types:
                return EntryResult(
                    index=index,
                    uri=uri,
                    success=False,
                    message="Would fail: source already exists",
                    error="DuplicateIdentifierError",
                )
            verb = "update" if existed else "create"
            return EntryResult(
                index=index,
                uri=uri,
                success=True,
                message=f"Would {verb} source",
                created=not existed,
            )

        source = store.new_source(uri, *entry.types)
        if ImportMode(entry.mode) is ImportMode.REWRITE:
            source.rewrite_attributes_strict(entry.attributes)
        else:
            source.update_attributes_strict(entry.attributes)
        return EntryResult(
            index=index,
            uri=uri,
            success=True,
            message="Updated source" if existed else "Created source",
            created=not existed,
        )
    except Exception as e:
        logger.exception(f"Import entry #{index + 1} ({uri}) failed")
        return EntryResult(
            index=index,
            uri=uri,
            success=False,
            message=str(e),
            error=type(e).__name__,
        )
