"""Shared test fixtures for talia-core."""

import pytest

from talia_core import RdflibTripleStore, SourceStore, TripleStoreError

BOOK = "http://ex.org/Book"


class FailingTripleStore(RdflibTripleStore):
    """In-memory triple store whose writes can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_all = False
        self.fail_predicate = None

    def add(self, subject, predicate, obj, context=None):
        if self.fail_all or (
            self.fail_predicate is not None and str(predicate) == self.fail_predicate
        ):
            raise TripleStoreError(f"add failed for {predicate}")
        super().add(subject, predicate, obj, context)


@pytest.fixture
def store():
    """Create an in-memory store for testing."""
    with SourceStore() as s:
        yield s


@pytest.fixture
def saved_source(store):
    """A saved Source at http://x/a with workflow_state 3."""
    source = store.new_source("http://x/a")
    source.workflow_state = 3
    source.save_strict()
    return source


@pytest.fixture
def book_store(store):
    """Store with three Sources typed as books and two untyped Sources."""
    for i in range(3):
        store.new_source(f"http://x/book{i}", BOOK).save_strict()
    for i in range(2):
        store.new_source(f"http://x/other{i}").save_strict()
    return store


@pytest.fixture
def failing_store():
    """Store whose triple store can be switched to failing writes."""
    triples = FailingTripleStore()
    with SourceStore(triple_store=triples) as s:
        yield s, triples
