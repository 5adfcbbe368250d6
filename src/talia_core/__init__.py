__version__ = "0.1.0"

from .config import (
    TaliaConfig as TaliaConfig,
    load_config as load_config,
    configure_logging as configure_logging,
)

from .exceptions import (
    TaliaError as TaliaError,
    ValidationError as ValidationError,
    RecordNotFound as RecordNotFound,
    DuplicateIdentifierError as DuplicateIdentifierError,
    QueryError as QueryError,
    UnsavedSourceError as UnsavedSourceError,
    TripleStoreError as TripleStoreError,
    DatabaseError as DatabaseError,
    ConfigError as ConfigError,
)

from .models import (
    AttributeKind as AttributeKind,
    AttributeRoute as AttributeRoute,
    FindScope as FindScope,
    QueryPlanKind as QueryPlanKind,
    QuerySpec as QuerySpec,
    SaveProgress as SaveProgress,
    SaveStep as SaveStep,
)

from .namespaces import (
    NamespaceRegistry as NamespaceRegistry,
    TALIA as TALIA,
    TALIA_DB as TALIA_DB,
)

from .terms import PropertyString as PropertyString
from .classifier import AttributeClassifier as AttributeClassifier
from .collection import (
    PredicateCollection as PredicateCollection,
    UnsavedSourceCache as UnsavedSourceCache,
)
from .record_store import RecordStore as RecordStore
from .triple_store import (
    TripleStore as TripleStore,
    RdflibTripleStore as RdflibTripleStore,
)
from .source import (
    Source as Source,
    SingularProperty as SingularProperty,
    MultiProperty as MultiProperty,
)
from .dc_resource import DcResource as DcResource
from .store import SourceStore as SourceStore

# Batch module - import as submodule
from . import batch

__all__ = [
    "batch",
    # Entry point
    "SourceStore",
    "TaliaConfig",
    "load_config",
    "configure_logging",
    # Entities
    "Source",
    "DcResource",
    "SingularProperty",
    "MultiProperty",
    "PredicateCollection",
    "UnsavedSourceCache",
    "PropertyString",
    # Adapters
    "RecordStore",
    "TripleStore",
    "RdflibTripleStore",
    "AttributeClassifier",
    "NamespaceRegistry",
    "TALIA",
    "TALIA_DB",
    # Models
    "AttributeKind",
    "AttributeRoute",
    "FindScope",
    "QueryPlanKind",
    "QuerySpec",
    "SaveProgress",
    "SaveStep",
    # Exceptions
    "TaliaError",
    "ValidationError",
    "RecordNotFound",
    "DuplicateIdentifierError",
    "QueryError",
    "UnsavedSourceError",
    "TripleStoreError",
    "DatabaseError",
    "ConfigError",
]
