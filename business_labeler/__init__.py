"""Business label reconciler - keeps workload classification labels in sync."""

__version__ = "0.1.0"

from .classifier import classify, find_ambiguities, load_category_table
from .client import ClusterLabelClient
from .cluster import ClusterConnection
from .config import Settings, get_settings
from .coordinator import RunCoordinator
from .drift import needs_update
from .enumerator import Dependents, ResourceEnumerator
from .errors import (
    APIRequestError,
    CategoryTableError,
    ConflictError,
    FatalEnumerationError,
    LabelerError,
    TransientAPIError,
)
from .models import (
    CONTROLLER_KINDS,
    CategoryEntry,
    CategoryTable,
    ClusterConfig,
    NamespaceFailure,
    ReconciliationAction,
    ReconciliationResult,
    ResourceIdentity,
    ResourceKind,
    ResourceOutcome,
    ResourceSnapshot,
    RunSummary,
    WorkloadIdentity,
)
from .propagator import LabelPropagator

__all__ = [
    # Classification
    "classify",
    "find_ambiguities",
    "load_category_table",
    "needs_update",
    # Cluster access
    "ClusterConnection",
    "ClusterLabelClient",
    "ResourceEnumerator",
    "Dependents",
    # Reconciliation
    "LabelPropagator",
    "RunCoordinator",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "LabelerError",
    "APIRequestError",
    "TransientAPIError",
    "ConflictError",
    "FatalEnumerationError",
    "CategoryTableError",
    # Models
    "CONTROLLER_KINDS",
    "CategoryEntry",
    "CategoryTable",
    "ClusterConfig",
    "NamespaceFailure",
    "ReconciliationAction",
    "ReconciliationResult",
    "ResourceIdentity",
    "ResourceKind",
    "ResourceOutcome",
    "ResourceSnapshot",
    "RunSummary",
    "WorkloadIdentity",
]
