"""Data models for business label reconciliation."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceKind(str, Enum):
    """Kubernetes resource kinds touched by the reconciler."""

    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    POD = "Pod"
    SERVICE = "Service"


CONTROLLER_KINDS = (ResourceKind.DEPLOYMENT, ResourceKind.STATEFULSET)


class ResourceIdentity(BaseModel):
    """Identifies a single namespaced resource."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    kind: ResourceKind

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


class WorkloadIdentity(ResourceIdentity):
    """Identity of a controller resource (Deployment or StatefulSet)."""

    @field_validator("kind")
    @classmethod
    def _controller_kind(cls, value: ResourceKind) -> ResourceKind:
        if value not in CONTROLLER_KINDS:
            raise ValueError(f"{value.value} is not a controller kind")
        return value


class ResourceSnapshot(BaseModel):
    """
    Read-time view of a resource.

    Snapshots are never mutated; label changes are computed on a copy
    through with_label() and written back explicitly.
    """

    model_config = ConfigDict(frozen=True)

    identity: ResourceIdentity
    labels: dict[str, str] = Field(default_factory=dict)
    resource_version: Optional[str] = None
    selector: Optional[dict[str, str]] = None  # Services only

    def with_label(self, key: str, value: str) -> dict[str, str]:
        """Return a copy of the label set with key set to value."""
        labels = dict(self.labels)
        labels[key] = value
        return labels


class CategoryEntry(BaseModel):
    """A named set of workload names."""

    name: str = Field(..., min_length=1)
    members: frozenset[str] = Field(default_factory=frozenset)


class CategoryTable(BaseModel):
    """
    Ordered category membership table.

    Entries are evaluated in declaration order and the first set containing
    a workload name wins. Names found in no set get the fallback category.
    """

    model_config = ConfigDict(frozen=True)

    categories: list[CategoryEntry] = Field(default_factory=list)
    fallback: str = Field(..., min_length=1)

    @field_validator("categories", mode="before")
    @classmethod
    def _accept_mapping(cls, value: Any) -> Any:
        # YAML mappings keep their insertion order
        if isinstance(value, dict):
            return [
                {"name": name, "members": members or []}
                for name, members in value.items()
            ]
        return value


class ReconciliationAction(str, Enum):
    """What happened to a single resource."""

    SKIPPED_NO_DRIFT = "skipped-no-drift"
    UPDATED = "updated"
    UPDATE_FAILED = "update-failed"
    PLANNED = "planned"  # dry run


class ResourceOutcome(BaseModel):
    """Reconciliation outcome for one resource."""

    identity: ResourceIdentity
    previous_value: Optional[str] = None
    new_value: str
    action: ReconciliationAction
    error: Optional[str] = None


class ReconciliationResult(ResourceOutcome):
    """
    Outcome for a controller plus the dependent fan-out.

    Pods and services are only populated when the controller itself
    was updated (or planned, in dry-run mode).
    """

    pods: list[ResourceOutcome] = Field(default_factory=list)
    services: list[ResourceOutcome] = Field(default_factory=list)
    dependents_error: Optional[str] = None

    def outcomes(self) -> list[ResourceOutcome]:
        """Controller outcome followed by every dependent outcome."""
        controller = ResourceOutcome(
            identity=self.identity,
            previous_value=self.previous_value,
            new_value=self.new_value,
            action=self.action,
            error=self.error,
        )
        return [controller, *self.pods, *self.services]

    @property
    def writes(self) -> int:
        """Number of successful writes issued for this controller."""
        return sum(
            1 for o in self.outcomes() if o.action == ReconciliationAction.UPDATED
        )


class NamespaceFailure(BaseModel):
    """A namespace whose controllers could not be listed."""

    namespace: str
    error: str


class RunSummary(BaseModel):
    """Structured summary of a reconciliation run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    cancelled: bool = False
    results: list[ReconciliationResult] = Field(default_factory=list)
    namespace_failures: list[NamespaceFailure] = Field(default_factory=list)
    not_started: list[WorkloadIdentity] = Field(default_factory=list)
    ambiguities: dict[str, list[str]] = Field(default_factory=dict)

    def _all_outcomes(self) -> list[ResourceOutcome]:
        return [o for result in self.results for o in result.outcomes()]

    def counts(self) -> dict[str, int]:
        """Count resource outcomes by action."""
        counts = {action.value: 0 for action in ReconciliationAction}
        for outcome in self._all_outcomes():
            counts[outcome.action.value] += 1
        return counts

    @property
    def updates(self) -> list[ResourceOutcome]:
        """Every resource that was written during the run."""
        return [
            o for o in self._all_outcomes() if o.action == ReconciliationAction.UPDATED
        ]

    @property
    def failures(self) -> list[ResourceOutcome]:
        """Every resource whose update failed."""
        return [
            o
            for o in self._all_outcomes()
            if o.action == ReconciliationAction.UPDATE_FAILED
        ]

    @property
    def has_failures(self) -> bool:
        return bool(
            self.failures
            or self.namespace_failures
            or any(r.dependents_error for r in self.results)
        )


class ClusterConfig(BaseModel):
    """How to reach the cluster."""

    kubeconfig_path: Optional[str] = None
    context: Optional[str] = None  # Specific context to use
    in_cluster: bool = False
