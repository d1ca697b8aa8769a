"""Pytest configuration and fixtures for business labeler tests."""

import threading
from typing import Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from business_labeler import (
    CategoryTable,
    ClusterLabelClient,
    ConflictError,
    LabelPropagator,
    ResourceEnumerator,
    ResourceIdentity,
    ResourceKind,
    ResourceSnapshot,
    RunCoordinator,
    TransientAPIError,
    WorkloadIdentity,
)
from business_labeler.matching import selector_matches
from business_labeler.models import CONTROLLER_KINDS


class FakeLabelClient:
    """
    In-memory stand-in for ClusterLabelClient.

    Enforces resourceVersion checks on writes and lets tests inject
    failures per resource or per namespace.
    """

    def __init__(self):
        self._store: dict[ResourceIdentity, dict] = {}
        self._lock = threading.Lock()
        self.writes: list[ResourceIdentity] = []
        self.update_errors: dict[str, Exception] = {}  # keyed by resource name
        self.conflicts: dict[str, int] = {}  # name -> number of conflicts to raise
        # Names whose next write is applied but reported back as a conflict,
        # as when a timed-out patch is retried with its old resourceVersion
        self.applied_then_conflict: set[str] = set()
        self.failing_namespaces: set[str] = set()
        self.namespaces_error: Optional[Exception] = None
        self.pods_error: Optional[Exception] = None

    def add(
        self,
        kind: ResourceKind,
        namespace: str,
        name: str,
        labels: dict[str, str],
        selector: Optional[dict[str, str]] = None,
    ) -> ResourceIdentity:
        identity_cls = WorkloadIdentity if kind in CONTROLLER_KINDS else ResourceIdentity
        identity = identity_cls(namespace=namespace, name=name, kind=kind)
        self._store[identity] = {
            "labels": dict(labels),
            "version": 1,
            "selector": selector,
        }
        return identity

    def labels(self, kind: ResourceKind, namespace: str, name: str) -> dict[str, str]:
        for identity, entry in self._store.items():
            if (identity.kind, identity.namespace, identity.name) == (kind, namespace, name):
                return dict(entry["labels"])
        raise KeyError(name)

    def _snapshot(self, identity: ResourceIdentity) -> ResourceSnapshot:
        entry = self._store[identity]
        return ResourceSnapshot(
            identity=identity,
            labels=dict(entry["labels"]),
            resource_version=str(entry["version"]),
            selector=entry["selector"],
        )

    def _of_kind(self, namespace: str, kind: ResourceKind) -> list[ResourceSnapshot]:
        return [
            self._snapshot(i)
            for i in self._store
            if i.namespace == namespace and i.kind == kind
        ]

    def list_namespaces(self) -> list[str]:
        if self.namespaces_error:
            raise self.namespaces_error
        return sorted({i.namespace for i in self._store})

    def list_controllers(self, namespace, kind):
        if namespace in self.failing_namespaces:
            raise TransientAPIError(f"list {kind.value}s in {namespace} failed: 503")
        return self._of_kind(namespace, kind)

    def list_controllers_by_label(self, kind, selector, namespace=None):
        return [
            self._snapshot(i)
            for i, entry in self._store.items()
            if i.kind == kind
            and (namespace is None or i.namespace == namespace)
            and selector_matches(selector, entry["labels"])
        ]

    def get_resource(self, identity):
        return self._snapshot(identity)

    def update_labels(self, identity, labels, resource_version):
        with self._lock:
            if identity.name in self.update_errors:
                raise self.update_errors[identity.name]
            entry = self._store[identity]
            if self.conflicts.get(identity.name, 0) > 0:
                self.conflicts[identity.name] -= 1
                entry["version"] += 1  # someone else wrote in between
                raise ConflictError(f"update {identity} failed: 409 Conflict", status=409)
            if resource_version is not None and resource_version != str(entry["version"]):
                raise ConflictError(f"update {identity} failed: 409 Conflict", status=409)
            entry["labels"] = dict(labels)
            entry["version"] += 1
            self.writes.append(identity)
            if identity.name in self.applied_then_conflict:
                self.applied_then_conflict.discard(identity.name)
                raise ConflictError(f"update {identity} failed: 409 Conflict", status=409)
            return self._snapshot(identity)

    def list_pods(self, namespace, selector):
        if self.pods_error:
            raise self.pods_error
        return [
            p for p in self._of_kind(namespace, ResourceKind.POD)
            if selector_matches(selector, p.labels)
        ]

    def list_services(self, namespace):
        return self._of_kind(namespace, ResourceKind.SERVICE)


@pytest.fixture
def mock_cluster_connection():
    """Mock cluster connection for testing."""
    mock_conn = MagicMock()
    mock_conn.core_v1 = MagicMock(spec=client.CoreV1Api)
    mock_conn.apps_v1 = MagicMock(spec=client.AppsV1Api)
    return mock_conn


@pytest.fixture
def label_client(mock_cluster_connection):
    """ClusterLabelClient over mocked APIs, without backoff sleeps."""
    return ClusterLabelClient(
        mock_cluster_connection,
        request_timeout=5,
        retry_attempts=3,
        backoff_min=0,
        backoff_max=0,
    )


@pytest.fixture
def category_table():
    """Category table from the reference scenario."""
    return CategoryTable(
        categories=[
            {"name": "chief", "members": ["svc-a"]},
            {"name": "quote", "members": ["svc-b"]},
        ],
        fallback="other",
    )


@pytest.fixture
def fake_client():
    """
    Namespace "prod" with one drifted Deployment svc-a, its two pods, one
    service routing to them and one unrelated service.
    """
    fake = FakeLabelClient()
    fake.add(ResourceKind.DEPLOYMENT, "prod", "svc-a", {"app": "svc-a", "business": "other"})
    fake.add(ResourceKind.POD, "prod", "svc-a-1", {"app": "svc-a", "business": "other"})
    fake.add(ResourceKind.POD, "prod", "svc-a-2", {"app": "svc-a", "business": "other"})
    fake.add(ResourceKind.POD, "prod", "svc-b-1", {"app": "svc-b", "business": "quote"})
    fake.add(
        ResourceKind.SERVICE, "prod", "svc-a", {"business": "other"}, selector={"app": "svc-a"}
    )
    fake.add(
        ResourceKind.SERVICE, "prod", "svc-b", {"business": "quote"}, selector={"app": "svc-b"}
    )
    return fake


@pytest.fixture
def enumerator(fake_client):
    return ResourceEnumerator(fake_client, label_key="business")


@pytest.fixture
def propagator(fake_client, enumerator, category_table):
    return LabelPropagator(fake_client, enumerator, category_table, label_key="business")


@pytest.fixture
def coordinator(enumerator, propagator):
    return RunCoordinator(enumerator, propagator, max_workers=4)
