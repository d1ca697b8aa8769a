"""Cluster API access for label reconciliation."""

import logging
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Callable, Optional

from kubernetes.client.exceptions import ApiException
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.exceptions import HTTPError

from .cluster import ClusterConnection
from .errors import APIRequestError, ConflictError, TransientAPIError
from .matching import format_selector
from .models import (
    CONTROLLER_KINDS,
    ResourceIdentity,
    ResourceKind,
    ResourceSnapshot,
    WorkloadIdentity,
)

logger = logging.getLogger(__name__)

# Status 0 is what the client reports for connection-level failures
TRANSIENT_STATUSES = {0, 408, 429, 500, 502, 503, 504}


@contextmanager
def api_errors(operation: str):
    """
    Translate kubernetes client failures into the reconciler's error types.

    Args:
        operation: Human readable description used in error messages
    """
    try:
        yield
    except ApiException as e:
        status = e.status or 0
        message = f"{operation} failed: {status} {e.reason}"
        if status == 409:
            raise ConflictError(message, status=status) from e
        if status in TRANSIENT_STATUSES:
            raise TransientAPIError(message, status=status) from e
        raise APIRequestError(message, status=status) from e
    except HTTPError as e:
        raise TransientAPIError(f"{operation} failed: {e}") from e


def to_snapshot(obj: Any, kind: ResourceKind) -> ResourceSnapshot:
    """Build a snapshot from a kubernetes API object."""
    meta = obj.metadata
    identity_cls = WorkloadIdentity if kind in CONTROLLER_KINDS else ResourceIdentity

    selector = None
    if kind == ResourceKind.SERVICE and obj.spec is not None and obj.spec.selector:
        selector = dict(obj.spec.selector)

    return ResourceSnapshot(
        identity=identity_cls(namespace=meta.namespace, name=meta.name, kind=kind),
        labels=dict(meta.labels or {}),
        resource_version=meta.resource_version,
        selector=selector,
    )


class ClusterLabelClient:
    """
    Reads and label writes against the cluster API.

    Every call carries a request timeout. Transient failures are retried
    with exponential backoff; write conflicts are surfaced immediately as
    ConflictError so the caller can re-read before retrying.
    """

    def __init__(
        self,
        cluster: ClusterConnection,
        request_timeout: float = 10.0,
        retry_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
    ):
        """
        Initialize label client.

        Args:
            cluster: Cluster connection
            request_timeout: Per-request timeout in seconds
            retry_attempts: Attempts per call on transient failure
            backoff_min: Minimum backoff between attempts in seconds
            backoff_max: Maximum backoff between attempts in seconds
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1
        self.apps_v1 = cluster.apps_v1
        self.request_timeout = request_timeout
        self.retry_attempts = retry_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

        self._namespaced_listers = {
            ResourceKind.DEPLOYMENT: self.apps_v1.list_namespaced_deployment,
            ResourceKind.STATEFULSET: self.apps_v1.list_namespaced_stateful_set,
        }
        self._cluster_listers = {
            ResourceKind.DEPLOYMENT: self.apps_v1.list_deployment_for_all_namespaces,
            ResourceKind.STATEFULSET: self.apps_v1.list_stateful_set_for_all_namespaces,
        }
        self._readers = {
            ResourceKind.DEPLOYMENT: self.apps_v1.read_namespaced_deployment,
            ResourceKind.STATEFULSET: self.apps_v1.read_namespaced_stateful_set,
            ResourceKind.POD: self.core_v1.read_namespaced_pod,
            ResourceKind.SERVICE: self.core_v1.read_namespaced_service,
        }
        self._patchers = {
            ResourceKind.DEPLOYMENT: self.apps_v1.patch_namespaced_deployment,
            ResourceKind.STATEFULSET: self.apps_v1.patch_namespaced_stateful_set,
            ResourceKind.POD: self.core_v1.patch_namespaced_pod,
            ResourceKind.SERVICE: self.core_v1.patch_namespaced_service,
        }

    def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        """Invoke an API method with timeout, error translation and retries."""

        def attempt() -> Any:
            with api_errors(operation):
                return fn(_request_timeout=self.request_timeout, **kwargs)

        retryer = Retrying(
            retry=retry_if_exception_type(TransientAPIError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(
                multiplier=1, min=self.backoff_min, max=self.backoff_max
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(attempt)

    def list_namespaces(self) -> list[str]:
        """
        List namespace names.

        Raises:
            TransientAPIError: If the API stays unreachable after retries
        """
        result = self._call("list namespaces", self.core_v1.list_namespace)
        return [ns.metadata.name for ns in result.items]

    def list_controllers(
        self, namespace: str, kind: ResourceKind
    ) -> list[ResourceSnapshot]:
        """
        List controller resources of one kind in a namespace.

        Args:
            namespace: Kubernetes namespace
            kind: Controller kind

        Returns:
            Controller snapshots
        """
        result = self._call(
            f"list {kind.value}s in {namespace}",
            self._namespaced_listers[kind],
            namespace=namespace,
        )
        return [to_snapshot(item, kind) for item in result.items]

    def list_controllers_by_label(
        self,
        kind: ResourceKind,
        selector: Mapping[str, str],
        namespace: Optional[str] = None,
    ) -> list[ResourceSnapshot]:
        """
        List controllers carrying the given labels.

        Args:
            kind: Controller kind
            selector: Label selector dict
            namespace: Kubernetes namespace, None for all namespaces

        Returns:
            Controller snapshots
        """
        label_selector = format_selector(selector)
        if namespace:
            result = self._call(
                f"list {kind.value}s in {namespace}",
                self._namespaced_listers[kind],
                namespace=namespace,
                label_selector=label_selector,
            )
        else:
            result = self._call(
                f"list {kind.value}s",
                self._cluster_listers[kind],
                label_selector=label_selector,
            )
        return [to_snapshot(item, kind) for item in result.items]

    def get_resource(self, identity: ResourceIdentity) -> ResourceSnapshot:
        """
        Read the current state of a resource.

        Args:
            identity: Resource to read

        Returns:
            Fresh snapshot including the current resourceVersion
        """
        obj = self._call(
            f"read {identity}",
            self._readers[identity.kind],
            name=identity.name,
            namespace=identity.namespace,
        )
        return to_snapshot(obj, identity.kind)

    def update_labels(
        self,
        identity: ResourceIdentity,
        labels: Mapping[str, str],
        resource_version: Optional[str],
    ) -> ResourceSnapshot:
        """
        Write a resource's labels.

        The patch carries the resourceVersion the labels were computed from,
        so the API server rejects it with a conflict if the resource changed
        in the meantime.

        Args:
            identity: Resource to update
            labels: Full label set to write
            resource_version: Version the labels were derived from

        Returns:
            Snapshot of the updated resource

        Raises:
            ConflictError: If resource_version is stale
        """
        metadata: dict[str, Any] = {"labels": dict(labels)}
        if resource_version is not None:
            metadata["resourceVersion"] = resource_version

        obj = self._call(
            f"update {identity}",
            self._patchers[identity.kind],
            name=identity.name,
            namespace=identity.namespace,
            body={"metadata": metadata},
        )
        return to_snapshot(obj, identity.kind)

    def list_pods(
        self, namespace: str, selector: Mapping[str, str]
    ) -> list[ResourceSnapshot]:
        """
        List pods matching a label selector.

        Args:
            namespace: Kubernetes namespace
            selector: Label selector dict

        Returns:
            Pod snapshots
        """
        result = self._call(
            f"list pods in {namespace}",
            self.core_v1.list_namespaced_pod,
            namespace=namespace,
            label_selector=format_selector(selector),
        )
        return [to_snapshot(item, ResourceKind.POD) for item in result.items]

    def list_services(self, namespace: str) -> list[ResourceSnapshot]:
        """
        List every service in a namespace.

        Args:
            namespace: Kubernetes namespace

        Returns:
            Service snapshots including their selectors
        """
        result = self._call(
            f"list services in {namespace}",
            self.core_v1.list_namespaced_service,
            namespace=namespace,
        )
        return [to_snapshot(item, ResourceKind.SERVICE) for item in result.items]
