"""Resource enumeration: namespaces, controllers and their dependents."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from .client import ClusterLabelClient
from .matching import match_pods, match_services, pod_selector
from .models import CONTROLLER_KINDS, ResourceKind, ResourceSnapshot

logger = logging.getLogger(__name__)


@dataclass
class Dependents:
    """Pods and services reached from one controller."""

    pods: list[ResourceSnapshot] = field(default_factory=list)
    services: list[ResourceSnapshot] = field(default_factory=list)


class ResourceEnumerator:
    """
    Lists the resource graph the reconciler walks.

    The walk has two hops: controller labels select pods, and the pods'
    post-update labels select services.
    """

    def __init__(
        self,
        client: ClusterLabelClient,
        label_key: str = "business",
        controller_kinds: Sequence[ResourceKind] = CONTROLLER_KINDS,
    ):
        """
        Initialize resource enumerator.

        Args:
            client: Cluster label client
            label_key: Classification label key
            controller_kinds: Controller kinds to enumerate
        """
        self.client = client
        self.label_key = label_key
        self.controller_kinds = tuple(controller_kinds)

    def list_namespaces(self) -> list[str]:
        """
        List every namespace.

        Raises:
            TransientAPIError: If namespaces cannot be listed
        """
        namespaces = self.client.list_namespaces()
        logger.debug(f"Found {len(namespaces)} namespaces")
        return namespaces

    def list_controllers(self, namespace: str) -> list[ResourceSnapshot]:
        """
        List controllers of every supported kind in a namespace.

        Args:
            namespace: Kubernetes namespace

        Returns:
            Controller snapshots, grouped by kind

        Raises:
            TransientAPIError: If any kind cannot be listed
        """
        controllers: list[ResourceSnapshot] = []
        for kind in self.controller_kinds:
            controllers.extend(self.client.list_controllers(namespace, kind))
        logger.debug(f"Found {len(controllers)} controllers in {namespace}")
        return controllers

    def list_dependents(
        self,
        namespace: str,
        controller_labels: Mapping[str, str],
        target: str,
    ) -> Dependents:
        """
        Find the pods and services that follow a controller's label.

        Args:
            namespace: Kubernetes namespace
            controller_labels: Labels the controller carries
            target: Classification value being propagated

        Returns:
            Matched pods and services
        """
        selector = pod_selector(controller_labels, self.label_key)
        if not selector:
            logger.debug(
                f"Controller in {namespace} has no labels besides {self.label_key}, "
                "no pods can be matched"
            )
            return Dependents()

        pods = match_pods(self.client.list_pods(namespace, selector), selector)
        if not pods:
            return Dependents()

        # Services are matched against the labels the pods will carry
        pod_label_sets = [pod.with_label(self.label_key, target) for pod in pods]
        services = match_services(self.client.list_services(namespace), pod_label_sets)

        logger.debug(
            f"Matched {len(pods)} pods and {len(services)} services in {namespace}"
        )
        return Dependents(pods=pods, services=services)

    def list_by_category(
        self, category: str, namespace: Optional[str] = None
    ) -> dict[ResourceKind, list[ResourceSnapshot]]:
        """
        List controllers currently labeled with a category.

        Args:
            category: Classification value to look for
            namespace: Kubernetes namespace, None for all namespaces

        Returns:
            Controller snapshots by kind
        """
        selector = {self.label_key: category}
        return {
            kind: self.client.list_controllers_by_label(kind, selector, namespace)
            for kind in self.controller_kinds
        }
