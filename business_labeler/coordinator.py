"""Run coordination across namespaces and controllers."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from .classifier import classify, find_ambiguities
from .enumerator import ResourceEnumerator
from .errors import APIRequestError, FatalEnumerationError
from .models import (
    NamespaceFailure,
    ReconciliationAction,
    ReconciliationResult,
    ResourceSnapshot,
    RunSummary,
)
from .propagator import LabelPropagator

logger = logging.getLogger(__name__)


class RunCoordinator:
    """
    Drives one reconciliation pass over the cluster.

    Responsibilities:
    - Enumerate namespaces and controllers
    - Reconcile controllers on a bounded worker pool
    - Isolate failures per namespace and per controller
    - Stop starting new work once cancelled
    """

    def __init__(
        self,
        enumerator: ResourceEnumerator,
        propagator: LabelPropagator,
        max_workers: int = 8,
        run_timeout: Optional[float] = None,
    ):
        """
        Initialize run coordinator.

        Args:
            enumerator: Resource enumerator
            propagator: Label propagator invoked once per controller
            max_workers: Maximum concurrent reconciliations
            run_timeout: Seconds after which no new reconciliation starts
        """
        self.enumerator = enumerator
        self.propagator = propagator
        self.max_workers = max_workers
        self.run_timeout = run_timeout
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Stop starting new reconciliations; in-flight ones finish.

        Applies to the current run, or to the next one if none is in
        progress. Each run clears the request when it ends.
        """
        if not self._cancelled.is_set():
            logger.info("Cancellation requested, finishing in-flight reconciliations")
        self._cancelled.set()

    def run(self, namespace: Optional[str] = None) -> RunSummary:
        """
        Reconcile every controller in the cluster, or in one namespace.

        Args:
            namespace: Restrict the run to this namespace (None or "" for all)

        Returns:
            RunSummary of every outcome and failure

        Raises:
            FatalEnumerationError: If namespaces, or the controllers of every
                namespace, cannot be listed
        """
        summary = RunSummary(
            started_at=datetime.now(timezone.utc), dry_run=self.propagator.dry_run
        )

        summary.ambiguities = find_ambiguities(self.propagator.table)
        for name, categories in summary.ambiguities.items():
            logger.warning(
                f"Workload name {name!r} is listed in several categories "
                f"{categories}; using {categories[0]!r}"
            )

        timer: Optional[threading.Timer] = None
        if self.run_timeout:
            timer = threading.Timer(self.run_timeout, self.cancel)
            timer.daemon = True
            timer.start()

        try:
            namespaces = self._namespaces(namespace)
            logger.info(f"Reconciling {len(namespaces)} namespace(s)")

            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                controllers = self._list_controllers(pool, namespaces, summary)
                futures = [
                    (controller, pool.submit(self._reconcile, controller))
                    for controller in controllers
                ]
                for controller, future in futures:
                    result = self._collect(controller, future)
                    if result is None:
                        summary.not_started.append(controller.identity)
                    else:
                        summary.results.append(result)
        finally:
            if timer:
                timer.cancel()
            summary.cancelled = self.cancelled
            self._cancelled.clear()

        summary.finished_at = datetime.now(timezone.utc)
        counts = summary.counts()
        logger.info(
            f"Run finished: {counts[ReconciliationAction.UPDATED.value]} updated, "
            f"{counts[ReconciliationAction.SKIPPED_NO_DRIFT.value]} skipped, "
            f"{counts[ReconciliationAction.UPDATE_FAILED.value]} failed, "
            f"{len(summary.namespace_failures)} namespace failures"
            + (f", {len(summary.not_started)} not started" if summary.cancelled else "")
        )
        return summary

    def _namespaces(self, namespace: Optional[str]) -> list[str]:
        if namespace:
            return [namespace]
        try:
            return self.enumerator.list_namespaces()
        except APIRequestError as e:
            logger.error(f"Failed to list namespaces: {e}")
            raise FatalEnumerationError(f"Failed to list namespaces: {e}") from e

    def _list_controllers(
        self,
        pool: ThreadPoolExecutor,
        namespaces: list[str],
        summary: RunSummary,
    ) -> list[ResourceSnapshot]:
        """List controllers per namespace, recording namespaces that fail."""
        listings = [
            (ns, pool.submit(self.enumerator.list_controllers, ns)) for ns in namespaces
        ]

        controllers: list[ResourceSnapshot] = []
        for ns, future in listings:
            try:
                controllers.extend(future.result())
            except APIRequestError as e:
                logger.warning(f"Skipping namespace {ns}: {e}")
                summary.namespace_failures.append(
                    NamespaceFailure(namespace=ns, error=str(e))
                )

        if namespaces and len(summary.namespace_failures) == len(namespaces):
            raise FatalEnumerationError(
                f"Failed to list controllers in all {len(namespaces)} namespace(s)"
            )
        return controllers

    def _reconcile(self, controller: ResourceSnapshot) -> Optional[ReconciliationResult]:
        """Worker body; returns None when cancelled before starting."""
        if self.cancelled:
            return None
        return self.propagator.propagate(controller)

    def _collect(
        self, controller: ResourceSnapshot, future: Future
    ) -> Optional[ReconciliationResult]:
        try:
            return future.result()
        except Exception as e:
            logger.error(f"Error reconciling {controller.identity}: {e}", exc_info=True)
            return ReconciliationResult(
                identity=controller.identity,
                previous_value=controller.labels.get(self.propagator.label_key),
                new_value=classify(controller.identity.name, self.propagator.table),
                action=ReconciliationAction.UPDATE_FAILED,
                error=str(e),
            )
