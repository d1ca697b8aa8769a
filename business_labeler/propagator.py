"""Label propagation from a controller to its pods and services."""

import logging
from typing import Optional

from .classifier import classify
from .client import ClusterLabelClient
from .drift import needs_update
from .enumerator import ResourceEnumerator
from .errors import APIRequestError, ConflictError
from .models import (
    CategoryTable,
    ReconciliationAction,
    ReconciliationResult,
    ResourceOutcome,
    ResourceSnapshot,
)

logger = logging.getLogger(__name__)


class LabelPropagator:
    """
    Reconciles the classification label of one controller and its dependents.

    The controller is written first. Pods and services are only looked up
    after that write succeeded, and only when the controller was out of date
    or reached target during a write conflict.
    """

    def __init__(
        self,
        client: ClusterLabelClient,
        enumerator: ResourceEnumerator,
        table: CategoryTable,
        label_key: str = "business",
        conflict_retries: int = 3,
        dry_run: bool = False,
        unset_value: Optional[str] = None,
    ):
        """
        Initialize label propagator.

        Args:
            client: Cluster label client used for writes
            enumerator: Resource enumerator used to find dependents
            table: Category membership table
            label_key: Classification label key
            conflict_retries: Re-read and retry cycles on write conflicts
            dry_run: Compute and report writes without issuing them
            unset_value: Value an absent label stands for (None: absent is drift)
        """
        self.client = client
        self.enumerator = enumerator
        self.table = table
        self.label_key = label_key
        self.conflict_retries = conflict_retries
        self.dry_run = dry_run
        self.unset_value = unset_value

    def propagate(self, controller: ResourceSnapshot) -> ReconciliationResult:
        """
        Reconcile a controller and, if it changed, its pods and services.

        Args:
            controller: Controller snapshot from enumeration

        Returns:
            ReconciliationResult with controller and dependent outcomes
        """
        target = classify(controller.identity.name, self.table)
        outcome, current, contended = self._converge(controller, target)

        result = ReconciliationResult(
            identity=outcome.identity,
            previous_value=outcome.previous_value,
            new_value=outcome.new_value,
            action=outcome.action,
            error=outcome.error,
        )
        # A conflict that resolves to target may be our own write whose
        # response was lost, so the dependents still need a pass.
        converged_under_conflict = (
            contended and outcome.action == ReconciliationAction.SKIPPED_NO_DRIFT
        )
        if not converged_under_conflict and outcome.action not in (
            ReconciliationAction.UPDATED,
            ReconciliationAction.PLANNED,
        ):
            return result

        identity = controller.identity
        try:
            dependents = self.enumerator.list_dependents(
                identity.namespace, current.labels, target
            )
        except APIRequestError as e:
            logger.warning(f"Could not list dependents of {identity}: {e}")
            result.dependents_error = str(e)
            return result

        # Pods before services: service matching assumes the pods carry target
        result.pods = [self._converge(pod, target)[0] for pod in dependents.pods]
        result.services = [
            self._converge(svc, target)[0] for svc in dependents.services
        ]

        logger.info(
            f"Reconciled {identity} to {self.label_key}={target}: "
            f"{len(result.pods)} pods, {len(result.services)} services"
        )
        return result

    def _converge(
        self, snapshot: ResourceSnapshot, target: str
    ) -> tuple[ResourceOutcome, ResourceSnapshot, bool]:
        """
        Bring one resource's label to target.

        On a write conflict the resource is re-read and drift is decided
        again before the next attempt.

        Returns:
            The outcome, the latest known snapshot of the resource, and
            whether any write attempt hit a conflict
        """
        identity = snapshot.identity
        current = snapshot
        conflicts = 0

        while True:
            contended = conflicts > 0
            previous = current.labels.get(self.label_key)

            if not needs_update(current.labels, self.label_key, target, self.unset_value):
                logger.debug(f"{identity} already has {self.label_key}={target}")
                skipped = ReconciliationAction.SKIPPED_NO_DRIFT
                return self._outcome(current, target, skipped), current, contended

            if self.dry_run:
                logger.info(
                    f"[dry-run] Would update {identity}: "
                    f"{self.label_key}={previous} -> {target}"
                )
                planned = ReconciliationAction.PLANNED
                return self._outcome(current, target, planned), current, contended

            try:
                updated = self.client.update_labels(
                    identity,
                    current.with_label(self.label_key, target),
                    current.resource_version,
                )
            except ConflictError as e:
                conflicts += 1
                if conflicts > self.conflict_retries:
                    logger.warning(f"Giving up on {identity} after {conflicts} conflicts: {e}")
                    return self._failed(current, target, e), current, True
                logger.info(f"Conflict updating {identity}, re-reading")
                try:
                    current = self.client.get_resource(identity)
                except APIRequestError as read_error:
                    logger.warning(f"Failed to re-read {identity}: {read_error}")
                    return self._failed(current, target, read_error), current, True
                continue
            except APIRequestError as e:
                logger.warning(f"Failed to update {identity}: {e}")
                return self._failed(current, target, e), current, contended

            logger.info(f"Updated {identity}: {self.label_key}={previous} -> {target}")
            updated_action = ReconciliationAction.UPDATED
            return self._outcome(current, target, updated_action), updated, contended

    def _outcome(
        self,
        snapshot: ResourceSnapshot,
        target: str,
        action: ReconciliationAction,
        error: Optional[str] = None,
    ) -> ResourceOutcome:
        return ResourceOutcome(
            identity=snapshot.identity,
            previous_value=snapshot.labels.get(self.label_key),
            new_value=target,
            action=action,
            error=error,
        )

    def _failed(
        self, snapshot: ResourceSnapshot, target: str, error: Exception
    ) -> ResourceOutcome:
        return self._outcome(
            snapshot, target, ReconciliationAction.UPDATE_FAILED, str(error)
        )
