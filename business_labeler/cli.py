"""Command-line entry point for the business label reconciler."""

import argparse
import logging
import signal
import sys
from typing import Optional, TextIO

from pydantic import ValidationError

from . import __version__
from .classifier import load_category_table
from .client import ClusterLabelClient
from .cluster import ClusterConnection
from .config import Settings, get_settings
from .coordinator import RunCoordinator
from .enumerator import ResourceEnumerator
from .errors import APIRequestError, CategoryTableError, FatalEnumerationError
from .models import ReconciliationAction, ResourceKind, RunSummary
from .propagator import LabelPropagator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2

_SECTION_TITLES = {
    ResourceKind.DEPLOYMENT: "Deployments",
    ResourceKind.STATEFULSET: "StatefulSets",
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="business-labeler",
        description=(
            "Keep the business classification label of Deployments, StatefulSets, "
            "their pods and services in sync with the category table."
        ),
    )
    parser.add_argument(
        "--business",
        default="",
        help="only list controllers labeled with this category (read-only), e.g. devops",
    )
    parser.add_argument(
        "--namespace", default="", help="namespace to process (default: all)"
    )
    parser.add_argument("--categories", help="path to the category table YAML file")
    parser.add_argument("--label-key", help="classification label key")
    parser.add_argument("--workers", type=int, help="maximum concurrent reconciliations")
    parser.add_argument(
        "--timeout",
        type=float,
        help="seconds after which no new reconciliation is started",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="report the writes that would be made without making them",
    )
    parser.add_argument("--kubeconfig", help="path to kubeconfig file")
    parser.add_argument("--context", help="kubeconfig context to use")
    parser.add_argument("--output", choices=("text", "json"), default="text")
    parser.add_argument("--log-level", help="logging level (default: INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command-line flags applied."""
    overrides = {
        "category_table_path": args.categories,
        "label_key": args.label_key,
        "max_workers": args.workers,
        "run_timeout_seconds": args.timeout,
        "dry_run": args.dry_run,
        "kubeconfig_path": args.kubeconfig,
        "kube_context": args.context,
        "log_level": args.log_level,
    }
    return settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def print_listing(
    enumerator: ResourceEnumerator,
    category: str,
    namespace: Optional[str],
    out: TextIO,
) -> None:
    """Print controllers labeled with a category, grouped by kind."""
    listing = enumerator.list_by_category(category, namespace or None)
    for kind, snapshots in listing.items():
        print(f"=== {_SECTION_TITLES.get(kind, kind.value)} ===", file=out)
        for snapshot in snapshots:
            print(f"{snapshot.identity.namespace}/{snapshot.identity.name}", file=out)


def print_summary(summary: RunSummary, output: str, out: TextIO) -> None:
    """Print the run summary as text or JSON."""
    if output == "json":
        print(summary.model_dump_json(indent=2), file=out)
        return

    verb = "Planned" if summary.dry_run else "Updated"
    changes = [
        o
        for result in summary.results
        for o in result.outcomes()
        if o.action
        in (ReconciliationAction.UPDATED, ReconciliationAction.PLANNED)
    ]
    print(f"=== {verb} ===", file=out)
    for o in changes:
        print(f"{o.identity}: {o.previous_value or '<unset>'} -> {o.new_value}", file=out)

    if summary.has_failures:
        print("=== Failures ===", file=out)
        for o in summary.failures:
            print(f"{o.identity}: {o.error}", file=out)
        for result in summary.results:
            if result.dependents_error:
                print(f"{result.identity} dependents: {result.dependents_error}", file=out)
        for failure in summary.namespace_failures:
            print(f"namespace {failure.namespace}: {failure.error}", file=out)

    if summary.cancelled:
        print(f"=== Not started ({len(summary.not_started)}) ===", file=out)
        for identity in summary.not_started:
            print(str(identity), file=out)

    counts = summary.counts()
    print(
        f"{len(changes)} {verb.lower()}, "
        f"{counts[ReconciliationAction.SKIPPED_NO_DRIFT.value]} unchanged, "
        f"{len(summary.failures)} failed",
        file=out,
    )


def main(argv: Optional[list[str]] = None, out: Optional[TextIO] = None) -> int:
    """
    Run the reconciler.

    Returns:
        0 on completion (even with per-resource failures), 1 when enumeration
        failed, 2 on configuration errors
    """
    out = out or sys.stdout
    args = build_parser().parse_args(argv)
    try:
        settings = apply_overrides(get_settings(), args)
    except ValidationError as e:
        configure_logging(args.log_level or "INFO")
        logger.error(f"Invalid settings: {e}")
        return EXIT_CONFIG
    configure_logging(settings.log_level)

    table = None
    if not args.business:
        try:
            table = load_category_table(settings.category_table_path)
        except CategoryTableError as e:
            logger.error(str(e))
            return EXIT_CONFIG

    try:
        connection = ClusterConnection(settings.cluster_config())
    except ValueError as e:
        logger.error(str(e))
        return EXIT_CONFIG

    with connection:
        client = ClusterLabelClient(
            connection,
            request_timeout=settings.request_timeout_seconds,
            retry_attempts=settings.retry_attempts,
            backoff_min=settings.retry_backoff_min_seconds,
            backoff_max=settings.retry_backoff_max_seconds,
        )
        enumerator = ResourceEnumerator(
            client,
            label_key=settings.label_key,
            controller_kinds=settings.controller_kinds,
        )

        if args.business:
            try:
                print_listing(enumerator, args.business, args.namespace, out)
            except APIRequestError as e:
                logger.error(f"Failed to list controllers: {e}")
                return EXIT_FATAL
            return EXIT_OK

        propagator = LabelPropagator(
            client,
            enumerator,
            table,
            label_key=settings.label_key,
            conflict_retries=settings.conflict_retries,
            dry_run=settings.dry_run,
            unset_value=table.fallback if settings.treat_unset_as_fallback else None,
        )
        coordinator = RunCoordinator(
            enumerator,
            propagator,
            max_workers=settings.max_workers,
            run_timeout=settings.run_timeout_seconds,
        )

        previous_handlers = {
            sig: signal.signal(sig, lambda signum, frame: coordinator.cancel())
            for sig in (signal.SIGTERM, signal.SIGINT)
        }
        try:
            summary = coordinator.run(args.namespace or None)
        except FatalEnumerationError as e:
            logger.error(f"Aborting run: {e}")
            return EXIT_FATAL
        finally:
            for sig, handler in previous_handlers.items():
                signal.signal(sig, handler)

    print_summary(summary, args.output, out)
    return EXIT_OK
