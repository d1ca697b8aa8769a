"""Label selector matching for the controller -> pod -> service walk."""

from collections.abc import Iterable, Mapping
from typing import Optional

from .models import ResourceSnapshot


def selector_matches(
    selector: Optional[Mapping[str, str]], labels: Mapping[str, str]
) -> bool:
    """
    Conjunctive equality match.

    Every key of the selector must be present in labels with the same
    value. An empty or missing selector matches nothing.
    """
    if not selector:
        return False
    return all(labels.get(k) == v for k, v in selector.items())


def format_selector(selector: Mapping[str, str]) -> str:
    """Render a selector in the API's label_selector syntax."""
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


def pod_selector(controller_labels: Mapping[str, str], key: str) -> dict[str, str]:
    """
    Selection key used to find a controller's pods.

    The classification label is not part of pod selection, so it is
    dropped from the controller's labels.
    """
    return {k: v for k, v in controller_labels.items() if k != key}


def match_pods(
    pods: Iterable[ResourceSnapshot], selector: Mapping[str, str]
) -> list[ResourceSnapshot]:
    """Keep pods whose labels match the selector."""
    return [pod for pod in pods if selector_matches(selector, pod.labels)]


def match_services(
    services: Iterable[ResourceSnapshot],
    pod_label_sets: list[Mapping[str, str]],
) -> list[ResourceSnapshot]:
    """Keep services whose selector matches at least one pod label set."""
    return [
        svc
        for svc in services
        if any(selector_matches(svc.selector, labels) for labels in pod_label_sets)
    ]
