"""Drift detection for the classification label."""

from collections.abc import Mapping
from typing import Optional


def needs_update(
    current: Mapping[str, str],
    key: str,
    target: str,
    unset_value: Optional[str] = None,
) -> bool:
    """
    Decide whether a label set must be rewritten.

    An absent key is "unset" and differs from every target, unless
    unset_value is given, in which case unset is read as that value.

    Args:
        current: Current labels of the resource
        key: Classification label key
        target: Value the label should carry
        unset_value: Value an absent key stands for, if any

    Returns:
        True if a write is required
    """
    if key not in current:
        return unset_value is None or unset_value != target
    return current[key] != target
