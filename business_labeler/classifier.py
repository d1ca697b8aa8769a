"""Workload classification against the category table."""

import logging
from pathlib import Path
from typing import Union

import yaml
from pydantic import ValidationError

from .errors import CategoryTableError
from .models import CategoryTable

logger = logging.getLogger(__name__)


def classify(name: str, table: CategoryTable) -> str:
    """
    Return the category for a workload name.

    Args:
        name: Workload (controller) name
        table: Category membership table

    Returns:
        Name of the first category whose members contain name, in table
        order, or the table's fallback category
    """
    for entry in table.categories:
        if name in entry.members:
            return entry.name
    return table.fallback


def find_ambiguities(table: CategoryTable) -> dict[str, list[str]]:
    """
    Find workload names listed in more than one category.

    Args:
        table: Category membership table

    Returns:
        Mapping of name to the categories containing it, in table order
    """
    seen: dict[str, list[str]] = {}
    for entry in table.categories:
        for member in entry.members:
            seen.setdefault(member, []).append(entry.name)
    return {name: cats for name, cats in sorted(seen.items()) if len(cats) > 1}


def load_category_table(path: Union[str, Path]) -> CategoryTable:
    """
    Load a category table from a YAML file.

    Two layouts are accepted, both order-preserving:

        fallback: other
        categories:
          chief: [svc-a, svc-c]
          quote: [svc-b]

    or a list of ``{name: ..., members: [...]}`` entries under ``categories``.

    Args:
        path: Path to the YAML file

    Returns:
        Validated CategoryTable

    Raises:
        CategoryTableError: If the file is unreadable or invalid
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise CategoryTableError(f"Failed to read category table {path}: {e}") from e

    if not isinstance(data, dict):
        raise CategoryTableError(f"Category table {path} must be a mapping")

    try:
        table = CategoryTable.model_validate(data)
    except ValidationError as e:
        raise CategoryTableError(f"Invalid category table {path}: {e}") from e

    logger.info(
        f"Loaded {len(table.categories)} categories from {path} "
        f"(fallback: {table.fallback})"
    )
    return table
