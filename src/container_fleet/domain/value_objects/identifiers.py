"""Container fleet value objects."""

from typing import Iterable

SHORT_ID_LENGTH = 12


def short_id(container_id: str) -> str:
    """Truncate an engine id to its display form.

    Args:
        container_id: Full engine-assigned id.

    Returns:
        First 12 characters of the id.
    """
    return container_id[:SHORT_ID_LENGTH]


def parse_filter(raw: str) -> tuple[str, str]:
    """Split a ``key=value`` filter expression.

    Args:
        raw: Filter expression such as ``status=running``.

    Returns:
        (key, value) tuple.

    Raises:
        ValueError: If the expression has no ``=`` or an empty key.
    """
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise ValueError(f"Invalid filter {raw!r}, expected key=value")
    return key, value


def parse_filters(raws: Iterable[str]) -> dict[str, list[str]]:
    """Group filter expressions by key, keeping values in order."""
    filters: dict[str, list[str]] = {}
    for raw in raws:
        key, value = parse_filter(raw)
        filters.setdefault(key, []).append(value)
    return filters
