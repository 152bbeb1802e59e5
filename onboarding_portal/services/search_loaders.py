"""
Search loaders for SelectionField.

Factory functions that turn backend fetches into ``on_search`` callables and
static option lists. Rows are dropdown DTOs ``{id, key, value}`` unless other
keys are given.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from onboarding_portal.components.selection_state import Option

logger = logging.getLogger(__name__)


def row_to_option(row: Dict[str, Any], label_key: str = "key", secondary_key: Optional[str] = "value") -> Option:
    return Option.from_payload(
        {
            "id": row["id"],
            "label": row.get(label_key),
            "secondary_label": row.get(secondary_key) if secondary_key else None,
        }
    )


def static_options(
    rows: Iterable[Dict[str, Any]],
    label_key: str = "key",
    secondary_key: Optional[str] = "value",
) -> List[Option]:
    """Convert a fetched list for static mode, skipping rows without an id."""
    options = []
    for row in rows or []:
        try:
            options.append(row_to_option(row, label_key, secondary_key))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed dropdown row: %r", row)
    return options


def create_search_loader(
    fetch_method: Callable[[str], Awaitable[Iterable[Dict[str, Any]]]],
    label_key: str = "key",
    secondary_key: Optional[str] = "value",
    strip_query: bool = True,
) -> Callable[[str], Awaitable[List[Option]]]:
    """
    Create an async ``on_search`` loader.

    Args:
        fetch_method: Async callable receiving the query, e.g. LookupClient.search_group_leads
        label_key: Row field used as the option label
        secondary_key: Row field used as the secondary label (None to skip)
        strip_query: Trim surrounding whitespace before calling the backend

    Returns:
        Async loader compatible with SelectionField's on_search
    """
    async def loader(query: str) -> List[Option]:
        term = query.strip() if strip_query else query
        try:
            rows = await fetch_method(term)
        except Exception as e:
            logger.error(f"Error searching {getattr(fetch_method, '__name__', 'loader')}: {e}")
            return []
        return static_options(rows, label_key, secondary_key)

    return loader
