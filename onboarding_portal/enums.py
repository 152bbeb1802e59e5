"""
Centralized enums for the selection control.
Single source of truth for modes and search states.
"""

from enum import Enum


class SelectionMode(str, Enum):
    """How many options the field can hold."""
    SINGLE = "SINGLE"
    MULTI = "MULTI"


class SearchStatus(str, Enum):
    """Lifecycle of a remote search."""
    IDLE = "IDLE"
    DEBOUNCING = "DEBOUNCING"
    SEARCHING = "SEARCHING"
    DONE = "DONE"


# Statuses where a request is pending and results may still change
SEARCH_STATUSES_PENDING = (SearchStatus.DEBOUNCING, SearchStatus.SEARCHING)
