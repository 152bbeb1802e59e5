"""
SelectionController - state and rules of the selection field, without Flet.

The Flet control in ``selection_field`` renders this object; everything that
can be decided without a page (filtering, debounce, stale-result discard,
selection bookkeeping, keyboard navigation) lives here so it can be tested on
a plain asyncio loop.

Features:
- Single or multi selection over a caller-owned value
- Static option list filtered locally, or remote search through ``on_search``
- Debounced remote queries; only the latest request may update the results
- Cache of chosen options so labels survive cleared search results
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from onboarding_portal.enums import SEARCH_STATUSES_PENDING, SearchStatus, SelectionMode

logger = logging.getLogger(__name__)

SelectionValue = Union[int, List[int], None]
SearchFn = Callable[[str], Awaitable[Sequence[Any]]]
RunTask = Callable[..., Any]

KEY_DOWN = "down"
KEY_UP = "up"
KEY_ENTER = "enter"
KEY_ESCAPE = "escape"

_KEY_ALIASES = {
    "arrow down": KEY_DOWN,
    "arrowdown": KEY_DOWN,
    "down": KEY_DOWN,
    "arrow up": KEY_UP,
    "arrowup": KEY_UP,
    "up": KEY_UP,
    "enter": KEY_ENTER,
    "numpad enter": KEY_ENTER,
    "escape": KEY_ESCAPE,
    "esc": KEY_ESCAPE,
}


@dataclass(frozen=True)
class Option:
    id: int
    label: str
    secondary_label: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Option":
        """Build an option from an Option, a dropdown DTO ``{id, key, value}`` or ``{id, label}``."""
        if isinstance(payload, Option):
            return payload
        if not isinstance(payload, dict):
            raise TypeError(f"Unsupported option payload: {payload!r}")
        label = payload.get("label", payload.get("key"))
        secondary = payload.get("secondary_label", payload.get("value"))
        if label is None or label == "":
            label = secondary if secondary is not None else payload["id"]
            secondary = None
        secondary = str(secondary) if secondary not in (None, "") else None
        return cls(id=int(payload["id"]), label=str(label), secondary_label=secondary)

    def matches(self, needle: str) -> bool:
        if needle in self.label.lower():
            return True
        return bool(self.secondary_label) and needle in self.secondary_label.lower()

    @property
    def short_text(self) -> str:
        """Compact form used by chips and the closed field: the secondary value when present."""
        return self.secondary_label or self.label

    def display_text(self, full: bool = True) -> str:
        if not full:
            return self.short_text
        if self.secondary_label and self.secondary_label != self.label:
            return f"{self.label} ({self.secondary_label})"
        return self.label


def filter_options(options: Iterable[Option], query: str) -> List[Option]:
    """Case-insensitive substring match against label and secondary label."""
    needle = (query or "").lower()
    if not needle:
        return list(options)
    return [opt for opt in options if opt.matches(needle)]


def normalize_key(key: Any) -> str:
    raw = str(key or "").strip().lower().replace("_", " ").replace("-", " ")
    return _KEY_ALIASES.get(raw, raw)


def _default_run_task(handler: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
    loop = asyncio.get_running_loop()
    return loop.create_task(handler(*args))


class SelectionController:
    def __init__(
        self,
        value: SelectionValue = None,
        on_change: Optional[Callable[[SelectionValue], None]] = None,
        *,
        mode: SelectionMode = SelectionMode.SINGLE,
        options: Optional[Iterable[Any]] = None,
        on_search: Optional[SearchFn] = None,
        min_query_length: int = 0,
        debounce_ms: int = 400,
        max_local_results: int = 4,
        allow_clear: bool = True,
        required: bool = False,
        disabled: bool = False,
        select_all: bool = False,
        initial_option: Union[Option, Sequence[Option], None] = None,
        run_task: Optional[RunTask] = None,
        on_update: Optional[Callable[[], None]] = None,
    ):
        if min_query_length < 0:
            raise ValueError("min_query_length must be >= 0")
        if max_local_results < 1:
            raise ValueError("max_local_results must be >= 1")

        self.mode = SelectionMode(mode)
        self.on_change = on_change
        self.on_search = on_search
        self.min_query_length = int(min_query_length)
        self.debounce_ms = max(0, int(debounce_ms))
        self.max_local_results = int(max_local_results)
        self.allow_clear = bool(allow_clear)
        self.required = bool(required)
        self.select_all_enabled = bool(select_all) and self.mode is SelectionMode.MULTI
        self.disabled = bool(disabled)
        self.on_update = on_update
        self._run_task = run_task or _default_run_task

        self._value: SelectionValue = self._coerce_value(value)
        self._options: List[Option] = [Option.from_payload(opt) for opt in (options or [])]

        # Ephemeral UI state
        self.is_open = False
        self.highlighted_index = -1
        self._query = ""
        self._status = SearchStatus.IDLE
        self._results: List[Option] = []
        self._has_searched = False
        self._search_token = 0
        self._debounce_task: Any = None
        self._cache: Dict[int, Option] = {}
        self._emitting = False

        self._seed_cache(initial_option)

    # ------------------------------------------------------------------ props

    @property
    def is_remote(self) -> bool:
        return self.on_search is not None

    @property
    def is_multi(self) -> bool:
        return self.mode is SelectionMode.MULTI

    @property
    def value(self) -> SelectionValue:
        return self._value

    @value.setter
    def value(self, v: SelectionValue) -> None:
        """Bound value pushed by the owner. An unset value drops cache and search state."""
        self._value = self._coerce_value(v)
        if not self.selected_ids:
            self._cache.clear()
            if not self._emitting:
                self._reset_search()
        elif self.is_multi:
            keep = set(self.selected_ids)
            for cached_id in [cid for cid in self._cache if cid not in keep]:
                del self._cache[cached_id]
        self._notify()

    @property
    def selected_ids(self) -> List[int]:
        if self._value is None:
            return []
        if isinstance(self._value, list):
            return list(self._value)
        return [self._value]

    @property
    def has_value(self) -> bool:
        return bool(self.selected_ids)

    @property
    def options(self) -> List[Option]:
        return list(self._options)

    def set_options(self, options: Iterable[Any]) -> None:
        self._options = [Option.from_payload(opt) for opt in (options or [])]
        self.highlighted_index = -1
        self._notify()

    @property
    def query(self) -> str:
        return self._query

    @property
    def status(self) -> SearchStatus:
        return self._status

    @property
    def results(self) -> List[Option]:
        return list(self._results)

    @property
    def cache(self) -> Dict[int, Option]:
        return dict(self._cache)

    @property
    def is_searching(self) -> bool:
        return self._status in SEARCH_STATUSES_PENDING

    @property
    def missing_query_chars(self) -> int:
        if not self.is_remote:
            return 0
        return max(0, self.min_query_length - len(self._query))

    @property
    def matching_options(self) -> List[Option]:
        """All local matches before the display cap (static mode)."""
        if self.is_remote:
            return list(self._results)
        return filter_options(self._options, self._query)

    @property
    def visible_options(self) -> List[Option]:
        if self.is_remote:
            return list(self._results)
        return self.matching_options[: self.max_local_results]

    @property
    def has_more_local(self) -> bool:
        return not self.is_remote and len(self.matching_options) > self.max_local_results

    @property
    def clear_available(self) -> bool:
        return self.allow_clear and not self.required and not self.disabled and self.has_value

    @property
    def select_all_available(self) -> bool:
        return self.select_all_enabled and not self.disabled and bool(self.visible_options)

    @property
    def all_visible_selected(self) -> bool:
        visible = self.visible_options
        chosen = set(self.selected_ids)
        return bool(visible) and all(opt.id in chosen for opt in visible)

    def is_selected(self, option: Option) -> bool:
        return option.id in self.selected_ids

    def resolve_option(self, option_id: int) -> Optional[Option]:
        """Look an id up in the static options, then the live results, then the cache."""
        for tier in (self._options, self._results):
            for opt in tier:
                if opt.id == option_id:
                    return opt
        return self._cache.get(option_id)

    @property
    def selected_options(self) -> List[Option]:
        resolved = []
        for option_id in self.selected_ids:
            opt = self.resolve_option(option_id)
            resolved.append(opt if opt is not None else Option(id=option_id, label=str(option_id)))
        return resolved

    def summary(self, placeholder: str = "", full: bool = True) -> str:
        """Closed-state text for the trigger."""
        selected = self.selected_options
        if not selected:
            return placeholder
        if not self.is_multi:
            return selected[0].display_text(full)
        extra = len(selected) - 1
        return selected[0].short_text + (f" +{extra}" if extra else "")

    def empty_message(self) -> Optional[str]:
        if self.visible_options:
            return None
        if self.is_remote:
            missing = self.missing_query_chars
            if missing:
                plural = "character" if missing == 1 else "characters"
                return f"Type {missing} more {plural} to search"
            if self.is_searching:
                return "Searching..."
            if self._status is SearchStatus.DONE:
                return "No matches found"
            return "Type to search"
        if self._query:
            return "No matches found"
        return "No options available"

    # ------------------------------------------------------------- operations

    def activate(self) -> bool:
        if self.disabled or self.is_open:
            return False
        self.is_open = True
        self.highlighted_index = -1
        if self.is_remote:
            selected = self.selected_options
            if selected and not self._has_searched and not self._query:
                # Seeded for "search to change"; the user's next edit fires the query.
                self._query = selected[0].label
        else:
            self._query = ""
        self._notify()
        return True

    def deactivate(self) -> bool:
        if not self.is_open:
            return False
        self.is_open = False
        self.highlighted_index = -1
        self._reset_search()
        self._notify()
        return True

    def set_query(self, text: str) -> None:
        if self.disabled or not self.is_open:
            return
        self._query = text or ""
        self.highlighted_index = -1
        if not self.is_remote:
            self._notify()
            return

        self._cancel_debounce()
        self._search_token += 1
        if len(self._query) < self.min_query_length:
            self._results = []
            self._status = SearchStatus.IDLE
            self._has_searched = False
            self._notify()
            return

        self._status = SearchStatus.DEBOUNCING
        self._debounce_task = self._run_task(self._debounced_search, self._query, self._search_token)
        self._notify()

    def select(self, option: Any) -> None:
        if self.disabled:
            return
        option = Option.from_payload(option)
        if not self.is_multi:
            self._cache = {option.id: option}
            self._emit(option.id)
            self.deactivate()
            return

        current = self.selected_ids
        if option.id in current:
            current.remove(option.id)
            self._cache.pop(option.id, None)
        else:
            current.append(option.id)
            self._cache[option.id] = option
        self._emit(current)
        self._notify()

    def remove(self, option_id: int) -> None:
        if self.disabled or option_id not in self.selected_ids:
            return
        if not self.is_multi:
            self._cache.pop(option_id, None)
            self._emit(None)
            self.deactivate()
            return
        remaining = [oid for oid in self.selected_ids if oid != option_id]
        self._cache.pop(option_id, None)
        self._emit(remaining)
        self._notify()

    def clear(self) -> bool:
        if not self.clear_available:
            return False
        self._cache.clear()
        self._emit([] if self.is_multi else None)
        if not self.deactivate():
            self._notify()
        return True

    def toggle_all(self) -> None:
        if not self.select_all_available:
            return
        visible = self.visible_options
        current = self.selected_ids
        if self.all_visible_selected:
            visible_ids = {opt.id for opt in visible}
            current = [oid for oid in current if oid not in visible_ids]
            for oid in visible_ids:
                self._cache.pop(oid, None)
        else:
            for opt in visible:
                if opt.id not in current:
                    current.append(opt.id)
                self._cache[opt.id] = opt
        self._emit(current)
        self._notify()

    def hover(self, index: int) -> None:
        if 0 <= index < len(self.visible_options) and index != self.highlighted_index:
            self.highlighted_index = index
            self._notify()

    def move_highlight(self, step: int) -> bool:
        count = len(self.visible_options)
        if not count:
            return False
        if step > 0:
            self.highlighted_index = self.highlighted_index + 1 if self.highlighted_index < count - 1 else 0
        else:
            self.highlighted_index = self.highlighted_index - 1 if self.highlighted_index > 0 else count - 1
        self._notify()
        return True

    def commit_highlighted(self) -> bool:
        visible = self.visible_options
        if not (0 <= self.highlighted_index < len(visible)):
            return False
        self.select(visible[self.highlighted_index])
        return True

    def handle_key(self, key: Any) -> bool:
        """Apply the keyboard contract. Returns True when the key was consumed."""
        if self.disabled or not self.is_open:
            return False
        name = normalize_key(key)
        if name == KEY_DOWN:
            return self.move_highlight(1)
        if name == KEY_UP:
            return self.move_highlight(-1)
        if name == KEY_ENTER:
            return self.commit_highlighted()
        if name == KEY_ESCAPE:
            return self.deactivate()
        return False

    # ---------------------------------------------------------------- search

    async def _debounced_search(self, query: str, token: int) -> None:
        try:
            if self.debounce_ms:
                await asyncio.sleep(self.debounce_ms / 1000)
        except asyncio.CancelledError:
            return
        if token != self._search_token:
            return
        # Past this point the request is in flight and only the token can void it.
        self._debounce_task = None
        self._status = SearchStatus.SEARCHING
        self._has_searched = True
        self._notify()

        found: List[Option] = []
        try:
            raw = self.on_search(query)
            if inspect.isawaitable(raw):
                raw = await raw
            found = [Option.from_payload(item) for item in (raw or [])]
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Remote search failed for query %r", query)
            found = []

        if token != self._search_token:
            logger.debug("Discarding stale results for %r", query)
            return
        self._results = found
        self._status = SearchStatus.DONE
        self.highlighted_index = -1
        self._notify()

    def _cancel_debounce(self) -> None:
        task = self._debounce_task
        self._debounce_task = None
        if task is None:
            return
        cancel_fn = getattr(task, "cancel", None)
        if callable(cancel_fn):
            cancel_fn()

    def _reset_search(self) -> None:
        self._cancel_debounce()
        self._search_token += 1
        self._query = ""
        self._results = []
        self._status = SearchStatus.IDLE
        self._has_searched = False

    # --------------------------------------------------------------- helpers

    def _coerce_value(self, value: Any) -> SelectionValue:
        if self.mode is SelectionMode.MULTI:
            if value is None:
                return []
            if isinstance(value, (list, tuple)):
                return [int(v) for v in value]
            return [int(value)]
        if isinstance(value, (list, tuple)):
            return int(value[0]) if value else None
        return None if value is None else int(value)

    def _seed_cache(self, initial: Union[Option, Sequence[Option], None]) -> None:
        if initial is None:
            return
        hints = [initial] if isinstance(initial, (Option, dict)) else list(initial)
        bound = set(self.selected_ids)
        for hint in hints:
            opt = Option.from_payload(hint)
            if opt.id in bound:
                self._cache[opt.id] = opt

    def _emit(self, new_value: SelectionValue) -> None:
        if self.on_change is None:
            return
        # The owner usually writes the value back from inside this call.
        self._emitting = True
        try:
            self.on_change(list(new_value) if isinstance(new_value, list) else new_value)
        finally:
            self._emitting = False

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update()
