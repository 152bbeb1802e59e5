"""
SelectionField - searchable single/multi select for Flet.

Features:
- Static option list filtered locally, or remote search with debounce
- Multi-select with removable chips and a select-all action
- Page-wide keyboard navigation while the panel is open
- Clear action unless the field is required

The field is controlled: ``on_change`` proposes a new value and the owner
writes it back through ``field.value``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

import flet as ft

from onboarding_portal.components.selection_state import (
    KEY_DOWN,
    KEY_ESCAPE,
    KEY_UP,
    Option,
    SearchFn,
    SelectionController,
    SelectionValue,
    normalize_key,
)
from onboarding_portal.enums import SelectionMode

logger = logging.getLogger(__name__)

COLOR_TEXT = "#1E293B"
COLOR_TEXT_MUTED = "#64748B"
COLOR_PLACEHOLDER = "#94A3B8"
COLOR_ACTIVE = "#DBEAFE"
COLOR_SELECTED = "#EEF2FF"
COLOR_CHIP = "#E2E8F0"


class SelectionField(ft.Column):
    _default_page: Optional[ft.Page] = None

    @classmethod
    def set_default_page(cls, page: ft.Page) -> None:
        cls._default_page = page

    def __init__(
        self,
        value: SelectionValue = None,
        on_change: Optional[Callable[[SelectionValue], None]] = None,
        *,
        options: Optional[Iterable[Any]] = None,
        on_search: Optional[SearchFn] = None,
        multi: bool = False,
        placeholder: str = "Select an option...",
        label: Optional[str] = None,
        show_label: bool = False,
        min_query_length: int = 0,
        debounce_ms: int = 400,
        max_display_items: int = 4,
        allow_clear: bool = True,
        required: bool = False,
        disabled: bool = False,
        select_all: bool = False,
        initial_option: Union[Option, Sequence[Option], None] = None,
        display_full_value: bool = True,
        hide_secondary: bool = False,
        item_noun: str = "options",
        width: Optional[int] = None,
        expand: bool = False,
        page_ref: Optional[Any] = None,
        bgcolor: str = "#F1F5F9",
        border_color: str = "#475569",  # Slate 600
        focused_border_color: str = "#6366F1",  # Indigo 500
        border_radius: int = 12,
        keyboard_accessible: bool = False,
    ):
        # ft.Column.__init__ runs the disabled setter before the body below.
        self._controller: Optional[SelectionController] = None
        self._disabled = bool(disabled)

        super().__init__(spacing=2, expand=expand, width=width, disabled=disabled)
        self._on_change_callback = on_change
        self.placeholder = placeholder
        self.label = label
        self.show_label = show_label
        self.display_full_value = display_full_value
        self.hide_secondary = hide_secondary
        self.item_noun = item_noun
        self.bgcolor = bgcolor
        self.border_color = border_color
        self.focused_border_color = focused_border_color
        self.border_radius = border_radius
        self.keyboard_accessible = bool(keyboard_accessible)
        self._page_ref = page_ref

        self._controller = SelectionController(
            value,
            self._handle_change,
            mode=SelectionMode.MULTI if multi else SelectionMode.SINGLE,
            options=options,
            on_search=on_search,
            min_query_length=min_query_length,
            debounce_ms=debounce_ms,
            max_local_results=max_display_items,
            allow_clear=allow_clear,
            required=required,
            disabled=disabled,
            select_all=select_all,
            initial_option=initial_option,
            run_task=self._run_task,
            on_update=self._render,
        )

        self._previous_keyboard_handler: Optional[Callable[[Any], None]] = None
        self._keyboard_handler_page: Optional[ft.Page] = None

        # Controls placeholders
        self._trigger: Optional[ft.Control] = None
        self._trigger_label: Optional[ft.Text] = None
        self._trigger_chips: Optional[ft.Row] = None
        self._clear_button: Optional[ft.IconButton] = None
        self._search_field: Optional[ft.TextField] = None
        self._search_hint: Optional[ft.Text] = None
        self._chips_row: Optional[ft.Row] = None
        self._select_all_row: Optional[ft.Container] = None
        self._clear_row: Optional[ft.Container] = None
        self._options_list: Optional[ft.ListView] = None
        self._loading_indicator: Optional[ft.Control] = None
        self._empty_text: Optional[ft.Text] = None
        self._footer_text: Optional[ft.Text] = None
        self._dialog: Optional[ft.Container] = None

        self._trigger = self._build_trigger()
        if self.label and self.show_label:
            self.controls.append(ft.Text(self.label, size=13, color=COLOR_TEXT, weight=ft.FontWeight.BOLD))
        self.controls.append(self._trigger)
        self._refresh_trigger()

    # ------------------------------------------------------------ properties

    @property
    def controller(self) -> SelectionController:
        return self._controller

    @property
    def on_change(self):
        return self._on_change_callback

    @on_change.setter
    def on_change(self, v):
        self._on_change_callback = v

    @property
    def value(self) -> SelectionValue:
        return self._controller.value if self._controller else None

    @value.setter
    def value(self, v: SelectionValue) -> None:
        self._controller.value = v

    @property
    def disabled(self):
        return self._disabled if hasattr(self, "_disabled") else False

    @disabled.setter
    def disabled(self, v):
        self._disabled = bool(v)
        controller = getattr(self, "_controller", None)
        if controller is None:
            return
        controller.disabled = self._disabled
        if self._disabled and controller.is_open:
            controller.deactivate()
        else:
            self._render()

    @property
    def is_open(self) -> bool:
        return self._controller.is_open

    def set_options(self, options: Iterable[Any]) -> None:
        self._controller.set_options(options)

    def update(self):
        try:
            return super().update()
        except AssertionError:
            return None

    # --------------------------------------------------------------- helpers

    def _safe_set(self, obj: Any, name: str, value: Any) -> None:
        if obj is None or not hasattr(obj, name):
            return
        try:
            setattr(obj, name, value)
        except Exception:
            logger.debug("SelectionField could not set %s", name, exc_info=True)

    def _safe_update(self, control: Optional[ft.Control], context: str) -> None:
        if not control:
            return
        try:
            control.update()
        except AssertionError as exc:
            logger.debug("SelectionField update skipped (%s): %s", context, exc)
        except Exception:
            logger.exception("SelectionField update failed (%s)", context)

    def _get_page(self):
        """Get page reference, traversing parent hierarchy if needed."""
        if self._page_ref:
            return self._page_ref
        try:
            page = self.page
        except Exception:
            page = None
        if page:
            self._page_ref = page
            return page
        if SelectionField._default_page:
            self._page_ref = SelectionField._default_page
            return self._page_ref
        ctrl = getattr(self, "parent", None)
        depth = 0
        while ctrl is not None and depth < 50:
            page = getattr(ctrl, "page", None)
            if page:
                self._page_ref = page
                return page
            ctrl = getattr(ctrl, "parent", None)
            depth += 1
        logger.debug("SelectionField could not find page after %s levels", depth)
        return None

    def _run_task(self, handler: Callable[..., Any], *args: Any) -> Any:
        page = self._get_page()
        if page is not None:
            return page.run_task(handler, *args)
        loop = asyncio.get_running_loop()
        return loop.create_task(handler(*args))

    def _handle_change(self, new_value: SelectionValue) -> None:
        callback = self._on_change_callback
        if callback is None:
            return
        try:
            callback(new_value)
        except Exception:
            logger.exception("SelectionField on_change callback failed")

    # ---------------------------------------------------------------- trigger

    def _build_trigger(self) -> ft.Control:
        self._trigger_label = ft.Text(
            "",
            size=14,
            no_wrap=True,
            max_lines=1,
            overflow=ft.TextOverflow.ELLIPSIS,
            expand=True,
        )
        self._trigger_chips = ft.Row([], spacing=4, expand=True, visible=False)
        self._clear_button = ft.IconButton(
            icon=ft.Icons.CLOSE_ROUNDED,
            icon_size=16,
            icon_color=COLOR_TEXT_MUTED,
            tooltip="Clear",
            on_click=lambda _: self._controller.clear(),
            visible=False,
        )
        content = ft.Row(
            [
                self._trigger_label,
                self._trigger_chips,
                self._clear_button,
                ft.Icon(ft.Icons.ARROW_DROP_DOWN, color="#475569", size=24),
            ],
            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
            vertical_alignment=ft.CrossAxisAlignment.CENTER,
            spacing=2,
        )

        if self.keyboard_accessible:
            # TextButton is focusable and opens on Enter/Space.
            button = ft.TextButton(
                content=content,
                on_click=self._on_trigger_click,
                style=ft.ButtonStyle(
                    shape=ft.RoundedRectangleBorder(radius=self.border_radius),
                    padding=ft.padding.only(left=12, right=8),
                    bgcolor=self.bgcolor,
                ),
            )
            return ft.Container(
                content=button,
                width=self.width,
                height=50,
                border=ft.border.all(2, self.border_color),
                border_radius=self.border_radius,
                bgcolor=self.bgcolor,
                alignment=ft.alignment.center_left,
            )

        return ft.Container(
            on_click=self._on_trigger_click,
            content=content,
            padding=ft.padding.only(left=12, right=8),
            border=ft.border.all(2, self.border_color),
            border_radius=self.border_radius,
            bgcolor=self.bgcolor,
            width=self.width,
            height=50,
            alignment=ft.alignment.center_left,
        )

    def _build_chip(self, option: Option) -> ft.Control:
        return ft.Container(
            content=ft.Row(
                [
                    ft.Text(option.short_text, size=12, color=COLOR_TEXT, weight=ft.FontWeight.W_500, no_wrap=True),
                    ft.IconButton(
                        icon=ft.Icons.CLOSE_ROUNDED,
                        icon_size=10,
                        icon_color=COLOR_TEXT_MUTED,
                        tooltip="Remove",
                        on_click=lambda _, oid=option.id: self._controller.remove(oid),
                        style=ft.ButtonStyle(shape=ft.CircleBorder(), padding=0),
                    ),
                ],
                spacing=0,
                tight=True,
                vertical_alignment=ft.CrossAxisAlignment.CENTER,
            ),
            bgcolor=COLOR_CHIP,
            border_radius=999,
            padding=ft.padding.only(left=8),
        )

    def _refresh_trigger(self) -> None:
        controller = self._controller
        selected = controller.selected_options
        summary = controller.summary(self.placeholder, full=self.display_full_value)

        if controller.is_multi and selected:
            chips: List[ft.Control] = [self._build_chip(selected[0])]
            if len(selected) > 1:
                chips.append(ft.Text(f"+{len(selected) - 1}", size=13, color=COLOR_TEXT_MUTED))
            self._trigger_chips.controls = chips
            self._trigger_chips.visible = True
            self._trigger_label.visible = False
        else:
            self._trigger_chips.controls = []
            self._trigger_chips.visible = False
            self._trigger_label.visible = True
            self._trigger_label.value = summary
            self._trigger_label.color = COLOR_TEXT if selected else COLOR_PLACEHOLDER
            self._trigger_label.weight = ft.FontWeight.W_500 if selected else None

        self._clear_button.visible = controller.clear_available and not controller.is_open
        self._safe_set(self._trigger, "tooltip", summary)
        self._safe_set(self._trigger, "disabled", self._disabled)
        self._safe_set(self._trigger, "opacity", 0.5 if self._disabled else 1.0)

    def _on_trigger_click(self, _e):
        if self.disabled:
            return
        self._controller.activate()

    # ------------------------------------------------------------------ panel

    def _build_dialog(self) -> None:
        self._search_field = ft.TextField(
            hint_text="Type to search...",
            on_change=lambda e: self._controller.set_query(e.control.value),
            border_color="#E2E8F0",
            focused_border_color=self.focused_border_color,
            border_radius=8,
            height=44,
            text_size=14,
            prefix_icon=ft.Icons.SEARCH_ROUNDED,
            autofocus=True,
        )
        self._search_hint = ft.Text("", size=12, color=COLOR_TEXT_MUTED, visible=False)
        self._chips_row = ft.Row([], spacing=6, wrap=True, visible=False)
        self._select_all_row = self._build_action_row("", ft.Icons.SELECT_ALL, lambda _: self._controller.toggle_all())
        self._clear_row = self._build_action_row("Clear selection", ft.Icons.CLEAR_ROUNDED, lambda _: self._controller.clear())
        self._loading_indicator = ft.Row(
            [
                ft.ProgressRing(width=14, height=14, stroke_width=2, color=self.focused_border_color),
                ft.Text("Searching...", size=13, color=COLOR_TEXT_MUTED),
            ],
            alignment=ft.MainAxisAlignment.CENTER,
            visible=False,
        )
        self._empty_text = ft.Text("", size=14, color=COLOR_PLACEHOLDER, visible=False)
        self._footer_text = ft.Text("", size=12, color=COLOR_TEXT_MUTED, visible=False)
        self._options_list = ft.ListView(expand=True, spacing=2, padding=ft.padding.all(4))

        title = f"Select {self.label.replace('*', '').strip().lower()}" if self.label else "Select"
        card = ft.Container(
            width=450,
            height=520,
            bgcolor="#FFFFFF",
            padding=ft.padding.all(16),
            # Absorbs clicks so they do not reach the backdrop.
            on_click=lambda _: None,
            content=ft.Column(
                [
                    ft.Row(
                        [
                            ft.Text(title, size=18, weight=ft.FontWeight.BOLD, color=COLOR_TEXT),
                            ft.IconButton(ft.Icons.CLOSE_ROUNDED, icon_size=22, on_click=lambda _: self._controller.deactivate()),
                        ],
                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                    ),
                    self._search_field,
                    self._search_hint,
                    self._chips_row,
                    ft.Divider(height=1, color="#F1F5F9"),
                    self._select_all_row,
                    self._clear_row,
                    self._loading_indicator,
                    ft.Container(content=self._options_list, expand=True),
                    self._empty_text,
                    self._footer_text,
                ],
                spacing=8,
            ),
        )
        self._dialog = ft.Container(
            content=ft.Card(elevation=30, shape=ft.RoundedRectangleBorder(radius=16), content=card),
            bgcolor="#40000000",
            alignment=ft.Alignment(0, 0),
            visible=False,
            left=0,
            top=0,
            right=0,
            bottom=0,
            # Outside click
            on_click=lambda _: self._controller.deactivate(),
        )

    def _build_action_row(self, text: str, icon: Any, on_click: Callable[[Any], None]) -> ft.Container:
        return ft.Container(
            content=ft.Row(
                [
                    ft.Icon(icon, size=16, color=COLOR_TEXT_MUTED),
                    ft.Text(text, size=13, color=COLOR_TEXT_MUTED, italic=True),
                ],
                spacing=8,
            ),
            padding=ft.padding.symmetric(horizontal=12, vertical=8),
            border_radius=8,
            on_click=on_click,
            visible=False,
        )

    def _row_bgcolor(self, index: int, option: Option) -> Optional[str]:
        if index == self._controller.highlighted_index:
            return COLOR_ACTIVE
        if self._controller.is_selected(option):
            return COLOR_SELECTED
        return None

    def _build_option_item(self, option: Option, index: int) -> ft.Control:
        is_selected = self._controller.is_selected(option)
        lines: List[ft.Control] = [
            ft.Text(option.label, size=14, color=COLOR_TEXT, weight=ft.FontWeight.W_500, max_lines=1, overflow=ft.TextOverflow.ELLIPSIS)
        ]
        if option.secondary_label and not self.hide_secondary:
            lines.append(ft.Text(option.secondary_label, size=12, color=COLOR_TEXT_MUTED, max_lines=1, overflow=ft.TextOverflow.ELLIPSIS))

        def on_item_hover(e):
            if e.data == "true":
                self._controller.hover(index)
                return
            hovered_control = getattr(e, "control", None)
            if hovered_control is not None:
                hovered_control.bgcolor = self._row_bgcolor(index, option)
                # Hover events can arrive after the row was unmounted.
                self._safe_update(hovered_control, "option_hover")

        return ft.Container(
            content=ft.Row(
                [
                    ft.Column(lines, spacing=0, expand=True),
                    ft.Icon(ft.Icons.CHECK_ROUNDED, size=16, color=self.focused_border_color, visible=is_selected),
                ]
            ),
            padding=ft.padding.symmetric(horizontal=12, vertical=10),
            border_radius=8,
            on_click=lambda _: self._controller.select(option),
            on_hover=on_item_hover,
            bgcolor=self._row_bgcolor(index, option),
            key=f"selection-field-opt-{index}",
            data={"index": index},
        )

    def _refresh_panel(self) -> None:
        controller = self._controller
        visible = controller.visible_options

        query = controller.query
        if self._search_field.value != query:
            self._search_field.value = query
        hint_visible = controller.is_searching if controller.is_remote else bool(query)
        self._search_hint.visible = hint_visible
        self._search_hint.value = f'Searching for "{query}"...' if hint_visible else ""

        if controller.is_multi:
            self._chips_row.controls = [self._build_chip(opt) for opt in controller.selected_options]
            self._chips_row.visible = bool(self._chips_row.controls)

        self._select_all_row.visible = controller.select_all_available
        self._select_all_row.content.controls[1].value = (
            "Deselect all" if controller.all_visible_selected else f"Select all ({len(visible)})"
        )
        self._clear_row.visible = controller.clear_available

        self._loading_indicator.visible = controller.is_searching and not visible
        empty = controller.empty_message()
        self._empty_text.visible = empty is not None and not self._loading_indicator.visible
        self._empty_text.value = empty or ""

        self._footer_text.visible = controller.has_more_local
        if controller.has_more_local:
            total = len(controller.matching_options)
            self._footer_text.value = (
                f"Showing {len(visible)} of {total} {self.item_noun}. Type to filter more."
            )

        self._options_list.controls = [self._build_option_item(opt, index) for index, opt in enumerate(visible)]

    def _show_panel(self, page: Optional[ft.Page]) -> None:
        if self._dialog is None:
            self._build_dialog()
        self._search_field.value = self._controller.query
        if page is None:
            self._dialog.visible = True
            return
        self._install_keyboard_handler(page)
        # Keep it last in the overlay so it sits above other modals.
        if self._dialog in page.overlay:
            page.overlay.remove(self._dialog)
        page.overlay.append(self._dialog)
        self._dialog.visible = True
        self._focus_search_field(page, retries=3, delay=0.05)

    def _hide_panel(self) -> None:
        if self._dialog is not None:
            self._dialog.visible = False
            self._search_field.value = ""
        self._restore_keyboard_handler()

    def _render(self) -> None:
        controller = self._controller
        if controller is None:
            return
        page = self._get_page()
        panel_visible = bool(self._dialog and self._dialog.visible)
        if controller.is_open and not panel_visible:
            self._show_panel(page)
        elif not controller.is_open and panel_visible:
            self._hide_panel()

        self._refresh_trigger()
        if self._dialog is not None and self._dialog.visible:
            self._refresh_panel()

        if page is not None:
            self._safe_update(page, "render")
        else:
            self._safe_update(self, "render")

    def _focus_search_field(self, page: Optional[ft.Page], retries: int = 0, delay: float = 0.04) -> None:
        if self._search_field is None:
            return
        try:
            self._search_field.focus()
        except Exception:
            logger.debug("SelectionField could not focus search field", exc_info=True)

        if page is None or retries <= 0:
            return

        async def _refocus() -> None:
            for _ in range(retries):
                await asyncio.sleep(delay)
                if not self._controller.is_open:
                    return
                try:
                    self._search_field.focus()
                except Exception:
                    continue

        page.run_task(_refocus)

    # --------------------------------------------------------------- keyboard

    def _is_keydown_event(self, event: Any) -> bool:
        event_type = str(getattr(event, "event_type", "") or getattr(event, "type", "")).strip().lower()
        if event_type in {"keyup", "up", "key_up"}:
            return False
        # Unknown/empty event types count as keydown; some runtimes omit them.
        return True

    def _forward_previous_keyboard_handler(self, event: Any) -> None:
        if callable(self._previous_keyboard_handler):
            try:
                self._previous_keyboard_handler(event)
            except Exception:
                logger.debug("Previous keyboard handler failed", exc_info=True)

    def _is_own_keyboard_handler(self, handler: Any) -> bool:
        if handler is None:
            return False
        return (
            getattr(handler, "__self__", None) is self
            and getattr(handler, "__func__", None) is SelectionField._on_page_keyboard_event
        )

    def _on_page_keyboard_event(self, event: Any) -> None:
        if not self._controller.is_open or not self._is_keydown_event(event):
            self._forward_previous_keyboard_handler(event)
            return

        key = normalize_key(getattr(event, "key", ""))
        consumed = self._controller.handle_key(key)
        if consumed and key in (KEY_DOWN, KEY_UP):
            self._scroll_to_highlighted()
        if not consumed and key != KEY_ESCAPE:
            self._forward_previous_keyboard_handler(event)

    def _scroll_to_highlighted(self) -> None:
        index = self._controller.highlighted_index
        if index < 0 or self._options_list is None:
            return
        try:
            self._options_list.scroll_to(key=f"selection-field-opt-{index}", duration=0)
        except Exception:
            logger.debug("SelectionField scroll failed", exc_info=True)

    def _install_keyboard_handler(self, page: Optional[ft.Page]) -> None:
        if page is None:
            return
        current_handler = getattr(page, "on_keyboard_event", None)
        if not self._is_own_keyboard_handler(current_handler):
            self._previous_keyboard_handler = current_handler
        self._keyboard_handler_page = page
        self._safe_set(page, "on_keyboard_event", self._on_page_keyboard_event)

    def _restore_keyboard_handler(self) -> None:
        page = self._keyboard_handler_page
        if page is None:
            self._previous_keyboard_handler = None
            return
        try:
            if self._is_own_keyboard_handler(getattr(page, "on_keyboard_event", None)):
                self._safe_set(page, "on_keyboard_event", self._previous_keyboard_handler)
        finally:
            self._keyboard_handler_page = None
            self._previous_keyboard_handler = None

    # -------------------------------------------------------------- lifecycle

    def did_mount(self):
        page = self._get_page()
        if self._dialog is None:
            self._build_dialog()
        if page is not None and self._dialog not in page.overlay:
            page.overlay.append(self._dialog)
        self._refresh_trigger()
        self._safe_update(self, "did_mount")

    def will_unmount(self):
        self._controller.deactivate()
        self._restore_keyboard_handler()
