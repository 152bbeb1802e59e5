from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import flet as ft

from onboarding_portal.components.button_styles import cancel_button, primary_button
from onboarding_portal.components.selection_field import SelectionField
from onboarding_portal.config import load_config
from onboarding_portal.logging_setup import configure_logging
from onboarding_portal.services.lookup_client import LookupClient, LookupClientError
from onboarding_portal.services.search_loaders import create_search_loader, static_options

logger = logging.getLogger(__name__)

COLOR_BG = "#F8FAFC"          # Slate 50
COLOR_CARD = "#FFFFFF"
COLOR_BORDER = "#E2E8F0"
COLOR_TEXT = "#1E293B"        # Slate 800
COLOR_TEXT_MUTED = "#64748B"  # Slate 500

DEPARTMENT_CATEGORY = "DEPARTMENT"


def main(page: ft.Page) -> None:
    page.title = "Onboarding Portal - Task reassignment"
    page.window_width = 900
    page.window_height = 720
    page.theme_mode = ft.ThemeMode.LIGHT
    page.bgcolor = COLOR_BG
    page.padding = 24

    config = load_config()
    configure_logging(config.logs_dir, config.log_level)
    client = LookupClient.from_config(config)
    SelectionField.set_default_page(page)

    # The form owns the bound values; the fields only propose changes.
    form: Dict[str, Any] = {"group_lead": None, "departments": []}

    toast_text = ft.Text("")
    toast = ft.SnackBar(content=toast_text, open=False)

    def show_toast(message: str, kind: str = "info") -> None:
        toast_text.value = message
        if kind == "error":
            toast.bgcolor = "#FEE2E2"
            toast_text.color = "#991B1B"
        elif kind == "success":
            toast.bgcolor = "#DCFCE7"
            toast_text.color = "#166534"
        else:
            toast.bgcolor = "#E2E8F0"
            toast_text.color = COLOR_TEXT
        if hasattr(page, "open"):
            page.open(toast)
        else:
            page.snack_bar = toast
            toast.open = True
            page.update()

    def on_group_lead_change(value: Optional[int]) -> None:
        form["group_lead"] = value
        group_lead_field.value = value
        submit_button.disabled = value is None
        page.update()

    def on_departments_change(value: List[int]) -> None:
        form["departments"] = value
        department_field.value = value

    group_lead_field = SelectionField(
        on_change=on_group_lead_change,
        on_search=create_search_loader(client.search_group_leads),
        min_query_length=config.select_min_query,
        debounce_ms=config.select_debounce_ms,
        placeholder=f"Type {config.select_min_query}+ characters to search...",
        label="Primary Group Lead *",
        show_label=True,
        required=True,
        max_display_items=10,
        item_noun="group leads",
        width=420,
    )

    department_field = SelectionField(
        [],
        on_departments_change,
        multi=True,
        select_all=True,
        placeholder="Select departments...",
        label="Departments",
        show_label=True,
        max_display_items=config.select_max_results,
        item_noun="departments",
        width=420,
        disabled=True,
    )

    async def load_departments() -> None:
        try:
            rows = await client.get_lookup_items(DEPARTMENT_CATEGORY)
        except LookupClientError as exc:
            logger.error("Could not load departments: %s", exc)
            show_toast("Could not load departments.", kind="error")
            return
        department_field.set_options(static_options(rows))
        department_field.disabled = False

    def reset_form(_: Any = None) -> None:
        form["group_lead"] = None
        form["departments"] = []
        group_lead_field.value = None
        department_field.value = []
        submit_button.disabled = True
        page.update()

    def submit(_: Any = None) -> None:
        if form["group_lead"] is None:
            show_toast("Choose a primary group lead first.", kind="error")
            return
        chosen = group_lead_field.controller.resolve_option(form["group_lead"])
        label = chosen.label if chosen else str(form["group_lead"])
        logger.info("Reassigning to group lead %s, departments %s", form["group_lead"], form["departments"])
        show_toast(f"Task reassigned to {label} ({len(form['departments'])} departments).", kind="success")

    submit_button = primary_button("Reassign", submit, disabled=True)

    async def close_client(_: Any = None) -> None:
        await client.close()

    page.on_disconnect = lambda e: page.run_task(close_client)

    page.add(
        ft.Container(
            bgcolor=COLOR_CARD,
            border=ft.border.all(1, COLOR_BORDER),
            border_radius=16,
            padding=ft.padding.all(24),
            width=480,
            content=ft.Column(
                [
                    ft.Text("Reassign Task", size=20, weight=ft.FontWeight.BOLD, color=COLOR_TEXT),
                    ft.Text("Choose the new group lead and the departments involved.", size=13, color=COLOR_TEXT_MUTED),
                    group_lead_field,
                    department_field,
                    ft.Row(
                        [cancel_button("Cancel", reset_form), submit_button],
                        alignment=ft.MainAxisAlignment.END,
                    ),
                ],
                spacing=16,
            ),
        )
    )
    page.run_task(load_departments)
