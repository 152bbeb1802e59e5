from __future__ import annotations

from pathlib import Path
import sys

import flet as ft


if __name__ == "__main__":
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from onboarding_portal.ui_reassign import main

    ft.app(target=main)
