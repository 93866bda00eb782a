"""Dashboard application entrypoints."""

from apps.dashboard.tui import BitvisionDashboard, run_dashboard, run_dashboard_async

__all__ = [
    "BitvisionDashboard",    # Textual TUI
    "run_dashboard",         # Run TUI (blocking)
    "run_dashboard_async",   # Run TUI inside an existing loop
]
