"""Main application entry point for NiceGUI desktop app."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nicegui import app, ui

from organizer_journal.core.organizer import Organizer
from organizer_journal.ui.pages.history import create_page

if TYPE_CHECKING:
    from organizer_journal.core.settings import Settings


def run(settings: Settings, *, native: bool = True, reload: bool = False) -> None:
    """Run the Organizer Journal application.

    Args:
        settings: Local settings with storage locations.
        native: If True, run as native desktop app (pywebview).
        reload: If True, enable hot reload for development.
    """
    # One organizer for the lifetime of the app
    organizer = Organizer.from_settings(settings)

    app.native.window_args["resizable"] = True
    app.native.start_args["debug"] = reload

    @ui.page("/")
    def index() -> None:
        """History page."""
        ui.colors(primary="#4F46E5")  # Indigo
        create_page(organizer, confirm_missing_files=settings.confirm_missing_files)

    ui.run(
        title="Organizer Journal",
        native=native,
        reload=reload,
        window_size=(1024, 768),
        port=8765,
    )
