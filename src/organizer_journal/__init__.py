"""Organizer Journal — reversible file organization with undo, restore and a safe deletion vault."""

__version__ = "0.1.0"


def main() -> None:
    """Entry point for the application."""
    import logging

    from organizer_journal.core.settings import Settings
    from organizer_journal.ui.app import run

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run(settings, native=True, reload=False)
