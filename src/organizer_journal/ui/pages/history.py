"""History page — lists sessions and lets the user undo, restore or redo them.

All journal calls run in a worker thread; the page only renders snapshots
of the history store.
"""

from __future__ import annotations

import asyncio
from functools import partial
from html import escape
from typing import TYPE_CHECKING, TypeVar

from nicegui import ui

from organizer_journal.core.file_ops import FileOperationError
from organizer_journal.core.history import EntryStatus
from organizer_journal.core.restore import format_missing_files

if TYPE_CHECKING:
    from collections.abc import Callable

    from organizer_journal.core.history import HistoryEntry, HistoryStore
    from organizer_journal.core.organizer import Organizer
    from organizer_journal.core.vault import RestorableDuplicate

_STATUS_COLORS = {
    EntryStatus.COMPLETED: "green",
    EntryStatus.FAILED: "red",
    EntryStatus.CANCELLED: "gray",
    EntryStatus.SKIPPED: "gray",
    EntryStatus.UNDO: "orange",
    EntryStatus.DUPLICATES_CLEANUP: "purple",
}
_MAX_OPERATIONS_SHOWN = 20

T = TypeVar("T")


def _format_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"


class HistoryPage:
    """Page showing the session journal with undo and restore actions."""

    def __init__(self, organizer: Organizer, *, confirm_missing_files: bool = True) -> None:
        """Initialize the page state."""
        self._organizer = organizer
        self._confirm_missing_files = confirm_missing_files
        self._processing: bool = False
        self._dirty: bool = False

        # UI elements
        self._stats_container: ui.row | None = None
        self._entries_container: ui.column | None = None
        self._progress_spinner: ui.spinner | None = None
        self._progress_label: ui.label | None = None

    def build(self) -> None:
        """Build the page UI."""
        with ui.column().classes("w-full max-w-4xl mx-auto p-8 gap-6"):
            ui.label("Organizer Journal").classes("text-3xl font-bold text-center w-full")
            ui.label("Undo, restore or redo any organize session").classes("text-gray-500 text-center w-full")

            ui.separator()

            self._stats_container = ui.row().classes("w-full gap-4")

            with ui.row().classes("w-full justify-center items-center gap-4"):
                self._progress_spinner = ui.spinner("dots", size="lg")
                self._progress_spinner.set_visibility(False)
                self._progress_label = ui.label("")
                self._progress_label.set_visibility(False)

            self._entries_container = ui.column().classes("w-full gap-4")

        unsubscribe = self._organizer.history.subscribe(self._on_history_changed)
        ui.context.client.on_disconnect(unsubscribe)
        ui.timer(0.5, self._refresh_if_dirty)
        self._refresh()

    def _on_history_changed(self, _store: HistoryStore) -> None:
        """Mark the page stale; called from worker threads."""
        self._dirty = True

    def _refresh_if_dirty(self) -> None:
        if self._dirty:
            self._dirty = False
            self._refresh()

    def _refresh(self) -> None:
        """Re-render counters and entries from a store snapshot."""
        history = self._organizer.history
        stats = history.stats

        if self._stats_container:
            with self._stats_container:
                self._stats_container.clear()
                self._result_card("Sessions", str(stats.total_sessions), "history", "blue")
                self._result_card("Files organized", str(stats.total_files_organized), "description", "green")
                self._result_card("Folders created", str(stats.total_folders_created), "folder", "indigo")
                self._result_card("Reverted", str(stats.reverted_count), "undo", "orange")
                self._result_card("Recovered", _format_size(stats.total_recovered_space), "save", "purple")

        if self._entries_container:
            with self._entries_container:
                self._entries_container.clear()
                entries = list(reversed(history.entries))
                if not entries:
                    ui.label("No sessions yet.").classes("text-gray-500")
                for entry in entries:
                    self._show_entry(entry)

    def _show_entry(self, entry: HistoryEntry) -> None:
        """Show a card for one session."""
        color = "orange" if entry.is_undone else _STATUS_COLORS[entry.status]

        with ui.card().classes(f"w-full border-l-4 border-{color}-500"):
            with ui.row().classes("w-full items-center gap-2"):
                ui.label(entry.timestamp.strftime("%Y-%m-%d %H:%M")).classes("font-semibold")
                ui.badge("UNDONE" if entry.is_undone else entry.status.value.upper()).props(f"color={color}")
                if not entry.success:
                    ui.badge("ISSUES", color="red").props("outline")
            ui.label(escape(entry.directory_path)).classes("text-sm text-gray-600 truncate")

            if entry.status is EntryStatus.DUPLICATES_CLEANUP:
                ui.label(
                    f"{entry.duplicates_deleted or 0} duplicates removed, "
                    f"{_format_size(entry.recovered_space or 0)} recovered"
                ).classes("text-sm")
            else:
                ui.label(f"{entry.files_organized} files, {entry.folders_created} folders").classes("text-sm")

            if entry.error_message:
                with ui.expansion("Errors", icon="warning").classes("w-full"):
                    ui.label(escape(entry.error_message)).classes("text-xs whitespace-pre-line text-red-600")

            if entry.operations:
                with ui.expansion(f"{len(entry.operations)} operations", icon="list").classes("w-full"):
                    for op in entry.operations[:_MAX_OPERATIONS_SHOWN]:
                        target = f" → {op.destination_path}" if op.destination_path else ""
                        ui.label(escape(f"{op.kind.value}: {op.source_path}{target}")).classes("text-xs")
                    if len(entry.operations) > _MAX_OPERATIONS_SHOWN:
                        ui.label(f"...and {len(entry.operations) - _MAX_OPERATIONS_SHOWN} more").classes("text-xs")

            if entry.restorable_items and not entry.is_undone:
                with ui.expansion("Deleted duplicates", icon="delete").classes("w-full"):
                    for item in entry.restorable_items:
                        self._show_restorable(entry, item)

            with ui.row().classes("gap-2"):
                if entry.is_undoable:
                    ui.button("Undo", on_click=partial(self._on_undo, entry)).props("outline icon=undo")
                if entry.status is EntryStatus.COMPLETED and not entry.is_undone:
                    ui.button(
                        "Restore to this state",
                        on_click=partial(self._on_restore, entry),
                    ).props("outline icon=restore")
                if entry.is_undone and entry.status is EntryStatus.COMPLETED:
                    ui.button("Redo", on_click=partial(self._on_redo, entry)).props("outline icon=redo")

    def _show_restorable(self, entry: HistoryEntry, item: RestorableDuplicate) -> None:
        with ui.row().classes("w-full items-center gap-2"):
            ui.label(escape(item.original_path)).classes("text-xs flex-grow truncate")
            if item.deleted_path in self._organizer.vault:
                ui.button(
                    "Restore",
                    on_click=partial(self._on_restore_duplicate, entry, item),
                ).props("flat dense size=sm")
            else:
                ui.badge("restored", color="gray").props("outline")

    async def _run(self, message: str, func: Callable[[], T]) -> T:
        """Run a blocking journal call in a worker thread."""
        self._set_progress(True, message)
        try:
            loop = asyncio.get_event_loop()
            return await loop.run_in_executor(None, func)
        finally:
            self._set_progress(False)

    async def _confirm_missing(self, missing: list[str]) -> bool:
        """Ask whether to continue past missing files."""
        if not self._confirm_missing_files:
            return True
        with ui.dialog() as dialog, ui.card():
            ui.label("Missing Files").classes("text-lg font-semibold")
            ui.label(
                f"{len(missing)} file(s) no longer exist and cannot be restored:\n\n"
                f"{format_missing_files(missing)}\n\nContinue with partial restore?"
            ).classes("whitespace-pre-line text-sm")
            with ui.row().classes("w-full justify-end gap-2"):
                ui.button("Cancel", on_click=lambda: dialog.submit(False)).props("flat")
                ui.button("Continue Anyway", on_click=lambda: dialog.submit(True)).props("color=primary")
        return bool(await dialog)

    async def _on_undo(self, entry: HistoryEntry) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            result = await self._run("Undoing changes...", lambda: self._organizer.undo(entry.id))
            if result.needs_confirmation:
                if not await self._confirm_missing(result.missing_files):
                    return
                result = await self._run(
                    "Undoing changes...",
                    lambda: self._organizer.undo(entry.id, proceed_with_missing=True),
                )
            if result.has_issues:
                ui.notify(f"Undo complete (some files skipped): {result.restored} restored", type="warning")
            else:
                ui.notify(f"Undo complete: {result.restored} restored", type="positive")
        except (FileOperationError, KeyError) as e:
            ui.notify(f"Undo failed: {escape(str(e))}", type="negative")
        finally:
            self._processing = False
            self._refresh()

    async def _on_restore(self, entry: HistoryEntry) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            preview = await self._run("Checking files...", lambda: self._organizer.preview_restore(entry.id))
            proceed = False
            if preview.missing_files:
                if not await self._confirm_missing(preview.missing_files):
                    return
                proceed = True
            result = await self._run(
                "Rolling back states...",
                lambda: self._organizer.restore_to_state(entry.id, proceed_with_missing=proceed),
            )
            ui.notify(escape(result.summary), type="warning" if result.has_issues else "positive", multi_line=True)
        except (FileOperationError, KeyError) as e:
            ui.notify(f"Restore failed: {escape(str(e))}", type="negative")
        finally:
            self._processing = False
            self._refresh()

    async def _on_redo(self, entry: HistoryEntry) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            new_entry = await self._run("Re-applying changes...", lambda: self._organizer.redo(entry.id))
            ui.notify(f"Redo complete: {new_entry.files_organized} files", type="positive")
        except (FileOperationError, KeyError) as e:
            ui.notify(f"Redo failed: {escape(str(e))}", type="negative")
        finally:
            self._processing = False
            self._refresh()

    async def _on_restore_duplicate(self, entry: HistoryEntry, item: RestorableDuplicate) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            await self._run("Restoring file...", lambda: self._organizer.restore_duplicate(entry.id, item))
            ui.notify("File restored", type="positive")
        except (FileOperationError, OSError, KeyError) as e:
            ui.notify(f"Restore failed: {escape(str(e))}", type="negative")
        finally:
            self._processing = False
            self._refresh()

    def _set_progress(self, visible: bool, message: str = "") -> None:
        """Show/hide progress indicator."""
        if self._progress_spinner:
            self._progress_spinner.set_visibility(visible)
        if self._progress_label:
            self._progress_label.text = message
            self._progress_label.set_visibility(visible and bool(message))

    def _result_card(self, label: str, value: str, icon: str, color: str) -> None:
        """Create a result summary card."""
        with ui.card().classes("flex-1 min-w-32"):
            with ui.column().classes("items-center gap-1"):
                ui.icon(icon).classes(f"text-3xl text-{color}-500")
                ui.label(value).classes("text-2xl font-bold")
                ui.label(label).classes("text-gray-500 text-sm")


def create_page(organizer: Organizer, *, confirm_missing_files: bool = True) -> HistoryPage:
    """Create and build the history page."""
    page = HistoryPage(organizer, confirm_missing_files=confirm_missing_files)
    page.build()
    return page
