from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Awaitable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Static

from .comments import (
    CollapseState,
    CommentAnchor,
    CommentIndex,
    CommentStore,
    InlineComment,
    ReviewComment,
    comment_counts,
    extend_anchor,
    gutter_indicator,
)
from .config import ReviewConfig
from .diff_model import DiffFile
from .gap_expansion import FileFetcher, GapExpansionTracker, ViewRow
from .row_map import RowCoordinate, RowCoordinateMap
from .split_view import LineCell, build_split_rows
from .viewed_state import ViewedStore, viewed_hash
from .viewer_render import KIND_PREFIX, change_style, kind_style, viewed_style


def format_file_label(file_path: str) -> str:
    normalized = str(file_path).replace("\\", "/").strip()
    if not normalized:
        return "-"
    path_obj = PurePosixPath(normalized)
    name = path_obj.name or normalized
    parent = str(path_obj.parent)
    if parent in {"", "."}:
        return name
    parent_parts = [part for part in parent.split("/") if part and part != "."]
    if len(parent_parts) > 2:
        parent_display = f".../{'/'.join(parent_parts[-2:])}"
    else:
        parent_display = "/".join(parent_parts)
    return f"{name} ({parent_display})"


def comment_summary(comment: ReviewComment, *, max_width: int = 96) -> str:
    first_line = comment.content.strip().splitlines()[0] if comment.content.strip() else ""
    if len(first_line) > max_width:
        first_line = first_line[: max_width - 3] + "..."
    replies = f" (+{len(comment.replies)} replies)" if comment.replies else ""
    return f"#{comment.id} {comment.author or '?'} [{comment.status}] {first_line}{replies}"


class CommentModal(ModalScreen[str | None]):
    CSS = """
    CommentModal {
        align: center middle;
    }
    #dialog {
        width: 70%;
        max-width: 80;
        border: round #8338ec;
        padding: 1 2;
        background: #0b0f19;
    }
    #buttons {
        height: auto;
        layout: horizontal;
        align: right middle;
        padding-top: 1;
    }
    """

    def __init__(self, title: str, placeholder: str, initial: str = "") -> None:
        super().__init__()
        self.dialog_title = title
        self.placeholder = placeholder
        self.initial = initial

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(f"[b]{self.dialog_title}[/b]")
            yield Input(value=self.initial, placeholder=self.placeholder, id="comment_input")
            with Horizontal(id="buttons"):
                yield Button("Cancel", id="cancel")
                yield Button("OK", id="ok", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#comment_input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        stripped = event.value.strip()
        self.dismiss(stripped if stripped else None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        stripped = self.query_one("#comment_input", Input).value.strip()
        self.dismiss(stripped if stripped else None)


class DiffReviewApp(App[None]):
    CSS = """
    Screen { layout: vertical; }
    #topbar { height: 3; border: round #3a86ff; padding: 0 1; }
    #main { height: 1fr; }
    #left { width: 34%; border: round #4cc9f0; }
    #right { width: 66%; border: round #f72585; }
    #files { height: 1fr; }
    #meta { height: 5; border: round #8338ec; padding: 0 1; }
    #lines { height: 1fr; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("f", "focus_files", "Files"),
        Binding("l", "focus_lines", "Lines"),
        Binding("e", "expand_down", "Expand Down"),
        Binding("E", "expand_up", "Expand Up"),
        Binding("a", "expand_all", "Expand All"),
        Binding("s", "toggle_split", "Split/Unified"),
        Binding("v", "toggle_viewed", "Viewed"),
        Binding("m", "select_line", "Select"),
        Binding("M", "extend_selection", "Extend Selection"),
        Binding("c", "new_comment", "Comment"),
        Binding("x", "toggle_resolved", "Resolve/Reopen"),
        Binding("z", "toggle_collapse", "Collapse"),
    ]

    def __init__(
        self,
        source_path: Path,
        files: list[DiffFile],
        *,
        fetch: FileFetcher | None = None,
        comment_store: CommentStore | None = None,
        viewed_store: ViewedStore | None = None,
        config: ReviewConfig | None = None,
        warnings: list[str] | None = None,
    ) -> None:
        super().__init__()
        self.source_path = source_path
        self.files = list(files)
        self.files_by_path = {file.new_path: file for file in self.files}
        self.fetch = fetch
        self.comment_store = comment_store
        self.viewed_store = viewed_store
        self.config = config or ReviewConfig()
        self.warnings = list(warnings or [])
        self.view_mode = self.config.view_mode
        self.selected_path: str | None = self.files[0].new_path if self.files else None
        self.trackers: dict[str, GapExpansionTracker] = {}
        self.row_map = RowCoordinateMap()
        self._rows_by_key: dict[str, ViewRow] = {}
        self._comment_by_row_key: dict[str, int] = {}
        self._gap_by_row_key: dict[str, int] = {}
        self._split_cells: dict[str, list[str]] = {}
        self._fallback_collapse = CollapseState()
        self._prefetching: set[str] = set()
        self._warnings_reported: dict[str, int] = {}
        self._rendered_path: str | None = None
        self.pending_anchor: CommentAnchor | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="topbar")
        with Horizontal(id="main"):
            with Vertical(id="left"):
                yield DataTable(id="files", cursor_type="row")
            with Vertical(id="right"):
                yield Static("Select a file from the left.", id="meta")
                yield DataTable(id="lines", cursor_type="row")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#files", DataTable).add_columns("viewed", "change", "file", "+", "-", "notes")
        self._refresh_files()
        self._render_file()
        self.query_one("#files", DataTable).focus()

    def on_unmount(self) -> None:
        for tracker in self.trackers.values():
            tracker.close()

    @property
    def comments(self) -> tuple[ReviewComment, ...]:
        return self.comment_store.comments if self.comment_store is not None else ()

    @property
    def collapse(self) -> CollapseState:
        return self.comment_store.collapse if self.comment_store is not None else self._fallback_collapse

    def tracker_for(self, file_path: str) -> GapExpansionTracker:
        tracker = self.trackers.get(file_path)
        if tracker is None:
            tracker = GapExpansionTracker(self.files_by_path[file_path], self.fetch, step=self.config.expand_step)
            self.trackers[file_path] = tracker
        return tracker

    def viewed_status(self, file: DiffFile) -> str:
        if self.viewed_store is None:
            return "none"
        return self.viewed_store.status(file.new_path, viewed_hash(file))

    def _refresh_files(self) -> None:
        table = self.query_one("#files", DataTable)
        table.clear()
        counts = comment_counts(self.comments)
        for file in self.files:
            status = self.viewed_status(file)
            entry = counts.get(file.new_path, {"total": 0, "unresolved": 0})
            table.add_row(
                Text(status, style=viewed_style(status)),
                Text(file.change_type, style=change_style(file.change_type)),
                format_file_label(file.new_path),
                str(file.additions),
                str(file.deletions),
                f"{entry['unresolved']}/{entry['total']}" if entry["total"] else "",
                key=file.new_path,
            )
        if self.selected_path in self.files_by_path:
            table.move_cursor(row=table.get_row_index(self.selected_path))
        self._refresh_topbar()

    def _refresh_topbar(self) -> None:
        viewed = 0
        if self.viewed_store is not None:
            viewed = self.viewed_store.viewed_count({file.new_path: viewed_hash(file) for file in self.files})
        unresolved = sum(1 for item in self.comments if item.status != "resolved")
        self.query_one("#topbar", Static).update(
            f"{self.source_path.name} | files {len(self.files)} | viewed {viewed}/{len(self.files)}"
            f" | open comments {unresolved} | mode {self.view_mode} | warnings {len(self.warnings)}"
        )

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id != "files" or event.row_key is None:
            return
        path = str(event.row_key.value)
        if path == self.selected_path:
            return
        self.selected_path = path
        self._render_file()

    def _reset_line_maps(self) -> None:
        self.row_map.clear()
        self._rows_by_key.clear()
        self._comment_by_row_key.clear()
        self._gap_by_row_key.clear()
        self._split_cells.clear()

    def _comment_rows(self, table: DataTable, row_id: str, thread: list[InlineComment], width: int) -> None:
        for comment in thread:
            if self.collapse.is_collapsed(comment.id):
                continue
            key = f"comment-{comment.id}-{row_id}"
            cells = [""] * (width - 1) + [Text("  💬 " + comment_summary(comment), style="italic yellow")]
            table.add_row(*cells, key=key)
            self._comment_by_row_key[key] = comment.id
        indicator = gutter_indicator(thread, self.collapse)
        if indicator is not None:
            key = f"hidden-{row_id}"
            cells = [""] * (width - 1) + [Text(f"  [{indicator.avatar}] {indicator.title}", style="dim italic")]
            table.add_row(*cells, key=key)
            self._comment_by_row_key[key] = thread[0].id

    def _render_unified(self, table: DataTable, rows: list[ViewRow], index: CommentIndex) -> None:
        table.add_columns("old", "new", "content")
        keys = index.highlighted_keys(self.pending_anchor)
        self.row_map.register_unified(rows)
        for row in rows:
            self._rows_by_key[row.row_id] = row
            if row.kind == "hunk":
                table.add_row("", "", Text(row.content, style=kind_style("hunk")), key=row.row_id)
                if row.hunk_index is not None:
                    self._gap_by_row_key[row.row_id] = row.hunk_index
                continue
            if row.kind == "gap":
                table.add_row("", "", Text(f"⋯ {row.remaining} hidden lines", style=kind_style("gap")), key=row.row_id)
                if row.gap_index is not None:
                    self._gap_by_row_key[row.row_id] = row.gap_index
                continue
            side = "DELETE" if row.kind == "delete" else "ADD"
            line = row.old_line if side == "DELETE" else row.new_line
            style = kind_style(row.kind)
            if line is not None and f"{side}:{line}" in keys:
                style += " on #2b2b44"
            table.add_row(
                "" if row.old_line is None else str(row.old_line),
                "" if row.new_line is None else str(row.new_line),
                Text(KIND_PREFIX.get(row.kind, " ") + row.content, style=style),
                key=row.row_id,
            )
            if row.gap_index is not None:
                self._gap_by_row_key[row.row_id] = row.gap_index
            self._comment_rows(table, row.row_id, index.comments_for_row(row.kind, row.old_line, row.new_line), 3)

    def _render_split(self, table: DataTable, rows: list[ViewRow], index: CommentIndex) -> None:
        table.add_columns("old", "before", "new", "after")
        self._rows_by_key.update({row.row_id: row for row in rows})
        split_rows = build_split_rows(rows)
        self.row_map.register_split(split_rows)

        def _cell(cell: LineCell | None) -> Text:
            if cell is None:
                return Text("")
            return Text(KIND_PREFIX.get(cell.kind, " ") + cell.content, style=kind_style(cell.kind))

        for row in split_rows:
            if row.pair is None:
                label = row.content if row.kind == "hunk" else f"⋯ {row.remaining} hidden lines"
                table.add_row("", Text(label, style=kind_style(row.kind)), "", "", key=row.row_id)
                gap_index = row.hunk_index if row.kind == "hunk" else row.gap_index
                if gap_index is not None:
                    self._gap_by_row_key[row.row_id] = gap_index
                continue
            left, right = row.pair.left, row.pair.right
            table.add_row(
                "" if left is None or left.line is None else str(left.line),
                _cell(left),
                "" if right is None or right.line is None else str(right.line),
                _cell(right),
                key=row.row_id,
            )
            cell = left or right
            cell_ids = []
            if right is not None:
                cell_ids.append(f"{right.row_id}:R")
            if left is not None:
                cell_ids.append(f"{left.row_id}:L")
            self._split_cells[row.row_id] = cell_ids
            source = self._rows_by_key.get(cell.row_id) if cell is not None else None
            if source is not None and source.gap_index is not None:
                self._gap_by_row_key[row.row_id] = source.gap_index
            thread: list[InlineComment] = []
            if left is not None:
                thread.extend(index.comments_at("DELETE", left.line))
            if right is not None:
                thread.extend(index.comments_at("ADD", right.line))
            self._comment_rows(table, row.row_id, thread, 4)

    def _render_file(self) -> None:
        table = self.query_one("#lines", DataTable)
        cursor_row = table.cursor_row if self._rendered_path == self.selected_path else 0
        table.clear(columns=True)
        self._reset_line_maps()
        self._rendered_path = self.selected_path
        meta = self.query_one("#meta", Static)
        if self.selected_path is None:
            meta.update("No files in diff.")
            return
        file = self.files_by_path[self.selected_path]
        status = self.viewed_status(file)
        meta.update(
            f"[b]{file.new_path}[/b]  {file.change_type}  +{file.additions} -{file.deletions}\n"
            f"viewed: {status}  mode: {self.view_mode}"
        )
        if file.is_binary or not file.hunks:
            message = "Binary file not shown" if file.is_binary else (
                "No diff for this file (comments only)" if file.is_virtual else "No content changes"
            )
            table.add_columns("content")
            table.add_row(Text(message, style="dim"), key="placeholder")
            return
        tracker = self.tracker_for(file.new_path)
        self._prefetch(tracker)
        rows = tracker.build_unified_rows()
        index = CommentIndex(file, self.comments)
        if self.view_mode == "split":
            self._render_split(table, rows, index)
        else:
            self._render_unified(table, rows, index)
        if cursor_row and table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

    def _prefetch(self, tracker: GapExpansionTracker) -> None:
        path = tracker.file.new_path
        if path in self._prefetching or not tracker.prefetch():
            return
        self._prefetching.add(path)
        self.run_worker(self._finish_prefetch(tracker), group="prefetch")

    async def _finish_prefetch(self, tracker: GapExpansionTracker) -> None:
        await tracker.ensure_file_lines()
        path = tracker.file.new_path
        self._prefetching.discard(path)
        if tracker.closed:
            return
        self._report_warnings(tracker)
        # The trailing gap only exists once the line count is known.
        if path == self.selected_path:
            self._render_file()
            self._refresh_topbar()

    def _report_warnings(self, tracker: GapExpansionTracker) -> None:
        path = tracker.file.new_path
        for warning in tracker.warnings[self._warnings_reported.get(path, 0) :]:
            self.warnings.append(warning)
            self.notify(warning, severity="warning", timeout=2.0)
        self._warnings_reported[path] = len(tracker.warnings)

    def _cursor_row_key(self) -> str | None:
        table = self.query_one("#lines", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        except Exception:  # noqa: BLE001
            return None
        return None if row_key.value is None else str(row_key.value)

    def current_gap_index(self) -> int | None:
        if self.selected_path is None:
            return None
        tracker = self.tracker_for(self.selected_path)
        key = self._cursor_row_key()
        gap_index = self._gap_by_row_key.get(key) if key is not None else None
        # A hunk header maps to the gap above it, which may not exist.
        if gap_index is not None and tracker.gap(gap_index) is not None:
            return gap_index
        for row in tracker.build_unified_rows():
            if row.kind == "gap" and row.gap_index is not None:
                return row.gap_index
        return None

    async def expand_gap(self, gap_index: int, direction: str) -> None:
        if self.selected_path is None:
            return
        tracker = self.tracker_for(self.selected_path)
        if direction == "down":
            tracker.expand_down(gap_index)
        elif direction == "up":
            tracker.expand_up(gap_index)
        else:
            tracker.expand_all(gap_index)
        await tracker.ensure_file_lines()
        self._report_warnings(tracker)
        self._render_file()
        self._refresh_topbar()

    async def _expand_current(self, direction: str) -> None:
        gap_index = self.current_gap_index()
        if gap_index is None:
            self.notify("Nothing to expand", timeout=1.1)
            return
        await self.expand_gap(gap_index, direction)

    async def action_expand_down(self) -> None:
        await self._expand_current("down")

    async def action_expand_up(self) -> None:
        await self._expand_current("up")

    async def action_expand_all(self) -> None:
        await self._expand_current("all")

    def action_focus_files(self) -> None:
        self.query_one("#files", DataTable).focus()

    def action_focus_lines(self) -> None:
        self.query_one("#lines", DataTable).focus()

    def action_toggle_split(self) -> None:
        self.view_mode = "unified" if self.view_mode == "split" else "split"
        self._render_file()
        self._refresh_topbar()

    def action_toggle_viewed(self) -> None:
        if self.viewed_store is None or self.selected_path is None:
            return
        file = self.files_by_path[self.selected_path]
        status = self.viewed_store.toggle(file.new_path, viewed_hash(file))
        self._refresh_files()
        self._render_file()
        self.notify(f"{format_file_label(file.new_path)}: {status}", timeout=1.1)

    def action_toggle_collapse(self) -> None:
        comment_id = self._comment_by_row_key.get(self._cursor_row_key() or "")
        if comment_id is None:
            return
        if self.collapse.is_collapsed(comment_id):
            self.collapse.expand(comment_id)
        else:
            self.collapse.collapse(comment_id)
        self._render_file()

    def cursor_coordinate(self) -> RowCoordinate | None:
        key = self._cursor_row_key()
        if key is None:
            return None
        for row_id in self._split_cells.get(key, [key]):
            coordinate = self.row_map.coordinate(row_id)
            if coordinate is not None:
                return coordinate
        return None

    def _select(self, shift: bool) -> None:
        if self.selected_path is None:
            return
        coordinate = self.cursor_coordinate()
        if coordinate is None:
            self.notify("Select a code line", timeout=1.1)
            return
        self.pending_anchor = extend_anchor(
            self.pending_anchor, self.selected_path, coordinate.side, coordinate.line, shift=shift
        )
        self._render_file()

    def action_select_line(self) -> None:
        self._select(False)

    def action_extend_selection(self) -> None:
        self._select(True)

    def action_new_comment(self) -> None:
        if self.comment_store is None or self.selected_path is None:
            self.notify("Comments are not enabled (pass --comments)", timeout=1.5)
            return
        anchor = self.pending_anchor
        if anchor is None or anchor.file_path != self.selected_path:
            coordinate = self.cursor_coordinate()
            if coordinate is None:
                self.notify("Select a code line to comment on", timeout=1.1)
                return
            anchor = CommentAnchor.create(self.selected_path, coordinate.side, coordinate.line)
        store = self.comment_store

        def _on_dismiss(result: str | None) -> None:
            if result is None:
                return
            self.pending_anchor = None
            self.run_worker(self._apply_mutation(store, store.create_inline(anchor, result), "Comment added"))

        span = f"{anchor.start_line}" if anchor.start_line == anchor.end_line else f"{anchor.start_line}-{anchor.end_line}"
        self.push_screen(
            CommentModal(f"Comment on {anchor.side}:{span}", "Write a comment"),
            callback=_on_dismiss,
        )

    def action_toggle_resolved(self) -> None:
        store = self.comment_store
        if store is None:
            return
        comment_id = self._comment_by_row_key.get(self._cursor_row_key() or "")
        if comment_id is None:
            return
        comment = next((item for item in self.comments if item.id == comment_id), None)
        if comment is None:
            return
        if comment.status == "resolved":
            self.run_worker(self._apply_mutation(store, store.reopen(comment_id), "Comment reopened"))
        else:
            self.run_worker(self._apply_mutation(store, store.resolve(comment_id), "Comment resolved"))

    async def _apply_mutation(self, store: CommentStore, mutation: Awaitable[bool], message: str) -> None:
        if await mutation:
            self.notify(message, timeout=1.1)
        else:
            warning = store.warnings[-1] if store.warnings else "Comment update failed"
            self.notify(warning, severity="error", timeout=2.0)
        self._refresh_files()
        self._render_file()
