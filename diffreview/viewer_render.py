from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .comments import CollapseState, CommentIndex, InlineComment, ReviewComment, gutter_indicator
from .diff_model import DiffFile
from .gap_expansion import ViewRow
from .split_view import LineCell, SplitRow

KIND_PREFIX = {"context": " ", "expanded": " ", "insert": "+", "delete": "-"}


def kind_style(kind: str) -> str:
    if kind == "insert":
        return "green"
    if kind == "delete":
        return "red"
    if kind == "expanded":
        return "dim"
    if kind == "hunk":
        return "magenta"
    if kind == "gap":
        return "cyan"
    return "white"


def change_style(change_type: str) -> str:
    return {"added": "green", "deleted": "red", "renamed": "yellow"}.get(change_type, "white")


def viewed_style(status: str) -> str:
    if status == "viewed":
        return "green"
    if status == "updated":
        return "yellow"
    return "dim"


def _number(value: int | None) -> str:
    return "" if value is None else str(value)


def render_summary(console: Console, title: str, metrics: dict[str, Any], warning_count: int) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Source", title)
    table.add_row("Files", str(metrics["Files"]))
    table.add_row("Hunks", str(metrics["Hunks"]))
    table.add_row("Changes", f"+{metrics['Additions']} -{metrics['Deletions']}")
    table.add_row("Binary", str(metrics["Binary"]))
    table.add_row("Viewed", f"{metrics['Viewed']} ({metrics['ViewedRate'] * 100:.1f}%)")
    table.add_row("Updated", str(metrics["Updated"]))
    table.add_row("Warnings", str(warning_count))
    console.print(Panel(table, title="Diff Summary", border_style="blue"))


def render_files(
    console: Console,
    files: Sequence[DiffFile],
    viewed_statuses: dict[str, str],
    comment_counts: dict[str, dict[str, int]],
) -> None:
    table = Table(title=f"Files ({len(files)})", header_style="bold magenta")
    table.add_column("viewed", no_wrap=True)
    table.add_column("change", no_wrap=True)
    table.add_column("path", overflow="ellipsis")
    table.add_column("+", justify="right")
    table.add_column("-", justify="right")
    table.add_column("comments", justify="right")
    for file in files:
        status = viewed_statuses.get(file.new_path, "none")
        counts = comment_counts.get(file.new_path, {"total": 0, "unresolved": 0})
        path = file.new_path if file.old_path == file.new_path else f"{file.old_path} -> {file.new_path}"
        change = file.change_type + (" (binary)" if file.is_binary else "")
        table.add_row(
            Text(status, style=viewed_style(status)),
            Text(change, style=change_style(file.change_type)),
            path,
            str(file.additions),
            str(file.deletions),
            f"{counts['unresolved']}/{counts['total']}" if counts["total"] else "",
        )
    console.print(table)


def comment_panel(comment: ReviewComment) -> Panel:
    body: list[Any] = [Text(comment.content)]
    for reply in comment.replies:
        body.append(Text(f"↳ {reply.author or '?'}: {reply.content}", style="dim"))
    if isinstance(comment, InlineComment):
        where = f"{comment.side}:{comment.start_line}" + (
            f"-{comment.end_line}" if comment.end_line != comment.start_line else ""
        )
    else:
        where = comment.comment_type
    style = "green" if comment.status == "resolved" else ("yellow" if comment.status == "outdated" else "blue")
    title = f"#{comment.id} {comment.author or '?'} [{comment.status}] {where}"
    return Panel(Group(*body), title=title, border_style=style, title_align="left")


def _thread_renderables(
    comments: list[InlineComment],
    collapse: CollapseState,
) -> list[Any]:
    visible = [item for item in comments if not collapse.is_collapsed(item.id)]
    renderables: list[Any] = [comment_panel(item) for item in visible]
    indicator = gutter_indicator(comments, collapse)
    if indicator is not None:
        renderables.append(Text(f"  [{indicator.avatar}] {indicator.title}", style="dim italic"))
    return renderables


def _marker(keys: set[str], side: str, line: int | None) -> str:
    return "▌" if line is not None and f"{side}:{line}" in keys else " "


def render_unified(
    console: Console,
    file: DiffFile,
    rows: Sequence[ViewRow],
    index: CommentIndex,
    collapse: CollapseState,
) -> None:
    table = Table(title=file.new_path, header_style="bold magenta", show_lines=False, expand=True)
    table.add_column("", width=1, no_wrap=True)
    table.add_column("old", justify="right", no_wrap=True)
    table.add_column("new", justify="right", no_wrap=True)
    table.add_column("content", overflow="fold")
    keys = index.highlighted_keys()
    for row in rows:
        if row.kind == "hunk":
            table.add_row("", "", "", Text(row.content, style=kind_style("hunk")))
            continue
        if row.kind == "gap":
            table.add_row("", "", "", Text(f"⋯ {row.remaining} hidden lines", style=kind_style("gap")))
            continue
        side = "DELETE" if row.kind == "delete" else "ADD"
        line = row.old_line if side == "DELETE" else row.new_line
        table.add_row(
            _marker(keys, side, line),
            _number(row.old_line),
            _number(row.new_line),
            Text(KIND_PREFIX.get(row.kind, " ") + row.content, style=kind_style(row.kind)),
        )
        thread = index.comments_for_row(row.kind, row.old_line, row.new_line)
        for renderable in _thread_renderables(thread, collapse):
            table.add_row("", "", "", renderable)
    console.print(table)


def _cell_text(cell: LineCell | None) -> Text:
    if cell is None:
        return Text("")
    return Text(KIND_PREFIX.get(cell.kind, " ") + cell.content, style=kind_style(cell.kind))


def render_split(
    console: Console,
    file: DiffFile,
    rows: Sequence[SplitRow],
    index: CommentIndex,
    collapse: CollapseState,
) -> None:
    table = Table(title=file.new_path, header_style="bold magenta", expand=True)
    table.add_column("old", justify="right", no_wrap=True)
    table.add_column("before", overflow="fold", ratio=1)
    table.add_column("new", justify="right", no_wrap=True)
    table.add_column("after", overflow="fold", ratio=1)
    for row in rows:
        if row.pair is None:
            label = row.content if row.kind == "hunk" else f"⋯ {row.remaining} hidden lines"
            table.add_row("", Text(label, style=kind_style(row.kind)), "", "")
            continue
        left, right = row.pair.left, row.pair.right
        table.add_row(
            _number(left.line if left else None),
            _cell_text(left),
            _number(right.line if right else None),
            _cell_text(right),
        )
        left_threads = _thread_renderables(index.comments_at("DELETE", left.line), collapse) if left else []
        right_threads = _thread_renderables(index.comments_at("ADD", right.line), collapse) if right else []
        for position in range(max(len(left_threads), len(right_threads))):
            table.add_row(
                "",
                left_threads[position] if position < len(left_threads) else "",
                "",
                right_threads[position] if position < len(right_threads) else "",
            )
    console.print(table)


def render_file_comments(console: Console, comments: Sequence[ReviewComment], title: str) -> None:
    if not comments:
        return
    console.print(Panel(Group(*(comment_panel(item) for item in comments)), title=title, border_style="cyan"))


def render_binary(console: Console, file: DiffFile) -> None:
    console.print(Panel("Binary file not shown", title=file.new_path, border_style="yellow"))


def render_no_changes(console: Console, file: DiffFile) -> None:
    message = "No diff for this file (comments only)" if file.is_virtual else "No content changes"
    console.print(Panel(message, title=file.new_path, border_style="dim"))
