from __future__ import annotations

from html import escape
from typing import Iterable, Sequence

from pygments.formatters import HtmlFormatter

from .comments import (
    CollapseState,
    CommentIndex,
    InlineComment,
    ReviewComment,
    file_comments_for_file,
    gutter_indicator,
    project_comments,
)
from .diff_model import DiffFile
from .gap_expansion import GapExpansionTracker, ViewRow
from .highlight import block_highlighter
from .search import MatchSequence, mark_matches_in_html, mark_matches_in_text
from .split_view import LineCell, build_split_rows

KIND_PREFIX = {"context": " ", "expanded": " ", "insert": "+", "delete": "-"}


def _anchor_id_from_file(file_path: str, index: int) -> str:
    safe = "".join(ch if ch.isalnum() else "-" for ch in file_path).strip("-").lower()
    safe = "-".join(part for part in safe.split("-") if part)
    if not safe:
        safe = "file"
    return f"file-{index}-{safe}"


def _code_html(content: str, html: str | None, query: str | None, seq: MatchSequence, case_sensitive: bool) -> str:
    if html is None:
        return mark_matches_in_text(content, query or "", seq, case_sensitive)
    if query:
        return mark_matches_in_html(html, query, seq, case_sensitive)
    return html


def _comment_html(comment: ReviewComment) -> str:
    replies = "".join(
        "<li class='reply'><span class='author'>{author}</span> {content}</li>".format(
            author=escape(reply.author or "?"),
            content=escape(reply.content),
        )
        for reply in comment.replies
    )
    return (
        "<div class='comment status-{status}' data-comment-id='{comment_id}'>"
        "<div class='comment-meta'><span class='author'>{author}</span> <span class='badge'>{status}</span></div>"
        "<p class='comment-text'>{content}</p>{replies}</div>"
    ).format(
        status=escape(comment.status),
        comment_id=comment.id,
        author=escape(comment.author or "?"),
        content=escape(comment.content),
        replies=f"<ul class='replies'>{replies}</ul>" if replies else "",
    )


def _thread_html(thread: Sequence[InlineComment], collapse: CollapseState) -> str:
    visible = "".join(_comment_html(item) for item in thread if not collapse.is_collapsed(item.id))
    indicator = gutter_indicator(thread, collapse)
    if indicator is not None:
        visible += "<div class='hidden-comments' title='{title}'><span class='avatar'>{avatar}</span> {title}</div>".format(
            title=escape(indicator.title),
            avatar=escape(indicator.avatar),
        )
    return visible


def _unified_rows_html(
    anchor: str,
    rows: Sequence[ViewRow],
    index: CommentIndex,
    collapse: CollapseState,
    query: str | None,
    seq: MatchSequence,
    case_sensitive: bool,
) -> list[str]:
    keys = index.highlighted_keys()
    out: list[str] = []
    for row in rows:
        row_id = f"{anchor}-{row.row_id}"
        if row.kind == "hunk":
            out.append(
                f"<tr id='{escape(row_id)}' class='row-hunk'><td class='num'></td><td class='num'></td>"
                f"<td class='code hunk'>{escape(row.content)}</td></tr>"
            )
            continue
        if row.kind == "gap":
            out.append(
                f"<tr id='{escape(row_id)}' class='row-gap' data-gap-index='{row.gap_index}'>"
                "<td class='num'></td><td class='num'></td>"
                f"<td class='code gap'>⋯ {row.remaining} hidden lines</td></tr>"
            )
            continue
        side = "DELETE" if row.kind == "delete" else "ADD"
        line = row.old_line if side == "DELETE" else row.new_line
        coordinate = f"{side}:{line}"
        commented = " commented" if coordinate in keys else ""
        out.append(
            "<tr id='{row_id}' class='row-{kind}{commented}' data-coordinate='{coordinate}'>"
            "<td class='num'>{old}</td><td class='num'>{new}</td>"
            "<td class='code'><span class='prefix'>{prefix}</span>{code}</td></tr>".format(
                row_id=escape(row_id),
                kind=escape(row.kind),
                commented=commented,
                coordinate=escape(coordinate),
                old="" if row.old_line is None else row.old_line,
                new="" if row.new_line is None else row.new_line,
                prefix=escape(KIND_PREFIX.get(row.kind, " ")),
                code=_code_html(row.content, row.html, query, seq, case_sensitive),
            )
        )
        thread = _thread_html(index.comments_for_row(row.kind, row.old_line, row.new_line), collapse)
        if thread:
            out.append(f"<tr class='row-comments'><td colspan='3'>{thread}</td></tr>")
    return out


def _split_cell_html(
    cell: LineCell | None,
    query: str | None,
    seq: MatchSequence,
    case_sensitive: bool,
) -> str:
    if cell is None:
        return "<td class='num empty'></td><td class='code empty'></td>"
    return "<td class='num'>{line}</td><td class='code cell-{kind}'><span class='prefix'>{prefix}</span>{code}</td>".format(
        line="" if cell.line is None else cell.line,
        kind=escape(cell.kind),
        prefix=escape(KIND_PREFIX.get(cell.kind, " ")),
        code=_code_html(cell.content, cell.html, query, seq, case_sensitive),
    )


def _split_rows_html(
    anchor: str,
    rows: Sequence[ViewRow],
    index: CommentIndex,
    collapse: CollapseState,
    query: str | None,
    seq: MatchSequence,
    case_sensitive: bool,
) -> list[str]:
    out: list[str] = []
    for row in build_split_rows(rows):
        row_id = escape(f"{anchor}-{row.row_id}")
        if row.pair is None:
            label = escape(row.content) if row.kind == "hunk" else f"⋯ {row.remaining} hidden lines"
            out.append(f"<tr id='{row_id}' class='row-{escape(row.kind)}'><td colspan='4' class='code {escape(row.kind)}'>{label}</td></tr>")
            continue
        left, right = row.pair.left, row.pair.right
        out.append(
            f"<tr id='{row_id}' class='row-pair'>"
            + _split_cell_html(left, query, seq, case_sensitive)
            + _split_cell_html(right, query, seq, case_sensitive)
            + "</tr>"
        )
        left_thread = _thread_html(index.comments_at("DELETE", left.line), collapse) if left else ""
        right_thread = _thread_html(index.comments_at("ADD", right.line), collapse) if right else ""
        if left_thread or right_thread:
            out.append(f"<tr class='row-comments'><td colspan='2'>{left_thread}</td><td colspan='2'>{right_thread}</td></tr>")
    return out


def render_diff_html(
    files: Sequence[DiffFile],
    *,
    trackers: dict[str, GapExpansionTracker] | None = None,
    comments: Iterable[ReviewComment] = (),
    collapse: CollapseState | None = None,
    view_mode: str = "unified",
    highlight: bool = True,
    search_query: str | None = None,
    case_sensitive: bool = False,
    viewed_statuses: dict[str, str] | None = None,
    report_title: str | None = None,
) -> str:
    """Render a standalone HTML page for ``files``.

    Gaps show whatever the matching tracker has revealed; without a tracker
    only the hunks are shown. Search matches are numbered across the whole
    page in document order.
    """
    comment_list = list(comments)
    collapse = collapse or CollapseState()
    statuses = viewed_statuses or {}
    seq = MatchSequence()

    nav: list[str] = []
    sections: list[str] = []
    for position, file in enumerate(files, start=1):
        anchor = _anchor_id_from_file(file.new_path, position)
        status = statuses.get(file.new_path, "none")
        nav.append(
            "<li class='viewed-{status}'><a href='#{anchor}'>{path}</a> "
            "<span class='file-stats'>+{adds} -{deletes}</span></li>".format(
                status=escape(status),
                anchor=escape(anchor),
                path=escape(file.new_path),
                adds=file.additions,
                deletes=file.deletions,
            )
        )
        file_threads = "".join(_comment_html(item) for item in file_comments_for_file(comment_list, file.new_path))
        if file.is_binary:
            body = "<p class='placeholder'>Binary file not shown</p>"
        elif not file.hunks:
            message = "No diff for this file (comments only)" if file.is_virtual else "No content changes"
            body = f"<p class='placeholder'>{message}</p>"
        else:
            tracker = (trackers or {}).get(file.new_path) or GapExpansionTracker(file)
            highlighter = block_highlighter(file.new_path) if highlight else None
            rows = tracker.build_unified_rows(highlighter)
            index = CommentIndex(file, comment_list)
            if view_mode == "split":
                table_rows = _split_rows_html(anchor, rows, index, collapse, search_query, seq, case_sensitive)
                table_class = "diff-table split"
            else:
                table_rows = _unified_rows_html(anchor, rows, index, collapse, search_query, seq, case_sensitive)
                table_class = "diff-table unified"
            body = f"<table class='{table_class}'>\n" + "\n".join(table_rows) + "\n</table>"
        renamed = f"{escape(file.old_path)} → " if file.old_path != file.new_path else ""
        sections.append(
            "<section class='file' id='{anchor}'>"
            "<h2>{renamed}{path} <span class='badge change-{change}'>{change}</span> "
            "<span class='badge viewed-{status}'>{status}</span></h2>"
            "{file_threads}{body}</section>".format(
                anchor=escape(anchor),
                renamed=renamed,
                path=escape(file.new_path),
                change=escape(file.change_type),
                status=escape(status),
                file_threads=f"<div class='file-comments'>{file_threads}</div>" if file_threads else "",
                body=body,
            )
        )

    project_threads = "".join(_comment_html(item) for item in project_comments(comment_list))
    page_title = report_title or "Diff Review"
    return """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{page_title}</title>
  <style>
    body {{ margin: 0; font-family: sans-serif; background: #0b0d11; color: #e8edf5; }}
    main {{ padding: 16px; }}
    .diff-table {{ width: 100%; border-collapse: collapse; font-family: monospace; font-size: 12px; }}
    .num {{ width: 1%; padding: 0 8px; color: #9aabc1; text-align: right; white-space: nowrap; }}
    .code {{ white-space: pre; }}
    .row-insert, .cell-insert {{ background: #0f2a1f; }}
    .row-delete, .cell-delete {{ background: #34171a; }}
    .row-expanded, .cell-expanded {{ opacity: 0.8; }}
    .row-hunk, .row-gap {{ background: #1b2232; color: #5ea3ff; }}
    .commented .num {{ border-left: 3px solid #f7b801; }}
    .comment {{ border: 1px solid #243041; margin: 4px; padding: 4px 8px; font-family: sans-serif; }}
    .comment.status-resolved {{ opacity: 0.6; }}
    .hidden-comments {{ color: #9aabc1; font-style: italic; }}
    mark.code-search-match {{ background: #f7b801; color: #000; }}
    {pygments_css}
  </style>
</head>
<body>
<main>
  <h1>{page_title}</h1>
  <p class='summary'>files {file_count} / matches {match_count}</p>
  <ul class='file-nav'>
{nav}
  </ul>
  {project_threads}
{sections}
</main>
</body>
</html>
""".format(
        page_title=escape(page_title),
        pygments_css=HtmlFormatter().get_style_defs(".code"),
        file_count=len(files),
        match_count=seq.count,
        nav="\n".join(nav),
        project_threads=f"<div class='project-comments'>{project_threads}</div>" if project_threads else "",
        sections="\n".join(sections),
    )
