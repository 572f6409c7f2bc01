from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, Protocol, Union

from .diff_model import DiffFile, max_line_numbers

SIDES = ("ADD", "DELETE")
COMMENT_STATUSES = {"open", "resolved", "outdated"}
COLLAPSED_ON_LOAD = {"resolved", "outdated"}
COMMENT_TYPES = {"inline", "file", "project"}


@dataclass(frozen=True)
class Reply:
    content: str
    author: str = ""
    id: int | None = None
    created_at: str = ""


@dataclass(frozen=True)
class InlineComment:
    id: int
    file_path: str
    side: str
    start_line: int
    end_line: int
    content: str
    status: str = "open"
    author: str = ""
    replies: tuple[Reply, ...] = ()
    created_at: str = ""

    comment_type = "inline"


@dataclass(frozen=True)
class FileComment:
    id: int
    file_path: str
    content: str
    status: str = "open"
    author: str = ""
    replies: tuple[Reply, ...] = ()
    created_at: str = ""

    comment_type = "file"


@dataclass(frozen=True)
class ProjectComment:
    id: int
    content: str
    status: str = "open"
    author: str = ""
    replies: tuple[Reply, ...] = ()
    created_at: str = ""

    comment_type = "project"


ReviewComment = Union[InlineComment, FileComment, ProjectComment]


@dataclass(frozen=True)
class CommentAnchor:
    file_path: str
    side: str
    start_line: int
    end_line: int

    @classmethod
    def create(cls, file_path: str, side: str, first_line: int, second_line: int | None = None) -> CommentAnchor:
        if side not in SIDES:
            raise ValueError(f"Unsupported side: {side}")
        other = first_line if second_line is None else second_line
        return cls(file_path, side, min(first_line, other), max(first_line, other))


@dataclass(frozen=True)
class CommentsResponse:
    comments: tuple[ReviewComment, ...] = ()
    open_count: int = 0
    resolved_count: int = 0
    not_resolved_count: int = 0
    warnings: tuple[str, ...] = field(default=(), compare=False)


def _normalize_status(value: Any) -> str:
    status = str(value or "open").strip().lower()
    return status if status in COMMENT_STATUSES else "open"


def _replies_from_json(raw: Any) -> tuple[Reply, ...]:
    if not isinstance(raw, list):
        return ()
    replies: list[Reply] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        reply_id = item.get("id")
        replies.append(
            Reply(
                content=str(item.get("content", "")),
                author=str(item.get("author", "") or ""),
                id=int(reply_id) if isinstance(reply_id, int) else None,
                created_at=str(item.get("created_at", "") or ""),
            )
        )
    return tuple(replies)


def comment_from_json(raw: dict[str, Any]) -> ReviewComment:
    try:
        comment_id = int(raw["id"])
    except (KeyError, TypeError, ValueError) as error:
        raise RuntimeError("Comment has no numeric id") from error
    comment_type = str(raw.get("comment_type") or "inline")
    if comment_type not in COMMENT_TYPES:
        raise RuntimeError(f"Unsupported comment_type: {comment_type}")
    common: dict[str, Any] = {
        "id": comment_id,
        "content": str(raw.get("content", "")),
        "status": _normalize_status(raw.get("status")),
        "author": str(raw.get("author", "") or ""),
        "replies": _replies_from_json(raw.get("replies")),
        "created_at": str(raw.get("created_at", "") or ""),
    }
    if comment_type == "project":
        return ProjectComment(**common)
    file_path = str(raw.get("file_path") or "")
    if not file_path:
        raise RuntimeError(f"Comment {comment_id} has no file_path")
    if comment_type == "file":
        return FileComment(file_path=file_path, **common)

    side = str(raw.get("side") or "")
    if side not in SIDES:
        raise RuntimeError(f"Comment {comment_id} has unsupported side: {side or '-'}")
    try:
        end_line = int(raw["end_line"])
    except (KeyError, TypeError, ValueError) as error:
        raise RuntimeError(f"Comment {comment_id} has no end_line") from error
    try:
        start_line = int(raw.get("start_line", end_line))
    except (TypeError, ValueError):
        start_line = end_line
    return InlineComment(
        file_path=file_path,
        side=side,
        start_line=min(start_line, end_line),
        end_line=max(start_line, end_line),
        **common,
    )


def comment_to_json(comment: ReviewComment) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": comment.id,
        "comment_type": comment.comment_type,
        "content": comment.content,
        "status": comment.status,
        "author": comment.author,
        "replies": [
            {"id": reply.id, "author": reply.author, "content": reply.content, "created_at": reply.created_at}
            for reply in comment.replies
        ],
        "created_at": comment.created_at,
    }
    if isinstance(comment, (InlineComment, FileComment)):
        payload["file_path"] = comment.file_path
    if isinstance(comment, InlineComment):
        payload["side"] = comment.side
        payload["start_line"] = comment.start_line
        payload["end_line"] = comment.end_line
    return payload


def parse_comments_response(payload: Any) -> CommentsResponse:
    if not isinstance(payload, dict):
        raise RuntimeError("Comments payload must be a JSON object.")
    raw_comments = payload.get("comments")
    if not isinstance(raw_comments, list):
        raise RuntimeError("Comments payload is missing `comments` array.")
    comments: list[ReviewComment] = []
    warnings: list[str] = []
    for index, raw in enumerate(raw_comments):
        if not isinstance(raw, dict):
            warnings.append(f"Comment entry #{index} is not an object.")
            continue
        try:
            comments.append(comment_from_json(raw))
        except RuntimeError as error:
            warnings.append(f"Comment entry #{index} skipped: {error}")
    counts = count_by_status(comments)
    return CommentsResponse(
        comments=tuple(comments),
        open_count=int(payload.get("open_count", counts["open"]) or 0),
        resolved_count=int(payload.get("resolved_count", counts["resolved"]) or 0),
        not_resolved_count=int(payload.get("not_resolved_count", counts["not_resolved"]) or 0),
        warnings=tuple(warnings),
    )


def count_by_status(comments: Iterable[ReviewComment]) -> dict[str, int]:
    counts = {"open": 0, "resolved": 0, "not_resolved": 0}
    for comment in comments:
        if comment.status == "resolved":
            counts["resolved"] += 1
        else:
            counts["not_resolved"] += 1
            if comment.status == "open":
                counts["open"] += 1
    return counts


def coordinate_key(side: str, line: int) -> str:
    return f"{side}:{line}"


def clamp_line(line: int, side: str, max_old: int, max_new: int) -> int:
    """Pin ``line`` to the last known line of ``side``; 0 means the side is unknown."""
    limit = max_new if side == "ADD" else max_old
    if limit > 0 and line > limit:
        return limit
    return line


def inline_comments_for_file(comments: Iterable[ReviewComment], file_path: str) -> list[InlineComment]:
    return [item for item in comments if isinstance(item, InlineComment) and item.file_path == file_path]


def file_comments_for_file(comments: Iterable[ReviewComment], file_path: str) -> list[FileComment]:
    return [item for item in comments if isinstance(item, FileComment) and item.file_path == file_path]


def project_comments(comments: Iterable[ReviewComment]) -> list[ProjectComment]:
    return [item for item in comments if isinstance(item, ProjectComment)]


def index_comments_by_coordinate(file: DiffFile, comments: Iterable[ReviewComment]) -> dict[str, list[InlineComment]]:
    """Group a file's inline comments under ``SIDE:line`` keys, anchored at end_line.

    Lines past the last line any hunk knows about are clamped so comments made
    before a force-push stay visible on the last available line.
    """
    max_old, max_new = max_line_numbers(file.hunks)
    by_key: dict[str, list[InlineComment]] = {}
    for comment in inline_comments_for_file(comments, file.new_path):
        line = clamp_line(comment.end_line, comment.side, max_old, max_new)
        by_key.setdefault(coordinate_key(comment.side, line), []).append(comment)
    return by_key


def highlighted_line_keys(
    file_path: str,
    comments: Iterable[ReviewComment],
    pending_anchor: CommentAnchor | None = None,
) -> set[str]:
    keys: set[str] = set()
    for comment in inline_comments_for_file(comments, file_path):
        for line in range(comment.start_line, comment.end_line + 1):
            keys.add(coordinate_key(comment.side, line))
    if pending_anchor is not None and pending_anchor.file_path == file_path:
        for line in range(pending_anchor.start_line, pending_anchor.end_line + 1):
            keys.add(coordinate_key(pending_anchor.side, line))
    return keys


class CommentIndex:
    """Comments of one file, looked up by gutter coordinate."""

    def __init__(self, file: DiffFile, comments: Iterable[ReviewComment]) -> None:
        items = list(comments)
        self.file_path = file.new_path
        self.inline = inline_comments_for_file(items, file.new_path)
        self.file_comments = file_comments_for_file(items, file.new_path)
        self.by_key = index_comments_by_coordinate(file, self.inline)

    def comments_at(self, side: str, line: int | None) -> list[InlineComment]:
        if line is None:
            return []
        return self.by_key.get(coordinate_key(side, line), [])

    def comments_for_row(self, kind: str, old_line: int | None, new_line: int | None) -> list[InlineComment]:
        """Threads shown under one unified row; unchanged lines carry both sides."""
        if kind == "delete":
            return self.comments_at("DELETE", old_line)
        thread = self.comments_at("ADD", new_line)
        if kind in {"context", "expanded"}:
            return self.comments_at("DELETE", old_line) + thread
        return thread

    def highlighted_keys(self, pending_anchor: CommentAnchor | None = None) -> set[str]:
        return highlighted_line_keys(self.file_path, self.inline, pending_anchor)


def extend_anchor(
    previous: CommentAnchor | None,
    file_path: str,
    side: str,
    line: int,
    *,
    shift: bool = False,
) -> CommentAnchor | None:
    """Gutter-click semantics: shift extends, re-clicking a single-line anchor clears it."""
    if previous is not None and previous.file_path == file_path and previous.side == side:
        if shift:
            return CommentAnchor(file_path, side, min(previous.start_line, line), max(previous.end_line, line))
        if previous.start_line == line and previous.end_line == line:
            return None
    return CommentAnchor.create(file_path, side, line)


class CollapseState:
    def __init__(self) -> None:
        self.collapsed_ids: set[int] = set()
        self._initialized = False

    def initialize(self, comments: Iterable[ReviewComment]) -> None:
        """Collapse resolved and outdated threads, once, on the first non-empty load."""
        if self._initialized:
            return
        items = list(comments)
        if not items:
            return
        self._initialized = True
        self.collapsed_ids.update(item.id for item in items if item.status in COLLAPSED_ON_LOAD)

    def collapse(self, comment_id: int) -> None:
        self.collapsed_ids.add(comment_id)

    def expand(self, comment_id: int) -> None:
        self.collapsed_ids.discard(comment_id)

    def is_collapsed(self, comment_id: int) -> bool:
        return comment_id in self.collapsed_ids


@dataclass(frozen=True)
class GutterIndicator:
    hidden_count: int
    avatar: str

    @property
    def title(self) -> str:
        suffix = "s" if self.hidden_count > 1 else ""
        return f"{self.hidden_count} hidden comment{suffix}"


def avatar_initial(name: str) -> str:
    clean = str(name or "").strip()
    return clean[0].upper() if clean else "?"


def gutter_indicator(comments: Iterable[ReviewComment], collapse: CollapseState) -> GutterIndicator | None:
    hidden = [item for item in comments if collapse.is_collapsed(item.id)]
    if not hidden:
        return None
    return GutterIndicator(hidden_count=len(hidden), avatar=avatar_initial(hidden[0].author))


def comment_counts(comments: Iterable[ReviewComment]) -> dict[str, dict[str, int]]:
    counts: dict[str, dict[str, int]] = {}
    for comment in comments:
        if isinstance(comment, ProjectComment):
            continue
        entry = counts.setdefault(comment.file_path, {"total": 0, "unresolved": 0})
        entry["total"] += 1
        if comment.status != "resolved":
            entry["unresolved"] += 1
    return counts


class CommentBackend(Protocol):
    async def list_comments(self) -> dict[str, Any]: ...

    async def create_comment(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def reply_comment(self, comment_id: int, message: str, author: str) -> dict[str, Any]: ...

    async def update_comment_status(self, comment_id: int, status: str) -> dict[str, Any]: ...

    async def edit_comment(self, comment_id: int, content: str) -> dict[str, Any]: ...

    async def delete_comment(self, comment_id: int) -> dict[str, Any]: ...


class CommentStore:
    """Owns the in-memory comment collection.

    Every successful mutation replaces the collection with the backend's
    response; nothing is merged locally. Failed mutations leave state as is.
    """

    def __init__(self, backend: CommentBackend, *, author: str = "You") -> None:
        self.backend = backend
        self.author = author
        self.response = CommentsResponse()
        self.collapse = CollapseState()
        self.warnings: list[str] = []

    @property
    def comments(self) -> tuple[ReviewComment, ...]:
        return self.response.comments

    def replace(self, payload: Any) -> None:
        response = parse_comments_response(payload)
        self.response = response
        self.warnings.extend(response.warnings)
        self.collapse.initialize(response.comments)

    async def load(self) -> None:
        self.replace(await self.backend.list_comments())

    async def _mutate(self, action: str, call: Awaitable[dict[str, Any]]) -> bool:
        try:
            payload = await call
            self.replace(payload)
        except Exception as error:  # noqa: BLE001
            self.warnings.append(f"{action} failed: {error}")
            return False
        return True

    async def create_inline(self, anchor: CommentAnchor, content: str) -> bool:
        payload = {
            "comment_type": "inline",
            "file_path": anchor.file_path,
            "side": anchor.side,
            "start_line": anchor.start_line,
            "end_line": anchor.end_line,
            "content": content,
            "author": self.author,
        }
        return await self._mutate("create comment", self.backend.create_comment(payload))

    async def create_file_comment(self, file_path: str, content: str) -> bool:
        payload = {"comment_type": "file", "file_path": file_path, "content": content, "author": self.author}
        return await self._mutate("create file comment", self.backend.create_comment(payload))

    async def create_project_comment(self, content: str) -> bool:
        payload = {"comment_type": "project", "content": content, "author": self.author}
        return await self._mutate("create project comment", self.backend.create_comment(payload))

    async def reply(self, comment_id: int, message: str) -> bool:
        return await self._mutate("reply", self.backend.reply_comment(comment_id, message, self.author))

    async def resolve(self, comment_id: int) -> bool:
        ok = await self._mutate("resolve", self.backend.update_comment_status(comment_id, "resolved"))
        if ok:
            self.collapse.collapse(comment_id)
        return ok

    async def reopen(self, comment_id: int) -> bool:
        ok = await self._mutate("reopen", self.backend.update_comment_status(comment_id, "open"))
        if ok:
            self.collapse.expand(comment_id)
        return ok

    async def edit(self, comment_id: int, content: str) -> bool:
        return await self._mutate("edit", self.backend.edit_comment(comment_id, content))

    async def delete(self, comment_id: int) -> bool:
        return await self._mutate("delete", self.backend.delete_comment(comment_id))

    def for_file(self, file_path: str) -> list[ReviewComment]:
        return [
            item
            for item in self.comments
            if isinstance(item, (InlineComment, FileComment)) and item.file_path == file_path
        ]
