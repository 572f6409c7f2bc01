from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LINE_TYPES = ("context", "insert", "delete")
CHANGE_TYPES = {"added", "modified", "deleted", "renamed"}


@dataclass(frozen=True)
class DiffLine:
    kind: str  # context|insert|delete
    old_line: int | None
    new_line: int | None
    content: str


@dataclass(frozen=True)
class DiffHunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header: str = ""
    lines: tuple[DiffLine, ...] = ()

    @property
    def new_end(self) -> int:
        return self.new_start + self.new_lines - 1

    @property
    def old_end(self) -> int:
        return self.old_start + self.old_lines - 1


@dataclass(frozen=True)
class DiffFile:
    old_path: str
    new_path: str
    change_type: str = "modified"
    hunks: tuple[DiffHunk, ...] = ()
    is_binary: bool = False
    additions: int = 0
    deletions: int = 0
    is_virtual: bool = False


@dataclass(frozen=True)
class DiffResult:
    files: tuple[DiffFile, ...] = ()
    total_additions: int = 0
    total_deletions: int = 0
    warnings: tuple[str, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class Gap:
    gap_index: int
    start_line: int
    end_line: int
    old_start_line: int
    total_lines: int


def _int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _int_or_zero(value: Any) -> int:
    parsed = _int_or_none(value)
    return 0 if parsed is None else parsed


def diff_line_from_json(raw: dict[str, Any]) -> DiffLine:
    kind = str(raw.get("line_type", "context"))
    if kind not in LINE_TYPES:
        raise RuntimeError(f"Unsupported line_type: {kind}")
    old_line = _int_or_none(raw.get("old_line"))
    new_line = _int_or_none(raw.get("new_line"))
    if kind == "delete":
        new_line = None
    elif kind == "insert":
        old_line = None
    return DiffLine(kind=kind, old_line=old_line, new_line=new_line, content=str(raw.get("content", "")))


def diff_hunk_from_json(raw: dict[str, Any]) -> DiffHunk:
    lines = tuple(diff_line_from_json(item) for item in (raw.get("lines") or []) if isinstance(item, dict))
    return DiffHunk(
        old_start=_int_or_zero(raw.get("old_start")),
        old_lines=_int_or_zero(raw.get("old_lines")),
        new_start=_int_or_zero(raw.get("new_start")),
        new_lines=_int_or_zero(raw.get("new_lines")),
        header=str(raw.get("header", "") or ""),
        lines=lines,
    )


def diff_file_from_json(raw: dict[str, Any]) -> DiffFile:
    new_path = str(raw.get("new_path") or raw.get("old_path") or "")
    if not new_path:
        raise RuntimeError("Diff file entry has no path")
    change_type = str(raw.get("change_type", "modified"))
    if change_type not in CHANGE_TYPES:
        change_type = "modified"
    is_virtual = bool(raw.get("is_virtual", False))
    hunks = () if is_virtual else tuple(
        sorted(
            (diff_hunk_from_json(item) for item in (raw.get("hunks") or []) if isinstance(item, dict)),
            key=lambda hunk: hunk.new_start,
        )
    )
    additions = raw.get("additions")
    deletions = raw.get("deletions")
    return DiffFile(
        old_path=str(raw.get("old_path") or new_path),
        new_path=new_path,
        change_type=change_type,
        hunks=hunks,
        is_binary=False if is_virtual else bool(raw.get("is_binary", False)),
        additions=_int_or_zero(additions) if additions is not None else count_lines(hunks, "insert"),
        deletions=_int_or_zero(deletions) if deletions is not None else count_lines(hunks, "delete"),
        is_virtual=is_virtual,
    )


def diff_line_to_json(line: DiffLine) -> dict[str, Any]:
    return {
        "line_type": line.kind,
        "old_line": line.old_line,
        "new_line": line.new_line,
        "content": line.content,
    }


def diff_file_to_json(file: DiffFile) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "old_path": file.old_path,
        "new_path": file.new_path,
        "change_type": file.change_type,
        "hunks": [
            {
                "old_start": hunk.old_start,
                "old_lines": hunk.old_lines,
                "new_start": hunk.new_start,
                "new_lines": hunk.new_lines,
                "header": hunk.header,
                "lines": [diff_line_to_json(line) for line in hunk.lines],
            }
            for hunk in file.hunks
        ],
        "is_binary": file.is_binary,
        "additions": file.additions,
        "deletions": file.deletions,
    }
    if file.is_virtual:
        payload["is_virtual"] = True
    return payload


def diff_result_to_json(result: DiffResult) -> dict[str, Any]:
    return {
        "files": [diff_file_to_json(file) for file in result.files],
        "total_additions": result.total_additions,
        "total_deletions": result.total_deletions,
    }


def parse_full_diff(payload: Any) -> DiffResult:
    if not isinstance(payload, dict):
        raise RuntimeError("Diff payload must be a JSON object.")
    raw_files = payload.get("files")
    if not isinstance(raw_files, list):
        raise RuntimeError("Diff payload is missing `files` array.")

    warnings: list[str] = []
    files: list[DiffFile] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_files):
        if not isinstance(raw, dict):
            warnings.append(f"Diff file entry #{index} is not an object.")
            continue
        try:
            file = diff_file_from_json(raw)
        except RuntimeError as error:
            warnings.append(f"Diff file entry #{index} skipped: {error}")
            continue
        if file.new_path in seen:
            warnings.append(f"Duplicate file path in diff: {file.new_path}")
            continue
        seen.add(file.new_path)
        files.append(file)

    total_additions = payload.get("total_additions")
    total_deletions = payload.get("total_deletions")
    return DiffResult(
        files=tuple(files),
        total_additions=(
            _int_or_zero(total_additions) if total_additions is not None else sum(f.additions for f in files)
        ),
        total_deletions=(
            _int_or_zero(total_deletions) if total_deletions is not None else sum(f.deletions for f in files)
        ),
        warnings=tuple(warnings),
    )


def index_files_by_path(result: DiffResult) -> dict[str, DiffFile]:
    return {file.new_path: file for file in result.files}


def count_lines(hunks: tuple[DiffHunk, ...] | list[DiffHunk], kind: str) -> int:
    return sum(1 for hunk in hunks for line in hunk.lines if line.kind == kind)


def compute_gaps(hunks: tuple[DiffHunk, ...] | list[DiffHunk], total_lines: int | None = None) -> list[Gap]:
    """Return the unchanged new-side ranges around and between ``hunks``.

    Gap ``i`` sits immediately before hunk ``i``; gap ``len(hunks)`` is the
    trailing gap, which only exists once ``total_lines`` is known.
    """
    gaps: list[Gap] = []
    if not hunks:
        return gaps

    first = hunks[0]
    if first.new_start > 1:
        gaps.append(
            Gap(
                gap_index=0,
                start_line=1,
                end_line=first.new_start - 1,
                old_start_line=1,
                total_lines=first.new_start - 1,
            )
        )

    for index in range(1, len(hunks)):
        prev = hunks[index - 1]
        cur = hunks[index]
        gap_start = prev.new_start + prev.new_lines
        gap_end = cur.new_start - 1
        if gap_end >= gap_start:
            gaps.append(
                Gap(
                    gap_index=index,
                    start_line=gap_start,
                    end_line=gap_end,
                    old_start_line=prev.old_start + prev.old_lines,
                    total_lines=gap_end - gap_start + 1,
                )
            )

    if total_lines is not None:
        last = hunks[-1]
        last_new_end = last.new_start + last.new_lines - 1
        if last_new_end < total_lines:
            gaps.append(
                Gap(
                    gap_index=len(hunks),
                    start_line=last_new_end + 1,
                    end_line=total_lines,
                    old_start_line=last.old_start + last.old_lines,
                    total_lines=total_lines - last_new_end,
                )
            )
    return gaps


def gaps_by_index(gaps: list[Gap]) -> dict[int, Gap]:
    return {gap.gap_index: gap for gap in gaps}


def max_line_numbers(hunks: tuple[DiffHunk, ...] | list[DiffHunk]) -> tuple[int, int]:
    """Largest (old, new) line number seen in any hunk line; 0 when unknown."""
    max_old = 0
    max_new = 0
    for hunk in hunks:
        for line in hunk.lines:
            if line.old_line is not None and line.old_line > max_old:
                max_old = line.old_line
            if line.new_line is not None and line.new_line > max_new:
                max_new = line.new_line
    return max_old, max_new


def synthesize_virtual_files(files: tuple[DiffFile, ...] | list[DiffFile], comment_paths: list[str]) -> list[DiffFile]:
    known = {file.new_path for file in files}
    virtual: list[DiffFile] = []
    for path in comment_paths:
        if not path or path in known:
            continue
        known.add(path)
        virtual.append(DiffFile(old_path=path, new_path=path, change_type="added", is_virtual=True))
    return [*files, *virtual]


def split_file_content(content: str) -> list[str]:
    if not content:
        return []
    lines = content.split("\n")
    if content.endswith("\n"):
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]
