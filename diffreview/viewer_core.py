from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

from .diff_model import LINE_TYPES, DiffFile


def resolve_input_path(path: Path, search_roots: list[Path] | None = None) -> Path:
    if path.is_absolute():
        return path
    primary = (Path.cwd() / path).resolve()
    if primary.exists():
        return primary
    for root in search_roots or []:
        candidate = (root / path).resolve()
        if candidate.exists():
            return candidate
    return primary


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error
    except json.JSONDecodeError as error:
        raise RuntimeError(f"Invalid JSON: {error}") from error


def _validate_hunk(path: str, index: int, hunk: dict[str, Any]) -> list[str]:
    warnings: list[str] = []
    lines = hunk.get("lines") or []
    if not isinstance(lines, list):
        return [f"{path}: hunk #{index} lines must be an array"]
    old_count = 0
    new_count = 0
    for line in lines:
        if not isinstance(line, dict):
            warnings.append(f"{path}: hunk #{index} has a non-object line")
            continue
        kind = line.get("line_type")
        if kind not in LINE_TYPES:
            warnings.append(f"{path}: hunk #{index} has unsupported line_type: {kind}")
            continue
        if kind == "delete" and line.get("new_line") is not None:
            warnings.append(f"{path}: hunk #{index} delete line carries new_line")
        if kind == "insert" and line.get("old_line") is not None:
            warnings.append(f"{path}: hunk #{index} insert line carries old_line")
        if kind != "insert":
            old_count += 1
        if kind != "delete":
            new_count += 1
    if lines and hunk.get("old_lines") is not None and old_count != hunk.get("old_lines"):
        warnings.append(f"{path}: hunk #{index} old_lines={hunk.get('old_lines')} but has {old_count} old-side lines")
    if lines and hunk.get("new_lines") is not None and new_count != hunk.get("new_lines"):
        warnings.append(f"{path}: hunk #{index} new_lines={hunk.get('new_lines')} but has {new_count} new-side lines")
    return warnings


def validate_diff_document(doc: dict[str, Any]) -> list[str]:
    if not isinstance(doc, dict):
        raise RuntimeError("Diff document must be a JSON object.")
    if not isinstance(doc.get("files"), list):
        raise RuntimeError("Missing required key: files")
    warnings: list[str] = []
    paths: list[str] = []
    for index, entry in enumerate(doc["files"]):
        if not isinstance(entry, dict):
            warnings.append(f"File entry #{index} is not an object.")
            continue
        path = str(entry.get("new_path") or entry.get("old_path") or f"#{index}")
        paths.append(path)
        hunks = entry.get("hunks") or []
        if entry.get("is_virtual") and hunks:
            warnings.append(f"{path}: virtual file carries hunks; they are ignored")
            continue
        if not isinstance(hunks, list):
            warnings.append(f"{path}: hunks must be an array")
            continue
        previous_end = 0
        for hunk_index, hunk in enumerate(hunks):
            if not isinstance(hunk, dict):
                warnings.append(f"{path}: hunk #{hunk_index} is not an object")
                continue
            warnings.extend(_validate_hunk(path, hunk_index, hunk))
            new_start = hunk.get("new_start") or 0
            if isinstance(new_start, int) and new_start and new_start <= previous_end:
                warnings.append(f"{path}: hunk #{hunk_index} overlaps the previous hunk")
            if isinstance(new_start, int) and isinstance(hunk.get("new_lines"), int):
                previous_end = max(previous_end, new_start + hunk["new_lines"] - 1)
    if len(paths) != len(set(paths)):
        warnings.append("Duplicate file paths detected.")
    return warnings


def filter_files(
    files: Sequence[DiffFile],
    file_contains: str | None,
    change_type: str | None = None,
) -> list[DiffFile]:
    candidates = list(files)
    if change_type:
        candidates = [item for item in candidates if item.change_type == change_type]
    if file_contains:
        lookup = file_contains.lower()
        candidates = [item for item in candidates if lookup in item.new_path.lower()]
    return candidates


def compute_metrics(files: list[DiffFile], viewed_statuses: dict[str, str] | None = None) -> dict[str, Any]:
    statuses = viewed_statuses or {}
    viewed = sum(1 for item in files if statuses.get(item.new_path) == "viewed")
    updated = sum(1 for item in files if statuses.get(item.new_path) == "updated")
    tracked = len(files)
    return {
        "Files": tracked,
        "Additions": sum(item.additions for item in files),
        "Deletions": sum(item.deletions for item in files),
        "Hunks": sum(len(item.hunks) for item in files),
        "Binary": sum(1 for item in files if item.is_binary),
        "Viewed": viewed,
        "Updated": updated,
        "ViewedRate": 1.0 if tracked == 0 else viewed / tracked,
    }
