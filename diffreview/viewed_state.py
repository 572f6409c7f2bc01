"""Per-file "viewed" markers that notice when a file changed after viewing.

A viewed file stores a short hash of what the reviewer saw. When the current
hash differs the file is reported as ``updated`` instead of ``viewed``. The
hash is a cheap change check, not a content identity: a collision simply
keeps the file marked as viewed.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from .diff_model import DiffFile

VIEWED_STATUSES = ("none", "viewed", "updated")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return sign + "".join(reversed(digits))


def _wrap_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def djb2_hash(text: str) -> str:
    value = 5381
    for char in text:
        # UTF-16 code units, so astral characters hash as their surrogate pair.
        encoded = char.encode("utf-16-le")
        for index in range(0, len(encoded), 2):
            unit = int.from_bytes(encoded[index : index + 2], "little")
            value = _wrap_int32((value << 5) + value + unit)
    return _to_base36(value)


def file_content_hash(file: DiffFile) -> str:
    return djb2_hash("".join(line.content for hunk in file.hunks for line in hunk.lines))


def path_hash(path: str) -> str:
    return djb2_hash(path)


def viewed_hash(file: DiffFile) -> str:
    """Hash stored for a viewed marker; files with no diff lines hash their path."""
    if not any(hunk.lines for hunk in file.hunks):
        return path_hash(file.new_path)
    return file_content_hash(file)



def storage_id(project: str, task: str | None = None) -> str:
    raw = project if not task else f"{project}--{task}"
    return re.sub(r"[^A-Za-z0-9._-]+", "_", raw).strip("_") or "default"


class ViewedStore:
    def __init__(self, state_dir: Path, project: str, task: str | None = None) -> None:
        self.path = state_dir / f"viewed-{storage_id(project, task)}.json"
        self.viewed: dict[str, str] = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data: Any = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as error:
            raise RuntimeError(f"Invalid viewed state JSON: {self.path}: {error}") from error
        if not isinstance(data, dict):
            raise RuntimeError(f"Viewed state must be a JSON object: {self.path}")
        return {str(key): str(value) for key, value in data.items()}

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.viewed, ensure_ascii=False, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def status(self, path: str, current_hash: str) -> str:
        stored = self.viewed.get(path)
        if stored is None:
            return "none"
        return "viewed" if stored == current_hash else "updated"

    def mark(self, path: str, current_hash: str) -> None:
        self.viewed[path] = current_hash
        self.save()

    def unmark(self, path: str) -> None:
        if self.viewed.pop(path, None) is not None:
            self.save()

    def toggle(self, path: str, current_hash: str) -> str:
        """Flip the marker and return the resulting status.

        An ``updated`` file is re-marked with the current hash rather than cleared.
        """
        if self.status(path, current_hash) == "viewed":
            self.unmark(path)
            return "none"
        self.mark(path, current_hash)
        return "viewed"

    def viewed_count(self, hashes: dict[str, str]) -> int:
        return sum(1 for path, current in hashes.items() if self.status(path, current) == "viewed")
