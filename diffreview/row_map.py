from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .comments import CommentAnchor
from .gap_expansion import ViewRow
from .split_view import SplitRow


@dataclass(frozen=True)
class RowCoordinate:
    side: str
    line: int


class RowCoordinateMap:
    """Row id to comment coordinate registry, filled while rows are rendered.

    Selections are turned into anchors by looking rows up here instead of
    reading line numbers back out of rendered output.
    """

    def __init__(self) -> None:
        self._coordinates: dict[str, RowCoordinate] = {}

    def __len__(self) -> int:
        return len(self._coordinates)

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._coordinates

    def clear(self) -> None:
        self._coordinates.clear()

    def register(self, row_id: str, side: str, line: int | None) -> None:
        if line is None or not row_id:
            return
        self._coordinates[row_id] = RowCoordinate(side, line)

    def register_unified(self, rows: Iterable[ViewRow]) -> None:
        for row in rows:
            if row.kind == "delete":
                self.register(row.row_id, "DELETE", row.old_line)
            elif row.kind in {"insert", "context", "expanded"}:
                self.register(row.row_id, "ADD", row.new_line)

    def register_split(self, rows: Iterable[SplitRow]) -> None:
        for row in rows:
            if row.pair is None:
                continue
            left, right = row.pair.left, row.pair.right
            if left is not None:
                self.register(f"{left.row_id}:L", "DELETE", left.line)
            if right is not None:
                self.register(f"{right.row_id}:R", "ADD", right.line)

    def coordinate(self, row_id: str) -> RowCoordinate | None:
        return self._coordinates.get(row_id)

    def anchor_for_selection(self, file_path: str, row_ids: Iterable[str]) -> CommentAnchor | None:
        coordinates = [self._coordinates[row_id] for row_id in row_ids if row_id in self._coordinates]
        if not coordinates:
            return None
        sides = {item.side for item in coordinates}
        if len(sides) != 1:
            return None
        lines = [item.line for item in coordinates]
        return CommentAnchor.create(file_path, sides.pop(), min(lines), max(lines))
