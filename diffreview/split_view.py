from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .diff_model import DiffLine
from .gap_expansion import ViewRow


@dataclass(frozen=True)
class LineCell:
    kind: str  # context|insert|delete|expanded
    line: int | None
    content: str
    html: str | None = None
    row_id: str = ""


@dataclass(frozen=True)
class SplitPair:
    left: LineCell | None
    right: LineCell | None


def _flush(pairs: list[SplitPair], deletes: list[LineCell], inserts: list[LineCell]) -> None:
    for index in range(max(len(deletes), len(inserts))):
        pairs.append(
            SplitPair(
                left=deletes[index] if index < len(deletes) else None,
                right=inserts[index] if index < len(inserts) else None,
            )
        )
    deletes.clear()
    inserts.clear()


def build_split_pairs(lines: Sequence[DiffLine], highlighted: Sequence[str] | None = None) -> list[SplitPair]:
    """Align one hunk into two columns.

    Runs of deletions are paired 1:1 with the insertions that follow them; the
    shorter run is padded with ``None``. Context lines fill both columns.
    """
    pairs: list[SplitPair] = []
    deletes: list[LineCell] = []
    inserts: list[LineCell] = []

    def _html(index: int) -> str | None:
        if highlighted is None or index >= len(highlighted):
            return None
        return highlighted[index]

    for index, line in enumerate(lines):
        if line.kind == "delete":
            deletes.append(LineCell("delete", line.old_line, line.content, _html(index)))
        elif line.kind == "insert":
            inserts.append(LineCell("insert", line.new_line, line.content, _html(index)))
        else:
            _flush(pairs, deletes, inserts)
            html = _html(index)
            pairs.append(
                SplitPair(
                    left=LineCell("context", line.old_line, line.content, html),
                    right=LineCell("context", line.new_line, line.content, html),
                )
            )
    _flush(pairs, deletes, inserts)
    return pairs


@dataclass(frozen=True)
class SplitRow:
    kind: str  # pair|hunk|gap
    row_id: str
    pair: SplitPair | None = None
    content: str = ""
    hunk_index: int | None = None
    gap_index: int | None = None
    remaining: int = 0


def build_split_rows(rows: Sequence[ViewRow]) -> list[SplitRow]:
    """Apply the split pairing to a unified walk, keeping hunk and gap markers."""
    out: list[SplitRow] = []
    deletes: list[LineCell] = []
    inserts: list[LineCell] = []
    pending: list[SplitPair] = []

    def _drain() -> None:
        _flush(pending, deletes, inserts)
        for pair in pending:
            cell = pair.left or pair.right
            out.append(SplitRow(kind="pair", row_id=f"split-{cell.row_id if cell else len(out)}", pair=pair))
        pending.clear()

    for row in rows:
        if row.kind == "delete":
            deletes.append(LineCell("delete", row.old_line, row.content, row.html, row.row_id))
            continue
        if row.kind == "insert":
            inserts.append(LineCell("insert", row.new_line, row.content, row.html, row.row_id))
            continue
        _drain()
        if row.kind in {"context", "expanded"}:
            out.append(
                SplitRow(
                    kind="pair",
                    row_id=f"split-{row.row_id}",
                    pair=SplitPair(
                        left=LineCell(row.kind, row.old_line, row.content, row.html, row.row_id),
                        right=LineCell(row.kind, row.new_line, row.content, row.html, row.row_id),
                    ),
                )
            )
        else:
            out.append(
                SplitRow(
                    kind=row.kind,
                    row_id=row.row_id,
                    content=row.content,
                    hunk_index=row.hunk_index,
                    gap_index=row.gap_index,
                    remaining=row.remaining,
                )
            )
    _drain()
    return out
