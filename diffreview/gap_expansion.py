from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from .diff_model import DiffFile, Gap, compute_gaps, gaps_by_index, split_file_content

DEFAULT_EXPAND_STEP = 20

FileFetcher = Callable[[str], Awaitable[str]]
BlockHighlighter = Callable[[list[str]], list[str]]


@dataclass
class GapExpansion:
    from_top: int = 0
    from_bottom: int = 0
    full: bool = False


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class ExpandedRanges:
    top: LineRange | None = None
    bottom: LineRange | None = None


@dataclass(frozen=True)
class ViewRow:
    kind: str  # hunk|gap|context|insert|delete|expanded
    row_id: str
    old_line: int | None = None
    new_line: int | None = None
    content: str = ""
    html: str | None = None
    hunk_index: int | None = None
    gap_index: int | None = None
    remaining: int = 0


def get_expanded_ranges(gap: Gap | None, expansion: GapExpansion | None) -> ExpandedRanges:
    if gap is None or expansion is None:
        return ExpandedRanges()
    if expansion.full:
        return ExpandedRanges(top=LineRange(gap.start_line, gap.end_line))
    # Counters queued before the gap bounds were known may overshoot.
    top_count = min(max(expansion.from_top, 0), gap.total_lines)
    bottom_count = min(max(expansion.from_bottom, 0), gap.total_lines - top_count)
    top = None
    if top_count > 0:
        top = LineRange(gap.start_line, min(gap.start_line + top_count - 1, gap.end_line))
    bottom = None
    if bottom_count > 0:
        bottom = LineRange(max(gap.end_line - bottom_count + 1, gap.start_line), gap.end_line)
    return ExpandedRanges(top=top, bottom=bottom)


def is_gap_fully_expanded(gap: Gap | None, expansion: GapExpansion | None) -> bool:
    if gap is None or expansion is None:
        return False
    if expansion.full:
        return True
    return expansion.from_top + expansion.from_bottom >= gap.total_lines


def remaining_lines(gap: Gap, expansion: GapExpansion | None) -> int:
    if expansion is None:
        return gap.total_lines
    if expansion.full:
        return 0
    return max(0, gap.total_lines - expansion.from_top - expansion.from_bottom)


def placeholder_line(line_number: int) -> str:
    return f"    // ... (expanded context line {line_number})"


class GapExpansionTracker:
    """Per-file-view expansion state for the unchanged regions between hunks.

    Full file text is fetched at most once per tracker: when the view calls
    ``prefetch``, when a gap is first expanded, or when ``ensure_file_lines``
    is awaited directly.
    """

    def __init__(
        self,
        file: DiffFile,
        fetch: FileFetcher | None = None,
        *,
        step: int = DEFAULT_EXPAND_STEP,
    ) -> None:
        if step < 1:
            raise ValueError("expand step must be >= 1")
        self.file = file
        self.step = step
        self.expansions: dict[int, GapExpansion] = {}
        self.file_lines: list[str] | None = None
        self.warnings: list[str] = []
        self.fetch_count = 0
        self._fetch = fetch
        self._loading: asyncio.Future[list[str] | None] | None = None
        self._background: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def gaps(self) -> list[Gap]:
        total = len(self.file_lines) if self.file_lines is not None else None
        return compute_gaps(self.file.hunks, total)

    def gap(self, gap_index: int) -> Gap | None:
        return gaps_by_index(self.gaps).get(gap_index)

    def expansion(self, gap_index: int) -> GapExpansion | None:
        return self.expansions.get(gap_index)

    def close(self) -> None:
        """Mark the view as gone; fetch results that land later are ignored."""
        self._closed = True

    def set_file_lines(self, lines: list[str]) -> None:
        if not self._closed:
            self.file_lines = list(lines)

    def expand_down(self, gap_index: int) -> None:
        self._grow(gap_index, top=True)

    def expand_up(self, gap_index: int) -> None:
        self._grow(gap_index, top=False)

    def expand_all(self, gap_index: int) -> None:
        self.prefetch()
        self.expansions[gap_index] = GapExpansion(from_top=0, from_bottom=0, full=True)

    def expand_to_line(self, line: int) -> bool:
        """Fully reveal the gap containing new-side ``line``; False when none does."""
        for gap in self.gaps:
            if gap.start_line <= line <= gap.end_line:
                if not is_gap_fully_expanded(gap, self.expansions.get(gap.gap_index)):
                    self.expand_all(gap.gap_index)
                return True
        return False

    def _grow(self, gap_index: int, *, top: bool) -> None:
        self.prefetch()
        current = self.expansions.get(gap_index) or GapExpansion()
        if current.full:
            return
        gap = self.gap(gap_index)
        if gap is None:
            # Bounds unknown until the file is loaded: queue a full step, clamped on render.
            amount = self.step
        else:
            remaining = gap.total_lines - current.from_top - current.from_bottom
            amount = max(0, min(self.step, remaining))
        if top:
            self.expansions[gap_index] = GapExpansion(current.from_top + amount, current.from_bottom, False)
        else:
            self.expansions[gap_index] = GapExpansion(current.from_top, current.from_bottom + amount, False)

    def prefetch(self) -> bool:
        """Start loading file content in the background; False when there is nothing to load."""
        if self.file_lines is not None or self._fetch is None or self._closed:
            return False
        if self._loading is not None or self._background is not None:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._background = loop.create_task(self.ensure_file_lines())
        return True

    async def ensure_file_lines(self) -> list[str] | None:
        if self.file_lines is not None:
            return self.file_lines
        if self._fetch is None:
            return None
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load_file_lines(self._fetch))
        return await asyncio.shield(self._loading)

    async def _load_file_lines(self, fetch: FileFetcher) -> list[str] | None:
        self.fetch_count += 1
        path = self.file.new_path
        try:
            content = await fetch(path)
        except Exception as error:  # noqa: BLE001
            if self._closed:
                return None
            self.warnings.append(f"File content unavailable for {path}: {error}")
            max_line = max((gap.end_line for gap in self.gaps), default=0)
            lines = [placeholder_line(number) for number in range(1, max_line + 1)]
        else:
            if self._closed:
                return None
            lines = split_file_content(content)
        self.file_lines = lines
        return lines

    def _line_text(self, new_line: int) -> str:
        if self.file_lines is None or new_line < 1 or new_line > len(self.file_lines):
            return ""
        return self.file_lines[new_line - 1]

    def _range_rows(
        self,
        gap: Gap,
        line_range: LineRange | None,
        highlighter: BlockHighlighter | None,
    ) -> list[ViewRow]:
        if line_range is None or self.file_lines is None:
            return []
        texts = [self._line_text(number) for number in range(line_range.start, line_range.end + 1)]
        htmls: list[str] | None = highlighter(texts) if highlighter is not None else None
        rows: list[ViewRow] = []
        for offset, text in enumerate(texts):
            new_line = line_range.start + offset
            rows.append(
                ViewRow(
                    kind="expanded",
                    row_id=f"g{gap.gap_index}-{new_line}",
                    old_line=gap.old_start_line + (new_line - gap.start_line),
                    new_line=new_line,
                    content=text,
                    html=htmls[offset] if htmls is not None and offset < len(htmls) else None,
                    gap_index=gap.gap_index,
                )
            )
        return rows

    def _gap_rows(self, gap: Gap | None, highlighter: BlockHighlighter | None) -> list[ViewRow]:
        if gap is None:
            return []
        expansion = self.expansions.get(gap.gap_index)
        ranges = get_expanded_ranges(gap, expansion)
        rows = self._range_rows(gap, ranges.top, highlighter)
        if self.file_lines is None:
            # Nothing revealed yet; every line of the gap is still hidden.
            remaining = gap.total_lines
        else:
            remaining = remaining_lines(gap, expansion)
        if remaining > 0:
            rows.append(
                ViewRow(
                    kind="gap",
                    row_id=f"gap-{gap.gap_index}",
                    gap_index=gap.gap_index,
                    remaining=remaining,
                )
            )
        rows.extend(self._range_rows(gap, ranges.bottom, highlighter))
        return rows

    def build_unified_rows(self, highlighter: BlockHighlighter | None = None) -> list[ViewRow]:
        """Walk gaps and hunks in file order and return the rows to display."""
        by_index = gaps_by_index(self.gaps)
        rows: list[ViewRow] = []
        for hunk_index, hunk in enumerate(self.file.hunks):
            rows.extend(self._gap_rows(by_index.get(hunk_index), highlighter))
            rows.append(
                ViewRow(
                    kind="hunk",
                    row_id=f"hunk-{hunk_index}",
                    content=(
                        f"@@ -{hunk.old_start},{hunk.old_lines} +{hunk.new_start},{hunk.new_lines} @@"
                        + (f" {hunk.header}" if hunk.header else "")
                    ),
                    hunk_index=hunk_index,
                )
            )
            texts = [line.content for line in hunk.lines]
            htmls = highlighter(texts) if highlighter is not None and texts else None
            for line_index, line in enumerate(hunk.lines):
                rows.append(
                    ViewRow(
                        kind=line.kind,
                        row_id=f"h{hunk_index}-{line_index}",
                        old_line=line.old_line,
                        new_line=line.new_line,
                        content=line.content,
                        html=htmls[line_index] if htmls is not None and line_index < len(htmls) else None,
                        hunk_index=hunk_index,
                    )
                )
        rows.extend(self._gap_rows(by_index.get(len(self.file.hunks)), highlighter))
        return rows
