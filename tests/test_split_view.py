import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.diff_model import DiffFile, DiffHunk, DiffLine  # noqa: E402
from diffreview.gap_expansion import GapExpansionTracker  # noqa: E402
from diffreview.split_view import build_split_pairs, build_split_rows  # noqa: E402


def make_lines() -> list[DiffLine]:
    return [
        DiffLine("context", 1, 1, "keep"),
        DiffLine("delete", 2, None, "old a"),
        DiffLine("delete", 3, None, "old b"),
        DiffLine("insert", None, 2, "new a"),
        DiffLine("context", 4, 3, "tail"),
    ]


class TestBuildSplitPairs(unittest.TestCase):
    def test_two_deletes_one_insert(self):
        pairs = build_split_pairs(make_lines())
        self.assertEqual(len(pairs), 4)
        self.assertEqual((pairs[0].left.content, pairs[0].right.content), ("keep", "keep"))
        self.assertEqual((pairs[1].left.line, pairs[1].right.line), (2, 2))
        self.assertEqual(pairs[1].right.content, "new a")
        self.assertEqual(pairs[2].left.content, "old b")
        self.assertIsNone(pairs[2].right)
        self.assertEqual((pairs[3].left.line, pairs[3].right.line), (4, 3))

    def test_more_inserts_than_deletes(self):
        lines = [
            DiffLine("delete", 5, None, "x"),
            DiffLine("insert", None, 5, "y1"),
            DiffLine("insert", None, 6, "y2"),
        ]
        pairs = build_split_pairs(lines)
        self.assertEqual(len(pairs), 2)
        self.assertIsNone(pairs[1].left)
        self.assertEqual(pairs[1].right.content, "y2")

    def test_every_line_lands_in_exactly_one_column(self):
        lines = make_lines() + [
            DiffLine("insert", None, 4, "n1"),
            DiffLine("delete", 5, None, "o1"),
            DiffLine("insert", None, 5, "n2"),
        ]
        pairs = build_split_pairs(lines)
        left = [pair.left for pair in pairs if pair.left is not None]
        right = [pair.right for pair in pairs if pair.right is not None]
        self.assertEqual(len(left), sum(1 for line in lines if line.kind != "insert"))
        self.assertEqual(len(right), sum(1 for line in lines if line.kind != "delete"))
        self.assertEqual([cell.line for cell in left], [1, 2, 3, 4, 5])
        self.assertEqual([cell.line for cell in right], [1, 2, 3, 4, 5])

    def test_highlighted_fragments_follow_their_lines(self):
        fragments = [f"<i>{index}</i>" for index in range(5)]
        pairs = build_split_pairs(make_lines(), fragments)
        self.assertEqual(pairs[1].left.html, "<i>1</i>")
        self.assertEqual(pairs[1].right.html, "<i>3</i>")
        self.assertEqual(pairs[2].left.html, "<i>2</i>")


class TestBuildSplitRows(unittest.TestCase):
    def test_unified_walk_keeps_hunk_and_gap_markers(self):
        hunk = DiffHunk(old_start=5, old_lines=5, new_start=5, new_lines=4, lines=tuple(
            DiffLine(line.kind, None if line.old_line is None else line.old_line + 4,
                     None if line.new_line is None else line.new_line + 4, line.content)
            for line in make_lines()
        ))
        file = DiffFile(old_path="a.txt", new_path="a.txt", hunks=(hunk,))
        tracker = GapExpansionTracker(file)
        rows = build_split_rows(tracker.build_unified_rows())
        self.assertEqual([row.kind for row in rows], ["gap", "hunk", "pair", "pair", "pair", "pair"])
        self.assertEqual(rows[0].remaining, 4)
        self.assertEqual(rows[1].row_id, "hunk-0")
        self.assertEqual(rows[2].row_id, "split-h0-0")
        self.assertEqual(rows[3].row_id, "split-h0-1")
        self.assertEqual(rows[3].pair.right.row_id, "h0-3")
        self.assertIsNone(rows[4].pair.right)

    def test_expanded_rows_fill_both_columns(self):
        hunk = DiffHunk(old_start=3, old_lines=1, new_start=3, new_lines=1, lines=(DiffLine("context", 3, 3, "c"),))
        file = DiffFile(old_path="a.txt", new_path="a.txt", hunks=(hunk,))
        tracker = GapExpansionTracker(file)
        tracker.set_file_lines(["one", "two", "c"])
        tracker.expand_all(0)
        rows = build_split_rows(tracker.build_unified_rows())
        self.assertEqual(rows[0].kind, "pair")
        self.assertEqual(rows[0].pair.left.kind, "expanded")
        self.assertEqual((rows[0].pair.left.line, rows[0].pair.right.line), (1, 1))
        self.assertEqual(rows[1].pair.right.content, "two")


if __name__ == "__main__":
    unittest.main()
