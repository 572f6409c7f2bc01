import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.comments import CommentAnchor  # noqa: E402
from diffreview.diff_model import DiffFile, DiffHunk, DiffLine  # noqa: E402
from diffreview.gap_expansion import GapExpansionTracker  # noqa: E402
from diffreview.row_map import RowCoordinate, RowCoordinateMap  # noqa: E402
from diffreview.split_view import build_split_rows  # noqa: E402


def make_tracker() -> GapExpansionTracker:
    lines = (
        DiffLine("context", 4, 4, "a"),
        DiffLine("delete", 5, None, "b"),
        DiffLine("insert", None, 5, "c"),
        DiffLine("insert", None, 6, "d"),
    )
    hunk = DiffHunk(old_start=4, old_lines=2, new_start=4, new_lines=3, lines=lines)
    tracker = GapExpansionTracker(DiffFile(old_path="a.py", new_path="a.py", hunks=(hunk,)))
    tracker.set_file_lines(["1", "2", "3", "a", "c", "d"])
    tracker.expand_all(0)
    return tracker


class TestRowCoordinateMap(unittest.TestCase):
    def test_unified_rows(self):
        row_map = RowCoordinateMap()
        row_map.register_unified(make_tracker().build_unified_rows())
        self.assertEqual(row_map.coordinate("g0-2"), RowCoordinate("ADD", 2))
        self.assertEqual(row_map.coordinate("h0-0"), RowCoordinate("ADD", 4))
        self.assertEqual(row_map.coordinate("h0-1"), RowCoordinate("DELETE", 5))
        self.assertNotIn("hunk-0", row_map)
        self.assertEqual(len(row_map), 7)

    def test_selection_becomes_anchor(self):
        row_map = RowCoordinateMap()
        row_map.register_unified(make_tracker().build_unified_rows())
        self.assertEqual(row_map.anchor_for_selection("a.py", ["h0-3", "h0-2"]), CommentAnchor("a.py", "ADD", 5, 6))
        self.assertEqual(row_map.anchor_for_selection("a.py", ["h0-1", "hunk-0"]), CommentAnchor("a.py", "DELETE", 5, 5))
        self.assertIsNone(row_map.anchor_for_selection("a.py", ["h0-1", "h0-2"]))
        self.assertIsNone(row_map.anchor_for_selection("a.py", ["nothing"]))
        self.assertIsNone(row_map.anchor_for_selection("a.py", []))

    def test_split_rows_register_both_columns(self):
        row_map = RowCoordinateMap()
        row_map.register_split(build_split_rows(make_tracker().build_unified_rows()))
        self.assertEqual(row_map.coordinate("h0-1:L"), RowCoordinate("DELETE", 5))
        self.assertEqual(row_map.coordinate("h0-2:R"), RowCoordinate("ADD", 5))
        self.assertEqual(row_map.coordinate("h0-0:L"), RowCoordinate("DELETE", 4))
        self.assertEqual(row_map.coordinate("h0-0:R"), RowCoordinate("ADD", 4))
        self.assertIsNone(row_map.coordinate("h0-3:L"))

    def test_clear(self):
        row_map = RowCoordinateMap()
        row_map.register("x", "ADD", 1)
        row_map.register("y", "ADD", None)
        self.assertEqual(len(row_map), 1)
        row_map.clear()
        self.assertEqual(len(row_map), 0)


if __name__ == "__main__":
    unittest.main()
