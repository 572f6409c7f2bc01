import asyncio
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from textual.widgets import DataTable  # noqa: E402

from diffreview.comment_backend import JsonCommentBackend  # noqa: E402
from diffreview.comments import CommentAnchor, CommentStore  # noqa: E402
from diffreview.config import ReviewConfig  # noqa: E402
from diffreview.diff_model import DiffFile, DiffHunk, DiffLine  # noqa: E402
from diffreview.viewed_state import ViewedStore  # noqa: E402
from diffreview.viewer_textual import DiffReviewApp, comment_summary, format_file_label  # noqa: E402


def make_hunk(start: int) -> DiffHunk:
    lines = tuple(DiffLine("context", line, line, f"line {line}") for line in range(start, start + 6))
    return DiffHunk(old_start=start, old_lines=6, new_start=start, new_lines=6, lines=lines)


def make_files() -> list[DiffFile]:
    return [
        DiffFile(old_path="src/app.py", new_path="src/app.py", hunks=(make_hunk(10), make_hunk(30), make_hunk(50))),
        DiffFile(old_path="img/logo.png", new_path="img/logo.png", change_type="added", is_binary=True),
    ]


class TestHelpers(unittest.TestCase):
    def test_format_file_label(self):
        self.assertEqual(format_file_label("a.py"), "a.py")
        self.assertEqual(format_file_label("src/a.py"), "a.py (src)")
        self.assertEqual(format_file_label("x/y/z/a.py"), "a.py (.../y/z)")
        self.assertEqual(format_file_label(""), "-")


class TestDiffReviewApp(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.fetch_calls: list[str] = []

    def tearDown(self):
        self._tmp.cleanup()

    async def fetch(self, path: str) -> str:
        self.fetch_calls.append(path)
        return "".join(f"line {line}\n" for line in range(1, 61))

    def make_app(self, files: list[DiffFile] | None = None, **kwargs) -> DiffReviewApp:
        return DiffReviewApp(
            Path("diff.json"),
            make_files() if files is None else files,
            fetch=self.fetch,
            viewed_store=ViewedStore(self.root / "state", "demo"),
            config=ReviewConfig(),
            **kwargs,
        )

    def test_expand_gap_loads_content_once(self):
        app = self.make_app()
        counts = []

        async def _run() -> None:
            async with app.run_test() as pilot:
                await app.workers.wait_for_complete()
                await pilot.pause()
                lines = app.query_one("#lines", DataTable)
                counts.append(lines.row_count)
                await app.expand_gap(1, "down")
                counts.append(lines.row_count)
                await app.expand_gap(0, "all")
                counts.append(lines.row_count)

        asyncio.run(_run())
        # 4 gaps (the tail gap once prefetched) + 3 hunk headers + 18 lines, then gaps 1 and 0 open.
        self.assertEqual(counts, [25, 38, 46])
        self.assertEqual(self.fetch_calls, ["src/app.py"])

    def test_split_toggle_and_viewed_toggle(self):
        app = self.make_app()
        observed = {}

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.press("s")
                await pilot.pause()
                observed["mode"] = app.view_mode
                observed["columns"] = len(app.query_one("#lines", DataTable).columns)
                await pilot.press("v")
                await pilot.pause()
                observed["viewed"] = app.viewed_status(app.files_by_path["src/app.py"])

        asyncio.run(_run())
        self.assertEqual(observed, {"mode": "split", "columns": 4, "viewed": "viewed"})
        self.assertEqual(ViewedStore(self.root / "state", "demo").status("src/app.py", "irrelevant"), "updated")

    def test_comment_rows_and_collapse(self):
        store = CommentStore(JsonCommentBackend(self.root / "comments.json"), author="jo")
        asyncio.run(store.create_inline(CommentAnchor.create("src/app.py", "ADD", 12), "look here"))
        app = self.make_app(comment_store=store)
        observed = {}

        async def _run() -> None:
            async with app.run_test() as pilot:
                await app.workers.wait_for_complete()
                await pilot.pause()
                lines = app.query_one("#lines", DataTable)
                observed["before"] = lines.row_count
                observed["anchor"] = app.row_map.anchor_for_selection("src/app.py", ["h0-2"])
                store.collapse.collapse(1)
                app._render_file()
                observed["collapsed"] = lines.row_count
                observed["label"] = comment_summary(store.comments[0])

        asyncio.run(_run())
        self.assertEqual(observed["before"], 26)
        self.assertEqual(observed["anchor"], CommentAnchor("src/app.py", "ADD", 12, 12))
        self.assertEqual(observed["collapsed"], 26)
        self.assertEqual(observed["label"], "#1 jo [open] look here")

    def test_opening_a_file_prefetches_content_for_the_tail_gap(self):
        hunk = DiffHunk(
            old_start=1,
            old_lines=6,
            new_start=1,
            new_lines=6,
            lines=tuple(DiffLine("context", line, line, f"line {line}") for line in range(1, 7)),
        )
        app = self.make_app([DiffFile(old_path="src/a.py", new_path="src/a.py", hunks=(hunk,))])
        observed = {}

        async def _run() -> None:
            async with app.run_test() as pilot:
                await app.workers.wait_for_complete()
                await pilot.pause()
                lines = app.query_one("#lines", DataTable)
                observed["keys"] = [key.value for key in lines.rows]
                observed["gap"] = app.current_gap_index()
                await app.expand_gap(1, "down")
                rows = app.trackers["src/a.py"].build_unified_rows()
                observed["remaining"] = [row.remaining for row in rows if row.kind == "gap"]

        asyncio.run(_run())
        self.assertIn("gap-1", observed["keys"])
        self.assertEqual(observed["gap"], 1)
        self.assertEqual(observed["remaining"], [34])
        self.assertEqual(self.fetch_calls, ["src/a.py"])

    def test_select_and_extend_lines_for_a_range_comment(self):
        app = self.make_app()
        observed = {}

        async def _run() -> None:
            async with app.run_test() as pilot:
                await app.workers.wait_for_complete()
                await pilot.pause()
                lines = app.query_one("#lines", DataTable)
                lines.move_cursor(row=lines.get_row_index("h0-1"))
                app.action_select_line()
                observed["single"] = app.pending_anchor
                lines.move_cursor(row=lines.get_row_index("h0-3"))
                app.action_extend_selection()
                observed["range"] = app.pending_anchor
                app.action_select_line()
                observed["moved"] = app.pending_anchor

        asyncio.run(_run())
        self.assertEqual(observed["single"], CommentAnchor("src/app.py", "ADD", 11, 11))
        self.assertEqual(observed["range"], CommentAnchor("src/app.py", "ADD", 11, 13))
        self.assertEqual(observed["moved"], CommentAnchor("src/app.py", "ADD", 13, 13))

    def test_binary_file_placeholder(self):

        app = self.make_app()
        observed = {}

        async def _run() -> None:
            async with app.run_test() as pilot:
                app.selected_path = "img/logo.png"
                app._render_file()
                await pilot.pause()
                observed["rows"] = app.query_one("#lines", DataTable).row_count

        asyncio.run(_run())
        self.assertEqual(observed["rows"], 1)


if __name__ == "__main__":
    unittest.main()
