import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.diff_model import parse_full_diff  # noqa: E402
from diffreview.viewer_core import compute_metrics, filter_files, validate_diff_document  # noqa: E402
from scripts.view_diff import main as view_main  # noqa: E402


def make_hunk(start: int, changed: bool = False) -> dict:
    lines = [{"line_type": "context", "old_line": line, "new_line": line, "content": f"line {line}"} for line in range(start, start + 6)]
    if changed:
        lines[2] = {"line_type": "delete", "old_line": start + 2, "new_line": None, "content": "old"}
        lines.insert(3, {"line_type": "insert", "old_line": None, "new_line": start + 2, "content": f"line {start + 2}"})
    return {"old_start": start, "old_lines": 6, "new_start": start, "new_lines": 6, "header": "", "lines": lines}


def make_doc() -> dict:
    return {
        "files": [
            {
                "old_path": "src/app.py",
                "new_path": "src/app.py",
                "change_type": "modified",
                "hunks": [make_hunk(10, changed=True), make_hunk(30), make_hunk(50)],
                "is_binary": False,
            },
            {"old_path": "img/logo.png", "new_path": "img/logo.png", "change_type": "added", "hunks": [], "is_binary": True},
        ],
    }


class TestViewerCore(unittest.TestCase):
    def test_valid_document_has_no_warnings(self):
        self.assertEqual(validate_diff_document(make_doc()), [])

    def test_validation_warnings(self):
        doc = make_doc()
        doc["files"][0]["hunks"][1]["new_lines"] = 9
        doc["files"][0]["hunks"][2]["new_start"] = 31
        doc["files"][0]["hunks"][0]["lines"][0]["line_type"] = "changed"
        doc["files"].append({"new_path": "img/logo.png", "hunks": []})
        warnings = validate_diff_document(doc)
        self.assertTrue(any("unsupported line_type" in item for item in warnings))
        self.assertTrue(any("new_lines=9" in item for item in warnings))
        self.assertTrue(any("overlaps" in item for item in warnings))
        self.assertTrue(any("Duplicate" in item for item in warnings))

    def test_missing_files_raises(self):
        with self.assertRaises(RuntimeError):
            validate_diff_document({"meta": {}})

    def test_filter_and_metrics(self):
        files = parse_full_diff(make_doc()).files
        self.assertEqual([item.new_path for item in filter_files(files, "APP")], ["src/app.py"])
        self.assertEqual([item.new_path for item in filter_files(files, None, "added")], ["img/logo.png"])
        metrics = compute_metrics(list(files), {"src/app.py": "viewed"})
        self.assertEqual(metrics["Files"], 2)
        self.assertEqual((metrics["Additions"], metrics["Deletions"], metrics["Hunks"], metrics["Binary"]), (1, 1, 3, 1))
        self.assertEqual(metrics["ViewedRate"], 0.5)


class TestViewDiffScript(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.doc_path = self.root / "diff.json"
        self.doc_path.write_text(json.dumps(make_doc()), encoding="utf-8")
        repo = self.root / "repo" / "src"
        repo.mkdir(parents=True)
        (repo / "app.py").write_text("".join(f"line {line}\n" for line in range(1, 61)), encoding="utf-8")
        self.config_path = self.root / "review.toml"
        self.config_path.write_text('[review]\nstate_dir = "state"\n', encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def run_view(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = view_main([str(self.doc_path), "--config", str(self.config_path), *argv])
        return code, stdout.getvalue(), stderr.getvalue()

    def test_renders_summary_and_rows(self):
        code, out, _ = self.run_view()
        self.assertEqual(code, 0)
        self.assertIn("src/app.py", out)
        self.assertIn("@@ -10,6 +10,6 @@", out)
        self.assertIn("Binary file not shown", out)

    def test_json_rows_with_expand_all(self):
        code, out, _ = self.run_view("--json", "--repo", str(self.root / "repo"), "--expand-all", "--file", "app")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual([item["path"] for item in payload["files"]], ["src/app.py"])
        rows = payload["files"][0]["rows"]
        self.assertFalse(any(row["kind"] == "gap" for row in rows))
        new_lines = [row["new_line"] for row in rows if row["new_line"] is not None]
        self.assertEqual(new_lines, list(range(1, 61)))
        self.assertEqual(payload["files"][0]["viewed"], "none")

    def test_repo_content_adds_trailing_gap(self):
        code, out, _ = self.run_view("--json", "--repo", str(self.root / "repo"), "--file", "app")
        self.assertEqual(code, 0)
        gaps = [row for row in json.loads(out)["files"][0]["rows"] if row["kind"] == "gap"]
        self.assertEqual([(row["gap_index"], row["remaining"]) for row in gaps], [(0, 9), (1, 14), (2, 14), (3, 5)])

    def test_line_jump_reveals_surrounding_gap(self):
        code, out, _ = self.run_view("--json", "--repo", str(self.root / "repo"), "--line", "20", "--file", "app")
        self.assertEqual(code, 0)
        rows = json.loads(out)["files"][0]["rows"]
        self.assertEqual([row["gap_index"] for row in rows if row["kind"] == "gap"], [0, 2, 3])
        expanded = [row["new_line"] for row in rows if row["kind"] == "expanded"]
        self.assertEqual(expanded, list(range(16, 30)))

    def test_json_split_rows(self):
        code, out, _ = self.run_view("--json", "--split", "--file", "app")
        self.assertEqual(code, 0)
        rows = json.loads(out)["files"][0]["rows"]
        pair = next(row for row in rows if row["kind"] == "pair" and row["pair"]["left"]["kind"] == "delete")
        self.assertEqual(pair["pair"]["left"]["line"], 12)
        self.assertEqual(pair["pair"]["right"]["line"], 12)
        self.assertEqual([row["kind"] for row in rows[:2]], ["gap", "hunk"])

    def test_missing_repo_file_falls_back_to_placeholders(self):
        (self.root / "repo" / "src" / "app.py").unlink()
        code, out, _ = self.run_view("--json", "--repo", str(self.root / "repo"), "--expand-all", "--file", "app")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(len(payload["files"][0]["warnings"]), 1)
        expanded = [row for row in payload["files"][0]["rows"] if row["kind"] == "expanded"]
        self.assertEqual(expanded[0]["content"], "    // ... (expanded context line 1)")

    def test_mark_viewed_persists(self):
        code, _, _ = self.run_view("--mark-viewed", "--project", "demo")
        self.assertEqual(code, 0)
        self.assertTrue((self.root / "state" / "viewed-demo.json").exists())
        code, out, _ = self.run_view("--json", "--project", "demo")
        self.assertEqual([item["viewed"] for item in json.loads(out)["files"]], ["viewed", "viewed"])

    def test_comments_create_virtual_files(self):
        comments_path = self.root / "comments.json"
        comments_path.write_text(
            json.dumps(
                {
                    "comments": [
                        {"id": 1, "file_path": "src/app.py", "side": "DELETE", "end_line": 99, "content": "past the end"},
                        {"id": 2, "comment_type": "file", "file_path": "docs/guide.md", "content": "please add"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        code, out, _ = self.run_view("--comments", str(comments_path))
        self.assertEqual(code, 0)
        self.assertIn("past the end", out)
        self.assertIn("docs/guide.md", out)
        self.assertIn("No diff for this file", out)

    def test_no_match_returns_two(self):
        code, _, err = self.run_view("--file", "nothing-here")
        self.assertEqual(code, 2)
        self.assertIn("No files matched", err)

    def test_missing_input_returns_one(self):
        stderr = io.StringIO()
        with redirect_stdout(io.StringIO()), redirect_stderr(stderr):
            code = view_main([str(self.root / "missing.json")])
        self.assertEqual(code, 1)
        self.assertIn("[error]", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
