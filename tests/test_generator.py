import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.diff_model import parse_full_diff  # noqa: E402
from diffreview.generator import normalize_diff_path, parse_diff_paths, parse_unified_diff  # noqa: E402
from scripts.generate_diff_json import main as generate_main  # noqa: E402

SAMPLE_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 1111111..2222222 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,3 +1,4 @@ def main():
 import os
-import sys
+import sys  # noqa
+import json

@@ -10,2 +11,2 @@ class App:
-    x = 1
+    x = 2
     y = 3
\\ No newline at end of file
diff --git a/docs/new.md b/docs/new.md
new file mode 100644
index 0000000..3333333
--- /dev/null
+++ b/docs/new.md
@@ -0,0 +1 @@
+hello
diff --git a/old.txt b/old.txt
deleted file mode 100644
index 4444444..0000000
--- a/old.txt
+++ /dev/null
@@ -1 +0,0 @@
-bye
diff --git a/logo.png b/logo.png
index 5555555..6666666 100644
Binary files a/logo.png and b/logo.png differ
diff --git a/lib/before.py b/lib/after.py
similarity index 100%
rename from lib/before.py
rename to lib/after.py
"""


class TestParseUnifiedDiff(unittest.TestCase):
    def setUp(self):
        self.doc = parse_unified_diff(SAMPLE_DIFF)
        self.files = {item["new_path"]: item for item in self.doc["files"]}

    def test_change_types(self):
        self.assertEqual(
            {path: item["change_type"] for path, item in self.files.items()},
            {
                "src/app.py": "modified",
                "docs/new.md": "added",
                "old.txt": "deleted",
                "logo.png": "modified",
                "lib/after.py": "renamed",
            },
        )
        self.assertEqual(self.files["lib/after.py"]["old_path"], "lib/before.py")
        self.assertTrue(self.files["logo.png"]["is_binary"])

    def test_hunks_and_line_numbers(self):
        app = self.files["src/app.py"]
        first, second = app["hunks"]
        self.assertEqual((first["old_start"], first["old_lines"], first["new_start"], first["new_lines"]), (1, 3, 1, 4))
        self.assertEqual(first["header"], "def main():")
        self.assertEqual(
            [(line["line_type"], line["old_line"], line["new_line"]) for line in first["lines"]],
            [("context", 1, 1), ("delete", 2, None), ("insert", None, 2), ("insert", None, 3), ("context", 3, 4)],
        )
        self.assertEqual(first["lines"][4]["content"], "")
        self.assertEqual(len(second["lines"]), 3)
        self.assertEqual(second["lines"][2]["content"], "    y = 3")

    def test_counts(self):
        app = self.files["src/app.py"]
        self.assertEqual((app["additions"], app["deletions"]), (3, 2))
        self.assertEqual(self.doc["total_additions"], 4)
        self.assertEqual(self.doc["total_deletions"], 3)
        added = self.files["docs/new.md"]["hunks"][0]
        self.assertEqual((added["old_start"], added["old_lines"], added["new_lines"]), (0, 0, 1))

    def test_output_parses_as_full_diff(self):
        result = parse_full_diff(self.doc)
        self.assertEqual(len(result.files), 5)
        self.assertEqual(result.warnings, ())

    def test_form_feed_and_unicode_separators_stay_in_content(self):
        diff_text = "diff --git a/x.c b/x.c\r\n@@ -1,2 +1,2 @@\r\n a\x0cb c\x85d\r\n-c\r\n+d\r\n"
        hunk = parse_unified_diff(diff_text)["files"][0]["hunks"][0]
        self.assertEqual(
            [(line["line_type"], line["old_line"], line["new_line"], line["content"]) for line in hunk["lines"]],
            [("context", 1, 1, "a\x0cb c\x85d"), ("delete", 2, None, "c"), ("insert", None, 2, "d")],
        )
        result = parse_full_diff(parse_unified_diff(diff_text))
        self.assertEqual(result.warnings, ())

    def test_bad_hunk_header_raises(self):
        with self.assertRaises(RuntimeError):
            parse_unified_diff("diff --git a/x b/x\n@@ nonsense @@\n")

    def test_path_helpers(self):
        self.assertIsNone(normalize_diff_path("/dev/null"))
        self.assertEqual(normalize_diff_path("b/src/a.py"), "src/a.py")
        self.assertEqual(parse_diff_paths("diff --git a/x y.py b/x y.py"), ("x y.py", "x y.py"))


class TestGenerateScript(unittest.TestCase):
    def test_writes_document(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "out" / "diff.json"
            with mock.patch("diffreview.generator.run_git", side_effect=["abc\n", SAMPLE_DIFF]):
                with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()):
                    code = generate_main(["--repo", tmpdir, "--base", "main", "--output", str(output)])
            self.assertEqual(code, 0)
            doc = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual(len(doc["files"]), 5)

    def test_git_failure_returns_one(self):
        with mock.patch("diffreview.generator.run_git", side_effect=RuntimeError("bad ref")):
            stderr = io.StringIO()
            with redirect_stdout(io.StringIO()), redirect_stderr(stderr):
                code = generate_main(["--repo", ".", "--base", "nope"])
        self.assertEqual(code, 1)
        self.assertIn("bad ref", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
