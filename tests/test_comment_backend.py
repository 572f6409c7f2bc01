import asyncio
import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.comment_backend import JsonCommentBackend  # noqa: E402


def inline_payload(**overrides) -> dict:
    payload = {
        "comment_type": "inline",
        "file_path": "src/a.py",
        "side": "ADD",
        "start_line": 4,
        "end_line": 2,
        "content": "  needs a test  ",
        "author": "frank",
    }
    payload.update(overrides)
    return payload


class TestJsonCommentBackend(unittest.TestCase):
    def test_create_assigns_ids_and_returns_counts(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "comments.json"
            backend = JsonCommentBackend(path)

            async def _run():
                await backend.create_comment(inline_payload())
                await backend.create_comment({"comment_type": "project", "content": "ship it"})
                return await backend.update_comment_status(2, "resolved")

            response = asyncio.run(_run())
            stored = json.loads(path.read_text(encoding="utf-8"))

        self.assertEqual([item["id"] for item in response["comments"]], [1, 2])
        first = response["comments"][0]
        self.assertEqual((first["start_line"], first["end_line"], first["content"]), (2, 4, "needs a test"))
        self.assertEqual(first["author"], "frank")
        self.assertNotIn("file_path", response["comments"][1])
        self.assertEqual((response["open_count"], response["resolved_count"], response["not_resolved_count"]), (1, 1, 1))
        self.assertEqual(stored["next_id"], 3)

    def test_ids_are_not_reused_after_delete(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            backend = JsonCommentBackend(Path(tmpdir) / "comments.json")

            async def _run():
                await backend.create_comment(inline_payload())
                await backend.delete_comment(1)
                return await backend.create_comment(inline_payload())

            response = asyncio.run(_run())
        self.assertEqual([item["id"] for item in response["comments"]], [2])

    def test_replies_and_edits(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            backend = JsonCommentBackend(Path(tmpdir) / "comments.json")

            async def _run():
                await backend.create_comment(inline_payload())
                await backend.reply_comment(1, "done", "gina")
                await backend.reply_comment(1, "thanks", "frank")
                return await backend.edit_comment(1, "needs two tests")

            response = asyncio.run(_run())
        comment = response["comments"][0]
        self.assertEqual(comment["content"], "needs two tests")
        self.assertEqual([(reply["id"], reply["author"]) for reply in comment["replies"]], [(1, "gina"), (2, "frank")])

    def test_invalid_requests_raise(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            backend = JsonCommentBackend(Path(tmpdir) / "comments.json")
            cases = [
                backend.create_comment(inline_payload(content="   ")),
                backend.create_comment(inline_payload(side="LEFT")),
                backend.create_comment(inline_payload(comment_type="thread")),
                backend.create_comment({"comment_type": "file", "content": "x"}),
                backend.update_comment_status(1, "closed"),
            ]
            for coro in cases:
                with self.subTest(coro=coro):
                    with self.assertRaises(RuntimeError):
                        asyncio.run(coro)
            with self.assertRaises(LookupError):
                asyncio.run(backend.delete_comment(99))

    def test_existing_file_without_next_id(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "comments.json"
            path.write_text(json.dumps({"comments": [{"id": 7, "comment_type": "project", "content": "x"}]}), encoding="utf-8")
            response = asyncio.run(JsonCommentBackend(path).create_comment({"comment_type": "project", "content": "y"}))
        self.assertEqual([item["id"] for item in response["comments"]], [7, 8])

    def test_broken_file_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "comments.json"
            path.write_text("{", encoding="utf-8")
            with self.assertRaises(RuntimeError):
                asyncio.run(JsonCommentBackend(path).list_comments())


if __name__ == "__main__":
    unittest.main()
