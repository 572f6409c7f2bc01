from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any

from .comments import COMMENT_STATUSES, COMMENT_TYPES, SIDES, count_by_status, parse_comments_response


def iso_utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class JsonCommentBackend:
    """Comment service backed by a local JSON file.

    Every call answers with the whole collection, the same shape a remote
    review service returns, so ``CommentStore`` can replace its state.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"comments": [], "next_id": 1}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as error:
            raise RuntimeError(f"Invalid comments JSON: {error}") from error
        if not isinstance(data, dict) or not isinstance(data.get("comments"), list):
            raise RuntimeError("Comments file must be an object with a `comments` array.")
        if not isinstance(data.get("next_id"), int):
            ids = [item.get("id") for item in data["comments"] if isinstance(item, dict)]
            data["next_id"] = max((value for value in ids if isinstance(value, int)), default=0) + 1
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")

    @staticmethod
    def _response(data: dict[str, Any]) -> dict[str, Any]:
        counts = count_by_status(parse_comments_response({"comments": data["comments"]}).comments)
        return {
            "comments": data["comments"],
            "open_count": counts["open"],
            "resolved_count": counts["resolved"],
            "not_resolved_count": counts["not_resolved"],
        }

    @staticmethod
    def _find(data: dict[str, Any], comment_id: int) -> dict[str, Any]:
        for item in data["comments"]:
            if isinstance(item, dict) and item.get("id") == comment_id:
                return item
        raise LookupError(f"Comment not found: {comment_id}")

    async def list_comments(self) -> dict[str, Any]:
        return self._response(self._read())

    async def create_comment(self, payload: dict[str, Any]) -> dict[str, Any]:
        content = str(payload.get("content") or "").strip()
        if not content:
            raise RuntimeError("Comment content must not be empty.")
        comment_type = str(payload.get("comment_type") or "inline")
        if comment_type not in COMMENT_TYPES:
            raise RuntimeError(f"Unsupported comment_type: {comment_type}")
        data = self._read()
        entry: dict[str, Any] = {
            "id": data["next_id"],
            "comment_type": comment_type,
            "content": content,
            "status": "open",
            "author": str(payload.get("author") or "You"),
            "replies": [],
            "created_at": iso_utc_now(),
        }
        if comment_type != "project":
            file_path = str(payload.get("file_path") or "")
            if not file_path:
                raise RuntimeError("Comment requires file_path.")
            entry["file_path"] = file_path
        if comment_type == "inline":
            side = str(payload.get("side") or "")
            if side not in SIDES:
                raise RuntimeError(f"Unsupported side: {side or '-'}")
            start_line = int(payload["start_line"])
            end_line = int(payload["end_line"])
            entry["side"] = side
            entry["start_line"] = min(start_line, end_line)
            entry["end_line"] = max(start_line, end_line)
        data["comments"].append(entry)
        data["next_id"] += 1
        self._write(data)
        return self._response(data)

    async def reply_comment(self, comment_id: int, message: str, author: str) -> dict[str, Any]:
        if not message.strip():
            raise RuntimeError("Reply must not be empty.")
        data = self._read()
        item = self._find(data, comment_id)
        replies = item.setdefault("replies", [])
        reply_id = max((int(reply.get("id") or 0) for reply in replies if isinstance(reply, dict)), default=0) + 1
        replies.append({"id": reply_id, "author": author, "content": message.strip(), "created_at": iso_utc_now()})
        self._write(data)
        return self._response(data)

    async def update_comment_status(self, comment_id: int, status: str) -> dict[str, Any]:
        if status not in COMMENT_STATUSES:
            raise RuntimeError(f"Unsupported status: {status}")
        data = self._read()
        self._find(data, comment_id)["status"] = status
        self._write(data)
        return self._response(data)

    async def edit_comment(self, comment_id: int, content: str) -> dict[str, Any]:
        if not content.strip():
            raise RuntimeError("Comment content must not be empty.")
        data = self._read()
        self._find(data, comment_id)["content"] = content.strip()
        self._write(data)
        return self._response(data)

    async def delete_comment(self, comment_id: int) -> dict[str, Any]:
        data = self._read()
        item = self._find(data, comment_id)
        data["comments"].remove(item)
        self._write(data)
        return self._response(data)
