from __future__ import annotations

import argparse
import json
import re
import subprocess
from pathlib import Path
from typing import Any

from .diff_model import split_file_content

HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<header>.*)$"
)


def run_git(repo: Path, args: list[str]) -> str:
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    if process.returncode != 0:
        message = process.stderr.strip() or process.stdout.strip()
        raise RuntimeError(f"git {' '.join(args)} failed: {message}")
    return process.stdout


def normalize_diff_path(raw: str) -> str | None:
    value = raw.strip()
    if value == "/dev/null":
        return None
    if value.startswith("a/") or value.startswith("b/"):
        return value[2:]
    return value


def parse_diff_paths(header_line: str) -> tuple[str, str]:
    rest = header_line[len("diff --git ") :]
    if " b/" in rest:
        old, new = rest.split(" b/", 1)
        return normalize_diff_path(old) or old, new
    parts = rest.split()
    old = normalize_diff_path(parts[0]) if parts else ""
    new = normalize_diff_path(parts[1]) if len(parts) > 1 else old
    return old or "", new or old or ""


def _new_file(header_line: str) -> dict[str, Any]:
    old_path, new_path = parse_diff_paths(header_line)
    return {
        "old_path": old_path,
        "new_path": new_path,
        "change_type": "modified",
        "hunks": [],
        "is_binary": False,
        "additions": 0,
        "deletions": 0,
    }


def parse_unified_diff(diff_text: str) -> dict[str, Any]:
    """Parse ``git diff`` output into the ``{files, total_additions, total_deletions}`` document."""
    files: list[dict[str, Any]] = []
    current_file: dict[str, Any] | None = None
    current_hunk: dict[str, Any] | None = None
    old_cursor = 0
    new_cursor = 0

    # Only "\n" ends a diff line; form feeds and other separators belong to content.
    for line in split_file_content(diff_text):
        if line.startswith("diff --git "):
            if current_file is not None:
                files.append(current_file)
            current_file = _new_file(line)
            current_hunk = None
            continue

        if current_file is None:
            continue

        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                raise RuntimeError(f"Unsupported hunk header: {line}")
            old_cursor = int(match.group("old_start"))
            new_cursor = int(match.group("new_start"))
            current_hunk = {
                "old_start": old_cursor,
                "old_lines": int(match.group("old_count") or "1"),
                "new_start": new_cursor,
                "new_lines": int(match.group("new_count") or "1"),
                "header": match.group("header").strip(),
                "lines": [],
            }
            current_file["hunks"].append(current_hunk)
            continue

        if current_hunk is None:
            if line.startswith("new file mode"):
                current_file["change_type"] = "added"
            elif line.startswith("deleted file mode"):
                current_file["change_type"] = "deleted"
            elif line.startswith("rename from") or line.startswith("similarity index"):
                current_file["change_type"] = "renamed"
            elif line.startswith("Binary files") or line.startswith("GIT binary patch"):
                current_file["is_binary"] = True
            elif line.startswith("--- ") and current_file["change_type"] != "added":
                current_file["old_path"] = normalize_diff_path(line[4:]) or current_file["old_path"]
            elif line.startswith("+++ ") and current_file["change_type"] != "deleted":
                current_file["new_path"] = normalize_diff_path(line[4:]) or current_file["new_path"]
            continue

        if line.startswith("+"):
            current_hunk["lines"].append(
                {"line_type": "insert", "old_line": None, "new_line": new_cursor, "content": line[1:]}
            )
            current_file["additions"] += 1
            new_cursor += 1
        elif line.startswith("-"):
            current_hunk["lines"].append(
                {"line_type": "delete", "old_line": old_cursor, "new_line": None, "content": line[1:]}
            )
            current_file["deletions"] += 1
            old_cursor += 1
        elif line.startswith("\\"):
            continue
        else:
            current_hunk["lines"].append(
                {
                    "line_type": "context",
                    "old_line": old_cursor,
                    "new_line": new_cursor,
                    "content": line[1:] if line.startswith(" ") else line,
                }
            )
            old_cursor += 1
            new_cursor += 1

    if current_file is not None:
        files.append(current_file)
    return {
        "files": files,
        "total_additions": sum(item["additions"] for item in files),
        "total_deletions": sum(item["deletions"] for item in files),
    }


def build_diff_document(repo: Path, base_ref: str, feature_ref: str | None = None) -> dict[str, Any]:
    run_git(repo, ["rev-parse", "--verify", base_ref])
    args = ["diff", "--no-color", "--find-renames=50%"]
    if feature_ref:
        run_git(repo, ["rev-parse", "--verify", feature_ref])
        args.append(f"{base_ref}...{feature_ref}")
    else:
        args.append(base_ref)
    return parse_unified_diff(run_git(repo, args))


def write_document(document: dict[str, Any], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(document, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def parse_generate_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate diff review JSON from git refs.")
    parser.add_argument("--repo", default=".", help="Path to git repository (default: current directory).")
    parser.add_argument("--base", default="HEAD", help="Base ref (default: HEAD).")
    parser.add_argument(
        "--feature",
        default=None,
        help="Feature ref. When omitted the working tree is compared against --base.",
    )
    parser.add_argument("--output", default="out/diff.json", help="Output path (default: out/diff.json).")
    return parser.parse_args(argv)
