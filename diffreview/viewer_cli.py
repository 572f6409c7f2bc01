from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from rich.console import Console

from .comment_backend import JsonCommentBackend
from .comments import (
    CollapseState,
    CommentIndex,
    CommentStore,
    comment_counts,
    file_comments_for_file,
    project_comments,
)
from .config import ReviewConfig, load_review_config
from .diff_model import DiffFile, parse_full_diff, synthesize_virtual_files
from .file_content import FileContentLoader, GitFileSource, RepoFileSource
from .gap_expansion import GapExpansionTracker
from .split_view import build_split_rows
from .viewed_state import ViewedStore, viewed_hash
from .viewer_core import compute_metrics, filter_files, load_json, resolve_input_path, validate_diff_document
from .viewer_render import (
    render_binary,
    render_file_comments,
    render_files,
    render_no_changes,
    render_split,
    render_summary,
    render_unified,
)


def parse_view_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="View diff review JSON in a readable terminal format.")
    parser.add_argument("path", help="Path to diff JSON ({files, total_additions, total_deletions})")
    parser.add_argument("--comments", help="Path to comments JSON (created on first write)")
    parser.add_argument("--repo", help="Repository root used to load full file content for gap expansion")
    parser.add_argument("--ref", help="Read full file content with `git show <ref>:<path>` instead of the working tree")
    parser.add_argument("--config", help="Path to review config TOML")
    parser.add_argument("--project", default="default", help="Project name for the viewed-state store")
    parser.add_argument("--task", help="Task name for the viewed-state store")
    parser.add_argument("--file", dest="file_contains", help="Filter files by path substring")
    parser.add_argument("--split", action="store_true", help="Render side-by-side instead of unified")
    parser.add_argument("--expand-all", action="store_true", help="Reveal every unchanged gap (needs --repo)")
    parser.add_argument("--line", type=int, help="Reveal the unchanged lines around new-side line N (needs --repo)")
    parser.add_argument("--step", type=int, help="Lines revealed per expand action")
    parser.add_argument("--mark-viewed", action="store_true", help="Mark every shown file as viewed")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output rows as JSON")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ReviewConfig:
    config = load_review_config(Path(args.config) if args.config else None)
    return config.with_overrides(
        expand_step=args.step,
        view_mode="split" if args.split else None,
    )


def build_loader(args: argparse.Namespace, config: ReviewConfig) -> FileContentLoader | None:
    if not args.repo:
        return None
    root = Path(args.repo)
    source = GitFileSource(root, args.ref) if args.ref else RepoFileSource(root)
    return FileContentLoader(source, limit=config.fetch_concurrency)


async def prepare_trackers(
    files: list[DiffFile],
    loader: FileContentLoader | None,
    config: ReviewConfig,
    expand_all: bool,
    line: int | None = None,
) -> dict[str, GapExpansionTracker]:
    trackers = {
        file.new_path: GapExpansionTracker(file, loader.load if loader else None, step=config.expand_step)
        for file in files
    }
    if loader is None:
        return trackers
    # Loading up front gives every file its trailing gap.
    targets = [tracker for tracker in trackers.values() if tracker.file.hunks and not tracker.file.is_binary]
    await asyncio.gather(*(tracker.ensure_file_lines() for tracker in targets))
    for tracker in targets:
        if expand_all:
            for gap in tracker.gaps:
                tracker.expand_all(gap.gap_index)
        elif line is not None:
            tracker.expand_to_line(line)
    return trackers


async def load_comments(path: str | None, author: str) -> CommentStore | None:
    if not path:
        return None
    store = CommentStore(JsonCommentBackend(Path(path)), author=author)
    await store.load()
    return store


def _file_payload(file: DiffFile, tracker: GapExpansionTracker, split: bool, viewed: str) -> dict[str, Any]:
    rows = tracker.build_unified_rows()
    payload: dict[str, Any] = {
        "path": file.new_path,
        "change_type": file.change_type,
        "is_binary": file.is_binary,
        "is_virtual": file.is_virtual,
        "viewed": viewed,
        "warnings": tracker.warnings,
    }
    if split:
        payload["rows"] = [asdict(row) for row in build_split_rows(rows)]
    else:
        payload["rows"] = [asdict(row) for row in rows]
    return payload


def run_view(argv: list[str]) -> int:
    args = parse_view_args(argv)
    path = resolve_input_path(Path(args.path), search_roots=[Path(__file__).resolve().parents[1]])
    console = Console()
    try:
        config = build_config(args)
        doc = load_json(path)
        warnings = validate_diff_document(doc)
        result = parse_full_diff(doc)
        warnings.extend(result.warnings)
        store = asyncio.run(load_comments(args.comments, config.author))
        comments = store.comments if store else ()
        comment_paths = [getattr(item, "file_path", "") for item in comments]
        all_files = synthesize_virtual_files(result.files, comment_paths)
        files = filter_files(all_files, args.file_contains)
        viewed_store = ViewedStore(config.state_dir, args.project, args.task)
        loader = build_loader(args, config)
        trackers = asyncio.run(prepare_trackers(files, loader, config, args.expand_all, args.line))
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    if not files:
        print("[error] No files matched filters.", file=sys.stderr)
        return 2

    hashes = {file.new_path: viewed_hash(file) for file in files}
    if args.mark_viewed:
        for file_path, current in hashes.items():
            viewed_store.mark(file_path, current)
    statuses = {file_path: viewed_store.status(file_path, current) for file_path, current in hashes.items()}
    if store is not None:
        warnings.extend(store.warnings)
    split = config.view_mode == "split"

    if args.as_json:
        payload = {
            "warnings": warnings,
            "files": [_file_payload(file, trackers[file.new_path], split, statuses[file.new_path]) for file in files],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    render_summary(console, str(path), compute_metrics(files, statuses), len(warnings))
    for warning in warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    render_files(console, files, statuses, comment_counts(comments))
    if store is not None:
        render_file_comments(console, project_comments(comments), "Project comments")

    for file in files:
        tracker = trackers[file.new_path]
        if store is not None:
            render_file_comments(console, file_comments_for_file(comments, file.new_path), f"{file.new_path} comments")
        if file.is_binary:
            render_binary(console, file)
            continue
        if not file.hunks:
            render_no_changes(console, file)
            continue
        index = CommentIndex(file, comments)
        collapse = store.collapse if store is not None else CollapseState()
        rows = tracker.build_unified_rows()
        for warning in tracker.warnings:
            console.print(f"[yellow]warning:[/yellow] {warning}")
        if split:
            render_split(console, file, build_split_rows(rows), index, collapse)
        else:
            render_unified(console, file, rows, index, collapse)
    return 0
