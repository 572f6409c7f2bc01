from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console

from .comments import comment_counts
from .diff_model import parse_full_diff, synthesize_virtual_files
from .viewed_state import ViewedStore, viewed_hash
from .viewer_cli import build_config, build_loader, load_comments
from .viewer_core import compute_metrics, filter_files, load_json, resolve_input_path, validate_diff_document
from .viewer_render import render_files, render_summary


def parse_app_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive diff review application.")
    parser.add_argument("path", help="Path to diff JSON")
    parser.add_argument("--comments", help="Path to comments JSON (created on first write)")
    parser.add_argument("--repo", help="Repository root used to load full file content for gap expansion")
    parser.add_argument("--ref", help="Read full file content with `git show <ref>:<path>` instead of the working tree")
    parser.add_argument("--config", help="Path to review config TOML")
    parser.add_argument("--project", default="default", help="Project name for the viewed-state store")
    parser.add_argument("--task", help="Task name for the viewed-state store")
    parser.add_argument("--file", dest="file_contains", help="Filter files by path substring")
    parser.add_argument("--split", action="store_true", help="Start in side-by-side mode")
    parser.add_argument("--step", type=int, help="Lines revealed per expand action")
    parser.add_argument("--once", action="store_true", help="Print summary and file list only, then exit.")
    return parser.parse_args(argv)


def run_app(argv: list[str]) -> int:
    args = parse_app_args(argv)
    console = Console()
    path = resolve_input_path(Path(args.path), search_roots=[Path(__file__).resolve().parents[1]])
    try:
        config = build_config(args)
        doc = load_json(path)
        warnings = validate_diff_document(doc)
        result = parse_full_diff(doc)
        warnings.extend(result.warnings)
        store = asyncio.run(load_comments(args.comments, config.author))
        comments = store.comments if store else ()
        files = filter_files(
            synthesize_virtual_files(result.files, [getattr(item, "file_path", "") for item in comments]),
            args.file_contains,
        )
        viewed_store = ViewedStore(config.state_dir, args.project, args.task)
        loader = build_loader(args, config)
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    if args.once:
        statuses = {file.new_path: viewed_store.status(file.new_path, viewed_hash(file)) for file in files}
        render_summary(console, str(path), compute_metrics(files, statuses), len(warnings))
        for warning in warnings:
            console.print(f"[yellow]warning:[/yellow] {warning}")
        render_files(console, files, statuses, comment_counts(comments))
        return 0

    try:
        from .viewer_textual import DiffReviewApp
    except Exception as error:  # noqa: BLE001
        print(f"[error] textual UI is unavailable: {error}. Install dependencies: python -m pip install -e .", file=sys.stderr)
        return 1
    app = DiffReviewApp(
        path,
        files,
        fetch=loader.load if loader else None,
        comment_store=store,
        viewed_store=viewed_store,
        config=config,
        warnings=warnings,
    )
    app.run()
    return 0
