#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import sys
import webbrowser
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.config import load_review_config  # noqa: E402
from diffreview.diff_model import parse_full_diff, synthesize_virtual_files  # noqa: E402
from diffreview.html_report import render_diff_html  # noqa: E402
from diffreview.viewer_cli import build_loader, load_comments, prepare_trackers  # noqa: E402
from diffreview.viewer_core import filter_files, load_json, validate_diff_document  # noqa: E402


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a diff review as standalone HTML.")
    parser.add_argument("--input", required=True, help="Input diff JSON path.")
    parser.add_argument("--output", required=True, help="Output HTML path.")
    parser.add_argument("--comments", help="Comments JSON path.")
    parser.add_argument("--repo", help="Repository root for full file content.")
    parser.add_argument("--ref", help="Read full file content at this git ref.")
    parser.add_argument("--config", help="Path to review config TOML.")
    parser.add_argument("--file", dest="file_contains", help="Only export files whose path contains this text.")
    parser.add_argument("--split", action="store_true", help="Side-by-side tables.")
    parser.add_argument("--expand-all", action="store_true", help="Reveal every unchanged gap (needs --repo).")
    parser.add_argument("--search", help="Mark matches of this text in code.")
    parser.add_argument("--case-sensitive", action="store_true", help="Case sensitive --search.")
    parser.add_argument("--no-highlight", action="store_true", help="Disable syntax highlighting.")
    parser.add_argument("--title", help="Optional custom report title.")
    parser.add_argument("--open", action="store_true", help="Open the generated HTML in your default browser.")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    input_path = Path(args.input)
    if not input_path.is_absolute():
        input_path = ROOT / input_path
    output_path = Path(args.output)
    if not output_path.is_absolute():
        output_path = ROOT / output_path

    try:
        config = load_review_config(Path(args.config) if args.config else None)
        doc = load_json(input_path)
        validate_diff_document(doc)
        result = parse_full_diff(doc)
        store = asyncio.run(load_comments(args.comments, config.author))
        comments = store.comments if store else ()
        files = filter_files(
            synthesize_virtual_files(result.files, [getattr(item, "file_path", "") for item in comments]),
            args.file_contains,
        )
        loader = build_loader(args, config)
        trackers = asyncio.run(prepare_trackers(files, loader, config, args.expand_all))
        html = render_diff_html(
            files,
            trackers=trackers,
            comments=comments,
            collapse=store.collapse if store else None,
            view_mode="split" if args.split else config.view_mode,
            highlight=config.highlight and not args.no_highlight,
            search_query=args.search,
            case_sensitive=args.case_sensitive,
            report_title=args.title,
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    print(f"Wrote: {output_path}")
    if args.open:
        webbrowser.open(output_path.resolve().as_uri())
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
