#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.generator import build_diff_document, parse_generate_args, write_document  # noqa: E402


def main(argv: list[str]) -> int:
    args = parse_generate_args(argv)
    repo = Path(args.repo).resolve()
    output = Path(args.output)
    if not output.is_absolute():
        output = repo / output
    try:
        document = build_diff_document(repo=repo, base_ref=args.base, feature_ref=args.feature)
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    write_document(document, output)
    print(f"Wrote: {output}")
    print(f"Files: {len(document['files'])} (+{document['total_additions']} -{document['total_deletions']})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
