#!/usr/bin/env python3
"""Deterministically render a parsed Kindle notebook as a Markdown digest.

Design intent:
- The Notebook (or its JSON record) is the source of truth.
- The digest is a derived artifact, used verbatim as a chat or mail body.
- Output is stable (same notebook, same bytes) so diffs are meaningful.

Layout:

    # Atlas
    _by J. Doe_

    1. Sample (Yellow · Page 12 · Loc 340)
       > good point

Usage:
  python -m kindle_tools.render_notebook_md --json atlas_notebook.json --out atlas.md
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import List

from kindle_tools.export_templates import DEFAULT_TITLE
from kindle_tools.parse_notebook import (
    Highlight,
    Notebook,
    NotebookRecordError,
    notebook_from_json_record,
)


META_SEPARATOR = " · "


def format_metadata(item: Highlight) -> str:
    """Color, page and location joined in that fixed order; absent fields skipped."""
    parts = [
        item.color,
        f"Page {item.page}" if item.page else None,
        f"Loc {item.location}" if item.location else None,
    ]
    return META_SEPARATOR.join(p for p in parts if p)


def render_highlight(index: int, item: Highlight) -> List[str]:
    meta = format_metadata(item)
    label = f" ({meta})" if meta else ""
    lines = [f"{index}. {item.text}{label}"]
    if item.note:
        lines.append(f"   > {item.note}")
    return lines


def render_notebook_md(notebook: Notebook) -> str:
    lines: List[str] = [f"# {notebook.title or DEFAULT_TITLE}"]
    if notebook.author:
        lines.append(f"_by {notebook.author}_")
    lines.append("")

    for index, item in enumerate(notebook.highlights, start=1):
        lines.extend(render_highlight(index, item))

    return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Render a saved Kindle notebook JSON as Markdown.")
    ap.add_argument("--json", required=True, help="Notebook JSON written by parse_notebook")
    ap.add_argument("--out", default=None, help="Output Markdown path (stdout if omitted)")
    args = ap.parse_args(argv)

    try:
        with open(args.json, encoding="utf-8") as f:
            rec = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: cannot read {args.json}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        notebook = notebook_from_json_record(rec)
    except NotebookRecordError as e:
        print(f"ERROR: {args.json}: {e}", file=sys.stderr)
        sys.exit(1)

    markdown = render_notebook_md(notebook)
    if not args.out:
        print(markdown)
        return

    os.makedirs(os.path.dirname(os.path.abspath(args.out)) or ".", exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        f.write(markdown + "\n")
    print(f"Wrote: {args.out} ({len(notebook.highlights)} highlights)")


if __name__ == "__main__":
    main()
