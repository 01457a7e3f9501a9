#!/usr/bin/env python3
"""Parse a Kindle notebook HTML export into a structured notebook.

This tool is the first step of the digest pipeline.
It takes an exported notebook (desktop "Export notebook" HTML or a saved web
notebook page) and produces:
  - a Notebook: title, optional author, highlights in reading order
  - a parse report (statistics and warnings)

Merge rules for note blocks (a heading starting with "Note"):
  1. a note with a location attaches to the most recent highlight with the
     same location
  2. otherwise it attaches to the most recently appended highlight, and
     backfills that highlight's page if it had none
  3. a note with no preceding highlight is kept as a standalone entry

Design principles:
  - NEVER fail on document content: unrecognized markup degrades to a single
    highlight holding the whole normalized document
  - NEVER drop text: orphan notes become entries of their own
  - Deterministic: same input, same Notebook, same report

Usage:
  python -m kindle_tools.parse_notebook \\
    --html "My Clippings - Atlas.html" \\
    --out-json atlas_notebook.json \\
    --out-md atlas_notebook.md \\
    [--out-report atlas_parse_report.json] [--templates export_templates.yaml]
"""

from __future__ import annotations

import argparse
import hashlib
import json
import os
import re
import sys
from dataclasses import dataclass, field, asdict, replace
from typing import Optional

import jsonschema

from kindle_tools.export_templates import (
    DEFAULT_TEMPLATES,
    ExportTemplates,
    TemplateConfigError,
    extract_author,
    extract_title,
    load_schema,
    load_templates,
)
from kindle_tools.notebook_text import extract_heading_metadata, normalize_text
from kindle_tools.scan_blocks import scan_blocks


SCHEMA_VERSION = "kindle_notebook_v0.1"
NOTEBOOK_SCHEMA_FILE = "notebook_schema_v0.1.json"

HIGHLIGHT = "highlight"
NOTE = "note"

NOTE_HEADING_RE = re.compile(r"note\b", re.IGNORECASE)


class NotebookRecordError(ValueError):
    """A saved notebook record does not match the notebook schema."""


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Highlight:
    """One extracted passage."""
    text: str
    note: Optional[str] = None
    color: Optional[str] = None       # "Yellow", "Blue", "Pink", "Orange", "Green"
    page: Optional[str] = None        # free-form, e.g. "12" or "123-125"
    location: Optional[str] = None    # free-form, e.g. "340" or "340-342"


@dataclass(frozen=True)
class Notebook:
    title: str
    author: Optional[str] = None
    highlights: tuple[Highlight, ...] = ()


@dataclass
class ParseReport:
    """Statistics from parsing one export."""
    source_sha256: str = ""
    blocks_scanned: int = 0
    highlight_blocks: int = 0
    note_blocks: int = 0
    notes_attached_by_location: int = 0
    notes_attached_to_latest: int = 0
    orphan_notes: int = 0
    used_fallback: bool = False
    total_highlights: int = 0
    highlights_with_notes: int = 0
    warnings: list[str] = field(default_factory=list)


# ─── Merge step ──────────────────────────────────────────────────────────────

def classify_heading(heading: str) -> str:
    """NOTE if the normalized heading starts with the word "note", else HIGHLIGHT."""
    return NOTE if NOTE_HEADING_RE.match(heading) else HIGHLIGHT


def find_by_location(highlights: list[Highlight], location: Optional[str]) -> Optional[int]:
    """Index of the most recent highlight with this location."""
    if not location:
        return None
    for i in range(len(highlights) - 1, -1, -1):
        if highlights[i].location == location:
            return i
    return None


def find_note_target(highlights: list[Highlight], location: Optional[str]) -> Optional[int]:
    """Index of the highlight a note belongs to, or None when the list is empty."""
    idx = find_by_location(highlights, location)
    if idx is None and highlights:
        idx = len(highlights) - 1
    return idx


def merge_block(
    highlights: list[Highlight],
    heading: str,
    body: str,
    report: Optional[ParseReport] = None,
) -> None:
    """Fold one normalized heading/body pair into the working highlight list."""
    report = report if report is not None else ParseReport()
    report.blocks_scanned += 1
    block_no = report.blocks_scanned
    meta = extract_heading_metadata(heading)

    if classify_heading(heading) == HIGHLIGHT:
        report.highlight_blocks += 1
        highlights.append(Highlight(text=body, **meta))
        return

    report.note_blocks += 1
    location = meta["location"]
    idx = find_note_target(highlights, location)

    if idx is None:
        report.orphan_notes += 1
        report.warnings.append(
            f"ORPHAN_NOTE: note block {block_no} has no preceding highlight; "
            f"kept as a standalone entry"
        )
        highlights.append(Highlight(text=body, **meta))
        return

    if location and highlights[idx].location == location:
        report.notes_attached_by_location += 1
        same_location = sum(1 for h in highlights if h.location == location)
        if same_location > 1:
            report.warnings.append(
                f"DUPLICATE_LOCATION: note block {block_no} matches {same_location} "
                f"highlights at location {location}; attached to the most recent"
            )
    else:
        report.notes_attached_to_latest += 1
        if location:
            report.warnings.append(
                f"NOTE_LOCATION_UNMATCHED: note block {block_no} location {location} "
                f"matches no highlight; attached to the most recent"
            )

    target = highlights[idx]
    if target.note is not None:
        report.warnings.append(
            f"NOTE_OVERWRITTEN: note block {block_no} replaces an earlier note "
            f"on highlight {idx + 1}"
        )
    highlights[idx] = replace(
        target,
        note=body,
        page=target.page or meta["page"],
    )


# ─── Parse ───────────────────────────────────────────────────────────────────

def parse_notebook_with_report(
    html: str,
    templates: ExportTemplates = DEFAULT_TEMPLATES,
) -> tuple[Notebook, ParseReport]:
    report = ParseReport(
        source_sha256=hashlib.sha256(html.encode("utf-8", errors="replace")).hexdigest(),
    )

    title = extract_title(html, templates)
    if title == templates.default_title:
        report.warnings.append(
            f"DEFAULT_TITLE: no title markup found; using {templates.default_title!r}"
        )
    author = extract_author(html, templates)

    highlights: list[Highlight] = []
    for block in scan_blocks(html, templates.heading_classes, templates.body_classes):
        merge_block(
            highlights,
            normalize_text(block.heading_html),
            normalize_text(block.body_html),
            report,
        )

    if report.blocks_scanned == 0:
        full_text = normalize_text(html)
        if full_text:
            report.used_fallback = True
            report.warnings.append(
                "WHOLE_DOCUMENT_FALLBACK: no heading/body blocks recognized; "
                "document kept as a single highlight"
            )
            highlights.append(Highlight(text=full_text))
        else:
            report.warnings.append("EMPTY_DOCUMENT: no text found")

    report.total_highlights = len(highlights)
    report.highlights_with_notes = sum(1 for h in highlights if h.note is not None)

    notebook = Notebook(title=title, author=author, highlights=tuple(highlights))
    return notebook, report


def parse_notebook(html: str, templates: ExportTemplates = DEFAULT_TEMPLATES) -> Notebook:
    """Parse an export into a Notebook. Never raises on document content."""
    notebook, _ = parse_notebook_with_report(html, templates)
    return notebook


# ─── JSON serialization ─────────────────────────────────────────────────────

def notebook_to_json_record(notebook: Notebook) -> dict:
    return {
        "record_type": "kindle_notebook",
        "schema_version": SCHEMA_VERSION,
        "title": notebook.title,
        "author": notebook.author,
        "highlights": [asdict(h) for h in notebook.highlights],
    }


def notebook_from_json_record(rec: dict) -> Notebook:
    """Rebuild a Notebook from a record written by notebook_to_json_record."""
    try:
        jsonschema.validate(rec, load_schema(NOTEBOOK_SCHEMA_FILE))
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "(root)"
        raise NotebookRecordError(f"{where}: {e.message}") from e

    highlights = tuple(
        Highlight(
            text=h["text"],
            note=h.get("note"),
            color=h.get("color"),
            page=h.get("page"),
            location=h.get("location"),
        )
        for h in rec["highlights"]
    )
    return Notebook(title=rec["title"], author=rec.get("author"), highlights=highlights)


def report_to_json_record(report: ParseReport) -> dict:
    return {"record_type": "parse_report", **asdict(report)}


# ─── CLI ─────────────────────────────────────────────────────────────────────

def abort(msg):
    """Print error and exit."""
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def read_html_file(path: str) -> str:
    """Read an export as text. A UTF-8 BOM is dropped; undecodable bytes are skipped."""
    with open(path, encoding="utf-8-sig", errors="ignore") as f:
        return f.read()


def write_text(path: str, text: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def main(argv: list[str] | None = None) -> None:
    from kindle_tools.render_notebook_md import render_notebook_md

    ap = argparse.ArgumentParser(description="Parse a Kindle notebook HTML export.")
    ap.add_argument("--html", required=True, help="Path to the exported notebook HTML")
    ap.add_argument("--out-json", default=None, help="Output notebook JSON path")
    ap.add_argument("--out-md", default=None, help="Output Markdown report path")
    ap.add_argument("--out-report", default=None, help="Output parse report JSON path")
    ap.add_argument("--templates", default=None,
                    help="Export template YAML (defaults to the shipped markers)")
    args = ap.parse_args(argv)

    if not os.path.isfile(args.html):
        abort(f"Input file not found: {args.html}")

    try:
        templates = load_templates(args.templates) if args.templates else DEFAULT_TEMPLATES
    except TemplateConfigError as e:
        abort(str(e))

    html_text = read_html_file(args.html)
    notebook, report = parse_notebook_with_report(html_text, templates)
    markdown = render_notebook_md(notebook)

    if not (args.out_json or args.out_md or args.out_report):
        print(markdown)
        return

    print(f"Source: {args.html} ({len(html_text)} chars)")
    print(f"Title: {notebook.title}")
    if notebook.author:
        print(f"Author: {notebook.author}")

    if args.out_json:
        write_text(args.out_json,
                   json.dumps(notebook_to_json_record(notebook), ensure_ascii=False, indent=2) + "\n")
    if args.out_md:
        write_text(args.out_md, markdown + "\n")
    if args.out_report:
        write_text(args.out_report,
                   json.dumps(report_to_json_record(report), ensure_ascii=False, indent=2) + "\n")

    print(f"\nParsed {report.total_highlights} highlights from {report.blocks_scanned} blocks")
    print(f"  Notes attached: {report.highlights_with_notes}")
    if report.orphan_notes:
        print(f"  ⚠ Orphan notes kept as entries: {report.orphan_notes}")
    if report.used_fallback:
        print("  ⚠ No blocks recognized; whole document kept as one highlight")
    if report.warnings:
        print(f"  Total warnings: {len(report.warnings)}")

    for path in (args.out_json, args.out_md, args.out_report):
        if path:
            print(f"Wrote: {path}")


if __name__ == "__main__":
    main()
