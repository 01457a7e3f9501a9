"""Export-template markers and title/author reconstruction.

Kindle notebooks reach us through at least two exporters:
  - the desktop "Export notebook" HTML  (bookTitle / authors / noteHeading / noteText)
  - the web notebook page               (kp-notebook-title / kp-notebook-subtitle)

The class markers live in config/export_templates.yaml so that a new exporter
variant is a config change, not a code change. Custom files are validated
against schemas/export_templates_schema_v0.1.json before use.

Title and author are found with an ordered list of (matcher, extractor)
candidates per field. The first candidate that matches wins; its captured
inner content is normalized. Nothing here ever raises on document content.

Usage:
  python -m kindle_tools.export_templates --templates my_templates.yaml
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Optional

import jsonschema
import yaml

from kindle_tools.notebook_text import normalize_text


# ─── Constants ──────────────────────────────────────────────────────────────

PACKAGE_DIR = Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_DIR / "schemas"
DEFAULT_TEMPLATES_PATH = PACKAGE_DIR / "config" / "export_templates.yaml"
TEMPLATES_SCHEMA_FILE = "export_templates_schema_v0.1.json"

DEFAULT_TITLE = "Kindle Notebook"

TITLE_TAG_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
META_AUTHOR_RE = re.compile(
    r"""<meta[^>]*name=["']author["'][^>]*content=["']([^"']*)["'][^>]*>""",
    re.IGNORECASE,
)


class TemplateConfigError(ValueError):
    """Template config file is unreadable or violates its schema."""


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExportTemplates:
    """Class markers of the known export templates."""
    default_title: str = DEFAULT_TITLE
    heading_classes: tuple[str, ...] = ("noteHeading",)
    body_classes: tuple[str, ...] = ("noteText",)
    title_classes: tuple[str, ...] = ("kp-notebook-title", "bookTitle")
    author_classes: tuple[str, ...] = ("authors", "kp-notebook-subtitle")


DEFAULT_TEMPLATES = ExportTemplates()

# (matcher, extractor): the extractor pulls the raw inner markup out of a match
FieldCandidate = tuple[re.Pattern, Callable[[re.Match], str]]


# ─── Config loading ──────────────────────────────────────────────────────────

def load_schema(filename: str) -> dict:
    with open(SCHEMAS_DIR / filename, encoding="utf-8") as f:
        return json.load(f)


def templates_from_dict(data: dict) -> ExportTemplates:
    """Build templates from an already-validated mapping; omitted keys keep defaults."""
    kwargs = {}
    for f in fields(ExportTemplates):
        if f.name not in data:
            continue
        value = data[f.name]
        kwargs[f.name] = tuple(value) if isinstance(value, list) else value
    return ExportTemplates(**kwargs)


def load_templates(path: str | Path | None = None) -> ExportTemplates:
    """Load and validate a template config. No path → the shipped defaults file."""
    path = Path(path) if path else DEFAULT_TEMPLATES_PATH
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise TemplateConfigError(f"Cannot read template config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise TemplateConfigError(f"Malformed YAML in {path}: {e}") from e

    if data is None:
        data = {}

    try:
        jsonschema.validate(data, load_schema(TEMPLATES_SCHEMA_FILE))
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "(root)"
        raise TemplateConfigError(f"{path}: {where}: {e.message}") from e

    return templates_from_dict(data)


# ─── Candidate lists ─────────────────────────────────────────────────────────

def _inner_content(m: re.Match) -> str:
    return m.group(1)


def class_block_pattern(class_names: tuple[str, ...]) -> re.Pattern:
    """Element whose class attribute equals one of class_names; captures up to </div>."""
    alternatives = "|".join(re.escape(c) for c in class_names)
    return re.compile(
        r"""(?<![\w-])class=["'](?:""" + alternatives + r""")["'][^>]*>([\s\S]*?)</div>""",
        re.IGNORECASE,
    )


def title_candidates(templates: ExportTemplates = DEFAULT_TEMPLATES) -> list[FieldCandidate]:
    candidates: list[FieldCandidate] = []
    if templates.title_classes:
        candidates.append((class_block_pattern(templates.title_classes), _inner_content))
    candidates.append((TITLE_TAG_RE, _inner_content))
    return candidates


def author_candidates(templates: ExportTemplates = DEFAULT_TEMPLATES) -> list[FieldCandidate]:
    candidates: list[FieldCandidate] = []
    if templates.author_classes:
        candidates.append((class_block_pattern(templates.author_classes), _inner_content))
    candidates.append((META_AUTHOR_RE, _inner_content))
    return candidates


def first_candidate(html: str, candidates: list[FieldCandidate]) -> Optional[str]:
    """Normalized content of the first matching candidate, or None if none match."""
    for matcher, extractor in candidates:
        m = matcher.search(html)
        if m:
            return normalize_text(extractor(m))
    return None


def extract_title(html: str, templates: ExportTemplates = DEFAULT_TEMPLATES) -> str:
    """Never empty: an unmatched or blank title falls back to the default."""
    return first_candidate(html, title_candidates(templates)) or templates.default_title


def extract_author(html: str, templates: ExportTemplates = DEFAULT_TEMPLATES) -> Optional[str]:
    return first_candidate(html, author_candidates(templates)) or None


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Validate a Kindle export template config.")
    ap.add_argument("--templates", default=None,
                    help="Template YAML to validate (defaults to the shipped file)")
    args = ap.parse_args(argv)

    try:
        templates = load_templates(args.templates)
    except TemplateConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Template config OK: {args.templates or DEFAULT_TEMPLATES_PATH}")
    for f in fields(ExportTemplates):
        print(f"  {f.name}: {getattr(templates, f.name)}")


if __name__ == "__main__":
    main()
