"""Text normalization and heading metadata for Kindle notebook exports.

Two small layers used by every other stage:
  - normalize_text(): strip tags, decode the handful of entities the exports
    actually emit, collapse whitespace
  - extract_*(): pull page / location / color out of a normalized heading line
    such as "Highlight (yellow) - Page 12 · Location 340"

Design principles:
  - NEVER interpret the reader's text (no spelling or quote fixes)
  - Decode only the fixed entity set; anything else stays literal
  - Page and location stay strings so ranges ("123-125") survive unchanged
"""

from __future__ import annotations

import re
from typing import Optional


# ─── Patterns ────────────────────────────────────────────────────────────────

# Any tag, no nesting awareness. Replaced with a space so adjacent cells
# ("<td>a</td><td>b</td>") do not fuse into one word.
TAG_RE = re.compile(r"<[^>]*>")

WHITESPACE_RE = re.compile(r"\s+")

# Order matters: &amp; goes last so "&amp;lt;" decodes to "&lt;", not "<".
ENTITY_TABLE = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

LOCATION_RE = re.compile(r"Location\s+([\d-]+)", re.IGNORECASE)
PAGE_RE = re.compile(r"Page\s+([\d-]+)", re.IGNORECASE)

# Reference spelling of each color; matching is case-insensitive.
HIGHLIGHT_COLORS = ("Yellow", "Blue", "Pink", "Orange", "Green")
_COLOR_BY_KEY = {c.lower(): c for c in HIGHLIGHT_COLORS}

# "(yellow)" or, after tag stripping, "( yellow )"
COLOR_RE = re.compile(
    r"\(\s*(" + "|".join(HIGHLIGHT_COLORS) + r")\s*\)",
    re.IGNORECASE,
)


# ─── Normalization ───────────────────────────────────────────────────────────

def decode_entities(text: str) -> str:
    """Decode the fixed entity set, ampersand last."""
    for entity, char in ENTITY_TABLE:
        text = text.replace(entity, char)
    return text


def normalize_text(fragment: str) -> str:
    """Markup fragment → single-line plain text."""
    without_tags = TAG_RE.sub(" ", fragment)
    return WHITESPACE_RE.sub(" ", decode_entities(without_tags)).strip()


# ─── Heading metadata ────────────────────────────────────────────────────────

def extract_location(heading: str) -> Optional[str]:
    m = LOCATION_RE.search(heading)
    return m.group(1) if m else None


def extract_page(heading: str) -> Optional[str]:
    m = PAGE_RE.search(heading)
    return m.group(1) if m else None


def extract_color(heading: str) -> Optional[str]:
    """Return the color in its reference capitalization ("YELLOW" → "Yellow")."""
    m = COLOR_RE.search(heading)
    if not m:
        return None
    return _COLOR_BY_KEY[m.group(1).lower()]


def extract_heading_metadata(heading: str) -> dict[str, Optional[str]]:
    """All three fields at once. The extractions are independent of each other."""
    return {
        "color": extract_color(heading),
        "page": extract_page(heading),
        "location": extract_location(heading),
    }
