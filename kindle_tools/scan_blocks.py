"""Locate paired heading/body blocks in a Kindle notebook export.

Each highlight or note in the export is rendered as two sibling divs:

    <div class='noteHeading'>Highlight (<span class='highlight_yellow'>yellow</span>)
        - Page 12 · Location 340</div>
    <div class='noteText'>The passage itself.</div>

Rather than one large regex, the scanner tokenizes tags (each token is a single
tag, matched by a linear pattern) and walks a small state machine:

    SEEK_HEADING → IN_HEADING → SEEK_BODY → IN_BODY → SEEK_HEADING

Rules:
  - heading/body content ends at the FIRST following </div> (no nesting awareness)
  - between heading and body only markup and whitespace may appear; text there
    abandons the pending heading, and a new heading replaces it
  - after a pair is yielded, scanning resumes right after the body's </div>;
    pairs never overlap
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from kindle_tools.notebook_text import normalize_text


# ─── Tokenizer patterns ─────────────────────────────────────────────────────

# One start or end tag, or the start of a comment. Doctypes and stray "<" never match.
# Attribute text may not contain "<", so an unclosed tag fails at the next "<".
TAG_TOKEN_RE = re.compile(r"<!--|<(/?)([A-Za-z][A-Za-z0-9]*)([^<>]*)>")

COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")

CLASS_ATTR_RE = re.compile(
    r"""(?:^|\s)class\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
    re.IGNORECASE,
)

SEEK_HEADING = "seek_heading"
IN_HEADING = "in_heading"
SEEK_BODY = "seek_body"
IN_BODY = "in_body"


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawBlock:
    """One heading/body pair, still as raw markup."""
    heading_html: str
    body_html: str
    start: int                    # offset of the heading's opening <div>
    end: int                      # offset just past the body's </div>


# ─── Tokenizer ───────────────────────────────────────────────────────────────

def iter_tags(html: str) -> Iterator[re.Match]:
    """Yield start and end tags in order, skipping anything inside comments.

    An unclosed comment runs to the end of the document.
    """
    pos = 0
    while True:
        m = TAG_TOKEN_RE.search(html, pos)
        if not m:
            return
        if m.group(0) == "<!--":
            close = html.find("-->", m.end())
            if close < 0:
                return
            pos = close + 3
            continue
        yield m
        pos = m.end()


def class_attribute(attrs: str) -> Optional[str]:
    """Value of the class attribute in a tag's attribute text, if any."""
    m = CLASS_ATTR_RE.search(attrs)
    if not m:
        return None
    value = next(g for g in m.groups() if g is not None)
    return value.strip()


def _opens_div_with_class(tag: re.Match, class_names: set[str]) -> bool:
    if tag.group(1) or tag.group(2).lower() != "div":
        return False
    value = class_attribute(tag.group(3))
    return value is not None and value.lower() in class_names


def _closes_div(tag: re.Match) -> bool:
    return bool(tag.group(1)) and tag.group(2).lower() == "div"


# ─── Scanner ─────────────────────────────────────────────────────────────────

def scan_blocks(
    html: str,
    heading_classes: Iterable[str] = ("noteHeading",),
    body_classes: Iterable[str] = ("noteText",),
) -> Iterator[RawBlock]:
    """Yield heading/body pairs in document order."""
    headings = {c.lower() for c in heading_classes}
    bodies = {c.lower() for c in body_classes}

    state = SEEK_HEADING
    block_start = 0
    content_start = 0
    heading_html = ""
    last_tag_end = 0

    for tag in iter_tags(html):
        if state == SEEK_BODY:
            gap = COMMENT_RE.sub(" ", html[last_tag_end:tag.start()])
            if normalize_text(gap):
                state = SEEK_HEADING
            elif _opens_div_with_class(tag, bodies):
                content_start = tag.end()
                state = IN_BODY
            elif _opens_div_with_class(tag, headings):
                state = SEEK_HEADING

        if state == SEEK_HEADING:
            if _opens_div_with_class(tag, headings):
                block_start = tag.start()
                content_start = tag.end()
                state = IN_HEADING

        elif state == IN_HEADING:
            if _closes_div(tag):
                heading_html = html[content_start:tag.start()]
                state = SEEK_BODY

        elif state == IN_BODY:
            if _closes_div(tag):
                yield RawBlock(
                    heading_html=heading_html,
                    body_html=html[content_start:tag.start()],
                    start=block_start,
                    end=tag.end(),
                )
                state = SEEK_HEADING

        last_tag_end = tag.end()
