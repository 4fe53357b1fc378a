from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup

from .epub import ParsedBook

WRAP_WIDTH = 80
MIN_PARAGRAPH_CHARS = 11
PARAGRAPH_DELIMITER = "\n\n"
BOILERPLATE_PATTERNS = (
    "Project Gutenberg",
    "www.gutenberg.org",
    "End of Project Gutenberg",
    "*** START OF THE PROJECT",
    "*** END OF THE PROJECT",
    "CHAPTER",
    "Table of Contents",
)

_DROP_TAGS = ["head", "script", "style", "noscript"]
_BLOCK_TAGS = [
    "p",
    "div",
    "section",
    "article",
    "blockquote",
    "li",
    "dt",
    "dd",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "pre",
    "table",
    "tr",
    "hr",
]


@dataclass(frozen=True)
class NormalizeConfig:
    wrap_width: int = WRAP_WIDTH
    min_paragraph_chars: int = MIN_PARAGRAPH_CHARS
    boilerplate_patterns: Sequence[str] = BOILERPLATE_PATTERNS


@dataclass(frozen=True)
class NormalizedChapter:
    title: str
    paragraphs: List[str]
    spine_index: int = 0


@dataclass(frozen=True)
class NormalizedBook:
    title: str
    author: str
    chapters: List[NormalizedChapter] = field(default_factory=list)


def _parse_html_soup(markup: bytes | str) -> BeautifulSoup:
    if isinstance(markup, bytes):
        head = markup.lstrip()[:512].lower()
        parser = (
            "lxml-xml"
            if (head.startswith(b"<?xml") or b"xmlns=" in head)
            else "lxml"
        )
    else:
        head = str(markup).lstrip()[:512].lower()
        parser = "lxml-xml" if (head.startswith("<?xml") or "xmlns=" in head) else "lxml"
    return BeautifulSoup(markup, parser)


def render_text(markup: bytes | str, width: int = WRAP_WIDTH) -> str:
    """Lay out markup as plain text, one wrapped block per paragraph.

    Only the block boundaries matter downstream; inline styling, images and
    tables are flattened to their text.
    """
    soup = _parse_html_soup(markup)
    for tag in soup.find_all(_DROP_TAGS):
        tag.decompose()
    for tag in soup.find_all("br"):
        tag.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n\n")
        tag.insert_after("\n\n")

    raw = soup.get_text()
    blocks: List[str] = []
    for block in re.split(r"\n[ \t\r\f\v]*\n", raw):
        lines = [" ".join(line.split()) for line in block.splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            continue
        wrapped = [textwrap.fill(line, width=width) if width > 0 else line for line in lines]
        blocks.append("\n".join(wrapped))
    return PARAGRAPH_DELIMITER.join(blocks)


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def is_boilerplate(paragraph: str, patterns: Sequence[str] = BOILERPLATE_PATTERNS) -> bool:
    lowered = paragraph.lower()
    return any(pattern.lower() in lowered for pattern in patterns)


def normalize_paragraph(paragraph: str) -> str:
    lines = [line.strip() for line in paragraph.splitlines()]
    return " ".join(line for line in lines if line).strip()


def extract_paragraphs(text: str, config: Optional[NormalizeConfig] = None) -> List[str]:
    config = config or NormalizeConfig()
    # Whitespace, newlines included, is collapsed before segmentation, so the
    # delimiter never survives and a chapter yields at most one segment.
    cleaned = collapse_whitespace(text)
    paragraphs: List[str] = []
    for segment in cleaned.split(PARAGRAPH_DELIMITER):
        segment = segment.strip()
        if not segment:
            continue
        if len(segment) < config.min_paragraph_chars:
            continue
        if is_boilerplate(segment, config.boilerplate_patterns):
            continue
        paragraphs.append(normalize_paragraph(segment))
    return paragraphs


def normalize_content(
    parsed: ParsedBook,
    config: Optional[NormalizeConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> NormalizedBook:
    log = logger or logging.getLogger(__name__)
    config = config or NormalizeConfig()
    chapters: List[NormalizedChapter] = []
    for chapter in parsed.chapters:
        text = render_text(chapter.html, width=config.wrap_width)
        paragraphs = extract_paragraphs(text, config)
        if not paragraphs:
            log.debug(
                "Dropping spine entry %d (%s): no paragraphs left after filtering.",
                chapter.spine_index,
                chapter.title,
            )
            continue
        chapters.append(
            NormalizedChapter(
                title=chapter.title,
                paragraphs=paragraphs,
                spine_index=chapter.spine_index,
            )
        )
    return NormalizedBook(title=parsed.title, author=parsed.author, chapters=chapters)
