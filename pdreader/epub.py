from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from ebooklib import epub

from .errors import ArchiveError, DecodeError, NotFoundError

DEFAULT_TITLE = "Unknown Title"
DEFAULT_AUTHOR = "Unknown Author"


@dataclass(frozen=True)
class ParsedChapter:
    title: str
    html: str
    spine_index: int


@dataclass(frozen=True)
class ParsedBook:
    title: str
    author: str
    chapters: List[ParsedChapter] = field(default_factory=list)


TitleExtractor = Callable[[str], str]


def read_epub(path: Path) -> epub.EpubBook:
    return epub.read_epub(str(path))


def _first_dc_meta(book: epub.EpubBook, name: str) -> str:
    items = book.get_metadata("DC", name)
    if not items:
        return ""
    value, _attrs = items[0]
    return value or ""


def _item_name(item: object) -> str:
    get_name = getattr(item, "get_name", None)
    if callable(get_name):
        return get_name() or ""
    return getattr(item, "file_name", "") or ""


def _raw_item_bytes(item: object) -> bytes:
    # EpubHtml.get_content() re-renders the document from a template, so read
    # the bytes exactly as they were stored in the archive.
    content = getattr(item, "content", None)
    if content is None:
        content = item.get_content()
    if isinstance(content, str):
        return content.encode("utf-8")
    return content or b""


def decode_document(data: bytes, name: str = "") -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Resource is not valid UTF-8 text: {name or '<unnamed>'}") from exc


_TAG_RE = re.compile(r"<[^>]*>")


def clean_title(raw: str) -> str:
    text = _TAG_RE.sub("", raw)
    text = html.unescape(text)
    return " ".join(text.split())


def _element_text_extractor(tag: str) -> TitleExtractor:
    pattern = re.compile(rf"<{tag}(?:\s[^>]*)?>(.*?)</{tag}\s*>", re.DOTALL)

    def extract(markup: str) -> str:
        match = pattern.search(markup)
        if not match:
            return ""
        return clean_title(match.group(1))

    extract.__name__ = f"extract_{tag}"
    return extract


TITLE_EXTRACTORS: Sequence[TitleExtractor] = (
    _element_text_extractor("h1"),
    _element_text_extractor("h2"),
    _element_text_extractor("title"),
)


def extract_chapter_title(
    markup: str,
    spine_index: int,
    extractors: Sequence[TitleExtractor] = TITLE_EXTRACTORS,
) -> str:
    for extractor in extractors:
        title = extractor(markup)
        if title:
            return title
    return f"Chapter {spine_index + 1}"


def extract_metadata(book: epub.EpubBook) -> tuple[str, str]:
    title = _first_dc_meta(book, "title").strip() or DEFAULT_TITLE
    author = _first_dc_meta(book, "creator").strip() or DEFAULT_AUTHOR
    return title, author


def parse_epub(
    path: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> ParsedBook:
    """Read an EPUB container into raw chapter markup in spine order.

    Spine entries that are missing from the manifest or do not decode as UTF-8
    are skipped; every other failure to open the archive raises ArchiveError.
    """
    log = logger or logging.getLogger(__name__)
    path = Path(path)
    if not path.exists():
        raise NotFoundError(f"EPUB file does not exist: {path}")

    try:
        book = read_epub(path)
    except Exception as exc:
        raise ArchiveError(f"Cannot open EPUB archive {path}: {exc}") from exc

    title, author = extract_metadata(book)

    chapters: List[ParsedChapter] = []
    for spine_index, (idref, _linear) in enumerate(book.spine):
        item = book.get_item_with_id(idref)
        if item is None:
            log.debug("Spine entry %d (%s) has no manifest item.", spine_index, idref)
            continue
        name = _item_name(item)
        try:
            markup = decode_document(_raw_item_bytes(item), name)
        except DecodeError as exc:
            log.warning("Skipping spine entry %d: %s", spine_index, exc)
            continue
        chapters.append(
            ParsedChapter(
                title=extract_chapter_title(markup, spine_index),
                html=markup,
                spine_index=spine_index,
            )
        )

    log.debug(
        "Parsed %s: %d of %d spine entries readable.",
        path.name,
        len(chapters),
        len(book.spine),
    )
    return ParsedBook(title=title, author=author, chapters=chapters)
