from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from .epub import parse_epub
from .errors import NotFoundError
from .models import Chapter, Manifest, Paragraph
from .normalize import NormalizeConfig, NormalizedBook, normalize_content

_FNV_OFFSET_BASIS = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3
_MASK_64 = (1 << 64) - 1


def _fnv1a_64(data: bytes) -> int:
    value = _FNV_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * _FNV_PRIME) & _MASK_64
    return value


def generate_book_id(epub_path: Union[str, Path]) -> str:
    """Derive a short id from the path string, not from the file contents."""
    return f"book_{_fnv1a_64(str(epub_path).encode('utf-8')):x}"


def word_count(text: str) -> int:
    return len(text.split())


def create_manifest(
    epub_path: Union[str, Path],
    content: NormalizedBook,
    logger: Optional[logging.Logger] = None,
) -> Manifest:
    log = logger or logging.getLogger(__name__)
    chapters: List[Chapter] = []
    paragraphs: List[Paragraph] = []
    paragraph_id = 0

    for chapter_id, chapter_content in enumerate(content.chapters):
        paragraph_ids: List[int] = []
        for text in chapter_content.paragraphs:
            paragraphs.append(
                Paragraph(
                    id=paragraph_id,
                    chapter_id=chapter_id,
                    text=text,
                    word_count=word_count(text),
                )
            )
            paragraph_ids.append(paragraph_id)
            paragraph_id += 1
        chapters.append(
            Chapter(id=chapter_id, title=chapter_content.title, paragraph_ids=paragraph_ids)
        )

    manifest = Manifest(
        book_id=generate_book_id(epub_path),
        title=content.title,
        author=content.author,
        chapters=chapters,
        paragraphs=paragraphs,
        last_position=None,
    )
    log.info(
        "Built manifest %s: %d chapters, %d paragraphs.",
        manifest.book_id,
        len(chapters),
        len(paragraphs),
    )
    return manifest


def build_manifest(
    epub_path: Union[str, Path],
    config: Optional[NormalizeConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> Manifest:
    path = Path(epub_path)
    if not path.exists():
        raise NotFoundError(f"EPUB file does not exist: {epub_path}")
    parsed = parse_epub(path, logger=logger)
    normalized = normalize_content(parsed, config=config, logger=logger)
    return create_manifest(epub_path, normalized, logger=logger)
