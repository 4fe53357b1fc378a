from pathlib import Path

import pytest
from pydantic import ValidationError

from conftest import INVALID_UTF8, xhtml
from pdreader import manifest as manifest_util
from pdreader.errors import NotFoundError
from pdreader.models import Chapter, Manifest, Paragraph, Position
from pdreader.normalize import NormalizedBook, NormalizedChapter


def _sample_content() -> NormalizedBook:
    return NormalizedBook(
        title="Book",
        author="Someone",
        chapters=[
            NormalizedChapter(title="A", paragraphs=["one two", "three"], spine_index=0),
            NormalizedChapter(title="B", paragraphs=["four five six"], spine_index=2),
            NormalizedChapter(title="C", paragraphs=["seven", "eight", "nine ten"], spine_index=3),
        ],
    )


def test_create_manifest_assigns_contiguous_ids() -> None:
    manifest = manifest_util.create_manifest("book.epub", _sample_content())
    assert [c.id for c in manifest.chapters] == [0, 1, 2]
    assert [p.id for p in manifest.paragraphs] == [0, 1, 2, 3, 4, 5]
    assert [c.paragraph_ids for c in manifest.chapters] == [[0, 1], [2], [3, 4, 5]]
    assert [p.chapter_id for p in manifest.paragraphs] == [0, 0, 1, 2, 2, 2]
    assert [p.word_count for p in manifest.paragraphs] == [2, 1, 3, 1, 1, 2]
    assert manifest.last_position is None
    assert manifest.title == "Book"
    assert manifest.author == "Someone"


def test_create_manifest_references_are_consistent() -> None:
    manifest = manifest_util.create_manifest("book.epub", _sample_content())
    for chapter in manifest.chapters:
        for pid in chapter.paragraph_ids:
            assert manifest.paragraphs[pid].chapter_id == chapter.id
    for paragraph in manifest.paragraphs:
        assert paragraph.id in manifest.chapters[paragraph.chapter_id].paragraph_ids


def test_manifest_lookup_helpers() -> None:
    manifest = manifest_util.create_manifest("book.epub", _sample_content())
    assert manifest.chapter(1).title == "B"
    assert manifest.chapter(9) is None
    assert manifest.paragraph(4).text == "eight"
    assert manifest.paragraph(-1) is None
    assert [p.id for p in manifest.paragraphs_from(4)] == [4, 5]


def test_generate_book_id_is_stable_and_path_based() -> None:
    assert manifest_util.generate_book_id("") == "book_cbf29ce484222325"
    assert manifest_util.generate_book_id("a") == "book_af63dc4c8601ec8c"
    first = manifest_util.generate_book_id("/books/a.epub")
    assert first == manifest_util.generate_book_id(Path("/books/a.epub"))
    assert first.startswith("book_")
    assert first != manifest_util.generate_book_id("/books/b.epub")


def test_word_count_splits_on_whitespace() -> None:
    assert manifest_util.word_count("  one\ttwo\nthree  ") == 3
    assert manifest_util.word_count("") == 0


def test_build_manifest_missing_path(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        manifest_util.build_manifest(tmp_path / "nope.epub")


def test_build_manifest_skips_undecodable_entry(make_epub) -> None:
    path = make_epub(
        [
            (
                "intro.xhtml",
                xhtml(
                    "<h1>Intro</h1><p>It was a bright cold day in April, "
                    "and the clocks were striking thirteen.</p>"
                ),
            ),
            ("broken.xhtml", INVALID_UTF8),
        ]
    )
    manifest = manifest_util.build_manifest(path)
    assert len(manifest.chapters) == 1
    assert manifest.chapters[0].title == "Intro"
    assert manifest.chapters[0].id == 0
    assert manifest.paragraphs[0].text.startswith("Intro It was a bright cold day")
    assert manifest.book_id == manifest_util.generate_book_id(path)


def test_build_manifest_reindexes_after_dropped_chapters(make_epub) -> None:
    path = make_epub(
        [
            ("tiny.xhtml", xhtml("<p>Short</p>")),
            ("legal.xhtml", xhtml("<p>The Project Gutenberg licence applies here.</p>")),
            ("story.xhtml", xhtml("<h1>Story</h1><p>Once upon a time there was a reader.</p>")),
        ]
    )
    manifest = manifest_util.build_manifest(path)
    assert [(c.id, c.title) for c in manifest.chapters] == [(0, "Story")]
    assert [p.id for p in manifest.paragraphs] == [0]
    assert manifest.paragraphs[0].chapter_id == 0


def test_build_manifest_empty_book(make_epub) -> None:
    path = make_epub([("tiny.xhtml", xhtml("<p>Short</p>"))])
    manifest = manifest_util.build_manifest(path)
    assert manifest.chapters == []
    assert manifest.paragraphs == []
    assert manifest.title == "Sample Book"


def test_manifest_rejects_dangling_references() -> None:
    with pytest.raises(ValidationError):
        Manifest(
            book_id="book_1",
            title="T",
            author="A",
            chapters=[Chapter(id=0, title="x", paragraph_ids=[5])],
            paragraphs=[Paragraph(id=0, chapter_id=0, text="hello", word_count=1)],
        )
    with pytest.raises(ValidationError):
        Manifest(
            book_id="book_1",
            title="T",
            author="A",
            chapters=[Chapter(id=0, title="x", paragraph_ids=[3])],
            paragraphs=[Paragraph(id=3, chapter_id=0, text="hello", word_count=1)],
        )


def test_manifest_rejects_position_outside_the_book() -> None:
    manifest = manifest_util.create_manifest("book.epub", _sample_content())
    payload = manifest.model_dump()
    payload["last_position"] = {"chapter_id": 1, "paragraph_id": 6, "offset_ms": 0}
    with pytest.raises(ValidationError):
        Manifest.model_validate(payload)
    payload["last_position"] = {"chapter_id": 2, "paragraph_id": 5, "offset_ms": 0}
    assert Manifest.model_validate(payload).last_position.paragraph_id == 5


def test_ids_are_limited_to_u32() -> None:
    with pytest.raises(ValidationError):
        Position(chapter_id=2**32, paragraph_id=0)
    with pytest.raises(ValidationError):
        Paragraph(id=0, chapter_id=0, text="x", word_count=2**32)
    assert Position(chapter_id=2**32 - 1, paragraph_id=0, offset_ms=2**64 - 1).offset_ms == 2**64 - 1
