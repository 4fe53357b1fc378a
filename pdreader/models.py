from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1


class Chapter(BaseModel):
    id: int = Field(ge=0, le=U32_MAX)
    title: str
    paragraph_ids: List[int] = []


class Paragraph(BaseModel):
    id: int = Field(ge=0, le=U32_MAX)
    chapter_id: int = Field(ge=0, le=U32_MAX)
    text: str
    word_count: int = Field(ge=0, le=U32_MAX)


class Position(BaseModel):
    chapter_id: int = Field(ge=0, le=U32_MAX)
    paragraph_id: int = Field(ge=0, le=U32_MAX)
    offset_ms: int = Field(default=0, ge=0, le=U64_MAX)


class Manifest(BaseModel):
    """A book split into chapters and globally numbered paragraphs.

    Everything except ``last_position`` is fixed at ingestion time.
    """

    book_id: str
    title: str
    author: str
    chapters: List[Chapter] = []
    paragraphs: List[Paragraph] = []
    last_position: Optional[Position] = None

    @model_validator(mode="after")
    def _check_references(self) -> "Manifest":
        ids = [p.id for p in self.paragraphs]
        if ids != list(range(len(ids))):
            raise ValueError("paragraph ids must run 0..N-1 in order")
        for chapter in self.chapters:
            dangling = [pid for pid in chapter.paragraph_ids if not 0 <= pid < len(ids)]
            if dangling:
                raise ValueError(
                    f"chapter {chapter.id} lists unknown paragraphs {dangling}"
                )
        pos = self.last_position
        if pos is not None:
            if self.chapter(pos.chapter_id) is None:
                raise ValueError(f"last_position chapter {pos.chapter_id} does not exist")
            if not 0 <= pos.paragraph_id < len(ids):
                raise ValueError(
                    f"last_position paragraph {pos.paragraph_id} does not exist"
                )
        return self

    def chapter(self, chapter_id: int) -> Optional[Chapter]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def paragraph(self, paragraph_id: int) -> Optional[Paragraph]:
        if 0 <= paragraph_id < len(self.paragraphs):
            return self.paragraphs[paragraph_id]
        return None

    def paragraphs_from(self, paragraph_id: int) -> List[Paragraph]:
        return self.paragraphs[max(paragraph_id, 0):]


class ManifestFile(BaseModel):
    manifest: Manifest
    created_at: int
    updated_at: int
