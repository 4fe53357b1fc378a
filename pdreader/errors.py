from __future__ import annotations

from typing import List, Optional, Sequence


class PdreaderError(Exception):
    """Base class for every error raised by pdreader."""


class NotFoundError(PdreaderError, FileNotFoundError):
    pass


class ArchiveError(PdreaderError):
    pass


class DecodeError(PdreaderError, ValueError):
    """A single archive resource is not readable text.

    The parser recovers from this locally by skipping the resource.
    """


class SerializationError(PdreaderError, ValueError):
    pass


class StorageError(PdreaderError, OSError):
    pass


class VoiceValidationError(PdreaderError, ValueError):
    def __init__(self, problems: Sequence[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid voice configuration.")


class SynthesisError(PdreaderError):
    def __init__(self, message: str, text: Optional[str] = None) -> None:
        super().__init__(message)
        self.text = text
