from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from . import manifest as manifest_util
from . import store as store_util
from . import tts as tts_util
from . import voice as voice_util
from .cache import cache_key_for
from .errors import PdreaderError
from .models import Manifest, Position
from .voice import VoiceConfig

LOGGER_NAME = "pdreader"


def _logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _voice_from_args(args: argparse.Namespace) -> VoiceConfig:
    if args.voice_config:
        config = voice_util.load_voice_config(Path(args.voice_config))
    else:
        config = VoiceConfig(id=args.voice, rate=args.rate, pitch=args.pitch)
        voice_util.validate_voice_config(config)
    if args.save_voice_config:
        save_path = Path(args.save_voice_config)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        voice_util.write_voice_config(config, save_path)
    return config


def _print_summary(manifest: Manifest) -> None:
    print(f"Title:  {manifest.title}")
    print(f"Author: {manifest.author}")
    print(f"Book:   {manifest.book_id}")
    print(f"\n{len(manifest.chapters)} chapters, {len(manifest.paragraphs)} paragraphs")
    words_by_id = {p.id: p.word_count for p in manifest.paragraphs}
    for chapter in manifest.chapters:
        words = sum(words_by_id.get(pid, 0) for pid in chapter.paragraph_ids)
        print(
            f"  {chapter.id:3d}. {chapter.title[:50]:<50} "
            f"{len(chapter.paragraph_ids):>4} paras {words:>7} words"
        )
    if manifest.last_position is not None:
        pos = manifest.last_position
        print(
            f"\nLast position: chapter {pos.chapter_id}, "
            f"paragraph {pos.paragraph_id}, {pos.offset_ms} ms"
        )


def _load_or_report(path: Path) -> Optional[Manifest]:
    manifest = asyncio.run(store_util.load_manifest(path, logger=_logger()))
    if manifest is None:
        sys.stderr.write(f"Manifest not found: {path}\n")
    return manifest


def _ingest(args: argparse.Namespace) -> int:
    out_path = Path(args.out)
    if out_path.exists() and not args.overwrite:
        sys.stderr.write(f"Manifest already exists: {out_path} (use --overwrite)\n")
        return 2
    try:
        manifest = manifest_util.build_manifest(args.input, logger=_logger())
        out_path.parent.mkdir(parents=True, exist_ok=True)
        asyncio.run(store_util.save_manifest(out_path, manifest, logger=_logger()))
    except PdreaderError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    if not manifest.chapters:
        sys.stderr.write("No readable chapters found in EPUB.\n")
    _print_summary(manifest)
    print(f"\nSaved: {out_path}")
    return 0


def _show(args: argparse.Namespace) -> int:
    try:
        manifest = _load_or_report(Path(args.manifest))
    except PdreaderError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    if manifest is None:
        return 2
    _print_summary(manifest)
    return 0


def _position(args: argparse.Namespace) -> int:
    path = Path(args.manifest)
    setting = args.chapter is not None or args.paragraph is not None
    try:
        manifest = _load_or_report(path)
        if manifest is None:
            return 2
        if setting:
            if args.chapter is None or args.paragraph is None:
                sys.stderr.write("Both --chapter and --paragraph are required.\n")
                return 2
            paragraph = manifest.paragraph(args.paragraph)
            if manifest.chapter(args.chapter) is None or paragraph is None:
                sys.stderr.write("Position does not match a chapter/paragraph in this book.\n")
                return 2
            if paragraph.chapter_id != args.chapter:
                sys.stderr.write(
                    f"Paragraph {args.paragraph} belongs to chapter {paragraph.chapter_id}.\n"
                )
                return 2
            position = Position(
                chapter_id=args.chapter,
                paragraph_id=args.paragraph,
                offset_ms=args.offset_ms,
            )
            asyncio.run(store_util.update_last_position(path, position, logger=_logger()))
        current = asyncio.run(store_util.get_last_position(path, logger=_logger()))
    except PdreaderError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    if current is None:
        print("No position recorded.")
    else:
        print(json.dumps(current.model_dump(), indent=2))
    return 0


def _voices(args: argparse.Namespace) -> int:
    _ = args
    for info in voice_util.get_available_voices():
        print(f"{info.id:<16} {info.language:<6} {info.name} - {info.description}")
    return 0


def _cache_key(args: argparse.Namespace) -> int:
    try:
        config = _voice_from_args(args)
    except (PdreaderError, ValueError, OSError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    print(cache_key_for(args.text, config))
    return 0


class _ProgressProvider:
    def __init__(self, inner: tts_util.TtsProvider, progress: Progress, task_id: int) -> None:
        self._inner = inner
        self._progress = progress
        self._task_id = task_id

    async def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes:
        audio = await self._inner.synthesize(text, voice_config)
        self._progress.advance(self._task_id, 1)
        return audio


def _prebuffer(args: argparse.Namespace) -> int:
    path = Path(args.manifest)
    try:
        config = _voice_from_args(args)
        manifest = _load_or_report(path)
    except (PdreaderError, ValueError, OSError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    if manifest is None:
        return 2

    start = args.start
    if start is None:
        start = manifest.last_position.paragraph_id if manifest.last_position else 0
    texts = [p.text for p in manifest.paragraphs_from(start)]
    total = min(args.count, len(texts))
    if total <= 0:
        sys.stderr.write(f"No paragraphs to synthesize from paragraph {start}.\n")
        return 2

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
    )
    try:
        with progress:
            task_id = progress.add_task(f"Paragraphs {start}+", total=total)
            provider = _ProgressProvider(tts_util.SineWaveProvider(), progress, task_id)
            audio = asyncio.run(
                tts_util.prebuffer(texts, config, args.count, provider, logger=_logger())
            )
    except PdreaderError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2

    for text, data in zip(texts, audio):
        (out_dir / f"{cache_key_for(text, config)}.wav").write_bytes(data)
    print(f"Wrote {len(audio)} segments to {out_dir}")
    return 0


def _add_voice_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--voice",
        default=voice_util.DEFAULT_VOICE_ID,
        help=f"Voice id (default: {voice_util.DEFAULT_VOICE_ID})",
    )
    parser.add_argument("--rate", type=float, default=1.0, help="Speech rate, 0.5-3.0")
    parser.add_argument("--pitch", type=float, default=1.0, help="Pitch, 0.5-2.0")
    parser.add_argument(
        "--voice-config",
        dest="voice_config",
        help="JSON file with id/rate/pitch (overrides --voice/--rate/--pitch)",
    )
    parser.add_argument(
        "--save-voice-config",
        dest="save_voice_config",
        help="Write the validated voice settings to this JSON file",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pdreader")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    ingest = subparsers.add_parser("ingest", help="Build a manifest from an EPUB")
    ingest.add_argument("input", help="Path to input .epub")
    ingest.add_argument(
        "--out",
        "--output",
        required=True,
        dest="out",
        help="Output manifest path (e.g., out/book.json)",
    )
    ingest.add_argument(
        "--overwrite", action="store_true", help="Replace an existing manifest"
    )
    ingest.set_defaults(func=_ingest)

    show = subparsers.add_parser("show", help="Summarize a saved manifest")
    show.add_argument("manifest", help="Manifest JSON path")
    show.set_defaults(func=_show)

    position = subparsers.add_parser(
        "position", help="Show or record the last listened position"
    )
    position.add_argument("manifest", help="Manifest JSON path")
    position.add_argument("--chapter", type=int, default=None)
    position.add_argument("--paragraph", type=int, default=None)
    position.add_argument("--offset-ms", dest="offset_ms", type=int, default=0)
    position.set_defaults(func=_position)

    voices = subparsers.add_parser("voices", help="List available voices")
    voices.set_defaults(func=_voices)

    cache_key = subparsers.add_parser(
        "cache-key", help="Print the audio cache key for a paragraph"
    )
    cache_key.add_argument("text", help="Paragraph text")
    _add_voice_arguments(cache_key)
    cache_key.set_defaults(func=_cache_key)

    prebuffer = subparsers.add_parser(
        "prebuffer", help="Synthesize the next paragraphs with the sine backend"
    )
    prebuffer.add_argument("manifest", help="Manifest JSON path")
    prebuffer.add_argument("--count", type=int, default=3, help="Paragraphs to synthesize")
    prebuffer.add_argument(
        "--start",
        type=int,
        default=None,
        help="First paragraph id (default: last position, else 0)",
    )
    prebuffer.add_argument("--out", required=True, help="Output directory for WAV files")
    _add_voice_arguments(prebuffer)
    prebuffer.set_defaults(func=_prebuffer)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
