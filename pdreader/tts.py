from __future__ import annotations

import io
import logging
from typing import List, Optional, Protocol, Sequence

import numpy as np
import soundfile as sf

from .errors import SynthesisError
from .voice import VoiceConfig

BASE_WPM = 175.0
SAMPLE_RATE = 22050


class TtsProvider(Protocol):
    async def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes:
        ...


def estimate_duration_ms(text: str, rate: float) -> float:
    words = len(text.split())
    adjusted_wpm = BASE_WPM * rate
    if adjusted_wpm <= 0:
        return 0.0
    return words / adjusted_wpm * 60.0 * 1000.0


def _encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, audio, sample_rate, subtype="PCM_16", format="WAV")
    return buffer.getvalue()


class SineWaveProvider:
    """Stand-in backend that renders a tone as long as the text would take to read."""

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        frequency: float = 440.0,
        amplitude: float = 0.3,
    ) -> None:
        self.sample_rate = sample_rate
        self.frequency = frequency
        self.amplitude = amplitude

    def render(self, text: str, voice_config: VoiceConfig) -> np.ndarray:
        duration_ms = estimate_duration_ms(text, voice_config.rate)
        num_samples = int(self.sample_rate * duration_ms / 1000.0)
        t = np.arange(num_samples, dtype=np.float64) / float(self.sample_rate)
        tone = self.amplitude * np.sin(2.0 * np.pi * self.frequency * t)
        return tone.astype(np.float32)

    async def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes:
        return _encode_wav(self.render(text, voice_config), self.sample_rate)


async def synthesize(
    text: str,
    voice_config: VoiceConfig,
    provider: TtsProvider,
    logger: Optional[logging.Logger] = None,
) -> bytes:
    log = logger or logging.getLogger(__name__)
    log.info("Synthesizing %d chars with voice %s.", len(text), voice_config.id)
    try:
        return await provider.synthesize(text, voice_config)
    except SynthesisError:
        raise
    except Exception as exc:
        raise SynthesisError(f"Synthesis failed: {exc}", text=text) from exc


async def prebuffer(
    paragraphs: Sequence[str],
    voice_config: VoiceConfig,
    n: int,
    provider: TtsProvider,
    logger: Optional[logging.Logger] = None,
) -> List[bytes]:
    """Synthesize the first ``n`` paragraphs one after another.

    Requests never overlap. The first failure propagates and any audio already
    produced for the batch is discarded.
    """
    batch = list(paragraphs)[: max(n, 0)]
    results: List[bytes] = []
    for text in batch:
        results.append(await synthesize(text, voice_config, provider, logger=logger))
    return results
