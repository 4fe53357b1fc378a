from __future__ import annotations

import hashlib

import numpy as np

from .voice import VoiceConfig


def _float32_le(value: float) -> bytes:
    # Finite values beyond the float32 range saturate to +/-inf.
    with np.errstate(over="ignore"):
        return np.asarray(value, dtype="<f4").tobytes()


def cache_key_for(text: str, voice_config: VoiceConfig) -> str:
    """Key synthesized audio by the exact text and voice settings.

    Rate and pitch enter the digest as little-endian float32, so values that
    differ only beyond single precision share a key.
    """
    digest = hashlib.sha256()
    digest.update(text.encode("utf-8"))
    digest.update(voice_config.id.encode("utf-8"))
    digest.update(_float32_le(voice_config.rate))
    digest.update(_float32_le(voice_config.pitch))
    return digest.hexdigest()
