from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import VoiceValidationError

DEFAULT_VOICE_ID = "en_us_default"
RATE_RANGE = (0.5, 3.0)
PITCH_RANGE = (0.5, 2.0)


@dataclass(frozen=True)
class VoiceInfo:
    id: str
    name: str
    language: str
    description: str
    model_path: Optional[str] = None


@dataclass(frozen=True)
class VoiceConfig:
    id: str = DEFAULT_VOICE_ID
    rate: float = 1.0
    pitch: float = 1.0

    @classmethod
    def default(cls) -> "VoiceConfig":
        return cls()


_CATALOG: Tuple[VoiceInfo, ...] = (
    VoiceInfo(
        id="en_us_default",
        name="English (US) - Default",
        language="en-US",
        description="Standard American English voice",
        model_path="assets/models/en_us_default.onnx",
    ),
    VoiceInfo(
        id="en_us_female",
        name="English (US) - Female",
        language="en-US",
        description="Female American English voice",
        model_path="assets/models/en_us_female.onnx",
    ),
)


def get_available_voices() -> List[VoiceInfo]:
    return list(_CATALOG)


def find_voice(voice_id: str) -> Optional[VoiceInfo]:
    for info in _CATALOG:
        if info.id == voice_id:
            return info
    return None


def voice_config_problems(cfg: VoiceConfig) -> List[str]:
    problems: List[str] = []
    if find_voice(cfg.id) is None:
        problems.append(f"Voice '{cfg.id}' not found")
    low, high = RATE_RANGE
    if not low <= cfg.rate <= high:
        problems.append(f"Rate must be between {low} and {high}")
    low, high = PITCH_RANGE
    if not low <= cfg.pitch <= high:
        problems.append(f"Pitch must be between {low} and {high}")
    return problems


def validate_voice_config(cfg: VoiceConfig) -> None:
    problems = voice_config_problems(cfg)
    if problems:
        raise VoiceValidationError(problems)


def _load_json(path: Path) -> dict:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Voice config must be a JSON object: {path}")
    return data


def _coerce_float(data: dict, key: str, path: Path) -> float:
    value = data.get(key)
    if value is None:
        return 1.0
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Voice config {key} must be a number: {path}") from exc


def load_voice_config(path: Path) -> VoiceConfig:
    data = _load_json(path)
    voice_id = str(data.get("id") or DEFAULT_VOICE_ID).strip() or DEFAULT_VOICE_ID
    config = VoiceConfig(
        id=voice_id,
        rate=_coerce_float(data, "rate", path),
        pitch=_coerce_float(data, "pitch", path),
    )
    validate_voice_config(config)
    return config


def write_voice_config(config: VoiceConfig, path: Path) -> None:
    payload = {"id": config.id, "rate": config.rate, "pitch": config.pitch}
    path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
