from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .high_score import JsonKeyValueStore

LOG_LEVEL_ENV = "BETWEEN_LOG_LEVEL"
DISABLE_VOICE_ENV = "BETWEEN_DISABLE_VOICE"
VOICE_LANGUAGE_ENV = "BETWEEN_VOICE_LANGUAGE"


@dataclass(frozen=True, slots=True)
class Settings:
    high_score_path: Path
    voice_enabled: bool = True
    voice_language: str = "ja-JP"
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Settings":
        language = os.environ.get(VOICE_LANGUAGE_ENV, "").strip() or "ja-JP"
        level = os.environ.get(LOG_LEVEL_ENV, "").strip().upper() or "WARNING"
        return cls(
            high_score_path=JsonKeyValueStore.default_path(),
            voice_enabled=os.environ.get(DISABLE_VOICE_ENV, "0") != "1",
            voice_language=language,
            log_level=level,
        )


def configure_logging(level_name: str) -> int:
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return level
