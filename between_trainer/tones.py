"""Short synthesized feedback tones played through pygame.mixer.

PCM rendering is pure and testable; ``ToneBank`` only wraps it in mixer
sounds. When the mixer cannot start (headless runs, no audio device) the
bank stays silent.
"""

from __future__ import annotations

import logging
import math
import os
from array import array

import pygame

logger = logging.getLogger(__name__)

SAMPLE_RATE = 22050
_AMP = 32767
_WAVEFORMS = ("sine", "square", "triangle")


def _wave(waveform: str, phase: float) -> float:
    if waveform == "sine":
        return math.sin(phase)
    frac = (phase / (2.0 * math.pi)) % 1.0
    if waveform == "square":
        return 1.0 if frac < 0.5 else -1.0
    # triangle
    return 4.0 * abs(frac - 0.5) - 1.0


def render_tone_pcm(
    frequency_hz: float,
    duration_s: float,
    *,
    gain: float,
    waveform: str = "sine",
    sweep_to_hz: float | None = None,
    sample_rate: int = SAMPLE_RATE,
) -> array[int]:
    """Mono 16-bit PCM with a short attack and an exponential decay to silence."""

    if waveform not in _WAVEFORMS:
        raise ValueError(f"unknown waveform: {waveform}")
    if frequency_hz <= 0 or (sweep_to_hz is not None and sweep_to_hz <= 0):
        raise ValueError("frequencies must be > 0")

    sample_count = max(1, int(sample_rate * duration_s))
    fade_n = max(1, int(sample_rate * 0.004))
    end_hz = float(sweep_to_hz) if sweep_to_hz is not None else float(frequency_hz)
    # Decay to roughly -60 dB by the end of the tone.
    decay = math.log(0.001) / float(sample_count)
    out = array("h")
    phase = 0.0
    for idx in range(sample_count):
        t = idx / float(sample_count)
        # Exponential glide, matching an exponential frequency ramp.
        hz = float(frequency_hz) * (end_hz / float(frequency_hz)) ** t
        phase += 2.0 * math.pi * hz / float(sample_rate)
        envelope = math.exp(decay * idx)
        if idx < fade_n:
            envelope *= idx / float(fade_n)
        sample = _wave(waveform, phase) * gain * envelope
        out.append(int(max(-1.0, min(1.0, sample)) * _AMP))
    return out


class ToneBank:
    _specs: dict[str, tuple[float, float, float, str, float | None]] = {
        # name: (hz, seconds, gain, waveform, sweep_to_hz)
        "correct": (1200.0, 0.10, 0.30, "sine", 2000.0),
        "pass": (400.0, 0.15, 0.20, "triangle", None),
        "count": (800.0, 0.10, 0.20, "sine", None),
        "go": (1600.0, 0.40, 0.20, "square", None),
    }

    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = enabled
        self._available = False
        self._sounds: dict[str, pygame.mixer.Sound] = {}

        if os.environ.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy":
            return
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1, buffer=512)
            for name, (hz, seconds, gain, waveform, sweep) in self._specs.items():
                pcm = render_tone_pcm(hz, seconds, gain=gain, waveform=waveform, sweep_to_hz=sweep)
                self._sounds[name] = pygame.mixer.Sound(buffer=pcm.tobytes())
            self._available = True
        except pygame.error as exc:
            logger.warning("tones: mixer unavailable: %s", exc)
            self._sounds = {}
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    def play(self, name: str) -> None:
        if not (self._enabled and self._available):
            return
        sound = self._sounds.get(name)
        if sound is not None:
            sound.play()
