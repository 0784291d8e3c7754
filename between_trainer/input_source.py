"""Uniform answer feed from the keypad and from voice transcripts.

Both collaborators end up as ``AnswerEvent`` values: a numeric candidate or a
pass request. The voice side wraps a ``TranscriptSource`` (start/stop plus an
event callback) and owns the restart policy explicitly: while enabled, a
source that ends is restarted after a short delay on the scheduler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .scheduler import Scheduler, TimerHandle
from .transcript import TokenKind, normalize

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CANDIDATE = "candidate"
    PASS = "pass"


class InputSource(str, Enum):
    KEYPAD = "keypad"
    VOICE = "voice"


@dataclass(frozen=True, slots=True)
class AnswerEvent:
    kind: EventKind
    value: int | None = None
    source: InputSource = InputSource.KEYPAD
    raw: str = ""


AnswerHandler = Callable[[AnswerEvent], None]


class KeypadBuffer:
    """Digit entry buffer: digits accumulate until enter, pass is immediate."""

    max_digits = 5

    def __init__(self, on_event: AnswerHandler) -> None:
        self._on_event = on_event
        self._digits = ""

    @property
    def text(self) -> str:
        return self._digits

    def press_digit(self, digit: str) -> None:
        if len(digit) != 1 or not ("0" <= digit <= "9"):
            raise ValueError(f"not a keypad digit: {digit!r}")
        if len(self._digits) < self.max_digits:
            self._digits += digit

    def delete(self) -> None:
        self._digits = self._digits[:-1]

    def clear(self) -> None:
        self._digits = ""

    def enter(self) -> None:
        if self._digits == "":
            return
        raw = self._digits
        self._digits = ""
        self._on_event(AnswerEvent(EventKind.CANDIDATE, int(raw), InputSource.KEYPAD, raw))

    def press_pass(self) -> None:
        self._digits = ""
        self._on_event(AnswerEvent(EventKind.PASS, None, InputSource.KEYPAD, "pass"))


class TranscriptEventKind(str, Enum):
    TEXT = "text"
    START = "start"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class TranscriptEvent:
    kind: TranscriptEventKind
    text: str = ""
    fatal: bool = False  # ERROR only: the source cannot be restarted (e.g. no microphone)


class TranscriptSource(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def on_event(self, handler: Callable[[TranscriptEvent], None]) -> None: ...


class VoiceInputAdapter:
    def __init__(
        self,
        source: TranscriptSource,
        *,
        scheduler: Scheduler,
        on_event: AnswerHandler,
        start_delay_s: float = 0.15,
        restart_delay_s: float = 0.1,
    ) -> None:
        self._source = source
        self._scheduler = scheduler
        self._on_event = on_event
        self._start_delay_s = float(start_delay_s)
        self._restart_delay_s = float(restart_delay_s)

        self._enabled = False
        self._listening = False
        self._supported = True
        self._start_timer: TimerHandle | None = None
        self._last_text = ""

        self._source.on_event(self._handle)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def last_text(self) -> str:
        return self._last_text

    def enable(self) -> None:
        if self._enabled or not self._supported:
            return
        self._enabled = True
        self._arm_start(self._start_delay_s)

    def disable(self) -> None:
        if self._start_timer is not None:
            self._start_timer.cancel()
            self._start_timer = None
        was_enabled = self._enabled
        self._enabled = False
        self._listening = False
        if was_enabled:
            self._source.stop()

    def _arm_start(self, delay_s: float) -> None:
        if self._start_timer is not None:
            self._start_timer.cancel()
        self._start_timer = self._scheduler.schedule(delay_s, self._start_source)

    def _start_source(self) -> None:
        self._start_timer = None
        if not self._enabled:
            return
        logger.debug("voice: starting transcript source")
        self._source.start()

    def _handle(self, event: TranscriptEvent) -> None:
        if event.kind is TranscriptEventKind.START:
            self._listening = self._enabled
            return
        if event.kind is TranscriptEventKind.END:
            self._listening = False
            if self._enabled:
                self._arm_start(self._restart_delay_s)
            return
        if event.kind is TranscriptEventKind.ERROR:
            logger.warning("voice: recogniser error: %s", event.text or "unknown")
            if event.fatal:
                self._supported = False
                self.disable()
            return

        if not self._enabled:
            return
        self._last_text = event.text
        token = normalize(event.text)
        if token.kind is TokenKind.PASS:
            self._on_event(AnswerEvent(EventKind.PASS, None, InputSource.VOICE, event.text))
        elif token.kind is TokenKind.NUMBER:
            self._on_event(AnswerEvent(EventKind.CANDIDATE, token.value, InputSource.VOICE, event.text))
        else:
            logger.debug("voice: dropped transcript %r", event.text)
