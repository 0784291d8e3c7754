from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import pytest

from between_trainer.input_source import (
    AnswerEvent,
    EventKind,
    InputSource,
    KeypadBuffer,
    TranscriptEvent,
    TranscriptEventKind,
    VoiceInputAdapter,
)
from between_trainer.scheduler import Scheduler


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class FakeTranscriptSource:
    def __init__(self) -> None:
        self.starts = 0
        self.stops = 0
        self._handler: Callable[[TranscriptEvent], None] | None = None

    def on_event(self, handler: Callable[[TranscriptEvent], None]) -> None:
        self._handler = handler

    def start(self) -> None:
        self.starts += 1
        self.emit(TranscriptEvent(TranscriptEventKind.START))

    def stop(self) -> None:
        self.stops += 1

    def emit(self, event: TranscriptEvent) -> None:
        assert self._handler is not None
        self._handler(event)

    def say(self, text: str) -> None:
        self.emit(TranscriptEvent(TranscriptEventKind.TEXT, text))


def test_keypad_enter_emits_candidate_and_clears() -> None:
    events: list[AnswerEvent] = []
    pad = KeypadBuffer(events.append)
    for d in "123":
        pad.press_digit(d)
    pad.delete()
    pad.press_digit("4")
    assert pad.text == "124"

    pad.enter()
    assert events == [AnswerEvent(EventKind.CANDIDATE, 124, InputSource.KEYPAD, "124")]
    assert pad.text == ""


def test_keypad_caps_digits_and_ignores_empty_enter() -> None:
    events: list[AnswerEvent] = []
    pad = KeypadBuffer(events.append)
    pad.enter()
    for d in "9876543":
        pad.press_digit(d)
    assert pad.text == "98765"
    assert events == []


def test_keypad_pass_and_bad_digit() -> None:
    events: list[AnswerEvent] = []
    pad = KeypadBuffer(events.append)
    pad.press_digit("1")
    pad.press_pass()
    assert [e.kind for e in events] == [EventKind.PASS]
    assert pad.text == ""
    with pytest.raises(ValueError):
        pad.press_digit("x")


def _adapter() -> tuple[FakeClock, Scheduler, FakeTranscriptSource, VoiceInputAdapter, list[AnswerEvent]]:
    clock = FakeClock()
    sched = Scheduler(clock)
    source = FakeTranscriptSource()
    events: list[AnswerEvent] = []
    adapter = VoiceInputAdapter(source, scheduler=sched, on_event=events.append)
    return clock, sched, source, adapter, events


def test_voice_start_is_delayed_then_transcripts_flow() -> None:
    clock, sched, source, adapter, events = _adapter()
    adapter.enable()
    assert source.starts == 0

    clock.advance(0.15)
    sched.run_due()
    assert source.starts == 1
    assert adapter.listening

    source.say("六十五")
    source.say("パス")
    source.say("えーと")
    assert events == [
        AnswerEvent(EventKind.CANDIDATE, 65, InputSource.VOICE, "六十五"),
        AnswerEvent(EventKind.PASS, None, InputSource.VOICE, "パス"),
    ]


def test_voice_restarts_after_end_while_enabled() -> None:
    clock, sched, source, adapter, events = _adapter()
    adapter.enable()
    clock.advance(0.15)
    sched.run_due()

    source.emit(TranscriptEvent(TranscriptEventKind.END))
    assert not adapter.listening
    clock.advance(0.1)
    sched.run_due()
    assert source.starts == 2
    assert adapter.listening


def test_disable_cancels_pending_start_and_ignores_late_text() -> None:
    clock, sched, source, adapter, events = _adapter()
    adapter.enable()
    adapter.disable()
    clock.advance(1.0)
    sched.run_due()
    assert source.starts == 0
    assert source.stops == 1

    source.say("42")
    source.emit(TranscriptEvent(TranscriptEventKind.END))
    clock.advance(1.0)
    sched.run_due()
    assert events == []
    assert source.starts == 0


def test_fatal_error_marks_voice_unsupported() -> None:
    clock, sched, source, adapter, events = _adapter()
    adapter.enable()
    source.emit(TranscriptEvent(TranscriptEventKind.ERROR, "no microphone", fatal=True))
    assert not adapter.supported
    assert not adapter.enabled

    adapter.enable()
    clock.advance(1.0)
    sched.run_due()
    assert source.starts == 0
