from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from between_trainer.high_score import HIGH_SCORE_KEY, HighScoreStore, MemoryKeyValueStore
from between_trainer.input_source import (
    KeypadBuffer,
    TranscriptEvent,
    TranscriptEventKind,
    VoiceInputAdapter,
)
from between_trainer.problems import Difficulty, Problem, ProblemGenerator
from between_trainer.round_engine import (
    FeedbackKind,
    RoundConfig,
    RoundEngine,
    RoundEvent,
    RoundEventKind,
    RoundStatus,
)
from between_trainer.scheduler import Scheduler


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class ScriptedGenerator:
    def __init__(self, problems: list[Problem], *, seed: int = 0) -> None:
        self._queue = list(problems)
        self._fallback = ProblemGenerator(seed=seed)

    def generate(self, difficulty: Difficulty, exclude_answer: float | None = None) -> Problem:
        if self._queue:
            return self._queue.pop(0)
        return self._fallback.generate(difficulty, exclude_answer)


class FakeTranscriptSource:
    def __init__(self) -> None:
        self.starts = 0
        self.stops = 0
        self._handler: Callable[[TranscriptEvent], None] | None = None

    def on_event(self, handler: Callable[[TranscriptEvent], None]) -> None:
        self._handler = handler

    def start(self) -> None:
        self.starts += 1
        self._emit(TranscriptEvent(TranscriptEventKind.START))

    def stop(self) -> None:
        self.stops += 1

    def end(self) -> None:
        self._emit(TranscriptEvent(TranscriptEventKind.END))

    def say(self, text: str) -> None:
        self._emit(TranscriptEvent(TranscriptEventKind.TEXT, text))

    def _emit(self, event: TranscriptEvent) -> None:
        assert self._handler is not None
        self._handler(event)


def _step(clock: FakeClock, sched: Scheduler, dt: float) -> None:
    clock.advance(dt)
    sched.run_due()


def test_headless_voice_and_keypad_round_to_gameover() -> None:
    clock = FakeClock()
    sched = Scheduler(clock)
    store = MemoryKeyValueStore()
    engine = RoundEngine(
        scheduler=sched,
        high_scores=HighScoreStore(store),
        generator=ScriptedGenerator(  # type: ignore[arg-type]
            [Problem(20, 24), Problem(30, 40), Problem(11, 13)],
        ),
        config=RoundConfig(duration_s=10),
    )
    source = FakeTranscriptSource()
    voice = VoiceInputAdapter(source, scheduler=sched, on_event=engine.handle_event)
    keypad = KeypadBuffer(engine.handle_event)

    def follow_status(event: RoundEvent) -> None:
        if event.kind is not RoundEventKind.STATUS:
            return
        if event.value is RoundStatus.PLAYING:
            voice.enable()
        else:
            voice.disable()

    countdown: list[object] = []
    engine.subscribe(follow_status)
    engine.subscribe(lambda e: countdown.append(e.value) if e.kind is RoundEventKind.COUNTDOWN else None)

    # 3-2-1-GO on the scheduler.
    assert engine.start(Difficulty.NORMAL) is True
    for _ in range(3):
        assert engine.status is RoundStatus.COUNTDOWN
        _step(clock, sched, 1.0)
    assert countdown == [3, 2, 1, 0]
    assert engine.status is RoundStatus.PLAYING

    _step(clock, sched, 0.15)
    assert source.starts == 1
    assert voice.listening

    # 20 ? 24 spoken with kanji numerals.
    source.say("二二")
    assert engine.score == 1
    assert engine.correct_answer == 35

    # Self-correction inside the grace window: "34" then "34 35".
    source.say("34")
    _step(clock, sched, 0.2)
    source.say("3435")
    assert engine.score == 2
    assert engine.feedback is not None and engine.feedback.kind is FeedbackKind.OK
    assert engine.correct_answer == 12

    # Recogniser session ends and is restarted while the round runs.
    source.end()
    assert not voice.listening
    _step(clock, sched, 0.1)
    assert source.starts == 2

    source.say("パス")
    assert engine.score == 2
    assert engine.correct_answer != 12

    # Keypad: correct, then a miss that locks out the next entry.
    answer = engine.correct_answer
    assert answer is not None and float(answer).is_integer()
    for d in str(int(answer)):
        keypad.press_digit(d)
    keypad.enter()
    assert engine.score == 3

    keypad.press_digit("0")
    keypad.enter()
    assert engine.is_locked()
    assert engine.feedback is not None and engine.feedback.kind is FeedbackKind.NG

    locked_answer = engine.correct_answer
    assert locked_answer is not None
    for d in str(int(locked_answer)):
        keypad.press_digit(d)
    keypad.enter()
    assert engine.score == 3

    _step(clock, sched, 0.6)
    assert not engine.is_locked()

    for _ in range(12):
        _step(clock, sched, 1.0)
    assert engine.status is RoundStatus.GAMEOVER
    assert engine.time_left == 0
    assert engine.high_score == 3
    assert store.get(HIGH_SCORE_KEY) == "3"
    assert not voice.enabled
    assert source.stops == 1

    snap = engine.snapshot()
    assert snap.new_record is True
    assert snap.score == 3


def test_headless_retry_keeps_record_and_difficulty() -> None:
    clock = FakeClock()
    sched = Scheduler(clock)
    store = MemoryKeyValueStore({HIGH_SCORE_KEY: "1"})
    engine = RoundEngine(
        scheduler=sched,
        high_scores=HighScoreStore(store),
        generator=ScriptedGenerator([Problem(10, 12)]),  # type: ignore[arg-type]
        config=RoundConfig(duration_s=2, countdown_step_s=0.0),
    )
    assert engine.high_score == 1

    engine.start(Difficulty.HARD)
    engine.countdown_elapsed()
    assert engine.submit_answer(11) is True
    for _ in range(2):
        _step(clock, sched, 1.0)
    assert engine.status is RoundStatus.GAMEOVER
    assert engine.snapshot().new_record is False

    assert engine.start() is True
    assert engine.difficulty is Difficulty.HARD
    assert engine.score == 0
    assert engine.high_score == 1
