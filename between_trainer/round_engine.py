"""Round lifecycle for the midpoint reflex game.

    IDLE -> COUNTDOWN -> PLAYING -> GAMEOVER
      ^________|___________|__________|   (exit)

The engine owns every piece of mutable round state and every timer that can
change it: the per-second game clock, the countdown steps, the feedback
auto-clear and (through ``VoiceJudge``) the judgment window. All of them run
on the injected ``Scheduler``, so the whole machine is single-threaded and a
fake clock replays a round exactly.

Requests that are not in the transition table, or answers arriving outside
PLAYING, are ignored rather than raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .high_score import HighScoreStore
from .input_source import AnswerEvent, EventKind, InputSource
from .matching import matches
from .problems import Difficulty, Problem, ProblemGenerator, answer_as_int
from .scheduler import Scheduler, TimerHandle
from .transcript import TokenKind, normalize
from .voice_judge import DEFAULT_GRACE_S, Decision, Judgment, VoiceJudge

logger = logging.getLogger(__name__)


class RoundStatus(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    GAMEOVER = "gameover"


class RoundAction(str, Enum):
    START = "start"
    COUNTDOWN_ELAPSED = "countdown_elapsed"
    TIME_UP = "time_up"
    EXIT = "exit"


TRANSITIONS: dict[tuple[RoundStatus, RoundAction], RoundStatus] = {
    (RoundStatus.IDLE, RoundAction.START): RoundStatus.COUNTDOWN,
    (RoundStatus.GAMEOVER, RoundAction.START): RoundStatus.COUNTDOWN,  # retry
    (RoundStatus.COUNTDOWN, RoundAction.COUNTDOWN_ELAPSED): RoundStatus.PLAYING,
    (RoundStatus.PLAYING, RoundAction.TIME_UP): RoundStatus.GAMEOVER,
    (RoundStatus.COUNTDOWN, RoundAction.EXIT): RoundStatus.IDLE,
    (RoundStatus.PLAYING, RoundAction.EXIT): RoundStatus.IDLE,
    (RoundStatus.GAMEOVER, RoundAction.EXIT): RoundStatus.IDLE,
}


class FeedbackKind(str, Enum):
    OK = "ok"
    NG = "ng"
    PASS = "pass"


class RoundEventKind(str, Enum):
    STATUS = "status"
    PROBLEM = "problem"
    TICK = "tick"
    FEEDBACK = "feedback"
    FEEDBACK_CLEARED = "feedback_cleared"
    COUNTDOWN = "countdown"
    HIGH_SCORE = "high_score"


@dataclass(frozen=True, slots=True)
class Feedback:
    kind: FeedbackKind
    message: str
    clear_at_s: float
    seq: int


@dataclass(frozen=True, slots=True)
class RoundEvent:
    kind: RoundEventKind
    value: object = None


@dataclass(frozen=True, slots=True)
class RoundConfig:
    duration_s: int = 60
    tick_s: float = 1.0
    grace_s: float = DEFAULT_GRACE_S
    ok_feedback_s: float = 0.5
    miss_feedback_s: float = 0.5
    pass_feedback_s: float = 0.5
    lockout_s: float = 0.5
    lockout_on_miss: bool = True
    lockout_on_pass: bool = False
    countdown_from: int = 3
    countdown_step_s: float = 1.0  # 0 disables the built-in countdown; call countdown_elapsed()

    def __post_init__(self) -> None:
        if self.duration_s <= 0:
            raise ValueError("duration_s must be > 0")
        if self.tick_s <= 0:
            raise ValueError("tick_s must be > 0")
        if self.grace_s < 0:
            raise ValueError("grace_s must be >= 0")
        for name in ("ok_feedback_s", "miss_feedback_s", "pass_feedback_s", "lockout_s"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.countdown_from < 0:
            raise ValueError("countdown_from must be >= 0")
        if self.countdown_step_s < 0:
            raise ValueError("countdown_step_s must be >= 0")


@dataclass(frozen=True, slots=True)
class RoundSnapshot:
    """View model for the UI (pure data)."""

    status: RoundStatus
    a: int | None
    b: int | None
    score: int
    high_score: int
    time_left: int
    difficulty: Difficulty
    locked: bool
    feedback: Feedback | None
    countdown: int | None
    new_record: bool


RoundListener = Callable[[RoundEvent], None]


def format_answer(value: float) -> str:
    as_int = answer_as_int(value)
    return str(as_int) if as_int is not None else f"{value:g}"


class RoundEngine:
    def __init__(
        self,
        *,
        scheduler: Scheduler,
        high_scores: HighScoreStore,
        generator: ProblemGenerator | None = None,
        config: RoundConfig | None = None,
        difficulty: Difficulty = Difficulty.NORMAL,
    ) -> None:
        self._scheduler = scheduler
        self._high_scores = high_scores
        self._generator = generator if generator is not None else ProblemGenerator()
        self._config = config if config is not None else RoundConfig()

        self._status = RoundStatus.IDLE
        self._difficulty = Difficulty(difficulty)
        self._problem: Problem | None = None
        self._score = 0
        self._high_score = self._high_scores.load()
        self._high_score_at_start = self._high_score
        self._time_left = self._config.duration_s
        self._locked_until: float | None = None
        self._feedback: Feedback | None = None
        self._feedback_seq = 0
        self._countdown: int | None = None

        # Bumped on every start/exit so timers armed for an older round are inert.
        self._round_id = 0
        self._playing_started_at: float | None = None
        self._ticks = 0
        self._tick_timer: TimerHandle | None = None
        self._countdown_timer: TimerHandle | None = None
        self._feedback_timer: TimerHandle | None = None

        self._judge = VoiceJudge(
            scheduler=scheduler,
            on_judgment=self._on_judgment,
            grace_s=self._config.grace_s,
        )
        self._listeners: list[RoundListener] = []

    # --- read side ---------------------------------------------------------

    @property
    def config(self) -> RoundConfig:
        return self._config

    @property
    def status(self) -> RoundStatus:
        return self._status

    @property
    def problem(self) -> Problem | None:
        return self._problem

    @property
    def correct_answer(self) -> float | None:
        return None if self._problem is None else self._problem.answer

    @property
    def score(self) -> int:
        return self._score

    @property
    def high_score(self) -> int:
        return self._high_score

    @property
    def time_left(self) -> int:
        return self._time_left

    @property
    def difficulty(self) -> Difficulty:
        return self._difficulty

    @property
    def penalty_locked_until(self) -> float | None:
        return self._locked_until

    @property
    def feedback(self) -> Feedback | None:
        return self._feedback

    @property
    def judge(self) -> VoiceJudge:
        return self._judge

    def is_locked(self) -> bool:
        return self._locked_until is not None and self._scheduler.now() < self._locked_until

    def snapshot(self) -> RoundSnapshot:
        return RoundSnapshot(
            status=self._status,
            a=None if self._problem is None else self._problem.a,
            b=None if self._problem is None else self._problem.b,
            score=self._score,
            high_score=self._high_score,
            time_left=self._time_left,
            difficulty=self._difficulty,
            locked=self.is_locked(),
            feedback=self._feedback,
            countdown=self._countdown,
            new_record=self._score > self._high_score_at_start,
        )

    def subscribe(self, listener: RoundListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- lifecycle ---------------------------------------------------------

    def set_difficulty(self, difficulty: Difficulty) -> None:
        """Choose the tier for the next start; a running round keeps its own."""

        if self._status in (RoundStatus.IDLE, RoundStatus.GAMEOVER):
            self._difficulty = Difficulty(difficulty)

    def start(self, difficulty: Difficulty | None = None) -> bool:
        if not self._can(RoundAction.START):
            return False
        self._cancel_round_timers()
        self._round_id += 1
        if difficulty is not None:
            self._difficulty = Difficulty(difficulty)
        self._score = 0
        self._high_score_at_start = self._high_score
        self._time_left = self._config.duration_s
        self._locked_until = None
        self._clear_feedback()
        self._set_problem(self._generator.generate(self._difficulty))
        self._apply(RoundAction.START)

        self._countdown = self._config.countdown_from
        self._emit(RoundEventKind.COUNTDOWN, self._countdown)
        if self._config.countdown_step_s > 0:
            self._schedule_countdown_step()
        return True

    def countdown_elapsed(self) -> bool:
        if not self._can(RoundAction.COUNTDOWN_ELAPSED):
            return False
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None
        self._countdown = None
        self._apply(RoundAction.COUNTDOWN_ELAPSED)

        self._playing_started_at = self._scheduler.now()
        self._ticks = 0
        self._schedule_tick()
        return True

    def exit(self) -> bool:
        if not self._can(RoundAction.EXIT):
            return False
        self._cancel_round_timers()
        self._round_id += 1
        self._problem = None
        self._score = 0
        self._time_left = self._config.duration_s
        self._locked_until = None
        self._countdown = None
        self._clear_feedback()
        self._apply(RoundAction.EXIT)
        return True

    def shutdown(self) -> None:
        """Abandon whatever is running and detach every listener."""

        self.exit()
        self._cancel_round_timers()
        self._listeners.clear()

    # --- answers -----------------------------------------------------------

    def handle_event(self, event: AnswerEvent) -> bool:
        if event.kind is EventKind.PASS:
            return self.pass_problem()
        if event.value is None:
            return False
        if event.source is InputSource.VOICE:
            return self.submit_spoken(event.value)
        return self.submit_answer(event.value)

    def hear(self, text: str) -> bool:
        """Feed one raw transcript straight into the round.

        Headless entry for scripted runs and tests; the app routes speech
        through ``VoiceInputAdapter`` and ``handle_event`` instead.
        """

        token = normalize(text)
        if token.kind is TokenKind.PASS:
            return self.pass_problem()
        if token.kind is TokenKind.NUMBER and token.value is not None:
            return self.submit_spoken(token.value)
        return False

    def submit_answer(self, value: int) -> bool:
        """Commit a discrete (keypad) answer immediately. Returns True if judged."""

        if not self._accepting_answers():
            return False
        assert self._problem is not None
        correct = self._problem.answer
        if matches(int(value), correct):
            self._commit_correct(correct)
        else:
            self._commit_miss(int(value))
        return True

    def submit_spoken(self, value: int) -> bool:
        """Hand a spoken candidate to the judgment window. Returns True if taken."""

        if not self._accepting_answers():
            return False
        assert self._problem is not None
        self._judge.submit(int(value), self._problem.answer)
        return True

    def pass_problem(self) -> bool:
        if self._status is not RoundStatus.PLAYING or self._problem is None:
            return False
        skipped = self._problem.answer
        logger.debug("round %d: pass on %s", self._round_id, format_answer(skipped))
        self._set_problem(self._generator.generate(self._difficulty, exclude_answer=skipped))
        if self._config.lockout_on_pass:
            self._lock()
        self._show_feedback(FeedbackKind.PASS, "PASS", self._config.pass_feedback_s)
        return True

    # --- internals ---------------------------------------------------------

    def _can(self, action: RoundAction) -> bool:
        allowed = (self._status, action) in TRANSITIONS
        if not allowed:
            logger.debug("ignored %s while %s", action.value, self._status.value)
        return allowed

    def _apply(self, action: RoundAction) -> None:
        prev = self._status
        self._status = TRANSITIONS[(prev, action)]
        logger.info("round %d: %s -> %s", self._round_id, prev.value, self._status.value)
        self._emit(RoundEventKind.STATUS, self._status)

    def _accepting_answers(self) -> bool:
        if self._status is not RoundStatus.PLAYING or self._problem is None:
            return False
        return not self.is_locked()

    def _on_judgment(self, judgment: Judgment) -> None:
        if self._status is not RoundStatus.PLAYING or self._problem is None:
            return
        if judgment.correct_answer != self._problem.answer:
            return
        if judgment.decision is Decision.ACCEPT:
            self._commit_correct(judgment.value)
        else:
            self._commit_miss(judgment.candidate)

    def _commit_correct(self, answer: float) -> None:
        self._score += 1
        logger.debug("round %d: correct %s, score %d", self._round_id, format_answer(answer), self._score)
        self._set_problem(self._generator.generate(self._difficulty, exclude_answer=answer))
        self._sync_high_score()
        self._show_feedback(FeedbackKind.OK, format_answer(answer), self._config.ok_feedback_s)

    def _commit_miss(self, candidate: int) -> None:
        logger.debug("round %d: miss %d", self._round_id, candidate)
        if self._config.lockout_on_miss:
            self._lock()
        self._show_feedback(FeedbackKind.NG, str(candidate), self._config.miss_feedback_s)

    def _lock(self) -> None:
        if self._config.lockout_s > 0:
            self._locked_until = self._scheduler.now() + self._config.lockout_s

    def _set_problem(self, problem: Problem) -> None:
        self._problem = problem
        self._judge.reset(problem.answer)
        self._emit(RoundEventKind.PROBLEM, problem)

    def _sync_high_score(self) -> None:
        if self._score <= self._high_score:
            return
        self._high_score = self._score
        self._high_scores.save(self._score)
        self._emit(RoundEventKind.HIGH_SCORE, self._high_score)

    def _show_feedback(self, kind: FeedbackKind, message: str, duration_s: float) -> None:
        if self._feedback_timer is not None:
            self._feedback_timer.cancel()
        self._feedback_seq += 1
        seq = self._feedback_seq
        self._feedback = Feedback(
            kind=kind,
            message=message,
            clear_at_s=self._scheduler.now() + duration_s,
            seq=seq,
        )
        self._feedback_timer = self._scheduler.schedule(duration_s, lambda: self._expire_feedback(seq))
        self._emit(RoundEventKind.FEEDBACK, self._feedback)

    def _expire_feedback(self, seq: int) -> None:
        if self._feedback is None or self._feedback.seq != seq:
            return
        self._feedback = None
        self._feedback_timer = None
        self._emit(RoundEventKind.FEEDBACK_CLEARED, seq)

    def _clear_feedback(self) -> None:
        if self._feedback_timer is not None:
            self._feedback_timer.cancel()
            self._feedback_timer = None
        self._feedback = None

    def _schedule_countdown_step(self) -> None:
        round_id = self._round_id
        self._countdown_timer = self._scheduler.schedule(
            self._config.countdown_step_s,
            lambda: self._on_countdown_step(round_id),
        )

    def _on_countdown_step(self, round_id: int) -> None:
        if round_id != self._round_id or self._status is not RoundStatus.COUNTDOWN:
            return
        self._countdown_timer = None
        remaining = (self._countdown or 0) - 1
        if remaining > 0:
            self._countdown = remaining
            self._emit(RoundEventKind.COUNTDOWN, remaining)
            self._schedule_countdown_step()
            return
        self._emit(RoundEventKind.COUNTDOWN, 0)
        self.countdown_elapsed()

    def _schedule_tick(self) -> None:
        assert self._playing_started_at is not None
        round_id = self._round_id
        # Anchored to the start of play so frame jitter does not accumulate.
        deadline = self._playing_started_at + (self._ticks + 1) * self._config.tick_s
        self._tick_timer = self._scheduler.schedule_at(deadline, lambda: self._on_tick(round_id))

    def _on_tick(self, round_id: int) -> None:
        if round_id != self._round_id or self._status is not RoundStatus.PLAYING:
            return
        self._tick_timer = None
        self._ticks += 1
        if self._time_left <= 1:
            self._time_left = 0
            self._emit(RoundEventKind.TICK, 0)
            self._finish()
            return
        self._time_left -= 1
        self._emit(RoundEventKind.TICK, self._time_left)
        self._schedule_tick()

    def _finish(self) -> None:
        self._judge.cancel()
        self._locked_until = None
        self._clear_feedback()
        self._apply(RoundAction.TIME_UP)
        self._sync_high_score()

    def _cancel_round_timers(self) -> None:
        for timer in (self._tick_timer, self._countdown_timer, self._feedback_timer):
            if timer is not None:
                timer.cancel()
        self._tick_timer = None
        self._countdown_timer = None
        self._feedback_timer = None
        self._judge.cancel()

    def _emit(self, kind: RoundEventKind, value: object = None) -> None:
        event = RoundEvent(kind=kind, value=value)
        for listener in list(self._listeners):
            listener(event)
