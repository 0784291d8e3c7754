"""Debounced judgment of spoken answer candidates.

Correct candidates are accepted the moment they arrive. Wrong candidates are
held for a short grace window so the speaker can correct themselves; every
new wrong candidate restarts the window (debounce by restart), so a burst of
partial transcripts "61", "62", "63" commits a single miss carrying the last
value once the speaker falls silent.

The judge holds at most one pending timer. Changing the problem drops that
timer without a decision: a correction in flight belongs to the problem it
was spoken against.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .matching import matches
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_GRACE_S = 0.4


class Decision(str, Enum):
    ACCEPT = "accept"
    MISMATCH = "mismatch"


@dataclass(frozen=True, slots=True)
class Judgment:
    decision: Decision
    value: float  # the correct answer for ACCEPT, the last heard candidate for MISMATCH
    candidate: int
    correct_answer: float


class VoiceJudge:
    def __init__(
        self,
        *,
        scheduler: Scheduler,
        on_judgment: Callable[[Judgment], None],
        grace_s: float = DEFAULT_GRACE_S,
    ) -> None:
        if grace_s < 0:
            raise ValueError("grace_s must be >= 0")
        self._scheduler = scheduler
        self._on_judgment = on_judgment
        self._grace_s = float(grace_s)

        self._correct: float | None = None
        self._generation = 0
        self._accepted = False
        self._pending_candidate: int | None = None
        self._timer: TimerHandle | None = None

    @property
    def grace_s(self) -> float:
        return self._grace_s

    @property
    def pending_candidate(self) -> int | None:
        return self._pending_candidate

    @property
    def pending_deadline_s(self) -> float | None:
        if self._timer is None or not self._timer.active:
            return None
        return self._timer.deadline_s

    def reset(self, correct_answer: float | None) -> None:
        """Bind the judge to a new problem, discarding any pending miss."""

        self._cancel_timer()
        self._generation += 1
        self._correct = correct_answer
        self._accepted = False

    def cancel(self) -> None:
        self.reset(None)

    def submit(self, candidate: int, correct_answer: float) -> None:
        if correct_answer != self._correct:
            self.reset(correct_answer)
        if self._accepted:
            # One commit per problem; late duplicates of the accepted answer are noise.
            return

        if matches(candidate, correct_answer):
            self._cancel_timer()
            self._accepted = True
            logger.debug("judge: accept %s (heard %s)", correct_answer, candidate)
            self._on_judgment(
                Judgment(
                    decision=Decision.ACCEPT,
                    value=correct_answer,
                    candidate=candidate,
                    correct_answer=correct_answer,
                )
            )
            return

        self._cancel_timer()
        self._pending_candidate = candidate
        generation = self._generation
        self._timer = self._scheduler.schedule(self._grace_s, lambda: self._commit_mismatch(generation))

    def _commit_mismatch(self, generation: int) -> None:
        if generation != self._generation or self._pending_candidate is None or self._correct is None:
            logger.debug("judge: dropped stale mismatch timer")
            return
        candidate = self._pending_candidate
        correct = self._correct
        self._pending_candidate = None
        self._timer = None
        logger.debug("judge: mismatch %s (expected %s)", candidate, correct)
        self._on_judgment(
            Judgment(
                decision=Decision.MISMATCH,
                value=float(candidate),
                candidate=candidate,
                correct_answer=correct,
            )
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending_candidate = None
