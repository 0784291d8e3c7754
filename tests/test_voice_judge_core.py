from __future__ import annotations

from dataclasses import dataclass

import pytest

from between_trainer.scheduler import Scheduler
from between_trainer.voice_judge import Decision, Judgment, VoiceJudge


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _make() -> tuple[FakeClock, Scheduler, VoiceJudge, list[tuple[float, Judgment]]]:
    clock = FakeClock()
    sched = Scheduler(clock)
    seen: list[tuple[float, Judgment]] = []
    judge = VoiceJudge(scheduler=sched, on_judgment=lambda j: seen.append((clock.now(), j)))
    return clock, sched, judge, seen


def test_correct_candidate_is_accepted_immediately() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(65, 65)

    assert len(seen) == 1
    at, j = seen[0]
    assert at == 0.0
    assert j.decision is Decision.ACCEPT
    assert j.value == 65


def test_suffix_correction_accepts_with_corrected_value() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(6465, 65)

    assert [j.decision for _, j in seen] == [Decision.ACCEPT]
    assert seen[0][1].value == 65
    assert seen[0][1].candidate == 6465


def test_match_cancels_pending_mismatch() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(61, 65)
    clock.advance(0.25)
    judge.submit(65, 65)
    assert [j.decision for _, j in seen] == [Decision.ACCEPT]
    assert seen[0][0] == 0.25

    clock.advance(1.0)
    sched.run_due()
    assert len(seen) == 1


def test_burst_of_wrong_candidates_commits_last_after_silence() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(61, 65)
    clock.advance(0.25)
    sched.run_due()
    judge.submit(62, 65)
    clock.advance(0.25)
    sched.run_due()
    judge.submit(63, 65)

    clock.advance(0.375)
    sched.run_due()
    assert seen == []
    assert judge.pending_candidate == 63

    clock.advance(0.125)
    sched.run_due()
    assert len(seen) == 1
    at, j = seen[0]
    assert j.decision is Decision.MISMATCH
    assert j.value == 63
    assert at == pytest.approx(0.5 + 0.4, abs=0.15)
    assert judge.pending_candidate is None


def test_identical_wrong_candidates_still_rearm_window() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(60, 65)
    clock.advance(0.25)
    judge.submit(60, 65)
    assert judge.pending_deadline_s == pytest.approx(0.65)

    clock.advance(0.25)
    sched.run_due()
    assert seen == []
    clock.advance(0.25)
    sched.run_due()
    assert [j.value for _, j in seen] == [60]


def test_problem_change_discards_pending_mismatch() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(61, 65)
    judge.reset(70)
    clock.advance(1.0)
    sched.run_due()
    assert seen == []


def test_submitting_against_new_answer_discards_old_window() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(61, 65)
    clock.advance(0.25)
    judge.submit(12, 70)
    clock.advance(1.0)
    sched.run_due()

    assert len(seen) == 1
    assert seen[0][1].correct_answer == 70
    assert seen[0][1].candidate == 12


def test_only_one_commit_per_problem_after_accept() -> None:
    clock, sched, judge, seen = _make()
    judge.submit(65, 65)
    judge.submit(65, 65)
    judge.submit(12, 65)
    clock.advance(1.0)
    sched.run_due()
    assert [j.decision for _, j in seen] == [Decision.ACCEPT]


def test_negative_grace_is_rejected() -> None:
    sched = Scheduler(FakeClock())
    with pytest.raises(ValueError):
        VoiceJudge(scheduler=sched, on_judgment=lambda j: None, grace_s=-0.1)
