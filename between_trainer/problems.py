from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum


class Difficulty(str, Enum):
    EASY = "EASY"
    NORMAL = "NORMAL"
    HARD = "HARD"


@dataclass(frozen=True, slots=True)
class DifficultyProfile:
    a_min: int
    a_max: int
    gap_steps_min: int
    gap_steps_max: int  # gap = 2 * step


PROFILES: dict[Difficulty, DifficultyProfile] = {
    # Neighbours two apart, e.g. 13 and 15.
    Difficulty.EASY: DifficultyProfile(a_min=10, a_max=89, gap_steps_min=1, gap_steps_max=1),
    Difficulty.NORMAL: DifficultyProfile(a_min=10, a_max=89, gap_steps_min=1, gap_steps_max=5),
    Difficulty.HARD: DifficultyProfile(a_min=100, a_max=9099, gap_steps_min=1, gap_steps_max=100),
}


@dataclass(frozen=True, slots=True)
class Problem:
    a: int
    b: int

    @property
    def answer(self) -> float:
        return calculate_answer(self.a, self.b)

    @property
    def prompt(self) -> str:
        return f"{self.a}  ?  {self.b}"


def calculate_answer(a: int, b: int) -> float:
    """Midpoint of the pair (true division, may be fractional for odd sums)."""

    return (a + b) / 2


def answer_as_int(answer: float) -> int | None:
    """Return the integral value of ``answer``, or None if it is fractional."""

    if float(answer).is_integer():
        return int(answer)
    return None


class ProblemGenerator:
    """Draws midpoint problems for a difficulty tier.

    Randomness comes from the injected ``random.Random`` so a seeded
    generator replays the same stream.
    """

    max_attempts = 32

    def __init__(self, rng: random.Random | None = None, *, seed: int | None = None) -> None:
        if rng is not None and seed is not None:
            raise ValueError("pass either rng or seed, not both")
        self._rng = rng if rng is not None else random.Random(seed)

    def generate(self, difficulty: Difficulty, exclude_answer: float | None = None) -> Problem:
        profile = PROFILES[Difficulty(difficulty)]
        problem = self._draw(profile)
        if exclude_answer is None:
            return problem

        attempts = 1
        while problem.answer == exclude_answer:
            if attempts >= self.max_attempts:
                # Only a degenerate rng gets here. Shift the pair by two,
                # which moves the answer by two.
                shift = 2 if problem.a + 2 <= profile.a_max else -2
                return Problem(a=problem.a + shift, b=problem.b + shift)
            problem = self._draw(profile)
            attempts += 1
        return problem

    def _draw(self, profile: DifficultyProfile) -> Problem:
        a = self._rng.randint(profile.a_min, profile.a_max)
        gap = 2 * self._rng.randint(profile.gap_steps_min, profile.gap_steps_max)
        return Problem(a=a, b=a + gap)
