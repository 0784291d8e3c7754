"""Re-utterance tolerant answer matching.

Recognisers concatenate a false start and its correction into one
transcript: "64, no, 65" arrives as 6465. A candidate therefore matches when
it equals the correct answer, or when it is strictly longer and its decimal
digits end with the correct answer's digits.

The rule is one-sided. A shorter candidate that happens to be a prefix of the
answer (6 for 65) never matches, since the speaker may still be talking. A
long utterance that only coincidentally ends in the right digits is accepted;
that false positive is the price of instant acceptance.
"""

from __future__ import annotations

from .problems import answer_as_int


def matches(candidate: int, correct: float) -> bool:
    if candidate < 0:
        return False
    if candidate == correct:
        return True
    correct_int = answer_as_int(correct)
    if correct_int is None or correct_int < 0:
        # Fractional answers can only be matched exactly, and no integer does.
        return False
    cand_s = str(candidate)
    correct_s = str(correct_int)
    return len(cand_s) > len(correct_s) and cand_s.endswith(correct_s)
