from __future__ import annotations

import pytest

from between_trainer.matching import matches


@pytest.mark.parametrize("correct", [0, 7, 22, 65, 100, 4650])
def test_exact_answer_always_matches(correct: int) -> None:
    assert matches(correct, correct) is True


def test_longer_candidate_ending_in_answer_matches() -> None:
    assert matches(6465, 65) is True
    assert matches(1022, 22) is True
    assert matches(99100, 100) is True


def test_rule_is_asymmetric() -> None:
    assert matches(65, 6465) is False
    assert matches(6, 65) is False


def test_wrong_answers_do_not_match() -> None:
    assert matches(64, 65) is False
    assert matches(6564, 65) is False
    assert matches(565, 656) is False


def test_float_answers_compare_by_integral_value() -> None:
    assert matches(22, 22.0) is True
    assert matches(122, 22.0) is True


def test_fractional_answer_never_matches_an_integer() -> None:
    assert matches(22, 22.5) is False
    assert matches(225, 22.5) is False
