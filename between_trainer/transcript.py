"""Transcript normalisation for spoken answers.

A recogniser hands us free text such as ``"65"``, ``"六五"``, ``"６５です"`` or
``"パス"``. ``normalize`` reduces it to one token: a non-negative integer, a
pass request, or nothing usable.

Numeral glyphs are translated one character at a time and every other
character is dropped, so several spoken digits collapse into a single
multi-digit value (``"六" "五"`` -> 65). The matcher relies on that when a
speaker corrects themselves mid-utterance.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

PASS_WORDS: tuple[str, ...] = (
    "pass",
    "skip",
    "next",
    "パス",
    "ぱす",
    "スキップ",
    "次",
)

_FULLWIDTH_DIGITS = "０１２３４５６７８９"
_KANJI_DIGITS = "〇一二三四五六七八九"

_GLYPH_TO_ASCII: dict[str, str] = {}
for _idx, _ch in enumerate(_FULLWIDTH_DIGITS):
    _GLYPH_TO_ASCII[_ch] = str(_idx)
for _idx, _ch in enumerate(_KANJI_DIGITS):
    _GLYPH_TO_ASCII[_ch] = str(_idx)
_GLYPH_TO_ASCII["零"] = "0"

# Longer digit runs are treated as noise, not an answer.
MAX_DIGITS = 18


class TokenKind(str, Enum):
    NUMBER = "number"
    PASS = "pass"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    value: int | None = None


NO_TOKEN = Token(TokenKind.NONE)
PASS_TOKEN = Token(TokenKind.PASS)


def is_pass_request(text: str) -> bool:
    lowered = text.casefold()
    return any(word in lowered for word in PASS_WORDS)


def to_ascii_digits(text: str) -> str:
    return "".join(_GLYPH_TO_ASCII.get(ch, ch) for ch in text)


def normalize(text: str) -> Token:
    if not text:
        return NO_TOKEN
    # Pass words win over digits ("pass 12" is a pass).
    if is_pass_request(text):
        return PASS_TOKEN

    digits = "".join(ch for ch in to_ascii_digits(text) if "0" <= ch <= "9")
    if digits == "" or len(digits) > MAX_DIGITS:
        return NO_TOKEN
    return Token(TokenKind.NUMBER, int(digits))
