"""Free-text answer acceptance for guesses.

A guess is accepted when one of its comparable forms equals one of the
expected forms, when one side is the acronym of the other, when one side is
a safe prefix of the other, or when the bigram similarity of the best pair
reaches ``DICE_THRESHOLD``.
"""

from __future__ import annotations

import re
import unicodedata

DICE_THRESHOLD = 0.82
MULTI_WORD_PREFIX_MIN_LENGTH = 4
SINGLE_WORD_PREFIX_MIN_LENGTH = 5

_TRAILING_SUFFIX_PATTERNS = (
    re.compile(r"\b(?:the\s+)?final\s+(?:season|version)$"),
    re.compile(r"\b(?:season|part|pt|vol|volume|chapter)\s*(?:\d+|[ivx]+|final)$"),
    re.compile(r"\b\d+(?:st|nd|rd|th)\s+(?:season|part)$"),
    re.compile(r"\b(?:remaster(?:ed)?|radio\s+edit|single\s+version|album\s+version|live)$"),
    re.compile(r"\b(?:remastered\s+)?\d{4}(?:\s+remaster(?:ed)?)?$"),
)
_TITLE_CORE_SPLIT = re.compile(r"\s[-–—|]\s|:|\(|\[")


def normalize_answer_text(value: str) -> str:
    text = unicodedata.normalize("NFKD", value or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower()
    text = re.sub(r"['’`´]", "", text)
    text = re.sub(r"[-_]", " ", text)
    text = text.replace("&", " and ")
    text = re.sub(r"[^a-z0-9 ]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def acronym(value: str) -> str:
    normalized = normalize_answer_text(value)
    if not normalized:
        return ""
    return "".join(part[0] for part in normalized.split(" ") if part)


def _strip_trailing_suffix(value: str) -> str:
    current = value.strip()
    for _ in range(6):
        candidate = current
        for pattern in _TRAILING_SUFFIX_PATTERNS:
            candidate = pattern.sub("", candidate).strip()
        if candidate == current or not candidate:
            break
        current = candidate
    return current


def _title_core(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        return ""
    return _TITLE_CORE_SPLIT.split(trimmed, maxsplit=1)[0].strip()


def comparable_forms(value: str) -> list[str]:
    forms: list[str] = []

    def push(candidate: str) -> None:
        normalized = normalize_answer_text(candidate)
        if len(normalized) >= 2 and normalized not in forms:
            forms.append(normalized)

    push(value)
    push(_title_core(value))
    for entry in list(forms):
        push(_strip_trailing_suffix(entry))
    return forms


def is_safe_prefix(shorter: str, longer: str) -> bool:
    if shorter == longer:
        return True
    if not longer.startswith(shorter):
        return False
    # Prefix must end on a word boundary of the longer form.
    if len(longer) > len(shorter) and longer[len(shorter)] != " ":
        return False
    tokens = [token for token in shorter.split(" ") if token]
    if len(tokens) >= 2:
        return len(shorter) >= MULTI_WORD_PREFIX_MIN_LENGTH
    return len(shorter) >= SINGLE_WORD_PREFIX_MIN_LENGTH


def _bigrams(value: str) -> list[str]:
    if len(value) < 2:
        return [value]
    padded = f" {value} "
    return [padded[index : index + 2] for index in range(len(padded) - 1)]


def dice_coefficient(a: str, b: str) -> float:
    a_grams = _bigrams(a)
    b_grams = _bigrams(b)
    counts: dict[str, int] = {}
    for gram in a_grams:
        counts[gram] = counts.get(gram, 0) + 1

    intersection = 0
    for gram in b_grams:
        count = counts.get(gram, 0)
        if count > 0:
            intersection += 1
            counts[gram] = count - 1

    total = len(a_grams) + len(b_grams)
    if total <= 0:
        return 0.0
    return (2 * intersection) / total


def is_text_answer_correct(answer: str, expected: str) -> bool:
    answer_forms = comparable_forms(answer)
    truth_forms = comparable_forms(expected)
    if not answer_forms or not truth_forms:
        return False

    for guess in answer_forms:
        for truth in truth_forms:
            if guess == truth:
                return True

            guess_acronym = acronym(guess)
            truth_acronym = acronym(truth)
            if " " in truth and guess.replace(" ", "") == truth_acronym:
                return True
            if " " in guess and truth.replace(" ", "") == guess_acronym:
                return True

            if is_safe_prefix(guess, truth) or is_safe_prefix(truth, guess):
                return True

    best_score = 0.0
    for guess in answer_forms:
        for truth in truth_forms:
            best_score = max(best_score, dice_coefficient(guess, truth))
            if best_score >= DICE_THRESHOLD:
                return True
    return False


def is_choice_answer_correct(answer: str, correct_choice: str) -> bool:
    left = normalize_answer_text(answer)
    return bool(left) and left == normalize_answer_text(correct_choice)


def is_track_answer_correct(answer: str, title: str, artist: str) -> bool:
    candidates = [title, artist, f"{title} {artist}", f"{artist} {title}"]
    return any(is_text_answer_correct(answer, candidate) for candidate in candidates if candidate.strip())
