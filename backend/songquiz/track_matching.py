from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

from .music_types import Track

AD_TRACK_PATTERNS = (
    re.compile(r"\b(advert(?:isement|ising)?|ad\s*break|commercial)\b"),
    re.compile(r"\b(pub|publicite|annonce|sponsor\w*)\b"),
    re.compile(r"\bdeezer\s*(ads?|pub|advert)\b"),
    re.compile(r"\b(this\s+app|download\s+app|free\s+music\s+alternative|best\s+free\s+music)\b"),
    re.compile(r"\bspotify\b.*\b(app|alternative|free)\b"),
    re.compile(r"\bdeezer\s*session\b"),
    re.compile(r"\b(app\s+store|play\s+store|music\s+app)\b"),
)

MATCH_STOP_WORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "audio",
        "by",
        "feat",
        "featuring",
        "from",
        "ft",
        "lyrics",
        "music",
        "official",
        "song",
        "the",
        "topic",
        "video",
        "with",
    }
)


def normalize_match_text(value: str) -> str:
    text = unicodedata.normalize("NFKD", value or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9 ]+", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def is_likely_ad_track(track: Track) -> bool:
    text = normalize_match_text(f"{track.title} {track.artist}")
    return any(pattern.search(text) for pattern in AD_TRACK_PATTERNS)


def match_words(value: str) -> list[str]:
    return [
        word
        for word in normalize_match_text(value).split(" ")
        if len(word) > 1 and word not in MATCH_STOP_WORDS
    ]


def overlap_ratio(expected: list[str], candidate: list[str]) -> float:
    if not expected or not candidate:
        return 0.0
    candidate_set = set(candidate)
    matched = sum(1 for word in expected if word in candidate_set)
    return matched / len(expected)


@dataclass(frozen=True)
class CandidateScore:
    score: int
    title_overlap: float
    artist_overlap: float
    title_matched: bool
    artist_matched: bool

    @property
    def acceptable(self) -> bool:
        if not (self.title_matched and self.artist_matched):
            return False
        if self.score >= 5:
            return True
        return self.score >= 4 and self.title_overlap >= 0.6 and self.artist_overlap >= 0.2


def score_playback_candidate(source: Track, candidate: Track) -> CandidateScore:
    expected_title = normalize_match_text(source.title)
    expected_artist = normalize_match_text(source.artist)
    candidate_title = normalize_match_text(candidate.title)
    candidate_artist = normalize_match_text(candidate.artist)
    candidate_combined = f"{candidate_title} {candidate_artist}".strip()

    score = 0
    if expected_title == candidate_title:
        score += 8
    elif expected_title and candidate_title and (
        expected_title in candidate_title or candidate_title in expected_title
    ):
        score += 5
    title_overlap = overlap_ratio(match_words(source.title), match_words(candidate.title))
    score += round(title_overlap * 4)

    artist_contains = bool(expected_artist) and (
        expected_artist in candidate_combined
        or (bool(candidate_artist) and candidate_artist in expected_artist)
    )
    if expected_artist and expected_artist == candidate_artist:
        score += 6
    elif artist_contains:
        score += 4
    artist_overlap = overlap_ratio(
        match_words(source.artist),
        match_words(f"{candidate.title} {candidate.artist}"),
    )
    score += round(artist_overlap * 3)

    title_matched = bool(expected_title) and (
        expected_title == candidate_title
        or (bool(candidate_title) and (expected_title in candidate_title or candidate_title in expected_title))
        or title_overlap >= 0.45
    )
    artist_matched = (
        not expected_artist
        or expected_artist == candidate_artist
        or artist_contains
        or artist_overlap >= 0.34
    )
    return CandidateScore(
        score=score,
        title_overlap=title_overlap,
        artist_overlap=artist_overlap,
        title_matched=title_matched,
        artist_matched=artist_matched,
    )
