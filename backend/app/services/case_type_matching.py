"""
Case-type matching
==================
Scores free-text legacy ``case_type`` values against the normalized
case_types dictionary. A row is only matched when one case type wins
clearly: best score >= ACCEPT_MIN_SCORE and at least ACCEPT_MIN_MARGIN
ahead of the runner-up.

Score bands (after normalization):
    100     exact match
    80      substring containment (shorter side >= CONTAINMENT_MIN_LEN)
    70      token-set overlap >= TOKEN_OVERLAP_MIN
    60-79   Levenshtein similarity >= FUZZY_MIN_SIMILARITY
    0       anything else, or strings shorter than FUZZY_MIN_LEN
"""
from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import jellyfish

from app.utils.helpers import slugify

ACCEPT_MIN_SCORE = 80
ACCEPT_MIN_MARGIN = 15

EXACT_SCORE = 100
CONTAINMENT_SCORE = 80
TOKEN_OVERLAP_SCORE = 70
FUZZY_MIN_SCORE = 60
FUZZY_MAX_SCORE = 79

CONTAINMENT_MIN_LEN = 3
TOKEN_OVERLAP_MIN = 0.6
FUZZY_MIN_SIMILARITY = 0.75
FUZZY_MIN_LEN = 4

# Known legacy enum tokens and the phrases a bilingual dictionary may use for them
LEGACY_CANDIDATES: dict[str, tuple[str, ...]] = {
    "civil": ("civil", "civil case", "مدني", "قضايا مدنية"),
    "criminal": ("criminal", "criminal case", "جنائي", "قضايا جنائية"),
    "family": ("family", "personal status", "family personal status", "أحوال شخصية", "أسرة"),
    "labor": ("labor", "labour", "employment", "عمال", "عمل"),
    "asylum": ("asylum", "refugee", "asylum refugee", "لجوء", "لاجئ"),
    "other": ("other", "misc", "متنوع", "أخرى", "اخرى"),
}

_DIACRITICS_RE = re.compile(r"[\u0610-\u061A\u064B-\u065F\u0670\u06D6-\u06ED\u0640]")
_SEPARATORS_RE = re.compile(r"[/\\\-–—_]+")
_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")
_LETTER_FOLDS = str.maketrans({
    "أ": "ا",
    "إ": "ا",
    "آ": "ا",
    "ٱ": "ا",
    "ة": "ه",
    "ى": "ي",
})


class MatchOutcome(str, enum.Enum):
    ACCEPT = "ACCEPT"
    SKIP_NO_MATCH = "SKIP_NO_MATCH"
    SKIP_AMBIGUOUS = "SKIP_AMBIGUOUS"


@dataclass(frozen=True)
class CandidateEntry:
    case_type_id: Any
    label: str
    phrases: tuple[str, ...]


@dataclass(frozen=True)
class ScoredCandidate:
    case_type_id: Any
    label: str
    score: int
    matched_phrase: str = ""


@dataclass(frozen=True)
class MatchDecision:
    value: str
    outcome: MatchOutcome
    best: Optional[ScoredCandidate] = None
    second: Optional[ScoredCandidate] = None
    phrases: tuple[str, ...] = field(default_factory=tuple)

    @property
    def case_type_id(self):
        return self.best.case_type_id if self.outcome == MatchOutcome.ACCEPT else None

    @property
    def margin(self) -> int:
        best = self.best.score if self.best else 0
        second = self.second.score if self.second else 0
        return best - second


def normalize(value: Optional[str]) -> str:
    if not value:
        return ""
    text = str(value).lower()
    text = _DIACRITICS_RE.sub("", text)
    text = text.translate(_LETTER_FOLDS)
    text = _SEPARATORS_RE.sub(" ", text)
    text = _PUNCT_RE.sub("", text)
    return _SPACES_RE.sub(" ", text).strip()


def expand_legacy_value(value: Optional[str]) -> tuple[str, ...]:
    """Normalized value followed by the known phrases for its legacy token."""
    base = normalize(value)
    if not base:
        return ()
    phrases = [base]
    for phrase in LEGACY_CANDIDATES.get(base, ()):
        phrase = normalize(phrase)
        if phrase and phrase not in phrases:
            phrases.append(phrase)
    return tuple(phrases)


def _get(record, name: str):
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def build_candidate_dictionary(case_types: Iterable, include_inactive: bool = False) -> list[CandidateEntry]:
    """
    One entry per case type with its normalized name_ar, name_en, key and
    slug. ``case_types`` may be ORM objects or row mappings.
    """
    entries = []
    for ct in case_types:
        is_active = _get(ct, "is_active")
        if not include_inactive and is_active is not None and not is_active:
            continue

        name_ar = _get(ct, "name_ar")
        name_en = _get(ct, "name_en")
        key = _get(ct, "key")
        raw = [name_ar, name_en, key, slugify(name_en) if name_en else None]

        phrases = []
        for item in raw:
            phrase = normalize(item)
            if phrase and phrase not in phrases:
                phrases.append(phrase)
        if not phrases:
            continue

        entries.append(CandidateEntry(
            case_type_id=_get(ct, "id"),
            label=name_en or name_ar or str(key),
            phrases=tuple(phrases),
        ))
    return entries


def score_pair(a: Optional[str], b: Optional[str]) -> int:
    a = normalize(a)
    b = normalize(b)
    if not a or not b:
        return 0
    if a == b:
        return EXACT_SCORE

    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if len(shorter) >= CONTAINMENT_MIN_LEN and shorter in longer:
        return CONTAINMENT_SCORE

    tokens_a, tokens_b = set(a.split()), set(b.split())
    overlap = len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
    if overlap >= TOKEN_OVERLAP_MIN:
        return TOKEN_OVERLAP_SCORE

    if len(shorter) < FUZZY_MIN_LEN:
        return 0

    distance = jellyfish.levenshtein_distance(a, b)
    similarity = 1.0 - distance / max(len(a), len(b))
    if similarity < FUZZY_MIN_SIMILARITY:
        return 0

    span = FUZZY_MAX_SCORE - FUZZY_MIN_SCORE
    score = FUZZY_MIN_SCORE + round((similarity - FUZZY_MIN_SIMILARITY) / (1.0 - FUZZY_MIN_SIMILARITY) * span)
    return min(score, FUZZY_MAX_SCORE)


def _score_candidate(phrases: tuple[str, ...], candidate: CandidateEntry) -> ScoredCandidate:
    best_score, best_phrase = 0, ""
    for phrase in phrases:
        for target in candidate.phrases:
            score = score_pair(phrase, target)
            if score > best_score:
                best_score, best_phrase = score, target
            if best_score == EXACT_SCORE:
                break
        if best_score == EXACT_SCORE:
            break
    return ScoredCandidate(candidate.case_type_id, candidate.label, best_score, best_phrase)


def decide(value: Optional[str], candidates: Iterable[CandidateEntry]) -> MatchDecision:
    phrases = expand_legacy_value(value)
    if not phrases:
        return MatchDecision(value=value or "", outcome=MatchOutcome.SKIP_NO_MATCH)

    scored = sorted(
        (_score_candidate(phrases, c) for c in candidates),
        key=lambda s: s.score,
        reverse=True,
    )
    best = scored[0] if scored else None
    second = scored[1] if len(scored) > 1 else None

    best_score = best.score if best else 0
    second_score = second.score if second else 0

    if best_score >= ACCEPT_MIN_SCORE and best_score - second_score >= ACCEPT_MIN_MARGIN:
        outcome = MatchOutcome.ACCEPT
    elif best_score > 0:
        outcome = MatchOutcome.SKIP_AMBIGUOUS
    else:
        outcome = MatchOutcome.SKIP_NO_MATCH

    return MatchDecision(value=value or "", outcome=outcome, best=best, second=second, phrases=phrases)
