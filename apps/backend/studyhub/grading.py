"""Fuzzy grading of free-text (short answer) responses.

記述式回答を参照解答と比較し、0..1 の類似度と正誤を返す。句読点・大小文字の
揺れは正規化で吸収し、語の単複程度の差は部分一致で拾う。
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_CORRECT_THRESHOLD = 0.6

_PUNCTUATION_RE = re.compile(r"[.,!?;:'\"()\[\]{}\-_]")
_WHITESPACE_RE = re.compile(r"\s+")

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "need", "dare",
        "ought", "used", "to", "of", "in", "for", "on", "with", "at", "by",
        "from", "as", "into", "through", "during", "before", "after", "above",
        "below", "between", "under", "again", "further", "then", "once", "here",
        "there", "when", "where", "why", "how", "all", "each", "few", "more",
        "most", "other", "some", "such", "no", "nor", "not", "only", "own",
        "same", "so", "than", "too", "very", "just", "and", "but", "if", "or",
        "because", "until", "while", "although", "though",
        "it", "its", "this", "that", "these", "those", "i", "you", "he", "she",
        "we", "they", "what", "which", "who", "whom", "whose", "also",
    }
)

# partial matching only kicks in for tokens longer than this
_PARTIAL_MATCH_MIN_LENGTH = 3


@dataclass(frozen=True)
class GradeResult:
    is_correct: bool
    similarity: float


def normalize_text(text: str | None) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""

    if not text:
        return ""
    lowered = str(text).lower()
    spaced = _PUNCTUATION_RE.sub(" ", lowered)
    return _WHITESPACE_RE.sub(" ", spaced).strip()


def extract_key_words(text: str | None) -> list[str]:
    """Return content tokens (stop words and 1-char tokens removed), de-duplicated."""

    tokens: list[str] = []
    seen: set[str] = set()
    for token in normalize_text(text).split(" "):
        if len(token) <= 1 or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def _tokens_match(user_token: str, reference_token: str) -> bool:
    if user_token == reference_token:
        return True
    if (
        len(user_token) > _PARTIAL_MATCH_MIN_LENGTH
        and len(reference_token) > _PARTIAL_MATCH_MIN_LENGTH
    ):
        return user_token in reference_token or reference_token in user_token
    return False


def similarity(user_answer: str | None, reference_answer: str | None) -> float:
    """Score how close ``user_answer`` is to ``reference_answer``.

    判定順:
    1. 正規化後の完全一致 → 1.0
    2. どちらかがもう一方を含む → 0.9
    3. キーワードの重なり: ``0.6 * match/max + 0.4 * match/min``（上限 1.0）

    正規化後に空になる側があれば 0 を返す（空文字列はあらゆる文字列に
    「含まれる」ため、包含判定より先に弾く）。
    """

    user_text = normalize_text(user_answer)
    reference_text = normalize_text(reference_answer)
    if not user_text or not reference_text:
        return 0.0
    if user_text == reference_text:
        return 1.0
    if user_text in reference_text or reference_text in user_text:
        return 0.9

    user_tokens = extract_key_words(user_text)
    reference_tokens = extract_key_words(reference_text)
    if not user_tokens or not reference_tokens:
        return 1.0 if user_text == reference_text else 0.0

    match_count = sum(
        1
        for user_token in user_tokens
        if any(_tokens_match(user_token, ref) for ref in reference_tokens)
    )
    overlap = match_count / max(len(user_tokens), len(reference_tokens))
    coverage = match_count / min(len(user_tokens), len(reference_tokens))
    return min(1.0, 0.6 * overlap + 0.4 * coverage)


class AnswerGrader:
    """Decide correctness of a short answer against a similarity threshold."""

    def __init__(self, threshold: float = DEFAULT_CORRECT_THRESHOLD) -> None:
        self.threshold = max(0.0, min(1.0, float(threshold)))

    def grade(self, user_answer: str | None, reference_answer: str | None) -> GradeResult:
        if not user_answer or not str(user_answer).strip():
            return GradeResult(is_correct=False, similarity=0.0)
        score = similarity(user_answer, reference_answer)
        return GradeResult(is_correct=score >= self.threshold, similarity=score)


def grade(user_answer: str | None, reference_answer: str | None) -> GradeResult:
    """Grade with the default threshold."""

    return AnswerGrader().grade(user_answer, reference_answer)
