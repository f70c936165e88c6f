"""Heuristic quality scoring for generated text."""

from __future__ import annotations

COMMON_WORDS = ("the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by")
ERROR_INDICATORS = ("error", "failed", "invalid", "unknown", "not found")


def assess_quality(text: str, prompt: str = "") -> float:
    """Score ``text`` between 0.0 and 1.0.

    Weighted checks: reasonable length (0.3), common English words (0.2),
    no error vocabulary (0.2), at least one sentence (0.15) and a plausible
    word count (0.15). ``prompt`` is accepted for symmetry with callers that
    score against the request, but does not affect the score yet.
    """
    lowered = text.lower()
    trimmed = text.strip()
    score = 0.0

    if trimmed and 8 < len(trimmed) < 200:
        score += 0.3
    if any(word in lowered for word in COMMON_WORDS):
        score += 0.2
    if not any(indicator in lowered for indicator in ERROR_INDICATORS):
        score += 0.2
    if any(sentence.strip() for sentence in text.split(".")):
        score += 0.15
    if 3 < len(text.split()) < 100:
        score += 0.15

    return score
