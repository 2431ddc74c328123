"""Final score aggregation."""
from __future__ import annotations

import math
from typing import Iterable, Optional

from candidate_management import QUESTION_COUNT, Answer


def _round_half_up(value: float) -> int:
    """Round halves away from zero for non-negative values (``round`` would pick even)."""
    return int(math.floor(value + 0.5))


def final_score(answers: Iterable[Optional[Answer]], question_count: int = QUESTION_COUNT) -> int:
    """Aggregate per-answer scores (0-10) into a 0-100 interview score.

    Unscored or missing answers contribute 0.
    """

    total = 0.0
    for answer in answers:
        if answer is None or answer.score is None:
            continue
        total += answer.score
    scaled = total / question_count * 10
    return _round_half_up(max(0.0, min(100.0, scaled)))


__all__ = ["final_score"]
