"""Percentages, letter grades, weighted subject means and class ranks.

Every place that turns a score into a percentage or a percentage into a
letter grade goes through this module so the rounding policy is applied once.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from models import GradingScale, GradingScaleItem, db

logger = logging.getLogger(__name__)

# (min_percentage, letter_grade, grade_point), highest band first
DEFAULT_SCALE = (
    (90, "A", 4.0),
    (80, "B", 3.0),
    (70, "C", 2.0),
    (60, "D", 1.0),
    (0, "F", 0.0),
)


def round_half_up(value, places: int = 0):
    """Round halves away from zero (89.5 -> 90, 87.25 -> 87.3 at one place).

    Returns an int for places=0 and a float otherwise.
    """
    exponent = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def percentage_of(score: float, max_score: float) -> int:
    """Integer percentage of score over max_score, computed in decimal."""
    ratio = Decimal(str(score)) / Decimal(str(max_score)) * 100
    return round_half_up(ratio)


def get_equivalent(percentage: float, scale: Sequence[Tuple] = DEFAULT_SCALE) -> str:
    """Map a percentage to its letter grade on a (min, letter, point) ladder."""
    for minimum, letter, _point in scale:
        if percentage >= minimum:
            return letter
    return scale[-1][1]


class StaticGradingScale:
    """Grading scale backed by an in-memory band ladder."""

    def __init__(self, bands: Sequence[Tuple] = DEFAULT_SCALE, name: str = "default"):
        self.bands = tuple(sorted(bands, key=lambda b: b[0], reverse=True))
        self.name = name

    def letter_grade_for(self, percentage: float) -> str:
        return get_equivalent(percentage, self.bands)


class PercentageAsLetterScale:
    """Legacy policy that stores the rounded percentage itself as the letter grade.

    Kept only so deployments that depend on the old stored values can opt in
    with LETTER_GRADE_POLICY = "percentage"; it is not a real grading scale.
    """

    name = "percentage"

    def letter_grade_for(self, percentage: float) -> str:
        return str(round_half_up(percentage))


class DatabaseGradingScale:
    """Looks up the active grading scale table, falling back to DEFAULT_SCALE.

    A scale tied to an academic year wins over a school-wide one.
    """

    def __init__(self, fallback: Optional[StaticGradingScale] = None):
        self.fallback = fallback or StaticGradingScale()

    def _items(self, academic_year_id: Optional[int]) -> List[GradingScaleItem]:
        query = db.session.query(GradingScale).filter(GradingScale.is_active.is_(True))
        scales = query.all()
        chosen = None
        for scale in scales:
            if academic_year_id is not None and scale.academic_year_id == academic_year_id:
                chosen = scale
                break
            if scale.academic_year_id is None and chosen is None:
                chosen = scale
        return list(chosen.items) if chosen else []

    def letter_grade_for(self, percentage: float, academic_year_id: Optional[int] = None) -> str:
        items = self._items(academic_year_id)
        if not items:
            return self.fallback.letter_grade_for(percentage)
        for item in sorted(items, key=lambda i: i.min_percentage, reverse=True):
            if item.min_percentage <= percentage <= item.max_percentage:
                return item.letter_grade
        logger.warning(
            f"No grading scale band covers {percentage}%; using fallback scale"
        )
        return self.fallback.letter_grade_for(percentage)


def grading_scale_for_policy(policy: str):
    if policy == "percentage":
        logger.warning(
            "LETTER_GRADE_POLICY=percentage stores percentages as letter grades"
        )
        return PercentageAsLetterScale()
    if policy == "scale":
        return DatabaseGradingScale()
    raise ValueError(f"Unknown LETTER_GRADE_POLICY: {policy}")


def letter_grade_for(scale, percentage: float, academic_year_id: Optional[int] = None) -> str:
    """Call a scale provider, passing the academic year only to providers that take it."""
    if isinstance(scale, DatabaseGradingScale):
        return scale.letter_grade_for(percentage, academic_year_id=academic_year_id)
    return scale.letter_grade_for(percentage)


def weighted_average(entries: Iterable[Tuple[float, float]]) -> Tuple[float, int]:
    """Weighted mean of (percentage, weight) pairs.

    Only pairs that are present and carry a positive weight contribute, to
    the numerator and the denominator alike. Returns (0.0, 0) when the
    weights sum to zero so callers render "no data" instead of a zero score.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    considered = 0
    for percentage, weight in entries:
        weight = float(weight or 0)
        if weight <= 0:
            continue
        weighted_sum += float(percentage) * weight
        total_weight += weight
        considered += 1
    if total_weight <= 0:
        return 0.0, 0
    return weighted_sum / total_weight, considered


def assign_ranks(rows: list, policy: str = "competition") -> list:
    """Sort rows by average descending and set row.rank in place.

    Ties are compared on the one-decimal value shown to users and share a
    rank. "competition" gives the next distinct average tied_rank +
    tie_size (1, 2, 2, 4); "dense" gives tied_rank + 1 (1, 2, 2, 3).
    Rows without data get rank None and go last.
    """
    if policy not in ("competition", "dense"):
        raise ValueError(f"Unknown RANK_TIE_POLICY: {policy}")

    ranked = [r for r in rows if r.has_data]
    unranked = [r for r in rows if not r.has_data]
    ranked.sort(key=lambda r: (-round_half_up(r.average, 1), r.student_id_code, r.student_id))
    unranked.sort(key=lambda r: (r.student_id_code, r.student_id))

    previous = None
    current_rank = 0
    for position, row in enumerate(ranked, start=1):
        shown = round_half_up(row.average, 1)
        if shown != previous:
            current_rank = position if policy == "competition" else current_rank + 1
            previous = shown
        row.rank = current_rank
    for row in unranked:
        row.rank = None
    return ranked + unranked
