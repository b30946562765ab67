"""
HATS/LEAP Scoring Engine

Answers carry one of the four HATS categories (habit, ability, talent, skill)
and 1-4 points. Category scores are plain sums per category; the four LEAP
dimensions each combine exactly two category scores:

    Leadership     = Habits    + Talents
    Effectiveness  = Habits    + Abilities
    Accountability = Abilities + Skills
    Productivity   = Habits    + Skills
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

logger = logging.getLogger(__name__)

CATEGORIES: Tuple[str, ...] = ("habit", "ability", "talent", "skill")

# Which two categories feed each LEAP dimension
LEAP_FORMULAS: Dict[str, Tuple[str, str]] = {
    "leadership": ("habit", "talent"),
    "effectiveness": ("habit", "ability"),
    "accountability": ("ability", "skill"),
    "productivity": ("habit", "skill"),
}


@dataclass(frozen=True)
class Answer:
    question_id: str
    category: str
    points: int


@dataclass(frozen=True)
class CategoryScores:
    habit: int = 0
    ability: int = 0
    talent: int = 0
    skill: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class LeapScores:
    leadership: int = 0
    effectiveness: int = 0
    accountability: int = 0
    productivity: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class AllScores:
    category_scores: CategoryScores
    leap_scores: LeapScores


AnswerLike = Union[Answer, Mapping[str, Any]]


def _category_and_points(answer: AnswerLike) -> Tuple[Any, int]:
    # Stored answer traces use "score" where client-side answers use "points"
    if isinstance(answer, Answer):
        return answer.category, answer.points
    points = answer.get("points", answer.get("score", 0))
    return answer.get("category"), int(points or 0)


def calculate_category_scores(answers: Iterable[AnswerLike]) -> CategoryScores:
    """
    Sums answer points per HATS category.

    Answers whose category is not one of the four HATS categories are skipped,
    not rejected. The result does not depend on the order of `answers`.
    """
    totals = dict.fromkeys(CATEGORIES, 0)
    for answer in answers:
        category, points = _category_and_points(answer)
        if category in totals:
            totals[category] += points
        else:
            logger.debug(f"Skipping answer with unrecognised category: {category!r}")
    return CategoryScores(**totals)


def calculate_leap_scores(category_scores: CategoryScores) -> LeapScores:
    """Combines category scores into the four LEAP dimensions."""
    values = category_scores.as_dict()
    return LeapScores(**{
        dimension: values[first] + values[second]
        for dimension, (first, second) in LEAP_FORMULAS.items()
    })


def calculate_all_scores(answers: Iterable[AnswerLike]) -> AllScores:
    """Scores a full answer set. This is the entry point callers should use."""
    category_scores = calculate_category_scores(answers)
    return AllScores(
        category_scores=category_scores,
        leap_scores=calculate_leap_scores(category_scores),
    )
