"""Quiz shape per assessment type and integrity checks on submitted scores."""
import logging
from typing import Any, Dict, List, Mapping, Sequence

from leap_api.assessment.scoring import (
    CATEGORIES,
    CategoryScores,
    LeapScores,
    calculate_category_scores,
    calculate_leap_scores,
)
from leap_api.errors import InvalidSubmissionError

logger = logging.getLogger(__name__)

ASSESSMENT_TYPES = ("individual", "team")

QUESTIONS_PER_CATEGORY: Dict[str, int] = {
    "individual": 2,
    "team": 3,
}
MIN_POINTS = 1
MAX_POINTS = 4


def questions_per_category(assessment_type: str) -> int:
    try:
        return QUESTIONS_PER_CATEGORY[assessment_type]
    except KeyError:
        raise InvalidSubmissionError(
            f"Unknown assessment type '{assessment_type}'.",
            field_errors={"assessmentType": f"Must be one of: {', '.join(ASSESSMENT_TYPES)}"},
        )


def max_category_score(assessment_type: str) -> int:
    return questions_per_category(assessment_type) * MAX_POINTS


def max_leap_score(assessment_type: str) -> int:
    # Every LEAP dimension is the sum of exactly two categories
    return 2 * max_category_score(assessment_type)


def validate_scores(
    assessment_type: str,
    category_scores: CategoryScores,
    leap_scores: LeapScores,
    answers: Sequence[Mapping[str, Any]],
) -> None:
    """
    Checks a client-computed score set before it is persisted.

    - category scores lie within 0..max for the assessment type
    - LEAP scores are exactly the fixed combination of the category scores
    - answer points lie within 1..4
    - when every answer names a HATS category, re-scoring the trace reproduces
      the submitted category scores

    Raises:
        InvalidSubmissionError: with one message per offending field.
    """
    field_errors: Dict[str, str] = {}
    category_max = max_category_score(assessment_type)

    for category, value in category_scores.as_dict().items():
        if not 0 <= value <= category_max:
            field_errors[f"{category}Score"] = f"Must be between 0 and {category_max}."

    expected_leap = calculate_leap_scores(category_scores)
    for dimension, value in leap_scores.as_dict().items():
        if value != getattr(expected_leap, dimension):
            field_errors[f"scores.{dimension}"] = "Does not match the category scores."

    bad_points: List[str] = [
        str(answer.get("question_id"))
        for answer in answers
        if not MIN_POINTS <= int(answer.get("score", 0)) <= MAX_POINTS
    ]
    if bad_points:
        field_errors["answers"] = f"Scores must be between {MIN_POINTS} and {MAX_POINTS} (questions: {', '.join(bad_points)})."

    if answers and all(answer.get("category") in CATEGORIES for answer in answers):
        rescored = calculate_category_scores(answers)
        if rescored != category_scores:
            logger.warning(f"Submitted category scores {category_scores} differ from answer trace {rescored}")
            field_errors.setdefault("answers", "Answers do not add up to the submitted category scores.")

    if field_errors:
        raise InvalidSubmissionError("Submitted scores are invalid.", field_errors=field_errors)
