"""
Answer normalization for season-question scoring.

Raw identifiers reach the scorer from several places (provider payloads,
stored answers, hand-edited fixtures) so they are coerced here into positive
integers before any comparison. Anything that cannot be coerced is dropped,
never guessed.
"""

import logging
import math
from collections.abc import Iterable
from numbers import Real
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

MIN_ANSWER_ID = 1
MAX_ANSWER_ID = 10_000_000

# A single identifier or a tie set of identifiers
ValidAnswers = Union[float, int, Iterable[Union[float, int]]]


def normalize_numeric_answer(raw: Any) -> Optional[int]:
    """
    Coerce a raw identifier into a positive integer.

    Accepts numbers and numeric strings. Takes the absolute value, floors it
    and keeps it only if it falls in [1, 10_000_000].

    Returns:
        The identifier, or None when the value is rejected.
    """
    # bool is an int subclass; True must not become player 1
    if isinstance(raw, bool):
        return None

    if isinstance(raw, Real):
        value = float(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(value):
        return None

    normalized = math.floor(abs(value))
    if normalized < MIN_ANSWER_ID or normalized > MAX_ANSWER_ID:
        return None
    return normalized


def normalize_valid_answers_array(raw: Iterable[Any]) -> list[int]:
    """Normalize every element, dropping rejects and duplicates (first-seen order kept)."""
    normalized: list[int] = []
    for index, item in enumerate(raw):
        value = normalize_numeric_answer(item)
        if value is None:
            logger.warning(f"[COMPARE] Dropped invalid answer at index {index}: {item!r}")
            continue
        if value not in normalized:
            normalized.append(value)
    return normalized


def _as_answer_list(valid_answers: ValidAnswers) -> list:
    # Strings are scalars here; any other iterable (generator, range, set) is a tie set
    if isinstance(valid_answers, (str, bytes)) or not isinstance(valid_answers, Iterable):
        return [valid_answers]
    return list(valid_answers)


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _is_comparable(value: Any) -> bool:
    return value is not None and not isinstance(value, bool) and not _is_nan(value)


def does_user_prediction_match(user_prediction: float, valid_answers: ValidAnswers) -> bool:
    """
    True iff the prediction is one of the valid answers.

    A single answer is treated as a one-element set. NaN never matches
    (neither as the prediction nor inside the answer set), booleans are not
    identifiers, and an empty answer set never matches.
    """
    if not _is_comparable(user_prediction):
        return False

    answers = [a for a in _as_answer_list(valid_answers) if _is_comparable(a)]
    if not answers:
        return False
    return user_prediction in answers


def does_normalized_user_prediction_match(user_prediction: Any, valid_answers: Any) -> bool:
    """Normalize both sides first, then test membership. Rejected predictions never match."""
    prediction = normalize_numeric_answer(user_prediction)
    if prediction is None:
        return False
    return does_user_prediction_match(
        prediction, normalize_valid_answers_array(_as_answer_list(valid_answers))
    )
