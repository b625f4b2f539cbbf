"""Tests for answer normalization and the membership primitive."""

import math

from leaguepicks.scoring.normalization import (
    does_normalized_user_prediction_match,
    does_user_prediction_match,
    normalize_numeric_answer,
    normalize_valid_answers_array,
)


class TestNormalizeNumericAnswer:
    """Coercion of raw identifiers into positive integers."""

    def test_accepts_ints_and_numeric_strings(self):
        assert normalize_numeric_answer(42) == 42
        assert normalize_numeric_answer("42") == 42
        assert normalize_numeric_answer(" 7 ") == 7

    def test_takes_absolute_value_and_floors(self):
        assert normalize_numeric_answer(-15) == 15
        assert normalize_numeric_answer(12.9) == 12
        assert normalize_numeric_answer("-3.7") == 3

    def test_range_bounds(self):
        assert normalize_numeric_answer(1) == 1
        assert normalize_numeric_answer(10_000_000) == 10_000_000
        assert normalize_numeric_answer(0) is None
        assert normalize_numeric_answer(0.5) is None
        assert normalize_numeric_answer(10_000_001) is None

    def test_rejects_non_finite(self):
        assert normalize_numeric_answer(math.nan) is None
        assert normalize_numeric_answer(math.inf) is None
        assert normalize_numeric_answer("inf") is None
        assert normalize_numeric_answer("nan") is None

    def test_rejects_booleans_objects_and_garbage(self):
        """True must not become ID 1."""
        assert normalize_numeric_answer(True) is None
        assert normalize_numeric_answer(False) is None
        assert normalize_numeric_answer(None) is None
        assert normalize_numeric_answer({"id": 5}) is None
        assert normalize_numeric_answer([5]) is None
        assert normalize_numeric_answer("abc") is None
        assert normalize_numeric_answer("") is None


class TestNormalizeValidAnswersArray:
    def test_drops_invalid_and_dedupes_in_first_seen_order(self):
        raw = [200, "100", None, 200.4, "x", -100, 0, 300]
        assert normalize_valid_answers_array(raw) == [200, 100, 300]

    def test_empty_input(self):
        assert normalize_valid_answers_array([]) == []

    def test_all_invalid(self):
        assert normalize_valid_answers_array([None, math.nan, True, "?"]) == []


class TestDoesUserPredictionMatch:
    """Membership primitive used by every comparison strategy."""

    def test_single_value_is_a_singleton_set(self):
        assert does_user_prediction_match(33, 33) is True
        assert does_user_prediction_match(33, 34) is False

    def test_member_of_tie_set(self):
        assert does_user_prediction_match(200, [100, 200]) is True
        assert does_user_prediction_match(300, [100, 200]) is False

    def test_nan_prediction_never_matches(self):
        assert does_user_prediction_match(math.nan, [math.nan, 1]) is False
        assert does_user_prediction_match(math.nan, math.nan) is False

    def test_nan_filtered_from_answers(self):
        assert does_user_prediction_match(5, [math.nan, 5]) is True
        assert does_user_prediction_match(5, [math.nan]) is False

    def test_no_valid_answers_never_matches(self):
        assert does_user_prediction_match(5, []) is False

    def test_any_iterable_is_a_tie_set(self):
        assert does_user_prediction_match(200, (i for i in (100, 200))) is True
        assert does_user_prediction_match(5, range(1, 10)) is True
        assert does_user_prediction_match(200, {100, 200}) is True

    def test_bool_is_not_an_identifier(self):
        """True == 1 in Python; it must still not match player 1."""
        assert does_user_prediction_match(True, [1]) is False
        assert does_user_prediction_match(1, [True]) is False
        assert does_user_prediction_match(False, 0) is False

    def test_normalizing_variant(self):
        assert does_normalized_user_prediction_match("200", [100, "200.0"]) is True
        assert does_normalized_user_prediction_match(True, [1]) is False
        assert does_normalized_user_prediction_match(-200, 200) is True
