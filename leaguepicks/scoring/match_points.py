"""Fixture finality, 1X2 outcome derivation and per-bet match points."""

from typing import Optional

from leaguepicks.models import FINISHED_FIXTURE_STATUSES, Fixture, Outcome, UserBet

POINTS_PER_CORRECT_OUTCOME = 1

_OUTCOME_VALUES = {o.value for o in Outcome}


def is_final_status(status_short: Optional[str]) -> bool:
    return (status_short or "").upper() in FINISHED_FIXTURE_STATUSES


def is_finished(fixture: Fixture) -> bool:
    return is_final_status(fixture.status_short)


def outcome_from_goals(home_goals: Optional[int], away_goals: Optional[int]) -> Optional[str]:
    """'1', 'X' or '2' from a final score; None if either side is missing."""
    if home_goals is None or away_goals is None:
        return None
    if home_goals > away_goals:
        return Outcome.HOME.value
    if home_goals < away_goals:
        return Outcome.AWAY.value
    return Outcome.DRAW.value


def derive_outcome(fixture: Fixture) -> Optional[str]:
    """
    Outcome of a fixture, or None while undetermined.

    Only finished fixtures have an outcome. A stored result column wins;
    otherwise it is derived from the final score.
    """
    if not is_finished(fixture):
        return None
    if fixture.result in _OUTCOME_VALUES:
        return fixture.result
    return outcome_from_goals(fixture.home_goals, fixture.away_goals)


def points_for_bet(bet: UserBet, outcome: str) -> int:
    """1 point when the predicted symbol equals the outcome, else 0."""
    return POINTS_PER_CORRECT_OUTCOME if bet.prediction == outcome else 0
