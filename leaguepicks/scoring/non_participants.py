"""
Non-participant fallback rule.

A registered user with no bets in a scored round is given the lowest round
total achieved by any participant, stored as synthetic bet rows
(is_fallback=True) against the round's fixtures: 1 point per row until the
minimum is reached, 0 afterwards. If the minimum exceeds the number of
fixtures the last row carries the remainder so the rows always sum to the
minimum.

Fallback rows never count as participation, and a user who already holds
rows for the round is never a non-participant, so re-running the rule adds
nothing.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from leaguepicks.models import Outcome, UserBet
from leaguepicks.scoring.repository import ScoringRepository

logger = logging.getLogger(__name__)

# Synthetic rows need a syntactically valid prediction; its value is meaningless
FALLBACK_PREDICTION = Outcome.HOME.value


@dataclass
class FallbackResult:
    """What the fallback rule did for one round."""

    applied: bool
    minimum_score: Optional[int] = None
    participant_count: int = 0
    users_awarded: int = 0
    rows_inserted: int = 0
    reason: str = ""


def participant_totals(bets: Iterable[UserBet]) -> dict[str, Optional[int]]:
    """
    Round total per participant (users with at least one real bet).

    A participant none of whose bets have been scored maps to None.
    """
    totals: dict[str, Optional[int]] = {}
    for bet in bets:
        if bet.is_fallback:
            continue
        current = totals.get(bet.user_id)
        if bet.points_awarded is None:
            totals.setdefault(bet.user_id, None)
            continue
        totals[bet.user_id] = (current or 0) + bet.points_awarded
    return totals


def compute_minimum_participant_score(bets: Iterable[UserBet]) -> Optional[int]:
    """Lowest participant total, or None when nobody participated or nothing is scored yet."""
    scored = [total for total in participant_totals(bets).values() if total is not None]
    if not scored:
        return None
    return min(scored)


def distribute_points(minimum_score: int, fixture_count: int) -> list[int]:
    """Per-row points summing to minimum_score (1 per row, remainder on the last)."""
    if fixture_count <= 0:
        return []
    points = [1 if i < minimum_score else 0 for i in range(fixture_count)]
    if minimum_score > fixture_count:
        points[-1] += minimum_score - fixture_count
    return points


def build_fallback_bets(
    user_id: str,
    round_id: int,
    fixture_ids: Sequence[int],
    minimum_score: int,
) -> list[UserBet]:
    """Synthetic bet rows for one user whose points sum to minimum_score."""
    return [
        UserBet(
            user_id=user_id,
            betting_round_id=round_id,
            fixture_id=fixture_id,
            prediction=FALLBACK_PREDICTION,
            points_awarded=points,
            is_fallback=True,
        )
        for fixture_id, points in zip(fixture_ids, distribute_points(minimum_score, len(fixture_ids)))
    ]


async def apply_non_participant_rule(repo: ScoringRepository, round_id: int) -> FallbackResult:
    """
    Award the minimum participant score to every registered non-participant.

    Raises whatever the repository raises; the orchestrator treats a failure
    here as non-fatal.
    """
    bets = await repo.get_round_bets(round_id)
    totals = participant_totals(bets)
    if not totals:
        logger.info(f"[FALLBACK] Round {round_id}: no participants, nothing to compare against")
        return FallbackResult(applied=False, reason="no_participants")

    minimum_score = compute_minimum_participant_score(bets)
    if minimum_score is None:
        logger.info(f"[FALLBACK] Round {round_id}: no scored bets yet, skipping")
        return FallbackResult(applied=False, participant_count=len(totals), reason="not_scored")

    users_with_rows = {bet.user_id for bet in bets}
    non_participants = [u for u in await repo.list_user_ids() if u not in users_with_rows]
    if not non_participants:
        logger.info(f"[FALLBACK] Round {round_id}: every user participated")
        return FallbackResult(
            applied=False,
            minimum_score=minimum_score,
            participant_count=len(totals),
            reason="no_non_participants",
        )

    fixture_ids = await repo.get_round_fixture_ids(round_id)
    if not fixture_ids:
        logger.warning(f"[FALLBACK] Round {round_id}: no fixtures to attach fallback rows to")
        return FallbackResult(
            applied=False,
            minimum_score=minimum_score,
            participant_count=len(totals),
            reason="no_fixtures",
        )

    rows: list[UserBet] = []
    for user_id in non_participants:
        rows.extend(build_fallback_bets(user_id, round_id, fixture_ids, minimum_score))

    inserted = await repo.insert_fallback_bets(rows)
    logger.info(
        f"[FALLBACK] Round {round_id}: awarded {minimum_score} pts to {len(non_participants)} "
        f"non-participant(s) ({inserted} rows, {len(totals)} participants)"
    )
    return FallbackResult(
        applied=True,
        minimum_score=minimum_score,
        participant_count=len(totals),
        users_awarded=len(non_participants),
        rows_inserted=inserted,
    )
