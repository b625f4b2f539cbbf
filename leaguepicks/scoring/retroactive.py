"""
Retroactive fallback points for users who joined after rounds were scored.

Applies the non-participant rule after the fact: for every scored round of
a season where the user holds no bet rows, the user gets synthetic rows
worth that round's minimum participant score. Match points only; dynamic
points are per-round snapshots and are not back-filled.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.models import RoundStatus
from leaguepicks.scoring.non_participants import (
    build_fallback_bets,
    compute_minimum_participant_score,
    participant_totals,
)
from leaguepicks.scoring.repository import ScoringRepository
from leaguepicks.telemetry.metrics import record_fallback_awarded

logger = logging.getLogger(__name__)


@dataclass
class RoundAward:
    round_id: int
    round_name: str
    points_awarded: int
    minimum_participant_score: int
    participant_count: int
    rows_inserted: int = 0


@dataclass
class RetroactivePointsResult:
    user_id: str
    dry_run: bool
    rounds_processed: int = 0
    total_points_awarded: int = 0
    rounds: list[RoundAward] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class BulkRetroactivePointsResult:
    dry_run: bool
    users_processed: int = 0
    rounds_processed: int = 0
    total_points_awarded: int = 0
    user_results: list[RetroactivePointsResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class RetroactivePointsService:
    """Back-fills fallback rows for late joiners. dry_run computes without writing."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def _award_round(
        self, repo: ScoringRepository, user_id: str, round_id: int, round_name: str, dry_run: bool
    ) -> RoundAward:
        bets = await repo.get_round_bets(round_id)
        participants = participant_totals(bets)
        minimum = compute_minimum_participant_score(bets)
        if minimum is None:
            logger.info(f"[RETROACTIVE] Round {round_id}: no scored participants, awarding 0")
            return RoundAward(round_id, round_name, 0, 0, len(participants))

        award = RoundAward(round_id, round_name, minimum, minimum, len(participants))
        if dry_run:
            return award

        fixture_ids = await repo.get_round_fixture_ids(round_id)
        rows = build_fallback_bets(user_id, round_id, fixture_ids, minimum)
        award.rows_inserted = await repo.insert_fallback_bets(rows)
        if not rows:
            award.points_awarded = 0
        logger.info(
            f"[RETROACTIVE] User {user_id} round {round_id}: {award.points_awarded} pts "
            f"({award.rows_inserted} rows)"
        )
        return award

    async def apply_for_user(
        self,
        user_id: str,
        season_id: int,
        from_round_id: Optional[int] = None,
        dry_run: bool = False,
    ) -> RetroactivePointsResult:
        """
        Award fallback points for every scored round of the season the user missed.

        Args:
            user_id: Registered user ID.
            season_id: Season whose scored rounds are considered.
            from_round_id: Only rounds with id >= this are considered.
            dry_run: Compute the report without inserting rows.
        """
        result = RetroactivePointsResult(user_id=user_id, dry_run=dry_run)
        async with self.session_factory() as session:
            repo = ScoringRepository(session)
            if not await repo.user_exists(user_id):
                result.errors.append(f"User {user_id} not found")
                return result

            scored = await repo.list_rounds_by_status(
                RoundStatus.SCORED, season_id=season_id, from_round_id=from_round_id
            )
            rounds = [(r.id, r.name) for r in scored]
            played = await repo.get_user_round_ids(user_id, [round_id for round_id, _ in rounds])
            missed = [(round_id, name) for round_id, name in rounds if round_id not in played]

            logger.info(
                f"[RETROACTIVE] User {user_id} season {season_id}: {len(missed)} missed of "
                f"{len(rounds)} scored round(s) (dry_run={dry_run})"
            )

            for round_id, name in missed:
                try:
                    award = await self._award_round(repo, user_id, round_id, name, dry_run)
                except Exception as e:
                    logger.error(f"[RETROACTIVE] User {user_id} round {round_id} failed: {e}")
                    result.errors.append(f"round {round_id}: {e}")
                    continue
                result.rounds.append(award)
                result.rounds_processed += 1
                result.total_points_awarded += award.points_awarded

        if not dry_run:
            record_fallback_awarded("retroactive", sum(1 for r in result.rounds if r.rows_inserted))
        return result

    async def preview_for_user(
        self, user_id: str, season_id: int, from_round_id: Optional[int] = None
    ) -> RetroactivePointsResult:
        return await self.apply_for_user(user_id, season_id, from_round_id, dry_run=True)

    async def apply_for_users(
        self,
        user_ids: Sequence[str],
        season_id: int,
        from_round_id: Optional[int] = None,
        dry_run: bool = False,
    ) -> BulkRetroactivePointsResult:
        """Run apply_for_user for each user; one user's errors do not stop the rest."""
        bulk = BulkRetroactivePointsResult(dry_run=dry_run)
        for user_id in user_ids:
            user_result = await self.apply_for_user(user_id, season_id, from_round_id, dry_run)
            bulk.user_results.append(user_result)
            bulk.users_processed += 1
            bulk.rounds_processed += user_result.rounds_processed
            bulk.total_points_awarded += user_result.total_points_awarded
            bulk.errors.extend(f"{user_id}: {error}" for error in user_result.errors)
        return bulk
