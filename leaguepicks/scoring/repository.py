"""
Persistence for round scoring.

Reads are plain filtered selects. Every multi-row write runs in one
transaction on the session (commit on success, rollback and re-raise on any
error), so callers see all rows or none. SQLAlchemyError propagates; the
orchestrator turns it into a result.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.models import (
    BettingRound,
    BettingRoundFixture,
    Competition,
    Fixture,
    Player,
    Profile,
    RoundStatus,
    Season,
    SeasonAnswer,
    SeasonWinner,
    Team,
    UserBet,
    UserRoundDynamicPoints,
    utc_now,
)

logger = logging.getLogger(__name__)


class ScoringError(Exception):
    """Base class for scoring errors."""


class RoundNotFound(ScoringError):
    def __init__(self, round_id: int):
        super().__init__(f"Betting round {round_id} not found")
        self.round_id = round_id


class ScoringRepository:
    """Data access for one scoring pass. Owns no transaction state between calls."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_round(self, round_id: int) -> BettingRound:
        """Fetch a round with fresh column values. Raises RoundNotFound."""
        result = await self.session.execute(
            select(BettingRound)
            .where(BettingRound.id == round_id)
            .execution_options(populate_existing=True)
        )
        betting_round = result.scalar_one_or_none()
        if betting_round is None:
            raise RoundNotFound(round_id)
        return betting_round

    async def get_round_fixture_ids(self, round_id: int) -> list[int]:
        result = await self.session.execute(
            select(BettingRoundFixture.fixture_id)
            .where(BettingRoundFixture.betting_round_id == round_id)
            .order_by(BettingRoundFixture.id)
        )
        return list(result.scalars().all())

    async def get_fixtures(self, fixture_ids: Sequence[int]) -> list[Fixture]:
        if not fixture_ids:
            return []
        result = await self.session.execute(select(Fixture).where(Fixture.id.in_(fixture_ids)))
        return list(result.scalars().all())

    async def get_round_bets(self, round_id: int) -> list[UserBet]:
        """All bets of a round, fallback rows included."""
        result = await self.session.execute(
            select(UserBet)
            .where(UserBet.betting_round_id == round_id)
            .order_by(UserBet.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_season_context(self, season_id: int) -> Optional[tuple[Season, Competition]]:
        """(season, competition) for a season ID, or None."""
        result = await self.session.execute(
            select(Season, Competition)
            .join(Competition, Competition.id == Season.competition_id)
            .where(Season.id == season_id)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def get_season_answers_by_user(self, season_id: int) -> dict[str, list[SeasonAnswer]]:
        """Season answers grouped by user, only for users with at least one answer."""
        result = await self.session.execute(
            select(SeasonAnswer)
            .where(SeasonAnswer.season_id == season_id)
            .order_by(SeasonAnswer.user_id, SeasonAnswer.id)
        )
        by_user: dict[str, list[SeasonAnswer]] = {}
        for answer in result.scalars().all():
            by_user.setdefault(answer.user_id, []).append(answer)
        return by_user

    async def list_user_ids(self) -> list[str]:
        """Every registered user."""
        result = await self.session.execute(select(Profile.id).order_by(Profile.id))
        return list(result.scalars().all())

    async def list_rounds_by_status(
        self,
        status: RoundStatus,
        season_id: Optional[int] = None,
        from_round_id: Optional[int] = None,
    ) -> list[BettingRound]:
        conditions = [BettingRound.status == status.value]
        if season_id is not None:
            conditions.append(BettingRound.season_id == season_id)
        if from_round_id is not None:
            conditions.append(BettingRound.id >= from_round_id)
        result = await self.session.execute(
            select(BettingRound).where(and_(*conditions)).order_by(BettingRound.id)
        )
        return list(result.scalars().all())

    async def list_stale_scoring_rounds(self, lease_seconds: int) -> list[BettingRound]:
        """Rounds stuck in 'scoring' whose lease has expired."""
        cutoff = utc_now() - timedelta(seconds=lease_seconds)
        result = await self.session.execute(
            select(BettingRound)
            .where(
                and_(
                    BettingRound.status == RoundStatus.SCORING.value,
                    or_(BettingRound.scoring_started_at.is_(None), BettingRound.scoring_started_at < cutoff),
                )
            )
            .order_by(BettingRound.id)
        )
        return list(result.scalars().all())

    async def list_rounds_pending_dynamic_points(self) -> list[BettingRound]:
        """Scored rounds whose dynamic points transaction never committed."""
        result = await self.session.execute(
            select(BettingRound)
            .where(
                and_(
                    BettingRound.status == RoundStatus.SCORED.value,
                    BettingRound.dynamic_points_pending.is_(True),
                )
            )
            .order_by(BettingRound.id)
        )
        return list(result.scalars().all())

    async def get_user_round_ids(self, user_id: str, round_ids: Sequence[int]) -> set[int]:
        """Subset of round_ids where the user holds any bet row."""
        if not round_ids:
            return set()
        result = await self.session.execute(
            select(UserBet.betting_round_id)
            .where(and_(UserBet.user_id == user_id, UserBet.betting_round_id.in_(round_ids)))
            .distinct()
        )
        return set(result.scalars().all())

    async def user_exists(self, user_id: str) -> bool:
        result = await self.session.execute(select(func.count()).select_from(Profile).where(Profile.id == user_id))
        return (result.scalar() or 0) > 0

    # ------------------------------------------------------------------
    # Identifier mapping (internal ID -> provider ID)
    # ------------------------------------------------------------------

    async def map_team_to_provider_id(self, team_id: int) -> Optional[int]:
        result = await self.session.execute(select(Team.api_team_id).where(Team.id == team_id))
        return result.scalar_one_or_none()

    async def map_player_to_provider_id(self, player_id: int) -> Optional[int]:
        result = await self.session.execute(select(Player.api_player_id).where(Player.id == player_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Advisory lock on round status
    # ------------------------------------------------------------------

    async def try_acquire_scoring_lock(self, round_id: int, lease_seconds: int) -> bool:
        """
        Compare-and-set closed -> scoring (or re-take an expired 'scoring' lease).

        Returns True iff this call now holds the lock.
        """
        now = utc_now()
        cutoff = now - timedelta(seconds=lease_seconds)
        try:
            result = await self.session.execute(
                update(BettingRound)
                .where(
                    and_(
                        BettingRound.id == round_id,
                        or_(
                            BettingRound.status == RoundStatus.CLOSED.value,
                            and_(
                                BettingRound.status == RoundStatus.SCORING.value,
                                or_(
                                    BettingRound.scoring_started_at.is_(None),
                                    BettingRound.scoring_started_at < cutoff,
                                ),
                            ),
                        ),
                    )
                )
                .values(status=RoundStatus.SCORING.value, scoring_started_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount == 1

    async def release_scoring_lock(self, round_id: int) -> None:
        """Put a round we hold back to 'closed' so the next run can retry."""
        try:
            await self.session.execute(
                update(BettingRound)
                .where(and_(BettingRound.id == round_id, BettingRound.status == RoundStatus.SCORING.value))
                .values(status=RoundStatus.CLOSED.value, scoring_started_at=None, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    def _mark_scored_statement(self, round_id: int, now: datetime, dynamic_pending: bool = False):
        return (
            update(BettingRound)
            .where(BettingRound.id == round_id)
            .values(
                status=RoundStatus.SCORED.value,
                scored_at=now,
                scoring_started_at=None,
                dynamic_points_pending=dynamic_pending,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def mark_round_scored(self, round_id: int) -> None:
        try:
            await self.session.execute(self._mark_scored_statement(round_id, utc_now()))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Atomic writes
    # ------------------------------------------------------------------

    async def apply_match_points(self, round_id: int, updates: Iterable[tuple[int, int]]) -> int:
        """
        Store (bet_id, points) pairs and mark the round scored with dynamic
        points pending, all-or-nothing.

        Bets that already have points are left untouched. Returns the number
        of bets actually updated.
        """
        updated = 0
        try:
            for bet_id, points in updates:
                result = await self.session.execute(
                    update(UserBet)
                    .where(
                        and_(
                            UserBet.id == bet_id,
                            UserBet.betting_round_id == round_id,
                            UserBet.points_awarded.is_(None),
                        )
                    )
                    .values(points_awarded=points)
                    .execution_options(synchronize_session=False)
                )
                updated += result.rowcount
            # Dynamic points follow in a second transaction; the flag marks that gap
            await self.session.execute(self._mark_scored_statement(round_id, utc_now(), dynamic_pending=True))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return updated

    def _upsert(self, table):
        if self.session.get_bind().dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def apply_dynamic_points(
        self,
        round_id: int,
        rows: Sequence[tuple[str, int, tuple[bool, bool, bool, bool]]],
    ) -> int:
        """
        Upsert (user_id, total_points, four booleans) rows for a round, all-or-nothing.

        Re-running for the same round overwrites the previous values. The
        round's dynamic_points_pending flag is cleared in the same
        transaction, also when there are no rows to write.
        """
        now = utc_now()
        values = [
            {
                "betting_round_id": round_id,
                "user_id": user_id,
                "dynamic_points": total,
                "question_1_correct": flags[0],
                "question_2_correct": flags[1],
                "question_3_correct": flags[2],
                "question_4_correct": flags[3],
                "created_at": now,
                "updated_at": now,
            }
            for user_id, total, flags in rows
        ]
        try:
            if values:
                stmt = self._upsert(UserRoundDynamicPoints.__table__).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["betting_round_id", "user_id"],
                    set_={
                        "dynamic_points": stmt.excluded.dynamic_points,
                        "question_1_correct": stmt.excluded.question_1_correct,
                        "question_2_correct": stmt.excluded.question_2_correct,
                        "question_3_correct": stmt.excluded.question_3_correct,
                        "question_4_correct": stmt.excluded.question_4_correct,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await self.session.execute(stmt)
            await self.session.execute(
                update(BettingRound)
                .where(BettingRound.id == round_id)
                .values(dynamic_points_pending=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return len(values)

    async def insert_fallback_bets(self, bets: Sequence[UserBet]) -> int:
        """Insert synthetic bet rows in one transaction."""
        if not bets:
            return 0
        try:
            self.session.add_all(bets)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return len(bets)

    async def close_round(self, round_id: int) -> bool:
        """Compare-and-set open -> closed. True iff this call moved the round."""
        now = utc_now()
        try:
            result = await self.session.execute(
                update(BettingRound)
                .where(and_(BettingRound.id == round_id, BettingRound.status == RoundStatus.OPEN.value))
                .values(status=RoundStatus.CLOSED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Season standings, completion and winners
    # ------------------------------------------------------------------

    async def get_season(self, season_id: int) -> Optional[Season]:
        result = await self.session.execute(
            select(Season).where(Season.id == season_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_season_game_points(self, season_id: int) -> dict[str, int]:
        """Sum of match points per user over the season's rounds (fallback rows included, unscored = 0)."""
        result = await self.session.execute(
            select(UserBet.user_id, func.coalesce(func.sum(UserBet.points_awarded), 0))
            .join(BettingRound, BettingRound.id == UserBet.betting_round_id)
            .where(BettingRound.season_id == season_id)
            .group_by(UserBet.user_id)
        )
        return {user_id: int(points) for user_id, points in result.all()}

    async def get_latest_scored_round_id(self, season_id: int) -> Optional[int]:
        result = await self.session.execute(
            select(BettingRound.id)
            .where(
                and_(
                    BettingRound.season_id == season_id,
                    BettingRound.status == RoundStatus.SCORED.value,
                )
            )
            .order_by(BettingRound.scored_at.desc(), BettingRound.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_round_dynamic_points(self, round_id: int) -> dict[str, int]:
        result = await self.session.execute(
            select(UserRoundDynamicPoints.user_id, UserRoundDynamicPoints.dynamic_points).where(
                UserRoundDynamicPoints.betting_round_id == round_id
            )
        )
        return {user_id: points for user_id, points in result.all()}

    async def get_profile_names(self, user_ids: Sequence[str]) -> dict[str, Optional[str]]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(Profile.id, Profile.full_name).where(Profile.id.in_(list(user_ids)))
        )
        return {user_id: name for user_id, name in result.all()}

    async def list_active_seasons(self) -> list[Season]:
        """Current seasons not yet marked complete."""
        result = await self.session.execute(
            select(Season)
            .where(and_(Season.is_current.is_(True), Season.completed_at.is_(None)))
            .order_by(Season.id)
        )
        return list(result.scalars().all())

    async def get_season_fixture_statuses(self, season_id: int) -> dict[int, str]:
        """fixture_id -> status_short for every fixture linked to a round of the season."""
        result = await self.session.execute(
            select(Fixture.id, Fixture.status_short)
            .join(BettingRoundFixture, BettingRoundFixture.fixture_id == Fixture.id)
            .join(BettingRound, BettingRound.id == BettingRoundFixture.betting_round_id)
            .where(BettingRound.season_id == season_id)
            .distinct()
        )
        return {fixture_id: status for fixture_id, status in result.all()}

    async def mark_season_completed(self, season_id: int) -> bool:
        """Stamp completed_at once. True iff this call set it."""
        now = utc_now()
        try:
            result = await self.session.execute(
                update(Season)
                .where(and_(Season.id == season_id, Season.completed_at.is_(None)))
                .values(completed_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount == 1

    async def list_seasons_awaiting_winners(self) -> list[Season]:
        """Completed seasons whose winners have not been recorded, oldest completion first."""
        result = await self.session.execute(
            select(Season)
            .where(and_(Season.completed_at.is_not(None), Season.winner_determined_at.is_(None)))
            .order_by(Season.completed_at, Season.id)
        )
        return list(result.scalars().all())

    async def get_season_winners(self, season_id: int) -> list[SeasonWinner]:
        result = await self.session.execute(
            select(SeasonWinner)
            .where(SeasonWinner.season_id == season_id)
            .order_by(SeasonWinner.total_points.desc(), SeasonWinner.user_id)
        )
        return list(result.scalars().all())

    async def record_season_winners(
        self,
        season_id: int,
        competition_id: int,
        rows: Sequence[tuple[str, int, int, int]],
    ) -> int:
        """
        Upsert (user_id, game, dynamic, total) winner rows and stamp the
        season's winner_determined_at, all-or-nothing.
        """
        now = utc_now()
        values = [
            {
                "season_id": season_id,
                "competition_id": competition_id,
                "user_id": user_id,
                "game_points": game,
                "dynamic_points": dynamic,
                "total_points": total,
                "created_at": now,
            }
            for user_id, game, dynamic, total in rows
        ]
        try:
            if values:
                stmt = self._upsert(SeasonWinner.__table__).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["season_id", "user_id"],
                    set_={
                        "game_points": stmt.excluded.game_points,
                        "dynamic_points": stmt.excluded.dynamic_points,
                        "total_points": stmt.excluded.total_points,
                    },
                )
                await self.session.execute(stmt)
            await self.session.execute(
                update(Season)
                .where(Season.id == season_id)
                .values(winner_determined_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return len(values)


class SessionIdentifierMapper:
    """IdentifierMapper that opens a short-lived session per lookup."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def map_team_to_provider_id(self, team_id: int) -> Optional[int]:
        async with self.session_factory() as session:
            provider_id = await ScoringRepository(session).map_team_to_provider_id(team_id)
        if provider_id is None:
            logger.warning(f"[DYNAMIC] No provider ID for team {team_id}")
        return provider_id

    async def map_player_to_provider_id(self, player_id: int) -> Optional[int]:
        async with self.session_factory() as session:
            provider_id = await ScoringRepository(session).map_player_to_provider_id(player_id)
        if provider_id is None:
            logger.warning(f"[DYNAMIC] No provider ID for player {player_id}")
        return provider_id
