"""
Season completion and winner determination.

A current season is complete once every fixture linked to its rounds is
final. Winners are the rank-1 users of the completed season's standings;
ties for first place record every tied user. Recording is idempotent: a
season with winners on file returns them unchanged.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.scoring.match_points import is_final_status
from leaguepicks.scoring.repository import ScoringRepository
from leaguepicks.scoring.standings import StandingsService
from leaguepicks.telemetry.sentry import capture_exception as sentry_capture_exception

logger = logging.getLogger(__name__)


@dataclass
class SeasonCompletionStats:
    season_id: int
    total_fixtures: int
    finished_fixtures: int

    @property
    def is_complete(self) -> bool:
        return self.total_fixtures > 0 and self.finished_fixtures == self.total_fixtures

    @property
    def completion_percentage(self) -> float:
        if not self.total_fixtures:
            return 0.0
        return round(self.finished_fixtures / self.total_fixtures * 100, 1)


@dataclass
class SeasonCompletionResult:
    completed_season_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    processed_count: int = 0
    skipped_count: int = 0


@dataclass
class SeasonWinnerEntry:
    user_id: str
    game_points: int
    dynamic_points: int
    total_points: int
    is_tied: bool = False
    full_name: Optional[str] = None


@dataclass
class WinnerDeterminationResult:
    season_id: int
    winners: list[SeasonWinnerEntry] = field(default_factory=list)
    total_players: int = 0
    already_determined: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class SeasonCompletionDetector:
    """Stamps completed_at on current seasons whose fixtures are all final."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def get_season_completion_stats(self, season_id: int) -> SeasonCompletionStats:
        async with self.session_factory() as session:
            statuses = await ScoringRepository(session).get_season_fixture_statuses(season_id)
        return SeasonCompletionStats(
            season_id=season_id,
            total_fixtures=len(statuses),
            finished_fixtures=sum(1 for status in statuses.values() if is_final_status(status)),
        )

    async def detect_and_mark_completed_seasons(self) -> SeasonCompletionResult:
        """Check every active season; one failing season does not stop the others."""
        result = SeasonCompletionResult()
        async with self.session_factory() as session:
            season_ids = [s.id for s in await ScoringRepository(session).list_active_seasons()]

        if not season_ids:
            logger.debug("[SEASON] No active seasons")
            return result

        for season_id in season_ids:
            result.processed_count += 1
            try:
                stats = await self.get_season_completion_stats(season_id)
                if stats.total_fixtures == 0:
                    # Reported as an error, not a skip
                    raise ValueError(f"no fixtures linked to season {season_id}")
                if not stats.is_complete:
                    logger.debug(
                        f"[SEASON] Season {season_id}: {stats.finished_fixtures}/{stats.total_fixtures} "
                        f"fixtures final ({stats.completion_percentage}%)"
                    )
                    result.skipped_count += 1
                    continue

                async with self.session_factory() as session:
                    marked = await ScoringRepository(session).mark_season_completed(season_id)
                if marked:
                    logger.info(f"[SEASON] Season {season_id} complete ({stats.total_fixtures} fixtures final)")
                    result.completed_season_ids.append(season_id)
                else:
                    result.skipped_count += 1
            except Exception as e:
                logger.error(f"[SEASON] Error checking season {season_id}: {e}")
                result.errors.append(f"season {season_id}: {e}")

        logger.info(
            f"[SEASON] Checked {result.processed_count} season(s), "
            f"completed {len(result.completed_season_ids)}, errors {len(result.errors)}"
        )
        return result


class WinnerDeterminationService:
    """Records rank-1 users of completed seasons in season_winners."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        standings: Optional[StandingsService] = None,
    ):
        self.session_factory = session_factory
        self.standings = standings or StandingsService(session_factory)

    async def determine_season_winners(self, season_id: int) -> WinnerDeterminationResult:
        """Determine and record winners for one season. Never raises; errors land in the result."""
        result = WinnerDeterminationResult(season_id=season_id)
        try:
            async with self.session_factory() as session:
                repo = ScoringRepository(session)
                existing = await repo.get_season_winners(season_id)
                if existing:
                    tied = len(existing) > 1
                    names = await repo.get_profile_names([w.user_id for w in existing])
                    result.already_determined = True
                    result.winners = [
                        SeasonWinnerEntry(
                            user_id=w.user_id,
                            game_points=w.game_points,
                            dynamic_points=w.dynamic_points,
                            total_points=w.total_points,
                            is_tied=tied,
                            full_name=names.get(w.user_id),
                        )
                        for w in existing
                    ]
                    logger.info(f"[WINNERS] Season {season_id}: {len(existing)} winner(s) already recorded")
                    return result

                season = await repo.get_season(season_id)
                if season is None:
                    result.errors.append(f"season {season_id} not found")
                    return result

            standings = await self.standings.calculate_standings(season_id)
            if not standings:
                result.errors.append("no players in standings")
                logger.error(f"[WINNERS] Season {season_id}: cannot determine winners without standings")
                return result
            result.total_players = len(standings)

            top = [entry for entry in standings if entry.rank == 1]
            tied = len(top) > 1
            winners = [
                SeasonWinnerEntry(
                    user_id=entry.user_id,
                    game_points=entry.game_points,
                    dynamic_points=entry.dynamic_points,
                    total_points=entry.total_points,
                    is_tied=tied,
                    full_name=entry.full_name,
                )
                for entry in top
            ]

            async with self.session_factory() as session:
                await ScoringRepository(session).record_season_winners(
                    season_id,
                    season.competition_id,
                    [(w.user_id, w.game_points, w.dynamic_points, w.total_points) for w in winners],
                )

            result.winners = winners
            logger.info(
                f"[WINNERS] Season {season_id}: {len(winners)} winner(s) with {winners[0].total_points} points"
                f"{' (tied for first place)' if tied else ''}"
            )
        except Exception as e:
            logger.error(f"[WINNERS] Season {season_id}: winner determination failed: {e}", exc_info=True)
            sentry_capture_exception(e, job_id="season_winners", season_id=season_id)
            result.errors.append(str(e))
        return result

    async def determine_winners_for_completed_seasons(self) -> list[WinnerDeterminationResult]:
        async with self.session_factory() as session:
            season_ids = [s.id for s in await ScoringRepository(session).list_seasons_awaiting_winners()]
        if not season_ids:
            logger.debug("[WINNERS] No completed seasons awaiting winners")
        return [await self.determine_season_winners(season_id) for season_id in season_ids]
