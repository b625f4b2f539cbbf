"""
League Data Aggregator.

Fetches standings and top scorers through a LeagueDataProvider, caches them
per (competition, season) and derives the answer sets season questions are
scored against.

Tie handling: "top scorer" and "best goal difference" are sets. Every entity
sharing the maximum is a valid answer. The single-entity accessors
(get_team_with_best_goal_difference, get_last_place_team) return the first
entity encountered and exist for context/logging.

Never raises: provider failures and timeouts become None (snapshots) or []
(answer sets), which callers treat as "not available yet".
"""

import asyncio
import logging
import math
import time
from numbers import Real
from typing import Callable, Iterable, Optional

from leaguepicks.config import get_settings
from leaguepicks.etl.base import (
    LeagueDataProvider,
    ScorerSnapshot,
    StandingsSnapshot,
    TeamStanding,
)
from leaguepicks.telemetry.metrics import record_cache_lookup
from leaguepicks.utils.cache import TTLCache

logger = logging.getLogger(__name__)


def _is_finite_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _is_positive_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def ids_sharing_maximum(
    entries: Iterable[tuple[int, float]],
    label: str,
) -> list[int]:
    """
    Return every ID whose value equals the maximum value, deduplicated.

    Args:
        entries: (id, value) pairs that already passed validation.
        label: Name used in log lines (e.g. "top_scorer").

    Returns:
        IDs in first-seen order, or [] when there are no entries.
    """
    entries = list(entries)
    if not entries:
        return []

    max_value = max(value for _, value in entries)
    tied = [entity_id for entity_id, value in entries if value == max_value]

    unique: list[int] = []
    for entity_id in tied:
        if entity_id not in unique:
            unique.append(entity_id)

    if len(unique) != len(tied):
        logger.warning(
            f"[LEAGUE_DATA] {label}: removed {len(tied) - len(unique)} duplicate ID(s) from tie set"
        )

    logger.debug(f"[LEAGUE_DATA] {label}: max={max_value}, {len(unique)} tied: {unique}")
    return unique


class LeagueDataAggregator:
    """Cached, tie-aware view over a league data provider."""

    def __init__(
        self,
        provider: LeagueDataProvider,
        cache: Optional[TTLCache] = None,
        clock: Callable[[], float] = time.monotonic,
        fetch_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.provider = provider
        self.cache = cache or TTLCache(ttl=settings.LEAGUE_DATA_CACHE_TTL_SECONDS, clock=clock)
        self.fetch_timeout = (
            settings.LEAGUE_DATA_FETCH_TIMEOUT_SECONDS if fetch_timeout is None else fetch_timeout
        )

    @staticmethod
    def _valid_request(competition_id: int, season_year: int, caller: str) -> bool:
        if not _is_positive_id(competition_id):
            logger.error(f"[LEAGUE_DATA] {caller}: invalid competition_id {competition_id!r}")
            return False
        if not _is_positive_id(season_year):
            logger.error(f"[LEAGUE_DATA] {caller}: invalid season_year {season_year!r}")
            return False
        return True

    async def _cached_fetch(self, dataset: str, competition_id: int, season_year: int, fetch):
        key = (dataset, competition_id, season_year)
        hit, data = self.cache.get(key)
        record_cache_lookup(dataset, hit)
        if hit:
            return data

        try:
            data = await asyncio.wait_for(fetch(competition_id, season_year), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"[LEAGUE_DATA] {dataset} fetch timed out after {self.fetch_timeout}s "
                f"(competition={competition_id}, season={season_year})"
            )
            return None
        except Exception as e:
            logger.error(
                f"[LEAGUE_DATA] {dataset} fetch failed (competition={competition_id}, "
                f"season={season_year}): {e}"
            )
            return None

        self.cache.set(key, data)
        return data

    async def get_standings(self, competition_id: int, season_year: int) -> Optional[StandingsSnapshot]:
        """League table, cached. None on invalid input, provider error or timeout."""
        if not self._valid_request(competition_id, season_year, "get_standings"):
            return None
        return await self._cached_fetch("standings", competition_id, season_year, self.provider.get_standings)

    async def get_top_scorers(self, competition_id: int, season_year: int) -> Optional[ScorerSnapshot]:
        """Top scorers list, cached. None on invalid input, provider error or timeout."""
        if not self._valid_request(competition_id, season_year, "get_top_scorers"):
            return None
        return await self._cached_fetch("topscorers", competition_id, season_year, self.provider.get_top_scorers)

    async def get_top_scorer_ids(self, competition_id: int, season_year: int) -> list[int]:
        """Provider IDs of every player tied on the highest goal count."""
        if not self._valid_request(competition_id, season_year, "get_top_scorer_ids"):
            return []

        snapshot = await self.get_top_scorers(competition_id, season_year)
        if snapshot is None:
            logger.warning("[LEAGUE_DATA] get_top_scorer_ids: top scorers unavailable")
            return []
        if not snapshot.scorers:
            logger.warning("[LEAGUE_DATA] get_top_scorer_ids: feed is empty for this competition/season")
            return []

        valid = []
        for scorer in snapshot.scorers:
            if not _is_finite_number(scorer.goals) or scorer.goals < 0:
                logger.warning(f"[LEAGUE_DATA] Invalid goal count for player {scorer.player_id}: {scorer.goals!r}")
                continue
            if not _is_positive_id(scorer.player_id):
                logger.warning(f"[LEAGUE_DATA] Invalid player_id in top scorers: {scorer.player_id!r}")
                continue
            valid.append((scorer.player_id, scorer.goals))

        if not valid:
            logger.warning("[LEAGUE_DATA] get_top_scorer_ids: every entry in the feed was invalid")
            return []

        return ids_sharing_maximum(valid, "top_scorer")

    async def get_best_goal_difference_team_ids(self, competition_id: int, season_year: int) -> list[int]:
        """Provider IDs of every team tied on the best goal difference (may be negative)."""
        if not self._valid_request(competition_id, season_year, "get_best_goal_difference_team_ids"):
            return []

        snapshot = await self.get_standings(competition_id, season_year)
        if snapshot is None:
            logger.warning("[LEAGUE_DATA] get_best_goal_difference_team_ids: standings unavailable")
            return []
        if not snapshot.standings:
            logger.warning("[LEAGUE_DATA] get_best_goal_difference_team_ids: no standings for this competition/season")
            return []

        valid = []
        for team in snapshot.standings:
            if not _is_finite_number(team.goal_difference):
                logger.warning(f"[LEAGUE_DATA] Invalid goal difference for team {team.team_id}: {team.goal_difference!r}")
                continue
            if not _is_positive_id(team.team_id):
                logger.warning(f"[LEAGUE_DATA] Invalid team_id in standings: {team.team_id!r}")
                continue
            valid.append((team.team_id, team.goal_difference))

        if not valid:
            logger.warning("[LEAGUE_DATA] get_best_goal_difference_team_ids: every standings entry was invalid")
            return []

        return ids_sharing_maximum(valid, "best_goal_difference")

    async def get_team_with_best_goal_difference(
        self, competition_id: int, season_year: int
    ) -> Optional[TeamStanding]:
        """Single team with the best goal difference (first encountered on ties). Context only."""
        snapshot = await self.get_standings(competition_id, season_year)
        if snapshot is None or not snapshot.standings:
            logger.warning("[LEAGUE_DATA] Cannot determine best goal difference team: no league table data")
            return None

        best: Optional[TeamStanding] = None
        for team in snapshot.standings:
            if not _is_finite_number(team.goal_difference):
                continue
            if best is None or team.goal_difference > best.goal_difference:
                best = team
        return best

    async def get_last_place_team(self, competition_id: int, season_year: int) -> Optional[TeamStanding]:
        """Team with the highest rank number (first encountered on ties)."""
        snapshot = await self.get_standings(competition_id, season_year)
        if snapshot is None or not snapshot.standings:
            logger.warning("[LEAGUE_DATA] Cannot determine last place team: no league table data")
            return None

        last: Optional[TeamStanding] = None
        for team in snapshot.standings:
            if not _is_finite_number(team.rank):
                continue
            if last is None or team.rank > last.rank:
                last = team
        return last

    async def get_league_leader(self, competition_id: int, season_year: int) -> Optional[TeamStanding]:
        """Team with the lowest rank number (first encountered on ties)."""
        snapshot = await self.get_standings(competition_id, season_year)
        if snapshot is None or not snapshot.standings:
            return None

        leader: Optional[TeamStanding] = None
        for team in snapshot.standings:
            if not _is_finite_number(team.rank):
                continue
            if leader is None or team.rank < leader.rank:
                leader = team
        return leader
