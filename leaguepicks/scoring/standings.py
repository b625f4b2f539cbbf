"""
Season standings: game points plus dynamic points, tie-aware ranks.

Game points are the season-wide sum of match points (fallback rows
included). Dynamic points are the values stored for the season's most
recently scored round, since each round's row already reflects the whole
season so far. Ordering is combined total desc, then game points desc,
then user_id; two users share a rank when both totals are equal.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.scoring.repository import ScoringRepository

logger = logging.getLogger(__name__)


@dataclass
class StandingEntry:
    user_id: str
    game_points: int
    dynamic_points: int
    rank: int = 0
    full_name: Optional[str] = None

    @property
    def total_points(self) -> int:
        return self.game_points + self.dynamic_points


def rank_standings(entries: Iterable[StandingEntry]) -> list[StandingEntry]:
    """Sort and assign competition ranks (1, 1, 3, ...). Returns a new list."""
    ordered = sorted(entries, key=lambda e: (-e.total_points, -e.game_points, e.user_id))
    for i, entry in enumerate(ordered):
        previous = ordered[i - 1] if i else None
        if (
            previous is not None
            and previous.total_points == entry.total_points
            and previous.game_points == entry.game_points
        ):
            entry.rank = previous.rank
        else:
            entry.rank = i + 1
    return ordered


class StandingsService:
    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def calculate_standings(self, season_id: int) -> list[StandingEntry]:
        """Ranked standings for a season. Users with bets or dynamic points are listed."""
        async with self.session_factory() as session:
            repo = ScoringRepository(session)
            game_points = await repo.get_season_game_points(season_id)

            latest_round_id = await repo.get_latest_scored_round_id(season_id)
            if latest_round_id is None:
                logger.info(f"[STANDINGS] Season {season_id}: no scored round, dynamic points are 0")
                dynamic_points = {}
            else:
                dynamic_points = await repo.get_round_dynamic_points(latest_round_id)

            user_ids = sorted(set(game_points) | set(dynamic_points))
            names = await repo.get_profile_names(user_ids)

        entries = [
            StandingEntry(
                user_id=user_id,
                game_points=game_points.get(user_id, 0),
                dynamic_points=dynamic_points.get(user_id, 0),
                full_name=names.get(user_id),
            )
            for user_id in user_ids
        ]
        standings = rank_standings(entries)
        logger.info(
            f"[STANDINGS] Season {season_id}: {len(standings)} user(s), "
            f"dynamic points from round {latest_round_id}"
        )
        return standings
