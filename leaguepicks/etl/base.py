"""Abstract base class for league data providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class ProviderError(RuntimeError):
    """Raised when the provider reports an error payload or retries are exhausted."""


@dataclass(frozen=True)
class TeamStanding:
    """One row of a league table. team_id is the provider's team ID."""

    rank: int
    team_id: int
    team_name: str
    points: int
    goal_difference: float
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    form: Optional[str] = None
    group: Optional[str] = None
    description: Optional[str] = None  # "Promotion", "Relegation", ...


@dataclass(frozen=True)
class StandingsSnapshot:
    """League table for a competition/season as of the last fetch."""

    competition_id: int
    season_year: int
    league_name: str = ""
    standings: tuple[TeamStanding, ...] = field(default_factory=tuple)
    last_update: Optional[str] = None  # ISO timestamp reported by the provider


@dataclass(frozen=True)
class ScorerEntry:
    """One top-scorers row. player_id / team_id are provider IDs."""

    player_id: int
    player_name: str
    team_id: Optional[int]
    team_name: Optional[str]
    goals: float
    assists: Optional[int] = None
    appearances: Optional[int] = None


@dataclass(frozen=True)
class ScorerSnapshot:
    """Top-scorers list for a competition/season as of the last fetch."""

    competition_id: int
    season_year: int
    scorers: tuple[ScorerEntry, ...] = field(default_factory=tuple)


class LeagueDataProvider(ABC):
    """Abstract base class for league standings / scorer providers."""

    @abstractmethod
    async def get_standings(self, league_id: int, season: int) -> StandingsSnapshot:
        """
        Fetch the league table for a competition and season.

        Raises:
            ProviderError: on provider-reported errors.
            httpx.HTTPError: on transport errors.
        """
        pass

    @abstractmethod
    async def get_top_scorers(self, league_id: int, season: int) -> ScorerSnapshot:
        """
        Fetch the top-scorers list for a competition and season.

        Raises:
            ProviderError: on provider-reported errors.
            httpx.HTTPError: on transport errors.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
