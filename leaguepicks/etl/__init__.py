"""League data providers."""

from leaguepicks.etl.api_football import APIFootballProvider
from leaguepicks.etl.base import (
    LeagueDataProvider,
    ProviderError,
    ScorerEntry,
    ScorerSnapshot,
    StandingsSnapshot,
    TeamStanding,
)

__all__ = [
    "APIFootballProvider",
    "LeagueDataProvider",
    "ProviderError",
    "ScorerEntry",
    "ScorerSnapshot",
    "StandingsSnapshot",
    "TeamStanding",
]
