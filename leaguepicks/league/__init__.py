"""Cached, tie-aware league data (standings and top scorers)."""

from leaguepicks.league.aggregator import LeagueDataAggregator

__all__ = ["LeagueDataAggregator"]
