"""API-Football league data provider (standings and top scorers)."""

import asyncio
import logging
import time
from typing import Optional

import httpx

from leaguepicks.config import get_settings
from leaguepicks.etl.base import (
    LeagueDataProvider,
    ProviderError,
    ScorerEntry,
    ScorerSnapshot,
    StandingsSnapshot,
    TeamStanding,
)
from leaguepicks.telemetry.metrics import record_provider_error, record_provider_request

logger = logging.getLogger(__name__)

PROVIDER_NAME = "api_football"


def build_api_football_client(timeout: float = 30.0) -> tuple[str, httpx.AsyncClient]:
    """Return (base_url, client) for either API-Sports direct or RapidAPI."""
    settings = get_settings()
    host = settings.RAPIDAPI_HOST
    if "api-sports.io" in host:
        base_url = f"https://{host}"
        headers = {"x-apisports-key": settings.RAPIDAPI_KEY}
    else:
        base_url = f"https://{host}/v3"
        headers = {
            "X-RapidAPI-Key": settings.RAPIDAPI_KEY,
            "X-RapidAPI-Host": host,
        }
    if not settings.RAPIDAPI_KEY:
        logger.warning("[LEAGUE_DATA] RAPIDAPI_KEY is not set. Provider calls will likely fail.")
    return base_url, httpx.AsyncClient(headers=headers, timeout=timeout)


class APIFootballProvider(LeagueDataProvider):
    """API-Football provider with pacing and retry (supports RapidAPI and API-Sports)."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        requests_per_minute: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        settings = get_settings()
        if client is None:
            default_base_url, client = build_api_football_client()
            base_url = base_url or default_base_url
        self.BASE_URL = base_url or f"https://{settings.RAPIDAPI_HOST}"
        self.client = client
        self.requests_per_minute = (
            settings.API_REQUESTS_PER_MINUTE if requests_per_minute is None else requests_per_minute
        )
        self.max_retries = settings.API_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.API_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    async def _rate_limited_request(self, endpoint: str, params: dict, entity: str) -> dict:
        """
        Make a paced request to the API.

        Backs off exponentially on 429 and transport errors. A payload with a
        non-empty "errors" member is a provider-reported failure.

        Raises:
            ProviderError: provider-reported error, or rate limited on every attempt.
            httpx.HTTPError: transport/HTTP error on the final attempt.
        """
        delay = 60 / self.requests_per_minute if self.requests_per_minute > 0 else 0
        url = f"{self.BASE_URL}/{endpoint}"

        for attempt in range(self.max_retries):
            start_time = time.time()
            try:
                response = await self.client.get(url, params=params)
                latency_ms = (time.time() - start_time) * 1000

                if response.status_code == 429:
                    record_provider_request(PROVIDER_NAME, entity, endpoint, 429, latency_ms)
                    wait_time = self.retry_delay * (2**attempt)
                    logger.warning(f"[LEAGUE_DATA] Rate limited on {endpoint}. Waiting {wait_time}s before retry...")
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                record_provider_request(PROVIDER_NAME, entity, endpoint, response.status_code, latency_ms)
                if delay:
                    await asyncio.sleep(delay)

                data = response.json()
                if data.get("errors"):
                    # API-Football returns errors as a list or a dict
                    record_provider_error(PROVIDER_NAME, entity, "api_error_response")
                    raise ProviderError(f"API-Football error on {endpoint}: {data['errors']}")

                return data

            except httpx.TimeoutException as e:
                record_provider_error(PROVIDER_NAME, entity, "timeout")
                logger.error(f"[LEAGUE_DATA] Timeout on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                    continue
                raise

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                record_provider_error(PROVIDER_NAME, entity, f"http_{status // 100}xx")
                logger.error(f"[LEAGUE_DATA] HTTP error on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                    continue
                raise

            except httpx.RequestError as e:
                record_provider_error(PROVIDER_NAME, entity, "request_error")
                logger.error(f"[LEAGUE_DATA] Request error on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                    continue
                raise

        raise ProviderError(f"API-Football {endpoint}: rate limited on all {self.max_retries} attempts")

    async def get_standings(self, league_id: int, season: int) -> StandingsSnapshot:
        """
        Fetch league standings/table.

        Standings can be nested per group; the primary group is selected so
        split seasons (Apertura/Clausura) don't duplicate teams.
        """
        data = await self._rate_limited_request(
            "standings", {"league": league_id, "season": season}, entity="standings"
        )
        standings_data = data.get("response") or []

        if not standings_data:
            return StandingsSnapshot(competition_id=league_id, season_year=season)

        league = standings_data[0].get("league") or {}
        rows: list[TeamStanding] = []
        last_update = None
        for league_data in standings_data:
            for group in (league_data.get("league") or {}).get("standings") or []:
                entries = group if isinstance(group, list) else [group]
                for entry in entries:
                    rows.append(self._parse_standing(entry))
                    last_update = last_update or entry.get("update")

        return StandingsSnapshot(
            competition_id=league.get("id") or league_id,
            season_year=league.get("season") or season,
            league_name=league.get("name") or "",
            standings=tuple(self._select_primary_standings_group(rows)),
            last_update=last_update,
        )

    def _select_primary_standings_group(self, standings: list[TeamStanding]) -> list[TeamStanding]:
        """
        API-Football can return multiple tables for the same league/season.

        Strategy:
        - If no group info, return as-is.
        - Pick a primary group deterministically:
          1) Most teams
          2) Highest total played
          3) Preferred group name (Regular Season > Apertura > Clausura)
        """
        groups: dict[str, list[TeamStanding]] = {}
        for row in standings:
            if not row.group:
                continue
            groups.setdefault(row.group, []).append(row)

        if len(groups) <= 1:
            return standings

        preferred = ["Regular Season", "Apertura", "Clausura"]

        def score(item: tuple[str, list[TeamStanding]]) -> tuple[int, int, int]:
            name, rows = item
            total_played = sum(r.played or 0 for r in rows)
            pref_rank = 0
            for i, p in enumerate(preferred):
                if p.lower() in name.lower():
                    pref_rank = len(preferred) - i
                    break
            return (len(rows), total_played, pref_rank)

        _, best_rows = sorted(groups.items(), key=score, reverse=True)[0]
        return best_rows

    def _parse_standing(self, standing: dict) -> TeamStanding:
        """Parse a single standing entry."""
        team = standing.get("team") or {}
        totals = standing.get("all") or {}
        goals = totals.get("goals") or {}
        return TeamStanding(
            rank=standing.get("rank"),
            team_id=team.get("id"),
            team_name=team.get("name") or "",
            points=standing.get("points") or 0,
            goal_difference=standing.get("goalsDiff"),
            played=totals.get("played") or 0,
            won=totals.get("win") or 0,
            drawn=totals.get("draw") or 0,
            lost=totals.get("lose") or 0,
            goals_for=goals.get("for") or 0,
            goals_against=goals.get("against") or 0,
            form=standing.get("form"),
            group=standing.get("group"),
            description=standing.get("description"),
        )

    async def get_top_scorers(self, league_id: int, season: int) -> ScorerSnapshot:
        """Fetch the top scorers list (provider returns it ordered by goals)."""
        data = await self._rate_limited_request(
            "players/topscorers", {"league": league_id, "season": season}, entity="topscorers"
        )
        scorers = []
        for entry in data.get("response") or []:
            player = entry.get("player") or {}
            statistics = entry.get("statistics") or [{}]
            stats = statistics[0] or {}
            team = stats.get("team") or {}
            goals = stats.get("goals") or {}
            scorers.append(
                ScorerEntry(
                    player_id=player.get("id"),
                    player_name=player.get("name") or "",
                    team_id=team.get("id"),
                    team_name=team.get("name"),
                    goals=goals.get("total"),
                    assists=goals.get("assists"),
                    appearances=(stats.get("games") or {}).get("appearences"),
                )
            )
        return ScorerSnapshot(competition_id=league_id, season_year=season, scorers=tuple(scorers))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
