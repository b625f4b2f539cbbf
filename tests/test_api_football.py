"""Tests for the API-Football provider using httpx.MockTransport."""

import httpx
import pytest

from leaguepicks.etl.api_football import APIFootballProvider
from leaguepicks.etl.base import ProviderError

BASE_URL = "https://v3.football.api-sports.io"


def standings_entry(rank, team_id, goals_diff, group="Premier League", played=10):
    return {
        "rank": rank,
        "team": {"id": team_id, "name": f"Team {team_id}"},
        "points": 30 - rank,
        "goalsDiff": goals_diff,
        "group": group,
        "form": "WWDLW",
        "description": None,
        "all": {"played": played, "win": 5, "draw": 3, "lose": 2, "goals": {"for": 20, "against": 10}},
        "update": "2024-11-10T00:00:00+00:00",
    }


def make_provider(handler) -> APIFootballProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return APIFootballProvider(
        client=client,
        base_url=BASE_URL,
        requests_per_minute=0,
        max_retries=3,
        retry_delay=0,
    )


class TestStandings:
    @pytest.mark.asyncio
    async def test_parses_table(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "errors": [],
                    "response": [
                        {
                            "league": {
                                "id": 39,
                                "season": 2024,
                                "name": "Premier League",
                                "standings": [[standings_entry(1, 40, 18), standings_entry(2, 42, -3)]],
                            }
                        }
                    ],
                },
            )

        provider = make_provider(handler)
        snapshot = await provider.get_standings(39, 2024)
        await provider.close()

        assert seen["path"] == "/standings"
        assert seen["params"] == {"league": "39", "season": "2024"}
        assert snapshot.league_name == "Premier League"
        assert [(s.rank, s.team_id, s.goal_difference) for s in snapshot.standings] == [(1, 40, 18), (2, 42, -3)]
        assert snapshot.standings[0].goals_for == 20
        assert snapshot.last_update == "2024-11-10T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_selects_primary_group(self):
        def handler(request):
            apertura = [standings_entry(i, 100 + i, 5, group="Apertura", played=17) for i in range(1, 5)]
            clausura = [standings_entry(i, 100 + i, 2, group="Clausura", played=3) for i in range(1, 5)]
            return httpx.Response(
                200,
                json={"response": [{"league": {"id": 239, "season": 2024, "standings": [apertura, clausura]}}]},
            )

        snapshot = await make_provider(handler).get_standings(239, 2024)
        assert len(snapshot.standings) == 4
        assert {s.group for s in snapshot.standings} == {"Apertura"}

    @pytest.mark.asyncio
    async def test_empty_response(self):
        snapshot = await make_provider(lambda r: httpx.Response(200, json={"response": []})).get_standings(39, 1990)
        assert snapshot.standings == ()
        assert snapshot.competition_id == 39


class TestTopScorers:
    @pytest.mark.asyncio
    async def test_parses_scorers(self):
        def handler(request):
            assert request.url.path == "/players/topscorers"
            return httpx.Response(
                200,
                json={
                    "response": [
                        {
                            "player": {"id": 100, "name": "E. Haaland"},
                            "statistics": [
                                {
                                    "team": {"id": 50, "name": "Manchester City"},
                                    "goals": {"total": 20, "assists": 4},
                                    "games": {"appearences": 22},
                                }
                            ],
                        },
                        {"player": {"id": 200, "name": "M. Salah"}, "statistics": [{"goals": {"total": 20}}]},
                    ]
                },
            )

        snapshot = await make_provider(handler).get_top_scorers(39, 2024)
        assert [(s.player_id, s.goals) for s in snapshot.scorers] == [(100, 20), (200, 20)]
        assert snapshot.scorers[0].team_id == 50
        assert snapshot.scorers[0].appearances == 22
        assert snapshot.scorers[1].team_id is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_error_payload_raises_provider_error(self):
        handler = lambda r: httpx.Response(200, json={"errors": {"token": "Invalid API key"}, "response": []})
        with pytest.raises(ProviderError):
            await make_provider(handler).get_standings(39, 2024)

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={"response": []})

        await make_provider(handler).get_top_scorers(39, 2024)
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_rate_limited_on_every_attempt(self):
        with pytest.raises(ProviderError):
            await make_provider(lambda r: httpx.Response(429)).get_standings(39, 2024)

    @pytest.mark.asyncio
    async def test_server_error_reraised_after_retries(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            return httpx.Response(503)

        with pytest.raises(httpx.HTTPStatusError):
            await make_provider(handler).get_standings(39, 2024)
        assert len(attempts) == 3
