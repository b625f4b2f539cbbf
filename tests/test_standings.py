"""Tests for season standings (game + dynamic points, shared ranks)."""

from datetime import datetime

import pytest

from leaguepicks.scoring.standings import StandingEntry, StandingsService, rank_standings


class TestRankStandings:
    def test_equal_totals_and_game_points_share_a_rank(self):
        ranked = rank_standings(
            [
                StandingEntry("c", game_points=4, dynamic_points=0),
                StandingEntry("b", game_points=2, dynamic_points=3),
                StandingEntry("a", game_points=2, dynamic_points=3),
                StandingEntry("d", game_points=1, dynamic_points=0),
            ]
        )

        assert [(e.user_id, e.rank) for e in ranked] == [("a", 1), ("b", 1), ("c", 3), ("d", 4)]

    def test_game_points_break_equal_totals(self):
        ranked = rank_standings(
            [
                StandingEntry("x", game_points=0, dynamic_points=6),
                StandingEntry("y", game_points=3, dynamic_points=3),
            ]
        )

        assert [(e.user_id, e.rank, e.total_points) for e in ranked] == [("y", 1, 6), ("x", 2, 6)]

    def test_empty(self):
        assert rank_standings([]) == []


class TestStandingsService:
    @pytest.mark.asyncio
    async def test_combines_season_game_points_with_latest_dynamic_points(self, db, session_factory):
        await db.add_users("u1", "u2", "u3", "u4")
        first_id, (f1,) = await db.add_round([(1, 0, "FT")], name="Round 1")
        second_id, (f2, f3) = await db.add_round([(1, 0, "FT"), (0, 0, "FT")], name="Round 2")
        await db.mark_scored(first_id, datetime(2024, 9, 1))
        await db.mark_scored(second_id, datetime(2024, 9, 8))

        for user_id in ("u1", "u2"):
            await db.add_bet(user_id, first_id, f1, "1", points_awarded=1)
            await db.add_bet(user_id, second_id, f2, "1", points_awarded=1)
            await db.add_bet(user_id, second_id, f3, "X", points_awarded=1)
        await db.add_bet("u3", second_id, f2, "2")

        # Only the latest scored round counts; its rows already cover the season so far
        await db.add_dynamic_points(first_id, "u3", 12)
        for user_id, points in (("u1", 3), ("u2", 3), ("u3", 6), ("u4", 3)):
            await db.add_dynamic_points(second_id, user_id, points)

        standings = await StandingsService(session_factory).calculate_standings(db.season_id)

        assert [(e.user_id, e.game_points, e.dynamic_points, e.rank) for e in standings] == [
            ("u1", 3, 3, 1),
            ("u2", 3, 3, 1),
            ("u3", 0, 6, 3),
            ("u4", 0, 3, 4),
        ]
        assert standings[0].full_name == "User u1"

    @pytest.mark.asyncio
    async def test_fallback_rows_count_as_game_points(self, db, session_factory):
        await db.add_users("u1", "late")
        round_id, (fixture_id,) = await db.add_round([(2, 0, "FT")])
        await db.add_bet("u1", round_id, fixture_id, "1", points_awarded=1)
        await db.add_bet("late", round_id, fixture_id, "1", points_awarded=1)

        standings = await StandingsService(session_factory).calculate_standings(db.season_id)

        assert [(e.user_id, e.total_points, e.rank) for e in standings] == [("late", 1, 1), ("u1", 1, 1)]

    @pytest.mark.asyncio
    async def test_season_without_scored_rounds(self, db, session_factory):
        await db.add_users("u1")
        round_id, (fixture_id,) = await db.add_round([(None, None, "NS")])
        await db.add_bet("u1", round_id, fixture_id, "1")

        standings = await StandingsService(session_factory).calculate_standings(db.season_id)

        assert [(e.user_id, e.total_points, e.rank) for e in standings] == [("u1", 0, 1)]

    @pytest.mark.asyncio
    async def test_unknown_season_is_empty(self, db, session_factory):
        assert await StandingsService(session_factory).calculate_standings(9999) == []
