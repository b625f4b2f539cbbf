"""Tests for retroactive fallback points."""

import pytest

from leaguepicks.models import RoundStatus
from leaguepicks.scoring.retroactive import RetroactivePointsService


async def scored_round(db, name, totals):
    """A scored round with one fixture per point slot; totals maps user -> points."""
    fixtures = max(totals.values(), default=0) or 1
    round_id, fixture_ids = await db.add_round([(1, 0, "FT")] * fixtures, status=RoundStatus.SCORED, name=name)
    for user_id, total in totals.items():
        for index, fixture_id in enumerate(fixture_ids):
            await db.add_bet(user_id, round_id, fixture_id, "1", points_awarded=1 if index < total else 0)
    return round_id


@pytest.mark.asyncio
async def test_awards_each_missed_round(db, session_factory):
    await db.add_users("a", "b", "late")
    first = await scored_round(db, "Round 1", {"a": 2, "b": 3})
    second = await scored_round(db, "Round 2", {"a": 1, "late": 1})
    third = await scored_round(db, "Round 3", {"a": 4, "b": 1})

    result = await RetroactivePointsService(session_factory).apply_for_user("late", db.season_id)

    assert result.errors == []
    assert [(r.round_id, r.points_awarded) for r in result.rounds] == [(first, 2), (third, 1)]
    assert result.rounds_processed == 2
    assert result.total_points_awarded == 3
    assert await db.user_total(first, "late") == 2
    assert await db.user_total(second, "late") == 1
    assert await db.user_total(third, "late") == 1


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(db, session_factory):
    await db.add_users("a", "late")
    round_id = await scored_round(db, "Round 1", {"a": 2})

    preview = await RetroactivePointsService(session_factory).preview_for_user("late", db.season_id)

    assert preview.dry_run is True
    assert preview.total_points_awarded == 2
    assert preview.rounds[0].rows_inserted == 0
    assert all(b.user_id == "a" for b in await db.bets(round_id))


@pytest.mark.asyncio
async def test_second_run_adds_nothing(db, session_factory):
    await db.add_users("a", "late")
    await scored_round(db, "Round 1", {"a": 2})
    service = RetroactivePointsService(session_factory)
    await service.apply_for_user("late", db.season_id)

    again = await service.apply_for_user("late", db.season_id)

    assert again.rounds_processed == 0
    assert again.total_points_awarded == 0


@pytest.mark.asyncio
async def test_from_round_id_and_unscored_rounds(db, session_factory):
    await db.add_users("a", "late")
    early = await scored_round(db, "Round 1", {"a": 3})
    later = await scored_round(db, "Round 2", {"a": 2})
    await db.add_round([(1, 0, "FT")], status=RoundStatus.CLOSED, name="Round 3")

    result = await RetroactivePointsService(session_factory).apply_for_user(
        "late", db.season_id, from_round_id=later
    )

    assert [r.round_id for r in result.rounds] == [later]
    assert await db.user_total(early, "late") == 0


@pytest.mark.asyncio
async def test_unknown_user(db, session_factory):
    result = await RetroactivePointsService(session_factory).apply_for_user("ghost", db.season_id)
    assert result.errors == ["User ghost not found"]
    assert result.rounds == []


@pytest.mark.asyncio
async def test_bulk(db, session_factory):
    await db.add_users("a", "late1", "late2")
    await scored_round(db, "Round 1", {"a": 2})

    bulk = await RetroactivePointsService(session_factory).apply_for_users(
        ["late1", "late2", "ghost"], db.season_id, dry_run=True
    )

    assert bulk.users_processed == 3
    assert bulk.rounds_processed == 2
    assert bulk.total_points_awarded == 4
    assert bulk.errors == ["ghost: User ghost not found"]
