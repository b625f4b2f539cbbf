"""Shared fixtures: in-memory database, seeded league, fake league data provider."""

from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

import leaguepicks.models  # noqa: F401  (registers tables)
from leaguepicks.etl.base import (
    LeagueDataProvider,
    ScorerEntry,
    ScorerSnapshot,
    StandingsSnapshot,
    TeamStanding,
)
from leaguepicks.models import (
    BettingRound,
    BettingRoundFixture,
    Competition,
    Fixture,
    Player,
    Profile,
    RoundStatus,
    Season,
    SeasonAnswer,
    Team,
    UserBet,
    UserRoundDynamicPoints,
)

COMPETITION_API_ID = 39
SEASON_YEAR = 2024


def standing(rank: int, team_id: int, goal_difference, points: int = 0) -> TeamStanding:
    return TeamStanding(
        rank=rank,
        team_id=team_id,
        team_name=f"Team {team_id}",
        points=points,
        goal_difference=goal_difference,
    )


def scorer(player_id: int, goals, team_id: int = 1) -> ScorerEntry:
    return ScorerEntry(
        player_id=player_id,
        player_name=f"Player {player_id}",
        team_id=team_id,
        team_name=f"Team {team_id}",
        goals=goals,
    )


class FakeProvider(LeagueDataProvider):
    """In-memory provider. Set `error` to make every call raise it."""

    def __init__(self, standings=(), scorers=(), error: Optional[Exception] = None):
        self.standings = tuple(standings)
        self.scorers = tuple(scorers)
        self.error = error
        self.calls: list[tuple[str, int, int]] = []

    async def get_standings(self, league_id: int, season: int) -> StandingsSnapshot:
        self.calls.append(("standings", league_id, season))
        if self.error:
            raise self.error
        return StandingsSnapshot(competition_id=league_id, season_year=season, standings=self.standings)

    async def get_top_scorers(self, league_id: int, season: int) -> ScorerSnapshot:
        self.calls.append(("topscorers", league_id, season))
        if self.error:
            raise self.error
        return ScorerSnapshot(competition_id=league_id, season_year=season, scorers=self.scorers)

    async def close(self) -> None:
        pass


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


class LeagueDB:
    """Seeding and inspection helpers over the test database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.season_id: Optional[int] = None
        self.team_ids: dict[int, int] = {}  # api_team_id -> teams.id
        self.player_ids: dict[int, int] = {}  # api_player_id -> players.id

    async def seed_league(self, api_team_ids=(33, 34, 40, 42, 50), api_player_ids=(100, 200, 300)):
        async with self.session_factory() as session:
            competition = Competition(api_league_id=COMPETITION_API_ID, name="Premier League")
            session.add(competition)
            await session.flush()
            season = Season(
                competition_id=competition.id,
                api_season_year=SEASON_YEAR,
                name="2024/25",
                is_current=True,
            )
            teams = [Team(api_team_id=api_id, name=f"Team {api_id}") for api_id in api_team_ids]
            players = [Player(api_player_id=api_id, name=f"Player {api_id}") for api_id in api_player_ids]
            session.add(season)
            session.add_all(teams + players)
            await session.commit()
            self.season_id = season.id
            self.team_ids = {t.api_team_id: t.id for t in teams}
            self.player_ids = {p.api_player_id: p.id for p in players}
        return self

    async def add_users(self, *user_ids: str) -> None:
        async with self.session_factory() as session:
            session.add_all(
                [
                    Profile(id=user_id, email=f"{user_id}@example.com", full_name=f"User {user_id}")
                    for user_id in user_ids
                ]
            )
            await session.commit()

    async def add_round(
        self,
        fixtures=(),
        status: RoundStatus = RoundStatus.CLOSED,
        name: str = "Round 1",
    ) -> tuple[int, list[int]]:
        """
        Create a round. fixtures: iterable of (home_goals, away_goals, status_short).

        Returns (round_id, fixture_ids).
        """
        teams = list(self.team_ids.values())
        async with self.session_factory() as session:
            betting_round = BettingRound(season_id=self.season_id, name=name, status=status.value)
            session.add(betting_round)
            await session.flush()

            fixture_ids = []
            for index, (home_goals, away_goals, status_short) in enumerate(fixtures):
                fixture = Fixture(
                    api_fixture_id=betting_round.id * 1000 + index,
                    season_id=self.season_id,
                    home_team_id=teams[0],
                    away_team_id=teams[1],
                    home_goals=home_goals,
                    away_goals=away_goals,
                    status_short=status_short,
                )
                session.add(fixture)
                await session.flush()
                session.add(BettingRoundFixture(betting_round_id=betting_round.id, fixture_id=fixture.id))
                fixture_ids.append(fixture.id)

            await session.commit()
            return betting_round.id, fixture_ids

    async def add_bet(
        self,
        user_id: str,
        round_id: int,
        fixture_id: int,
        prediction: str,
        points_awarded: Optional[int] = None,
    ) -> int:
        async with self.session_factory() as session:
            bet = UserBet(
                user_id=user_id,
                betting_round_id=round_id,
                fixture_id=fixture_id,
                prediction=prediction,
                points_awarded=points_awarded,
            )
            session.add(bet)
            await session.commit()
            return bet.id

    async def add_answer(
        self,
        user_id: str,
        question_type: str,
        api_team_id: Optional[int] = None,
        api_player_id: Optional[int] = None,
    ) -> None:
        async with self.session_factory() as session:
            session.add(
                SeasonAnswer(
                    user_id=user_id,
                    season_id=self.season_id,
                    question_type=question_type,
                    answered_team_id=self.team_ids.get(api_team_id) if api_team_id else None,
                    answered_player_id=self.player_ids.get(api_player_id) if api_player_id else None,
                )
            )
            await session.commit()

    async def mark_scored(self, round_id: int, scored_at: datetime) -> None:
        async with self.session_factory() as session:
            betting_round = await session.get(BettingRound, round_id)
            betting_round.status = RoundStatus.SCORED.value
            betting_round.scored_at = scored_at
            await session.commit()

    async def add_dynamic_points(self, round_id: int, user_id: str, points: int) -> None:
        async with self.session_factory() as session:
            session.add(UserRoundDynamicPoints(betting_round_id=round_id, user_id=user_id, dynamic_points=points))
            await session.commit()

    async def get_season(self, season_id: Optional[int] = None) -> Season:
        async with self.session_factory() as session:
            return await session.get(Season, season_id or self.season_id)

    async def get_round(self, round_id: int) -> BettingRound:
        async with self.session_factory() as session:
            return await session.get(BettingRound, round_id)

    async def bets(self, round_id: int) -> list[UserBet]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserBet).where(UserBet.betting_round_id == round_id).order_by(UserBet.id)
            )
            return list(result.scalars().all())

    async def user_total(self, round_id: int, user_id: str) -> int:
        return sum(b.points_awarded or 0 for b in await self.bets(round_id) if b.user_id == user_id)

    async def dynamic_points(self, round_id: int) -> dict[str, UserRoundDynamicPoints]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserRoundDynamicPoints).where(UserRoundDynamicPoints.betting_round_id == round_id)
            )
            return {row.user_id: row for row in result.scalars().all()}


@pytest.fixture
async def db(session_factory):
    return await LeagueDB(session_factory).seed_league()
