"""Database models using SQLModel."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    """Naive UTC timestamp (stored without tzinfo, same on SQLite and PostgreSQL)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Outcome(str, Enum):
    """1X2 outcome symbols, shared by predictions and fixture results."""

    HOME = "1"
    DRAW = "X"
    AWAY = "2"


class RoundStatus(str, Enum):
    """Betting round lifecycle. Transitions only move forward."""

    OPEN = "open"
    CLOSED = "closed"
    SCORING = "scoring"
    SCORED = "scored"


class QuestionType(str, Enum):
    """Season-long ("dynamic") questions, in persisted question order."""

    LEAGUE_WINNER = "league_winner"
    TOP_SCORER = "top_scorer"
    BEST_GOAL_DIFFERENCE = "best_goal_difference"
    LAST_PLACE = "last_place"


# API-Football short statuses that mark a fixture as final
FINISHED_FIXTURE_STATUSES = frozenset({"FT", "AET", "PEN"})


class Competition(SQLModel, table=True):
    """A league the prediction game follows."""

    __tablename__ = "competitions"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_league_id: int = Field(unique=True, index=True, description="API-Football league ID")
    name: str = Field(max_length=255)


class Season(SQLModel, table=True):
    """One season of a competition (e.g. Premier League 2024/25 -> api_season_year=2024)."""

    __tablename__ = "seasons"

    id: Optional[int] = Field(default=None, primary_key=True)
    competition_id: int = Field(foreign_key="competitions.id", index=True)
    api_season_year: int = Field(description="API-Football season year")
    name: str = Field(max_length=100)
    is_current: bool = Field(default=False)

    # Set once every fixture of the season is final, then once winners are recorded
    completed_at: Optional[datetime] = Field(default=None)
    winner_determined_at: Optional[datetime] = Field(default=None)


class Team(SQLModel, table=True):
    """Team with its provider identifier."""

    __tablename__ = "teams"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_team_id: int = Field(unique=True, index=True, description="API-Football team ID")
    name: str = Field(max_length=255)


class Player(SQLModel, table=True):
    """Player with its provider identifier."""

    __tablename__ = "players"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_player_id: int = Field(unique=True, index=True, description="API-Football player ID")
    name: str = Field(max_length=255)
    team_id: Optional[int] = Field(default=None, foreign_key="teams.id")


class Profile(SQLModel, table=True):
    """Registered user of the prediction league."""

    __tablename__ = "profiles"

    id: str = Field(primary_key=True, max_length=64, description="User ID (auth provider UUID)")
    email: Optional[str] = Field(default=None, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utc_now)


class Fixture(SQLModel, table=True):
    """A match. `result` is only meaningful once status_short is a finished status."""

    __tablename__ = "fixtures"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_fixture_id: int = Field(unique=True, index=True, description="API-Football fixture ID")
    season_id: Optional[int] = Field(default=None, foreign_key="seasons.id", index=True)
    home_team_id: int = Field(foreign_key="teams.id")
    away_team_id: int = Field(foreign_key="teams.id")
    kickoff: Optional[datetime] = Field(default=None)

    home_goals: Optional[int] = Field(default=None, description="NULL until played")
    away_goals: Optional[int] = Field(default=None, description="NULL until played")
    status_short: str = Field(max_length=10, default="NS", description="NS, 1H, HT, FT, AET, PEN...")
    result: Optional[str] = Field(default=None, max_length=1, description="'1', 'X', '2' once finished")


class BettingRound(SQLModel, table=True):
    """A group of fixtures users bet on together."""

    __tablename__ = "betting_rounds"

    id: Optional[int] = Field(default=None, primary_key=True)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    name: str = Field(max_length=100)
    status: str = Field(max_length=20, default=RoundStatus.OPEN.value, index=True)

    # Advisory lock: set when the round enters 'scoring'
    scoring_started_at: Optional[datetime] = Field(default=None)
    scored_at: Optional[datetime] = Field(default=None)
    # True between the match points commit and the dynamic points commit
    dynamic_points_pending: bool = Field(default=False, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class BettingRoundFixture(SQLModel, table=True):
    """Link between betting rounds and fixtures (many-to-many)."""

    __tablename__ = "betting_round_fixtures"
    __table_args__ = (
        UniqueConstraint("betting_round_id", "fixture_id", name="uq_round_fixture"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    betting_round_id: int = Field(foreign_key="betting_rounds.id", index=True)
    fixture_id: int = Field(foreign_key="fixtures.id", index=True)


class UserBet(SQLModel, table=True):
    """
    A user's 1X2 prediction for one fixture of a round.

    points_awarded stays NULL until scored and is never recomputed afterwards.
    is_fallback marks rows synthesized by the non-participant rule.
    """

    __tablename__ = "user_bets"
    __table_args__ = (
        UniqueConstraint("user_id", "betting_round_id", "fixture_id", name="uq_user_round_fixture"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="profiles.id", index=True, max_length=64)
    betting_round_id: int = Field(foreign_key="betting_rounds.id", index=True)
    fixture_id: int = Field(foreign_key="fixtures.id")
    prediction: str = Field(max_length=1, description="'1', 'X' or '2'")
    points_awarded: Optional[int] = Field(default=None)
    is_fallback: bool = Field(default=False)
    submitted_at: datetime = Field(default_factory=utc_now)


class SeasonAnswer(SQLModel, table=True):
    """
    A user's season-long prediction.

    Exactly one of answered_team_id / answered_player_id is set; both hold
    internal IDs (teams.id / players.id), not provider IDs.
    """

    __tablename__ = "user_season_answers"
    __table_args__ = (
        UniqueConstraint("user_id", "season_id", "question_type", name="uq_user_season_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="profiles.id", index=True, max_length=64)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    question_type: str = Field(max_length=30)
    answered_team_id: Optional[int] = Field(default=None, foreign_key="teams.id")
    answered_player_id: Optional[int] = Field(default=None, foreign_key="players.id")
    created_at: datetime = Field(default_factory=utc_now)


class UserRoundDynamicPoints(SQLModel, table=True):
    """Dynamic (season question) points per user per scored round."""

    __tablename__ = "user_round_dynamic_points"
    __table_args__ = (
        UniqueConstraint("betting_round_id", "user_id", name="uq_round_user_dynamic_points"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    betting_round_id: int = Field(foreign_key="betting_rounds.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", max_length=64)
    dynamic_points: int = Field(default=0)
    question_1_correct: bool = Field(default=False, description="league_winner")
    question_2_correct: bool = Field(default=False, description="top_scorer")
    question_3_correct: bool = Field(default=False, description="best_goal_difference")
    question_4_correct: bool = Field(default=False, description="last_place")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SeasonWinner(SQLModel, table=True):
    """Rank-1 users of a completed season (several rows on a tie)."""

    __tablename__ = "season_winners"
    __table_args__ = (
        UniqueConstraint("season_id", "user_id", name="uq_season_winner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    season_id: int = Field(foreign_key="seasons.id", index=True)
    competition_id: int = Field(foreign_key="competitions.id")
    user_id: str = Field(foreign_key="profiles.id", max_length=64)
    game_points: int = Field(default=0)
    dynamic_points: int = Field(default=0)
    total_points: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
