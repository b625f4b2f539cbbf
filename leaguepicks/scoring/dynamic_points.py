"""
Dynamic points: score a user's four season answers against live league data.

Stored answers hold internal team/player IDs while league data uses provider
IDs, so each answer is translated through an IdentifierMapper first. An
answer that cannot be translated is skipped (no credit, no penalty).

Returns None, not a zero-point result, when there is nothing to score yet:
the user has no season answers, or required league data is unavailable.
Callers treat None as "retry later".
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from leaguepicks.league.aggregator import LeagueDataAggregator
from leaguepicks.models import QuestionType, SeasonAnswer
from leaguepicks.scoring.normalization import normalize_numeric_answer, normalize_valid_answers_array
from leaguepicks.scoring.strategies import ComparisonContext, ComparisonResult, strategy_for_question

logger = logging.getLogger(__name__)

POINTS_PER_CORRECT_ANSWER = 3

# Persisted order of the question_N_correct columns
QUESTION_ORDER = (
    QuestionType.LEAGUE_WINNER,
    QuestionType.TOP_SCORER,
    QuestionType.BEST_GOAL_DIFFERENCE,
    QuestionType.LAST_PLACE,
)

PLAYER_QUESTIONS = frozenset({QuestionType.TOP_SCORER})


class IdentifierMapper(Protocol):
    """Translates internal IDs into provider IDs. Returns None when no mapping exists."""

    async def map_team_to_provider_id(self, team_id: int) -> Optional[int]: ...

    async def map_player_to_provider_id(self, player_id: int) -> Optional[int]: ...


@dataclass(frozen=True)
class DynamicPointsResult:
    """Per-user dynamic points. total_points is always 0, 3, 6, 9 or 12."""

    total_points: int
    league_winner_correct: bool = False
    top_scorer_correct: bool = False
    best_goal_difference_correct: bool = False
    last_place_correct: bool = False
    comparison_details: dict[str, ComparisonResult] = field(default_factory=dict)

    def flags(self) -> tuple[bool, bool, bool, bool]:
        """Booleans in question_1..question_4 order."""
        return (
            self.league_winner_correct,
            self.top_scorer_correct,
            self.best_goal_difference_correct,
            self.last_place_correct,
        )


class DynamicPointsCalculator:
    """Stateless per call; all league state comes through the aggregator."""

    def __init__(self, aggregator: LeagueDataAggregator, mapper: IdentifierMapper):
        self.aggregator = aggregator
        self.mapper = mapper

    async def _load_valid_answers(self, competition_api_id: int, season_year: int) -> Optional[dict]:
        """Candidate provider IDs per question, or None if required data is missing."""
        standings = await self.aggregator.get_standings(competition_api_id, season_year)
        if standings is None or not standings.standings:
            logger.warning(
                f"[DYNAMIC] No standings for competition={competition_api_id} season={season_year}"
            )
            return None

        last_place = await self.aggregator.get_last_place_team(competition_api_id, season_year)
        leader = await self.aggregator.get_league_leader(competition_api_id, season_year)
        if last_place is None or leader is None:
            logger.warning("[DYNAMIC] Cannot determine leader/last place from standings")
            return None

        # A failed scorer fetch defers; an empty scorer feed only skips that question
        scorers = await self.aggregator.get_top_scorers(competition_api_id, season_year)
        if scorers is None:
            logger.warning(
                f"[DYNAMIC] Top scorers unavailable for competition={competition_api_id} season={season_year}"
            )
            return None

        top_scorer_ids = await self.aggregator.get_top_scorer_ids(competition_api_id, season_year)
        best_gd_ids = await self.aggregator.get_best_goal_difference_team_ids(competition_api_id, season_year)

        logger.debug(
            f"[DYNAMIC] Live answers: leader={leader.team_id} ({leader.team_name}), "
            f"top_scorers={top_scorer_ids}, best_gd={best_gd_ids}, "
            f"last_place={last_place.team_id} ({last_place.team_name})"
        )

        return {
            QuestionType.LEAGUE_WINNER: normalize_valid_answers_array([leader.team_id]),
            QuestionType.TOP_SCORER: normalize_valid_answers_array(top_scorer_ids),
            QuestionType.BEST_GOAL_DIFFERENCE: normalize_valid_answers_array(best_gd_ids),
            QuestionType.LAST_PLACE: normalize_valid_answers_array([last_place.team_id]),
        }

    async def _provider_id_for(self, question: QuestionType, answer: SeasonAnswer) -> Optional[int]:
        if question in PLAYER_QUESTIONS:
            if answer.answered_player_id is None:
                return None
            provider_id = await self.mapper.map_player_to_provider_id(answer.answered_player_id)
        else:
            if answer.answered_team_id is None:
                return None
            provider_id = await self.mapper.map_team_to_provider_id(answer.answered_team_id)
        return normalize_numeric_answer(provider_id) if provider_id is not None else None

    async def calculate_dynamic_points(
        self,
        user_id: str,
        competition_api_id: int,
        season_year: int,
        user_season_answers: Sequence[SeasonAnswer],
    ) -> Optional[DynamicPointsResult]:
        """
        Score a user's season answers against the current league state.

        Args:
            user_id: User being scored (logging only).
            competition_api_id: Provider league ID.
            season_year: Provider season year.
            user_season_answers: The user's stored answers for the season.

        Returns:
            DynamicPointsResult, or None when the user has no answers or
            required league data could not be fetched.
        """
        valid_answers = await self._load_valid_answers(competition_api_id, season_year)
        if valid_answers is None:
            logger.warning(f"[DYNAMIC] Missing live league data, cannot score user {user_id}")
            return None

        if not user_season_answers:
            logger.warning(f"[DYNAMIC] User {user_id} has no season answers")
            return None

        answers_by_question: dict[QuestionType, SeasonAnswer] = {}
        for answer in user_season_answers:
            try:
                question = QuestionType(answer.question_type)
            except ValueError:
                logger.warning(f"[DYNAMIC] Unknown question type {answer.question_type!r} for user {user_id}")
                continue
            answers_by_question.setdefault(question, answer)

        correct: dict[QuestionType, bool] = {q: False for q in QUESTION_ORDER}
        details: dict[str, ComparisonResult] = {}

        for question in QUESTION_ORDER:
            answer = answers_by_question.get(question)
            if answer is None:
                continue

            candidates = valid_answers[question]
            if not candidates:
                logger.info(f"[DYNAMIC] No valid answers yet for {question.value}, skipping for user {user_id}")
                continue

            provider_id = await self._provider_id_for(question, answer)
            if provider_id is None:
                logger.warning(
                    f"[DYNAMIC] Could not map answer for {question.value} to a provider ID "
                    f"(user={user_id}, team={answer.answered_team_id}, player={answer.answered_player_id})"
                )
                continue

            context = ComparisonContext(
                user_id=user_id,
                question_type=question.value,
                competition_api_id=competition_api_id,
                season_year=season_year,
            )
            result = strategy_for_question(question).compare(provider_id, candidates, context)
            correct[question] = result.is_match
            details[question.value] = result

        total = POINTS_PER_CORRECT_ANSWER * sum(correct.values())
        logger.info(f"[DYNAMIC] User {user_id}: {total} dynamic points ({sum(correct.values())}/4 correct)")

        return DynamicPointsResult(
            total_points=total,
            league_winner_correct=correct[QuestionType.LEAGUE_WINNER],
            top_scorer_correct=correct[QuestionType.TOP_SCORER],
            best_goal_difference_correct=correct[QuestionType.BEST_GOAL_DIFFERENCE],
            last_place_correct=correct[QuestionType.LAST_PLACE],
            comparison_details=details,
        )
