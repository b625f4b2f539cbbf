"""
Comparison strategies for season questions.

Every question is compared against a *set* of valid answers. League winner
and last place pass a one-element set; top scorer and best goal difference
pass the full tie set from the aggregator, so every user who picked any
tied entity gets credit.

Strategies share one matching primitive (does_user_prediction_match) and
differ only in their name and the thresholds at which a comparison is
logged at INFO instead of DEBUG.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from leaguepicks.models import QuestionType
from leaguepicks.scoring.normalization import does_user_prediction_match
from leaguepicks.telemetry.metrics import record_comparison

logger = logging.getLogger(__name__)

SEVERITY_ROUTINE = "routine"
SEVERITY_ELEVATED = "elevated"


@dataclass(frozen=True)
class ComparisonContext:
    """Who/what is being compared, for logs only."""

    user_id: str
    question_type: str
    competition_api_id: int
    season_year: int


@dataclass(frozen=True)
class ComparisonResult:
    """
    Outcome of one comparison.

    elapsed_ms, severity and tie_size are diagnostics and are excluded from
    equality so that identical inputs produce equal results.
    """

    is_match: bool
    matched_answer: Optional[int]
    all_valid_answers: tuple[int, ...]
    user_prediction: int
    strategy: str
    elapsed_ms: float = field(default=0.0, compare=False)
    severity: str = field(default=SEVERITY_ROUTINE, compare=False)
    tie_size: int = field(default=0, compare=False)

    @property
    def total_valid_answers(self) -> int:
        return len(self.all_valid_answers)

    @property
    def had_tie(self) -> bool:
        return len(self.all_valid_answers) > 1


@dataclass(frozen=True)
class ComparisonConfig:
    """
    Telemetry thresholds for one strategy.

    A comparison is elevated when the candidate set is larger than
    max_candidates or takes longer than max_elapsed_ms. When tie thresholds
    are set, a comparison over a tie (more than one candidate) is also
    elevated past max_tie_size or max_tie_elapsed_ms.
    """

    name: str
    max_candidates: int = 10
    max_elapsed_ms: float = 1.0
    max_tie_size: Optional[int] = None
    max_tie_elapsed_ms: Optional[float] = None
    tie_label: str = "entities"

    @property
    def tracks_ties(self) -> bool:
        return self.max_tie_size is not None


EXACT_MATCH = ComparisonConfig(name="ExactMatch")

TOP_SCORER = ComparisonConfig(
    name="TopScorerExactMatch",
    max_tie_size=5,
    max_tie_elapsed_ms=2.0,
    tie_label="players tied for highest goals",
)

GOAL_DIFFERENCE = ComparisonConfig(
    name="GoalDifferenceExactMatch",
    max_tie_size=8,
    max_tie_elapsed_ms=2.0,
    tie_label="teams tied for best goal difference",
)


class ComparisonStrategy:
    """Set-membership comparison with per-config telemetry."""

    def __init__(self, config: ComparisonConfig = EXACT_MATCH, clock: Callable[[], float] = time.perf_counter):
        self.config = config
        self._clock = clock

    @property
    def name(self) -> str:
        return self.config.name

    def _severity(self, candidates: int, elapsed_ms: float) -> str:
        cfg = self.config
        if candidates > cfg.max_candidates or elapsed_ms > cfg.max_elapsed_ms:
            return SEVERITY_ELEVATED
        if cfg.tracks_ties and candidates > 1:
            if candidates > cfg.max_tie_size or (
                cfg.max_tie_elapsed_ms is not None and elapsed_ms > cfg.max_tie_elapsed_ms
            ):
                return SEVERITY_ELEVATED
        return SEVERITY_ROUTINE

    def compare(
        self,
        user_prediction: int,
        valid_answers: "list[int] | tuple[int, ...]",
        context: ComparisonContext,
    ) -> ComparisonResult:
        """
        Decide whether user_prediction is one of valid_answers.

        Args:
            user_prediction: Provider ID the user picked (already normalized).
            valid_answers: Provider IDs currently correct (already normalized).
            context: User/question info for logging.
        """
        answers = tuple(valid_answers)
        start = self._clock()
        is_match = does_user_prediction_match(user_prediction, list(answers))
        elapsed_ms = (self._clock() - start) * 1000

        severity = self._severity(len(answers), elapsed_ms)
        tie_size = len(answers) if self.config.tracks_ties and len(answers) > 1 else 0

        log = logger.info if severity == SEVERITY_ELEVATED else logger.debug
        if is_match:
            detail = f"user {context.user_id} predicted {user_prediction}, one of the valid answers"
        else:
            detail = f"user {context.user_id} predicted {user_prediction}, valid answers are {list(answers)}"
        log(
            f"[COMPARE] {context.question_type} ({self.name}): "
            f"{'MATCH' if is_match else 'NO MATCH'} - {detail} ({elapsed_ms:.3f}ms)"
        )
        if tie_size:
            log(f"[COMPARE] {self.name} tie detected: {tie_size} {self.config.tie_label}")

        record_comparison(self.name, is_match, len(answers))

        return ComparisonResult(
            is_match=is_match,
            matched_answer=user_prediction if is_match else None,
            all_valid_answers=answers,
            user_prediction=user_prediction,
            strategy=self.name,
            elapsed_ms=elapsed_ms,
            severity=severity,
            tie_size=tie_size,
        )


_QUESTION_CONFIGS = {
    QuestionType.LEAGUE_WINNER: EXACT_MATCH,
    QuestionType.TOP_SCORER: TOP_SCORER,
    QuestionType.BEST_GOAL_DIFFERENCE: GOAL_DIFFERENCE,
    QuestionType.LAST_PLACE: EXACT_MATCH,
}


def strategy_for_question(
    question_type: "QuestionType | str",
    clock: Callable[[], float] = time.perf_counter,
) -> ComparisonStrategy:
    """Return the strategy used to score a question type."""
    return ComparisonStrategy(_QUESTION_CONFIGS[QuestionType(question_type)], clock=clock)
