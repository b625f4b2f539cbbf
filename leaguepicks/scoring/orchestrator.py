"""
Round scoring pipeline.

Order within one pass:
1. Readiness: every fixture linked to the round is finished with a
   derivable outcome, otherwise the pass is deferred with zero writes.
2. Lock: compare-and-set closed -> scoring (with a lease).
3. Match points: 1 point per correct 1X2 outcome for every unscored bet,
   stored together with the round's move to 'scored' in one transaction.
4. Dynamic points for every user with season answers, upserted in a second
   transaction that also clears the round's dynamic_points_pending flag.
   A failure here leaves match points in place with the flag still set and
   is reported as a partial failure; rescore_dynamic_points() resumes at
   this phase.
5. Non-participant fallback rule (non-fatal).

score_round() never raises. Every outcome is a RoundScoringResult.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.config import get_settings
from leaguepicks.models import BettingRound, RoundStatus, utc_now
from leaguepicks.scoring.dynamic_points import DynamicPointsCalculator
from leaguepicks.scoring.match_points import derive_outcome, points_for_bet
from leaguepicks.scoring.non_participants import FallbackResult, apply_non_participant_rule
from leaguepicks.scoring.repository import ScoringError, ScoringRepository
from leaguepicks.telemetry.metrics import record_fallback_awarded, record_round_scoring
from leaguepicks.telemetry.sentry import capture_exception as sentry_capture_exception

logger = logging.getLogger(__name__)


class DynamicPointsUnavailable(ScoringError):
    """League data needed for dynamic points could not be fetched; retry later."""


class RoundScoringOutcome(str, Enum):
    COMPLETED = "completed"
    DEFERRED = "deferred"
    ALREADY_SCORED = "already_scored"
    IN_PROGRESS = "in_progress"
    VACUOUS = "vacuous"
    FAILED = "failed"
    PARTIAL_FAILURE = "partial_failure"


SUCCESS_OUTCOMES = frozenset(
    {
        RoundScoringOutcome.COMPLETED,
        RoundScoringOutcome.DEFERRED,
        RoundScoringOutcome.ALREADY_SCORED,
        RoundScoringOutcome.IN_PROGRESS,
        RoundScoringOutcome.VACUOUS,
    }
)


@dataclass
class MatchPointsResult:
    """Phase 1: match points and the round's move to 'scored' (one transaction)."""

    fixtures_count: int = 0
    bets_processed: int = 0
    bets_updated: int = 0
    bets_already_scored: int = 0


@dataclass
class DynamicPointsPhaseResult:
    """Phase 2: dynamic points upsert (second transaction)."""

    success: bool
    users_processed: int = 0
    users_updated: int = 0
    error: Optional[str] = None


@dataclass
class RoundScoringResult:
    round_id: int
    outcome: RoundScoringOutcome
    message: str = ""
    match_points: Optional[MatchPointsResult] = None
    dynamic_points: Optional[DynamicPointsPhaseResult] = None
    fallback: Optional[FallbackResult] = None
    error: Optional[str] = None
    duration_ms: float = field(default=0.0, compare=False)

    @property
    def success(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES

    @property
    def deferred(self) -> bool:
        return self.outcome == RoundScoringOutcome.DEFERRED


class RoundScoringOrchestrator:
    """Scores betting rounds end to end."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        calculator: DynamicPointsCalculator,
        lease_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.calculator = calculator
        self.lease_seconds = (
            get_settings().SCORING_LOCK_LEASE_SECONDS if lease_seconds is None else lease_seconds
        )

    def _lease_is_live(self, betting_round: BettingRound) -> bool:
        if betting_round.scoring_started_at is None:
            return False
        return utc_now() - betting_round.scoring_started_at < timedelta(seconds=self.lease_seconds)

    async def score_round(self, round_id: int) -> RoundScoringResult:
        """Run the full pipeline for one round. Never raises."""
        start = time.time()
        try:
            result = await self._score_round(round_id)
        except Exception as e:
            logger.error(f"[SCORING] Round {round_id} failed: {e}", exc_info=True)
            sentry_capture_exception(e, job_id="round_scoring", round_id=round_id)
            result = RoundScoringResult(
                round_id=round_id,
                outcome=RoundScoringOutcome.FAILED,
                message="Scoring failed before match points were stored; safe to retry",
                error=str(e),
            )
        return self._finish(result, start)

    async def rescore_dynamic_points(self, round_id: int) -> RoundScoringResult:
        """Re-run dynamic points and the fallback rule for an already scored round. Never raises."""
        start = time.time()
        try:
            async with self.session_factory() as session:
                repo = ScoringRepository(session)
                betting_round = await repo.get_round(round_id)
                if betting_round.status != RoundStatus.SCORED.value:
                    result = RoundScoringResult(
                        round_id=round_id,
                        outcome=RoundScoringOutcome.FAILED,
                        message=f"Round is '{betting_round.status}', match points must be scored first",
                        error="round_not_scored",
                    )
                else:
                    result = await self._run_post_match_phases(
                        repo, round_id, betting_round.season_id, match_points=None
                    )
        except Exception as e:
            logger.error(f"[SCORING] Dynamic points rescore for round {round_id} failed: {e}", exc_info=True)
            sentry_capture_exception(e, job_id="dynamic_points_rescore", round_id=round_id)
            result = RoundScoringResult(
                round_id=round_id,
                outcome=RoundScoringOutcome.FAILED,
                message="Dynamic points rescore failed",
                error=str(e),
            )
        return self._finish(result, start)

    def _finish(self, result: RoundScoringResult, start: float) -> RoundScoringResult:
        result.duration_ms = (time.time() - start) * 1000
        mp, dp = result.match_points, result.dynamic_points
        record_round_scoring(
            result.outcome.value,
            result.duration_ms,
            bets_updated=mp.bets_updated if mp else 0,
            dynamic_users=dp.users_updated if dp and dp.success else 0,
        )
        if result.fallback and result.fallback.applied:
            record_fallback_awarded("round_scoring", result.fallback.users_awarded)

        log = logger.info if result.success else logger.error
        log(
            f"[SCORING] Round {result.round_id}: {result.outcome.value} "
            f"({result.duration_ms:.0f}ms) {result.message}"
        )
        return result

    async def _score_round(self, round_id: int) -> RoundScoringResult:
        async with self.session_factory() as session:
            repo = ScoringRepository(session)
            betting_round = await repo.get_round(round_id)
            season_id = betting_round.season_id

            if betting_round.status == RoundStatus.SCORED.value:
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.ALREADY_SCORED,
                    message="Round already scored",
                )
            if betting_round.status == RoundStatus.OPEN.value:
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.DEFERRED,
                    message="Round is still open",
                )
            if betting_round.status == RoundStatus.SCORING.value and self._lease_is_live(betting_round):
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.IN_PROGRESS,
                    message="Another scoring run holds the round",
                )

            fixture_ids = await repo.get_round_fixture_ids(round_id)
            if not fixture_ids:
                return await self._finish_vacuously(repo, round_id, "No fixtures linked to round")

            fixtures = await repo.get_fixtures(fixture_ids)
            outcomes: dict[int, str] = {}
            pending = []
            for fixture in fixtures:
                outcome = derive_outcome(fixture)
                if outcome is None:
                    pending.append(f"{fixture.id}:{fixture.status_short}")
                else:
                    outcomes[fixture.id] = outcome
            missing = set(fixture_ids) - {f.id for f in fixtures}
            if pending or missing:
                if missing:
                    pending.extend(f"{fixture_id}:missing" for fixture_id in sorted(missing))
                logger.info(f"[SCORING] Round {round_id} deferred, fixtures not final: {pending}")
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.DEFERRED,
                    message=f"{len(pending)} of {len(fixture_ids)} fixture(s) not finished",
                )

            if not await repo.try_acquire_scoring_lock(round_id, self.lease_seconds):
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.IN_PROGRESS,
                    message="Another scoring run acquired the round",
                )

            try:
                match_points = await self._apply_match_points(repo, round_id, outcomes)
            except Exception:
                await self._release_lock_quietly(repo, round_id)
                raise

            if match_points is None:
                return RoundScoringResult(
                    round_id=round_id,
                    outcome=RoundScoringOutcome.VACUOUS,
                    message="No bets placed in round",
                    match_points=MatchPointsResult(fixtures_count=len(fixture_ids)),
                )

            match_points.fixtures_count = len(fixture_ids)
            return await self._run_post_match_phases(repo, round_id, season_id, match_points)

    async def _finish_vacuously(self, repo: ScoringRepository, round_id: int, reason: str) -> RoundScoringResult:
        if not await repo.try_acquire_scoring_lock(round_id, self.lease_seconds):
            return RoundScoringResult(
                round_id=round_id,
                outcome=RoundScoringOutcome.IN_PROGRESS,
                message="Another scoring run acquired the round",
            )
        await repo.mark_round_scored(round_id)
        return RoundScoringResult(
            round_id=round_id,
            outcome=RoundScoringOutcome.VACUOUS,
            message=reason,
            match_points=MatchPointsResult(),
        )

    async def _release_lock_quietly(self, repo: ScoringRepository, round_id: int) -> None:
        try:
            await repo.release_scoring_lock(round_id)
        except Exception as e:
            # Lease expiry frees the round if this fails
            logger.error(f"[SCORING] Could not release lock on round {round_id}: {e}")

    async def _apply_match_points(
        self, repo: ScoringRepository, round_id: int, outcomes: dict[int, str]
    ) -> Optional[MatchPointsResult]:
        """Store points for unscored bets. None when the round has no bets (round still marked scored)."""
        bets = await repo.get_round_bets(round_id)
        if not bets:
            await repo.mark_round_scored(round_id)
            return None

        updates: list[tuple[int, int]] = []
        already_scored = 0
        for bet in bets:
            if bet.points_awarded is not None:
                already_scored += 1
                continue
            outcome = outcomes.get(bet.fixture_id)
            if outcome is None:
                logger.warning(
                    f"[SCORING] Bet {bet.id} references fixture {bet.fixture_id} outside round {round_id}, skipped"
                )
                continue
            updates.append((bet.id, points_for_bet(bet, outcome)))

        updated = await repo.apply_match_points(round_id, updates)
        logger.info(
            f"[SCORING] Round {round_id}: match points stored for {updated} bet(s), "
            f"{already_scored} already scored"
        )
        return MatchPointsResult(
            bets_processed=len(bets),
            bets_updated=updated,
            bets_already_scored=already_scored,
        )

    async def _run_post_match_phases(
        self,
        repo: ScoringRepository,
        round_id: int,
        season_id: int,
        match_points: Optional[MatchPointsResult],
    ) -> RoundScoringResult:
        dynamic = await self._run_dynamic_points_phase(repo, round_id, season_id)
        if not dynamic.success:
            return RoundScoringResult(
                round_id=round_id,
                outcome=RoundScoringOutcome.PARTIAL_FAILURE,
                message="Match points stored, but dynamic points failed; retry dynamic points only",
                match_points=match_points,
                dynamic_points=dynamic,
                error=dynamic.error,
            )

        fallback = await self._run_fallback(repo, round_id)
        return RoundScoringResult(
            round_id=round_id,
            outcome=RoundScoringOutcome.COMPLETED,
            message="Match and dynamic points stored",
            match_points=match_points,
            dynamic_points=dynamic,
            fallback=fallback,
        )

    async def _run_dynamic_points_phase(
        self, repo: ScoringRepository, round_id: int, season_id: int
    ) -> DynamicPointsPhaseResult:
        processed = 0
        try:
            context = await repo.get_season_context(season_id)
            if context is None:
                raise ScoringError(f"Season {season_id} of round {round_id} not found")
            season, competition = context

            answers_by_user = await repo.get_season_answers_by_user(season.id)
            if not answers_by_user:
                logger.info(f"[DYNAMIC] Round {round_id}: no users with season answers")

            rows = []
            for user_id, answers in answers_by_user.items():
                processed += 1
                result = await self.calculator.calculate_dynamic_points(
                    user_id, competition.api_league_id, season.api_season_year, answers
                )
                if result is None:
                    raise DynamicPointsUnavailable(
                        f"League data unavailable for competition {competition.api_league_id} "
                        f"season {season.api_season_year}"
                    )
                rows.append((user_id, result.total_points, result.flags()))

            updated = await repo.apply_dynamic_points(round_id, rows)
            logger.info(f"[DYNAMIC] Round {round_id}: dynamic points stored for {updated} user(s)")
            return DynamicPointsPhaseResult(success=True, users_processed=processed, users_updated=updated)
        except Exception as e:
            logger.error(f"[DYNAMIC] Round {round_id}: dynamic points phase failed: {e}", exc_info=True)
            sentry_capture_exception(e, job_id="dynamic_points", round_id=round_id)
            return DynamicPointsPhaseResult(success=False, users_processed=processed, error=str(e))

    async def _run_fallback(self, repo: ScoringRepository, round_id: int) -> Optional[FallbackResult]:
        try:
            return await apply_non_participant_rule(repo, round_id)
        except Exception as e:
            logger.error(f"[FALLBACK] Round {round_id}: fallback rule failed (non-fatal): {e}", exc_info=True)
            return FallbackResult(applied=False, reason=f"error: {e}")
