"""
Scheduled round scoring.

Every ROUND_SCORING_INTERVAL_MINUTES the round job:
1. closes open rounds whose fixtures are all finished (detector)
2. scores every 'closed' round, plus 'scoring' rounds whose lease expired
3. retries dynamic points for scored rounds still flagged as pending

Every SEASON_COMPLETION_INTERVAL_MINUTES the season job marks finished
seasons complete and records their winners.

Run as a process:
    python -m leaguepicks.scheduler            # scheduler loop
    python -m leaguepicks.scheduler --once     # one pass, then exit
    python -m leaguepicks.scheduler --round 12 # score one round
    python -m leaguepicks.scheduler --seasons  # one season completion pass
"""

import argparse
import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from leaguepicks.config import get_settings
from leaguepicks.database import async_session_maker, close_db, init_db
from leaguepicks.etl.api_football import APIFootballProvider
from leaguepicks.league.aggregator import LeagueDataAggregator
from leaguepicks.models import RoundStatus
from leaguepicks.scoring.detector import RoundCompletionDetector
from leaguepicks.scoring.dynamic_points import DynamicPointsCalculator
from leaguepicks.scoring.orchestrator import RoundScoringOrchestrator, RoundScoringResult
from leaguepicks.scoring.repository import ScoringRepository, SessionIdentifierMapper
from leaguepicks.scoring.season_completion import (
    SeasonCompletionDetector,
    SeasonCompletionResult,
    WinnerDeterminationService,
)
from leaguepicks.telemetry.metrics import start_metrics_server
from leaguepicks.telemetry.sentry import capture_exception as sentry_capture_exception
from leaguepicks.telemetry.sentry import capture_message as sentry_capture_message
from leaguepicks.telemetry.sentry import init_sentry

logger = logging.getLogger(__name__)

_scheduler_started = False
scheduler = AsyncIOScheduler()

# Process-wide: the aggregator's cache must outlive a single job run
_provider: Optional[APIFootballProvider] = None
_orchestrator: Optional[RoundScoringOrchestrator] = None


def get_orchestrator(session_factory=async_session_maker) -> RoundScoringOrchestrator:
    """Build (once) the orchestrator wired to API-Football and the database."""
    global _provider, _orchestrator
    if _orchestrator is None:
        _provider = APIFootballProvider()
        calculator = DynamicPointsCalculator(
            LeagueDataAggregator(_provider),
            SessionIdentifierMapper(session_factory),
        )
        _orchestrator = RoundScoringOrchestrator(session_factory, calculator)
    return _orchestrator


async def process_ready_rounds(
    orchestrator: RoundScoringOrchestrator,
    detector: RoundCompletionDetector,
    session_factory=async_session_maker,
) -> list[RoundScoringResult]:
    """One scheduled pass: detect completed rounds, score every round ready for it, retry pending dynamic points."""
    lease_seconds = get_settings().SCORING_LOCK_LEASE_SECONDS

    detection = await detector.detect_and_close_completed_rounds()
    if detection.errors:
        logger.warning(f"[SCORING] Detector reported {len(detection.errors)} error(s)")

    async with session_factory() as session:
        repo = ScoringRepository(session)
        closed = await repo.list_rounds_by_status(RoundStatus.CLOSED)
        stale = await repo.list_stale_scoring_rounds(lease_seconds)
        pending = await repo.list_rounds_pending_dynamic_points()
        round_ids = [r.id for r in closed] + [r.id for r in stale]
        pending_ids = [r.id for r in pending]

    if stale:
        logger.warning(f"[SCORING] Re-scoring {len(stale)} round(s) with expired lease: {[r.id for r in stale]}")
    if pending_ids:
        logger.info(f"[SCORING] Retrying dynamic points for {len(pending_ids)} scored round(s): {pending_ids}")

    results = []
    for round_id in round_ids:
        results.append(await orchestrator.score_round(round_id))
    for round_id in pending_ids:
        results.append(await orchestrator.rescore_dynamic_points(round_id))

    completed = sum(1 for r in results if r.success and not r.deferred)
    logger.info(f"[SCORING] Pass finished: {len(results)} round(s) attempted, {completed} without deferral/failure")
    return results


async def round_scoring_job():
    """Scheduler entry point. Errors are logged, never raised into APScheduler."""
    try:
        results = await process_ready_rounds(get_orchestrator(), RoundCompletionDetector(async_session_maker))
        failed = [r.round_id for r in results if not r.success]
        if failed:
            sentry_capture_message(
                f"Round scoring pass finished with failures: {failed}",
                job_id="round_scoring",
                outcomes={r.round_id: r.outcome.value for r in results if not r.success},
            )
    except Exception as e:
        logger.error(f"[SCORING] Scheduled pass failed: {e}", exc_info=True)
        sentry_capture_exception(e, job_id="round_scoring")


async def process_completed_seasons(session_factory=async_session_maker) -> tuple[SeasonCompletionResult, list]:
    """Mark finished seasons complete, then record winners for every completed season without them."""
    completion = await SeasonCompletionDetector(session_factory).detect_and_mark_completed_seasons()
    winners = await WinnerDeterminationService(session_factory).determine_winners_for_completed_seasons()
    return completion, winners


async def season_completion_job():
    try:
        completion, winners = await process_completed_seasons()
        failed = [w.season_id for w in winners if not w.success]
        if completion.errors or failed:
            sentry_capture_message(
                "Season completion pass finished with errors",
                job_id="season_completion",
                completion_errors=completion.errors,
                winner_failures=failed,
            )
    except Exception as e:
        logger.error(f"[SEASON] Scheduled pass failed: {e}", exc_info=True)
        sentry_capture_exception(e, job_id="season_completion")


def start_scheduler():
    """Start the background scheduler (idempotent)."""
    global _scheduler_started
    settings = get_settings()

    if _scheduler_started:
        logger.warning("Scheduler already started, skipping duplicate initialization")
        return

    if settings.ROUND_SCORING_ENABLED:
        scheduler.add_job(
            round_scoring_job,
            trigger=IntervalTrigger(minutes=settings.ROUND_SCORING_INTERVAL_MINUTES),
            id="round_scoring",
            name=f"Round Scoring (every {settings.ROUND_SCORING_INTERVAL_MINUTES}min)",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    else:
        logger.info("Round scoring job disabled (ROUND_SCORING_ENABLED=false)")

    if settings.SEASON_COMPLETION_ENABLED:
        scheduler.add_job(
            season_completion_job,
            trigger=IntervalTrigger(minutes=settings.SEASON_COMPLETION_INTERVAL_MINUTES),
            id="season_completion",
            name=f"Season Completion (every {settings.SEASON_COMPLETION_INTERVAL_MINUTES}min)",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    else:
        logger.info("Season completion job disabled (SEASON_COMPLETION_ENABLED=false)")

    if not scheduler.get_jobs():
        logger.info("No jobs enabled, scheduler not started")
        return

    scheduler.start()
    _scheduler_started = True
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} job(s)")


def stop_scheduler():
    """Stop the background scheduler."""
    global _scheduler_started
    if scheduler.running:
        scheduler.shutdown()
        _scheduler_started = False
        logger.info("Scheduler stopped")


async def _run(args) -> None:
    await init_db()
    try:
        orchestrator = get_orchestrator()
        if args.round is not None:
            if args.rescore_dynamic:
                await orchestrator.rescore_dynamic_points(args.round)
            else:
                await orchestrator.score_round(args.round)
        elif args.seasons:
            await process_completed_seasons()
        elif args.once:
            await process_ready_rounds(orchestrator, RoundCompletionDetector(async_session_maker))
        else:
            start_metrics_server(get_settings().METRICS_PORT)
            start_scheduler()
            await round_scoring_job()
            await asyncio.Event().wait()
    finally:
        stop_scheduler()
        if _provider is not None:
            await _provider.close()
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Score betting rounds")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    parser.add_argument("--round", type=int, help="Score a single round")
    parser.add_argument(
        "--rescore-dynamic",
        action="store_true",
        help="With --round: re-run dynamic points for an already scored round",
    )
    parser.add_argument(
        "--seasons",
        action="store_true",
        help="Run one season completion + winner determination pass and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_sentry()

    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
