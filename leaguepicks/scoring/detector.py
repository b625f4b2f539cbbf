"""Round completion detector: closes open rounds once every fixture is finished."""

import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from leaguepicks.models import RoundStatus
from leaguepicks.scoring.match_points import is_finished
from leaguepicks.scoring.repository import ScoringRepository

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    checked: int = 0
    closed_round_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class RoundCompletionDetector:
    """Moves 'open' rounds to 'closed' so the scoring job picks them up."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def is_round_complete(self, repo: ScoringRepository, round_id: int) -> bool:
        """
        True iff the round has fixtures and all of them are finished.

        A round without fixtures, or whose links point at missing fixtures,
        is incomplete.
        """
        fixture_ids = await repo.get_round_fixture_ids(round_id)
        if not fixture_ids:
            logger.warning(f"[DETECTOR] Round {round_id} has no fixtures, leaving it open")
            return False

        fixtures = await repo.get_fixtures(fixture_ids)
        if len(fixtures) != len(set(fixture_ids)):
            logger.warning(
                f"[DETECTOR] Round {round_id}: {len(fixture_ids)} linked fixtures but {len(fixtures)} found"
            )
            return False

        return all(is_finished(f) for f in fixtures)

    async def detect_and_close_completed_rounds(self) -> DetectionResult:
        """Check every open round; a failure on one round does not stop the others."""
        result = DetectionResult()
        async with self.session_factory() as session:
            repo = ScoringRepository(session)
            open_rounds = await repo.list_rounds_by_status(RoundStatus.OPEN)
            round_ids = [r.id for r in open_rounds]
            if not round_ids:
                logger.debug("[DETECTOR] No open rounds")
                return result

            for round_id in round_ids:
                result.checked += 1
                try:
                    if not await self.is_round_complete(repo, round_id):
                        continue
                    if await repo.close_round(round_id):
                        logger.info(f"[DETECTOR] Round {round_id} complete, closed for scoring")
                        result.closed_round_ids.append(round_id)
                except Exception as e:
                    logger.error(f"[DETECTOR] Error checking round {round_id}: {e}")
                    result.errors.append(f"round {round_id}: {e}")

        logger.info(
            f"[DETECTOR] Checked {result.checked} open round(s), closed {len(result.closed_round_ids)}"
        )
        return result
