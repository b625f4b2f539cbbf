"""Tests for Sentry initialization and job-tagged capture."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from leaguepicks.config import Settings
from leaguepicks.scoring.dynamic_points import DynamicPointsResult
from leaguepicks.scoring.orchestrator import RoundScoringOrchestrator, RoundScoringOutcome
from leaguepicks.telemetry import sentry


@pytest.fixture
def sdk(monkeypatch):
    """Stand-in for the sentry_sdk module functions the wrapper calls."""
    monkeypatch.setattr(sentry, "_sentry_initialized", False)
    fake = MagicMock()
    monkeypatch.setattr(sentry.sentry_sdk, "init", fake.init)
    monkeypatch.setattr(sentry.sentry_sdk, "new_scope", fake.new_scope)
    monkeypatch.setattr(sentry.sentry_sdk, "capture_exception", fake.capture_exception)
    monkeypatch.setattr(sentry.sentry_sdk, "capture_message", fake.capture_message)
    return fake


class TestInitSentry:
    def test_without_dsn_stays_disabled(self, sdk):
        assert sentry.init_sentry(Settings(SENTRY_DSN="")) is False
        sdk.init.assert_not_called()
        assert sentry.is_sentry_enabled() is False

    def test_kill_switch_wins_over_dsn(self, sdk):
        settings = Settings(SENTRY_DSN="https://key@sentry.example/1", SENTRY_ENABLED=False)
        assert sentry.init_sentry(settings) is False
        sdk.init.assert_not_called()

    def test_initializes_once(self, sdk):
        settings = Settings(
            SENTRY_DSN="https://key@sentry.example/1",
            SENTRY_ENVIRONMENT="production",
            SENTRY_TRACES_SAMPLE_RATE=0.1,
        )
        assert sentry.init_sentry(settings) is True
        assert sentry.init_sentry(settings) is True

        sdk.init.assert_called_once()
        kwargs = sdk.init.call_args.kwargs
        assert kwargs["dsn"] == "https://key@sentry.example/1"
        assert kwargs["environment"] == "production"
        assert kwargs["traces_sample_rate"] == 0.1
        assert kwargs["send_default_pii"] is False


class TestCapture:
    def test_noop_when_not_initialized(self, sdk):
        sentry.capture_exception(RuntimeError("x"), job_id="round_scoring")
        sentry.capture_message("x", job_id="round_scoring")

        sdk.capture_exception.assert_not_called()
        sdk.capture_message.assert_not_called()

    def test_tags_job_and_attaches_extras(self, sdk, monkeypatch):
        monkeypatch.setattr(sentry, "_sentry_initialized", True)
        scope = sdk.new_scope.return_value.__enter__.return_value
        error = RuntimeError("boom")

        sentry.capture_exception(error, job_id="round_scoring", round_id=7)

        scope.set_tag.assert_called_once_with("job_id", "round_scoring")
        scope.set_extra.assert_called_once_with("round_id", 7)
        sdk.capture_exception.assert_called_once_with(error)


@pytest.mark.asyncio
async def test_partial_failure_is_captured(db, session_factory, monkeypatch):
    from leaguepicks.scoring import orchestrator as orchestrator_module

    await db.add_users("u1")
    round_id, (fixture_id,) = await db.add_round([(1, 0, "FT")])
    await db.add_bet("u1", round_id, fixture_id, "1")
    await db.add_answer("u1", "league_winner", api_team_id=33)

    capture = MagicMock()
    monkeypatch.setattr(orchestrator_module, "sentry_capture_exception", capture)
    calculator = MagicMock()
    calculator.calculate_dynamic_points = AsyncMock(return_value=None)

    result = await RoundScoringOrchestrator(session_factory, calculator).score_round(round_id)

    assert result.outcome == RoundScoringOutcome.PARTIAL_FAILURE
    capture.assert_called_once()
    assert capture.call_args.kwargs == {"job_id": "dynamic_points", "round_id": round_id}


@pytest.mark.asyncio
async def test_failed_round_is_captured(session_factory, monkeypatch):
    from leaguepicks.scoring import orchestrator as orchestrator_module

    capture = MagicMock()
    monkeypatch.setattr(orchestrator_module, "sentry_capture_exception", capture)
    calculator = MagicMock()
    calculator.calculate_dynamic_points = AsyncMock(return_value=DynamicPointsResult(total_points=0))

    result = await RoundScoringOrchestrator(session_factory, calculator).score_round(999)

    assert result.outcome == RoundScoringOutcome.FAILED
    assert capture.call_args.kwargs == {"job_id": "round_scoring", "round_id": 999}
