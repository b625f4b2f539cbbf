"""
Sentry integration for error tracking in the scoring process.

Provides:
- Exception capture tagged with the scheduler job that failed
- SQLAlchemy query errors and ERROR-level log records as events

PII is disabled; user ids only travel as extras on explicit captures.
"""

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from leaguepicks.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Module-level flag to track initialization
_sentry_initialized = False


def init_sentry(settings: Optional[Settings] = None) -> bool:
    """
    Initialize the Sentry SDK if SENTRY_DSN is configured.

    Returns True if Sentry is active after the call, False otherwise.
    """
    global _sentry_initialized

    if _sentry_initialized:
        logger.debug("Sentry already initialized, skipping")
        return True

    settings = settings or get_settings()

    # Kill switch
    if not settings.SENTRY_ENABLED:
        logger.info("Sentry disabled via SENTRY_ENABLED=false")
        return False

    if not settings.SENTRY_DSN:
        logger.info("Sentry not configured (SENTRY_DSN not set)")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE,
        integrations=[
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.ERROR,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        ignore_errors=[
            KeyboardInterrupt,
            SystemExit,
        ],
    )

    _sentry_initialized = True
    logger.info(
        f"Sentry initialized: env={settings.SENTRY_ENVIRONMENT}, "
        f"traces_sample_rate={settings.SENTRY_TRACES_SAMPLE_RATE}"
    )
    return True


def is_sentry_enabled() -> bool:
    """Check if Sentry is initialized and active."""
    return _sentry_initialized


def capture_exception(exception: BaseException, job_id: str = None, **extra_context) -> None:
    """
    Capture an exception to Sentry with optional job context.

    Use this in scheduler job except blocks for explicit capture with context.
    """
    if not _sentry_initialized:
        return

    with sentry_sdk.new_scope() as scope:
        if job_id:
            scope.set_tag("job_id", job_id)
        for key, value in extra_context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)


def capture_message(message: str, level: str = "warning", job_id: str = None, **extra) -> None:
    """Capture a message for failures that surface as results rather than exceptions."""
    if not _sentry_initialized:
        return

    with sentry_sdk.new_scope() as scope:
        if job_id:
            scope.set_tag("job_id", job_id)
        for key, value in extra.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_message(message, level=level)
