"""
Prometheus metrics for league data ingestion and round scoring.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

=============================================================================
CARDINALITY CONTROL
=============================================================================

ALLOWED LABELS (bounded sets):
- provider:     "api_football"
- entity:       "standings", "topscorers"
- endpoint:     "standings", "players/topscorers"
- status_code:  "200", "429", "500", "0"
- error_code:   "timeout", "api_error_response", "http_4xx", "request_error"
- dataset:      "standings", "topscorers"
- strategy:     "ExactMatch", "TopScorerExactMatch", "GoalDifferenceExactMatch"
- source:       "round_scoring", "retroactive"
- outcome:      RoundScoringOutcome values

FORBIDDEN AS LABELS: round_id, user_id, fixture_id, team/player IDs or names.
Use logs for those.
=============================================================================
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

provider_requests_total = Counter(
    "leaguepicks_provider_requests_total",
    "Total requests to the league data provider",
    ["provider", "entity", "endpoint", "status_code"],
)

provider_errors_total = Counter(
    "leaguepicks_provider_errors_total",
    "Total errors from the league data provider",
    ["provider", "entity", "error_code"],
)

provider_latency_ms = Histogram(
    "leaguepicks_provider_latency_ms",
    "Provider request latency in milliseconds",
    ["provider", "entity"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

league_data_cache_total = Counter(
    "leaguepicks_league_data_cache_total",
    "League data cache lookups",
    ["dataset", "result"],  # result: hit/miss
)

# =============================================================================
# SCORING METRICS
# =============================================================================

comparisons_total = Counter(
    "leaguepicks_comparisons_total",
    "Season-question comparisons by strategy and result",
    ["strategy", "result"],  # result: match/no_match
)

ties_detected_total = Counter(
    "leaguepicks_ties_detected_total",
    "Comparisons evaluated against more than one valid answer",
    ["strategy"],
)

round_scoring_runs_total = Counter(
    "leaguepicks_round_scoring_runs_total",
    "Round scoring invocations by outcome",
    ["outcome"],
)

round_scoring_duration_ms = Histogram(
    "leaguepicks_round_scoring_duration_ms",
    "Round scoring duration in milliseconds",
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)

bets_scored_total = Counter(
    "leaguepicks_bets_scored_total",
    "User bets that received points",
)

dynamic_points_users_total = Counter(
    "leaguepicks_dynamic_points_users_total",
    "Users whose dynamic points were stored",
)

fallback_users_awarded_total = Counter(
    "leaguepicks_fallback_users_awarded_total",
    "Non-participants awarded the minimum participant score",
    ["source"],  # round_scoring / retroactive
)


def record_provider_request(
    provider: str,
    entity: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
) -> None:
    """Record a provider request and its latency."""
    try:
        provider_requests_total.labels(
            provider=provider,
            entity=entity,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        provider_latency_ms.labels(provider=provider, entity=entity).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_provider_error(provider: str, entity: str, error_code: str) -> None:
    """Record a provider error."""
    try:
        provider_errors_total.labels(
            provider=provider,
            entity=entity,
            error_code=error_code,
        ).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider error metric: {e}")


def record_cache_lookup(dataset: str, hit: bool) -> None:
    """Record a league data cache hit or miss."""
    try:
        league_data_cache_total.labels(dataset=dataset, result="hit" if hit else "miss").inc()
    except Exception as e:
        logger.warning(f"Failed to record cache metric: {e}")


def record_comparison(strategy: str, is_match: bool, candidate_count: int) -> None:
    """Record a comparison; counts a tie when more than one answer was valid."""
    try:
        comparisons_total.labels(
            strategy=strategy,
            result="match" if is_match else "no_match",
        ).inc()
        if candidate_count > 1:
            ties_detected_total.labels(strategy=strategy).inc()
    except Exception as e:
        logger.warning(f"Failed to record comparison metric: {e}")


def record_round_scoring(
    outcome: str,
    duration_ms: float,
    bets_updated: int = 0,
    dynamic_users: int = 0,
) -> None:
    """Record one round scoring run."""
    try:
        round_scoring_runs_total.labels(outcome=outcome).inc()
        if duration_ms > 0:
            round_scoring_duration_ms.observe(duration_ms)
        if bets_updated:
            bets_scored_total.inc(bets_updated)
        if dynamic_users:
            dynamic_points_users_total.inc(dynamic_users)
    except Exception as e:
        logger.warning(f"Failed to record round scoring metric: {e}")


def record_fallback_awarded(source: str, users: int) -> None:
    """Record non-participants awarded fallback points."""
    try:
        if users:
            fallback_users_awarded_total.labels(source=source).inc(users)
    except Exception as e:
        logger.warning(f"Failed to record fallback metric: {e}")


def start_metrics_server(port: int) -> bool:
    """
    Serve /metrics for the scheduler process on the given port.

    Port 0 disables exposition. Returns True if the server is listening.
    """
    if not port:
        logger.info("[METRICS] Exposition disabled (METRICS_PORT=0)")
        return False
    try:
        start_http_server(port)
    except OSError as e:
        logger.error(f"[METRICS] Could not listen on port {port}: {e}")
        return False
    logger.info(f"[METRICS] Serving Prometheus metrics on :{port}/metrics")
    return True
