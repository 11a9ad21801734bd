"""Prometheus metric definitions and helpers for the function layer."""

from __future__ import annotations

from prometheus_client import Counter

RATE_LIMIT_CHECKS_TOTAL = Counter(
    "rate_limit_checks_total",
    "Total rate limit checks partitioned by tier and outcome.",
    ["tier", "outcome"],
)

WEBHOOK_VERIFICATIONS_TOTAL = Counter(
    "webhook_verifications_total",
    "Total inbound callback authentications partitioned by result.",
    ["result"],
)

ORIGIN_REJECTIONS_TOTAL = Counter(
    "origin_rejections_total",
    "Total number of requests rejected because their Origin is not allowed.",
)

PIPELINE_DISPATCH_TOTAL = Counter(
    "pipeline_dispatch_total",
    "Total automation pipeline dispatches partitioned by pipeline and status.",
    ["pipeline", "status"],
)


def record_rate_limit_check(tier: str, outcome: str) -> None:
    """Increment the rate limit counter for ``tier`` with ``outcome``."""

    RATE_LIMIT_CHECKS_TOTAL.labels(tier=tier, outcome=outcome).inc()


def record_webhook_verification(result: str) -> None:
    WEBHOOK_VERIFICATIONS_TOTAL.labels(result=result).inc()


def record_origin_rejection() -> None:
    ORIGIN_REJECTIONS_TOTAL.inc()


def record_pipeline_dispatch(pipeline: str, status: str) -> None:
    """Increment counters for a pipeline dispatch attempt."""

    PIPELINE_DISPATCH_TOTAL.labels(pipeline=pipeline, status=status).inc()
