"""Observability helpers for RegSync."""

from __future__ import annotations

import logging
from contextvars import ContextVar

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "regsync") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for engine stages."""

    match_latency = Histogram(
        "regsync_match_detection_duration_seconds",
        "Time spent scoring an upload against the library.",
        buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
    )
    match_candidates = Histogram(
        "regsync_match_candidate_count",
        "Library entries above the score floor per upload.",
        buckets=(0, 1, 2, 3, 5, 10, 25),
    )
    top_match_score = Histogram(
        "regsync_top_match_score",
        "Score of the best library candidate per upload.",
        buckets=(0.0, 0.2, 0.45, 0.75, 1.0),
    )
    diff_latency = Histogram(
        "regsync_diff_duration_seconds",
        "Time spent computing line diffs.",
        buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    )
    diff_changes = Histogram(
        "regsync_diff_changed_line_count",
        "Added plus removed lines per diff.",
        buckets=(0, 1, 5, 20, 50, 200, 1000),
    )
    summary_latency = Histogram(
        "regsync_summary_duration_seconds",
        "Time spent waiting on the change summarizer.",
        buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
    )
    summary_failures = Counter(
        "regsync_summary_failures_total",
        "Change summaries omitted, by failure kind.",
        ["kind"],
    )
    summary_cache_hits = Counter(
        "regsync_summary_cache_hits_total",
        "Change summaries served from the per-comparison cache.",
    )

    @classmethod
    def observe_match(cls, duration_seconds: float, candidate_count: int, top_score: float | None) -> None:
        cls.match_latency.observe(duration_seconds)
        cls.match_candidates.observe(candidate_count)
        if top_score is not None:
            cls.top_match_score.observe(_clamp_score(top_score))

    @classmethod
    def observe_diff(cls, duration_seconds: float, total_changes: int) -> None:
        cls.diff_latency.observe(duration_seconds)
        cls.diff_changes.observe(total_changes)

    @classmethod
    def observe_summary(cls, duration_seconds: float) -> None:
        cls.summary_latency.observe(duration_seconds)

    @classmethod
    def record_summary_failure(cls, kind: str) -> None:
        cls.summary_failures.labels(kind=kind).inc()


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
