"""
Benchmark Metrics

Records and aggregates produced by a benchmark run:
- TrialRecord (one measured generation request)
- ModelSummary (per-model statistics over its trials)
- Winner (fastest model and its advantage over the runner-up)
- BenchmarkReport (everything above plus run metadata)
"""

import statistics
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ollama_bench.core.exceptions import ErrorKind


class TimingMode(Enum):
    """How TTFT was measured for a trial"""

    # First content fragment of a streamed response
    STREAMED = "streamed"

    # Single envelope, TTFT equals total duration
    TOTAL = "total"


def _round(value: float | None, digits: int = 2) -> float | None:
    return None if value is None else round(value, digits)


@dataclass(frozen=True)
class TrialRecord:
    """Result of a single trial"""

    model: str
    prompt: str
    timestamp: datetime
    success: bool
    trial_index: int = 0

    # Timing metrics (None unless success)
    tokens_per_second: float | None = None
    ttft_ms: float | None = None
    total_duration_ms: float | None = None
    timing_mode: TimingMode | None = None

    # Token counts
    prompt_tokens: int = 0
    completion_tokens: int = 0

    # Generation calls made; 0 when the trial was skipped
    attempts: int = 1

    error_kind: ErrorKind | None = None
    error: str | None = None

    # Optional extras reported by the backend
    memory_mb: float | None = None
    eval_tokens_per_second: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "model": self.model,
            "prompt": self.prompt,
            "trial_index": self.trial_index,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "tokens_per_second": _round(self.tokens_per_second),
            "ttft_ms": _round(self.ttft_ms),
            "total_duration_ms": _round(self.total_duration_ms),
            "timing_mode": self.timing_mode.value if self.timing_mode else None,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "attempts": self.attempts,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "memory_mb": _round(self.memory_mb, 1),
            "eval_tokens_per_second": _round(self.eval_tokens_per_second),
        }


@dataclass(frozen=True)
class LatencyMetrics:
    """Latency metrics with percentiles"""

    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std: float = 0.0
    p50: float = 0.0
    p95: float = 0.0


def compute_percentiles(values: Sequence[float]) -> LatencyMetrics:
    """Compute descriptive statistics with percentiles from a sequence of values"""
    if not values:
        return LatencyMetrics()

    sorted_values = sorted(values)
    n = len(sorted_values)

    def percentile(p: float) -> float:
        """Calculate percentile value"""
        if n == 1:
            return sorted_values[0]
        k = (n - 1) * (p / 100)
        f = int(k)
        c = f + 1 if f + 1 < n else f
        return sorted_values[f] + (k - f) * (sorted_values[c] - sorted_values[f])

    return LatencyMetrics(
        mean=statistics.fmean(values),
        median=statistics.median(values),
        min=sorted_values[0],
        max=sorted_values[-1],
        std=statistics.stdev(values) if n > 1 else 0.0,
        p50=percentile(50),
        p95=percentile(95),
    )


@dataclass(frozen=True)
class ModelSummary:
    """Aggregated statistics for one model.

    Every speed/TTFT field is None when the model has no successful trial.
    """

    model: str
    total_trials: int = 0
    successful_trials: int = 0
    success_rate: float = 0.0

    avg_tokens_per_second: float | None = None
    min_tokens_per_second: float | None = None
    max_tokens_per_second: float | None = None
    stddev_tokens_per_second: float | None = None

    avg_ttft_ms: float | None = None
    p50_ttft_ms: float | None = None
    p95_ttft_ms: float | None = None
    avg_total_duration_ms: float | None = None

    fastest_prompt: str | None = None
    slowest_prompt: str | None = None

    avg_memory_mb: float | None = None

    # "streamed", "total" or "mixed"
    timing_mode: str | None = None

    # Failed trial count per error kind value
    errors: dict[str, int] = field(default_factory=dict)

    @property
    def has_results(self) -> bool:
        return self.successful_trials > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "model": self.model,
            "total_trials": self.total_trials,
            "successful_trials": self.successful_trials,
            "success_rate": round(self.success_rate, 4),
            "avg_tokens_per_second": _round(self.avg_tokens_per_second),
            "min_tokens_per_second": _round(self.min_tokens_per_second),
            "max_tokens_per_second": _round(self.max_tokens_per_second),
            "stddev_tokens_per_second": _round(self.stddev_tokens_per_second),
            "avg_ttft_ms": _round(self.avg_ttft_ms),
            "p50_ttft_ms": _round(self.p50_ttft_ms),
            "p95_ttft_ms": _round(self.p95_ttft_ms),
            "avg_total_duration_ms": _round(self.avg_total_duration_ms),
            "fastest_prompt": self.fastest_prompt,
            "slowest_prompt": self.slowest_prompt,
            "avg_memory_mb": _round(self.avg_memory_mb, 1),
            "timing_mode": self.timing_mode,
            "errors": dict(self.errors),
        }


@dataclass(frozen=True)
class Winner:
    """Fastest model and how far ahead of the runner-up it is"""

    summary: ModelSummary
    advantage_pct: float | None = None
    runner_up: str | None = None
    ttft_advantage_pct: float | None = None

    @property
    def model(self) -> str:
        return self.summary.model

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "avg_tokens_per_second": _round(self.summary.avg_tokens_per_second),
            "advantage_pct": _round(self.advantage_pct),
            "runner_up": self.runner_up,
            "ttft_advantage_pct": _round(self.ttft_advantage_pct),
        }


@dataclass(frozen=True)
class BenchmarkReport:
    """Complete benchmark result"""

    config: dict[str, Any]
    started_at: datetime
    total_duration_seconds: float
    trials: tuple[TrialRecord, ...] = ()
    summaries: tuple[ModelSummary, ...] = ()
    winner: Winner | None = None
    cancelled: bool = False

    def summary_for(self, model: str) -> ModelSummary | None:
        for summary in self.summaries:
            if summary.model == model:
                return summary
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "config": self.config,
            "started_at": self.started_at.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "cancelled": self.cancelled,
            "summaries": [s.to_dict() for s in self.summaries],
            "winner": self.winner.to_dict() if self.winner else None,
            "trials": [t.to_dict() for t in self.trials],
        }
