"""
Aggregation

Pure reductions over collected trial records: per-model summaries, winner
selection, pairwise comparison and report assembly. Nothing here performs
I/O or awaits.
"""

from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import datetime
from statistics import fmean
from typing import Any

from .metrics import (
    BenchmarkReport,
    ModelSummary,
    TrialRecord,
    Winner,
    compute_percentiles,
)


def summarize_model(model: str, trials: Sequence[TrialRecord]) -> ModelSummary:
    """Compute the summary for one model from all of its trials"""
    successful = [t for t in trials if t.success]
    errors = Counter(t.error_kind.value for t in trials if not t.success and t.error_kind)

    if not successful:
        return ModelSummary(
            model=model,
            total_trials=len(trials),
            successful_trials=0,
            success_rate=0.0,
            errors=dict(errors),
        )

    speeds = [t.tokens_per_second for t in successful]
    speed_stats = compute_percentiles(speeds)
    ttft_stats = compute_percentiles([t.ttft_ms for t in successful])

    # Earliest trial wins ties
    ordered = sorted(successful, key=lambda t: t.trial_index)
    fastest = ordered[0]
    slowest = ordered[0]
    for trial in ordered[1:]:
        if trial.tokens_per_second > fastest.tokens_per_second:
            fastest = trial
        if trial.tokens_per_second < slowest.tokens_per_second:
            slowest = trial

    memory = [t.memory_mb for t in successful if t.memory_mb is not None]
    modes = {t.timing_mode.value for t in successful if t.timing_mode}

    return ModelSummary(
        model=model,
        total_trials=len(trials),
        successful_trials=len(successful),
        success_rate=len(successful) / len(trials),
        avg_tokens_per_second=speed_stats.mean,
        min_tokens_per_second=speed_stats.min,
        max_tokens_per_second=speed_stats.max,
        stddev_tokens_per_second=speed_stats.std,
        avg_ttft_ms=ttft_stats.mean,
        p50_ttft_ms=ttft_stats.p50,
        p95_ttft_ms=ttft_stats.p95,
        avg_total_duration_ms=fmean(t.total_duration_ms for t in successful),
        fastest_prompt=fastest.prompt,
        slowest_prompt=slowest.prompt,
        avg_memory_mb=fmean(memory) if memory else None,
        timing_mode=modes.pop() if len(modes) == 1 else ("mixed" if modes else None),
        errors=dict(errors),
    )


def summarize(trials_by_model: Mapping[str, Sequence[TrialRecord]]) -> list[ModelSummary]:
    """Summaries for every model, in mapping (request) order"""
    return [summarize_model(model, trials) for model, trials in trials_by_model.items()]


def _fastest(summaries: Sequence[ModelSummary]) -> ModelSummary | None:
    best = None
    for summary in summaries:
        # Strict comparison keeps the earliest model on ties
        if best is None or summary.avg_tokens_per_second > best.avg_tokens_per_second:
            best = summary
    return best


def compare(winner: ModelSummary, other: ModelSummary) -> tuple[float, float | None]:
    """Percentage speed advantage and TTFT reduction of ``winner`` over ``other``.

    Returns:
        (speed_pct, ttft_pct). ``ttft_pct`` is positive when the winner's
        average TTFT is lower, None when it cannot be computed.
    """
    if not winner.has_results or not other.has_results:
        raise ValueError("Both summaries need successful trials to be compared")

    speed_pct = 0.0
    if other.avg_tokens_per_second > 0:
        speed_pct = (
            (winner.avg_tokens_per_second - other.avg_tokens_per_second)
            / other.avg_tokens_per_second
            * 100
        )

    ttft_pct = None
    if other.avg_ttft_ms and other.avg_ttft_ms > 0:
        ttft_pct = (other.avg_ttft_ms - winner.avg_ttft_ms) / other.avg_ttft_ms * 100

    return speed_pct, ttft_pct


def pick_winner(summaries: Sequence[ModelSummary]) -> Winner | None:
    """Model with the highest average tokens/second among models with results.

    Ties go to the model requested first. The advantage is measured against
    the best of the remaining models and is None when there is no other
    model with results.
    """
    valid = [s for s in summaries if s.success_rate > 0 and s.has_results]
    winner = _fastest(valid)
    if winner is None:
        return None

    runner_up = _fastest([s for s in valid if s is not winner])
    if runner_up is None:
        return Winner(summary=winner)

    speed_pct, ttft_pct = compare(winner, runner_up)
    return Winner(
        summary=winner,
        advantage_pct=speed_pct,
        runner_up=runner_up.model,
        ttft_advantage_pct=ttft_pct,
    )


def build_report(
    trials_by_model: Mapping[str, Sequence[TrialRecord]],
    config: dict[str, Any],
    started_at: datetime,
    total_duration_seconds: float,
    cancelled: bool = False,
) -> BenchmarkReport:
    """Assemble the final report from every collected trial"""
    summaries = summarize(trials_by_model)
    trials = tuple(t for model_trials in trials_by_model.values() for t in model_trials)

    return BenchmarkReport(
        config=config,
        started_at=started_at,
        total_duration_seconds=total_duration_seconds,
        trials=trials,
        summaries=tuple(summaries),
        winner=pick_winner(summaries),
        cancelled=cancelled,
    )
