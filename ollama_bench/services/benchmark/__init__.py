"""
Benchmark Module

Benchmark execution engine for Ollama generation endpoints. Measures
time-to-first-token, total duration and tokens/second across repeated
trials, then ranks the tested models.

Usage:
    from ollama_bench.services.benchmark import BenchmarkConfig, BenchmarkRunner

    config = BenchmarkConfig(
        base_url="http://localhost:11434",
        iterations=5,
        concurrency=1,
    )

    runner = BenchmarkRunner(config)
    report = await runner.run(["llama2:7b", "mistral:7b"])

    if report.winner:
        print(f"Winner: {report.winner.model}")
"""

from .aggregator import build_report, compare, pick_winner, summarize, summarize_model
from .client import GenerationClient, TrialOutcome, has_model
from .config import BenchmarkConfig, GenerationOptions, normalize_model_name, validate_model_name
from .executor import TrialExecutor, skipped_trial
from .metrics import (
    BenchmarkReport,
    LatencyMetrics,
    ModelSummary,
    TimingMode,
    TrialRecord,
    Winner,
    compute_percentiles,
)
from .orchestrator import ModelBenchmark
from .progress import (
    LoggingProgress,
    ProgressCallback,
    ProgressEvent,
    ProgressReporter,
    QuietProgress,
    TerminalProgress,
)
from .runner import BenchmarkRunner, run_benchmark

__all__ = [
    # Config
    "BenchmarkConfig",
    "GenerationOptions",
    "normalize_model_name",
    "validate_model_name",
    # Metrics
    "TimingMode",
    "TrialRecord",
    "ModelSummary",
    "Winner",
    "BenchmarkReport",
    "LatencyMetrics",
    "compute_percentiles",
    # Client
    "GenerationClient",
    "TrialOutcome",
    "has_model",
    # Execution
    "TrialExecutor",
    "skipped_trial",
    "ModelBenchmark",
    "BenchmarkRunner",
    "run_benchmark",
    # Aggregation
    "summarize",
    "summarize_model",
    "pick_winner",
    "compare",
    "build_report",
    # Progress
    "ProgressEvent",
    "ProgressCallback",
    "ProgressReporter",
    "QuietProgress",
    "LoggingProgress",
    "TerminalProgress",
]
