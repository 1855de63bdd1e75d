"""
Benchmark Runner

Coordinates a full run: validates the configuration, checks the backend,
benchmarks each requested model in order and aggregates the results into a
BenchmarkReport. A model that is missing or fails completely is reported with
a 0% success rate; it never stops the other models from being measured.
"""

import asyncio
import dataclasses
import logging
import time
from datetime import UTC, datetime

import httpx

from ollama_bench.core.exceptions import ConfigurationError

from .aggregator import build_report
from .client import GenerationClient, has_model
from .config import BenchmarkConfig, validate_model_name
from .executor import TrialExecutor, skipped_trial
from .metrics import BenchmarkReport, TrialRecord
from .orchestrator import ModelBenchmark
from .progress import ProgressCallback

logger = logging.getLogger(__name__)


class BenchmarkRunner:
    """
    Executes benchmarks for a list of models against one Ollama endpoint.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        progress: ProgressCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.progress = progress
        self._transport = transport
        self._cancelled = False
        self._model_benchmark: ModelBenchmark | None = None

    def cancel(self):
        """Cancel the running benchmark; trials already in flight finish"""
        self._cancelled = True
        if self._model_benchmark is not None:
            self._model_benchmark.cancel()

    def _prepare(self, models: list[str], prompts: list[str] | None) -> list[str]:
        if prompts:
            self.config = dataclasses.replace(self.config, prompts=list(prompts))

        if not models:
            raise ConfigurationError("At least one model must be specified", field="models")

        for model in models:
            validate_model_name(model)

        valid, error = self.config.validate()
        if not valid:
            raise ConfigurationError(error)

        unique = list(dict.fromkeys(models))
        if len(unique) != len(models):
            logger.warning("Duplicate models in request, each model is benchmarked once")
        return unique

    async def run(self, models: list[str], prompts: list[str] | None = None) -> BenchmarkReport:
        """Execute the benchmark.

        Raises:
            ConfigurationError: invalid configuration, nothing was run
            BackendUnavailableError: the pre-flight check could not reach Ollama
        """
        models = self._prepare(models, prompts)
        config = self.config

        async with GenerationClient(
            config.base_url, timeout=config.timeout, transport=self._transport
        ) as client:
            logger.info(f"Checking Ollama connection at {config.base_url}...")
            available = await client.list_models()

            self._model_benchmark = ModelBenchmark(
                TrialExecutor(client, config), progress=self.progress
            )
            if self._cancelled:
                self._model_benchmark.cancel()

            logger.info(
                f"Benchmarking {len(models)} model{'s' if len(models) > 1 else ''} "
                f"with {config.iterations} iteration{'s' if config.iterations > 1 else ''} "
                f"x {len(config.prompts)} prompt{'s' if len(config.prompts) > 1 else ''} each"
            )

            started_at = datetime.now(UTC)
            start_time = time.perf_counter()
            trials_by_model: dict[str, list[TrialRecord]] = {}

            for idx, model in enumerate(models):
                if self._cancelled:
                    logger.info(f"Benchmark cancelled, skipping {model}")
                    trials_by_model[model] = []
                    continue

                logger.info(f"Testing {model} ({idx + 1}/{len(models)})...")

                if not has_model(available, model):
                    logger.warning(f"Model '{model}' not found on the backend")
                    trials_by_model[model] = self._skipped_model(model)
                    continue

                trials_by_model[model] = await self._model_benchmark.benchmark_model(
                    model,
                    config.prompts,
                    config.iterations,
                    concurrency=config.concurrency,
                    warmup=config.warmup,
                )

                # Small delay between models
                if idx < len(models) - 1 and config.model_pause > 0:
                    await asyncio.sleep(config.model_pause)

            total_duration = time.perf_counter() - start_time

        report = build_report(
            trials_by_model,
            config=config.snapshot(),
            started_at=started_at,
            total_duration_seconds=total_duration,
            cancelled=self._cancelled,
        )

        for model in models:
            summary = report.summary_for(model)
            logger.info(
                f"{model}: {summary.successful_trials}/{summary.total_trials} trials succeeded"
            )

        logger.info(f"Benchmark completed in {total_duration:.1f}s")
        return report

    def _skipped_model(self, model: str) -> list[TrialRecord]:
        prompts = self.config.prompts
        total = self.config.iterations * len(prompts)
        return [skipped_trial(model, prompts[i % len(prompts)], i) for i in range(total)]


async def run_benchmark(
    models: list[str],
    base_url: str = "http://localhost:11434",
    prompts: list[str] | None = None,
    iterations: int = 5,
    concurrency: int = 1,
    warmup: bool = True,
    timeout: float = 30.0,
    progress: ProgressCallback | None = None,
) -> BenchmarkReport:
    """
    Convenience function to run a simple benchmark.

    Args:
        models: Model names to compare (e.g. ["llama2:7b", "mistral:7b"])
        base_url: Ollama API base URL
        prompts: Prompts to cycle through, a default prompt is used if omitted
        iterations: Trials per prompt per model
        concurrency: Maximum trials in flight per model
        warmup: Run a discarded warm-up trial before measuring
        timeout: Per-request timeout in seconds
        progress: Optional per-trial progress callback

    Returns:
        BenchmarkReport with summaries and the winner
    """
    config = BenchmarkConfig(
        base_url=base_url,
        iterations=iterations,
        concurrency=concurrency,
        warmup=warmup,
        timeout=timeout,
    )

    runner = BenchmarkRunner(config, progress=progress)
    return await runner.run(models, prompts)
