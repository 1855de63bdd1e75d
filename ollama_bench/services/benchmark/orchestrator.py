"""
Model Benchmark Orchestrator

Runs the trials for a single model: an optional discarded warm-up trial,
then ``iterations`` trials per prompt with bounded concurrency.
"""

import asyncio
import logging

from ollama_bench.core.exceptions import ErrorKind

from .executor import TrialExecutor, skipped_trial
from .metrics import TrialRecord
from .progress import ProgressCallback, ProgressEvent, emit

logger = logging.getLogger(__name__)


class ModelBenchmark:
    """
    Benchmarks one model at a time.

    A "model not found" result stops the model: trials that have not started
    yet are recorded as skipped failures. After ``cancel()`` no new trial is
    started and unstarted trials produce no record.
    """

    def __init__(self, executor: TrialExecutor, progress: ProgressCallback | None = None):
        self.executor = executor
        self.progress = progress
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Stop issuing new trials"""
        self._cancelled = True

    async def benchmark_model(
        self,
        model: str,
        prompts: list[str],
        iterations: int,
        concurrency: int = 1,
        warmup: bool = True,
    ) -> list[TrialRecord]:
        """Run all trials for ``model`` and return their records in trial order"""
        total = iterations * len(prompts)
        plan = [(i, prompts[i % len(prompts)]) for i in range(total)]

        if warmup and not self._cancelled:
            logger.info(f"Warming up {model}...")
            warm = await self.executor.run_trial(model, prompts[0], trial_index=-1)
            if warm.error_kind is ErrorKind.MODEL_NOT_FOUND:
                logger.warning(f"Model {model} not found during warm-up, skipping its trials")
                return [
                    skipped_trial(model, prompt, index, message=warm.error)
                    for index, prompt in plan
                ]
            if not warm.success:
                logger.info(f"Warm-up for {model} failed: {warm.error}")

        semaphore = asyncio.Semaphore(max(1, concurrency))
        records: list[TrialRecord] = []
        abort: list[TrialRecord] = []

        async def limited_trial(index: int, prompt: str) -> TrialRecord | None:
            async with semaphore:
                if self._cancelled:
                    return None
                if abort:
                    return skipped_trial(model, prompt, index, message=abort[0].error)

                record = await self.executor.run_trial(model, prompt, trial_index=index)
                if record.error_kind is ErrorKind.MODEL_NOT_FOUND and not abort:
                    logger.warning(f"Model {model} not found, aborting remaining trials")
                    abort.append(record)
                return record

        tasks = [asyncio.create_task(limited_trial(index, prompt)) for index, prompt in plan]

        # Single writer: records are only appended here, as tasks finish
        try:
            for next_done in asyncio.as_completed(tasks):
                record = await next_done
                if record is None:
                    continue
                records.append(record)
                emit(self.progress, ProgressEvent(model, len(records), total, record))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        records.sort(key=lambda r: r.trial_index)
        return records
