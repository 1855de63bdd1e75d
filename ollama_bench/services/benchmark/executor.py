"""
Trial Executor

Runs one (model, prompt) trial through the generation client with the
retry policy applied, and turns the outcome into a TrialRecord.
"""

import asyncio
import logging
from datetime import UTC, datetime

from ollama_bench.core.exceptions import ErrorKind

from .client import GenerationClient, TrialOutcome
from .config import BenchmarkConfig
from .metrics import TrialRecord

logger = logging.getLogger(__name__)


class TrialExecutor:
    """
    Executes single trials.

    Transient failures (timeout, transport error, unreachable backend) are
    retried up to ``config.retry_limit`` times with a fixed delay. Other
    failures are recorded after the first attempt.
    """

    def __init__(self, client: GenerationClient, config: BenchmarkConfig):
        self.client = client
        self.config = config

    async def run_trial(self, model: str, prompt: str, trial_index: int = 0) -> TrialRecord:
        """Run one trial and return its record. Never raises for trial failures."""
        timestamp = datetime.now(UTC)
        max_attempts = 1 + self.config.retry_limit
        attempts = 0

        while True:
            attempts += 1
            outcome = await self.client.generate(
                model,
                prompt,
                options=self.config.options,
                timeout=self.config.timeout,
                stream=self.config.stream,
            )

            if outcome.success:
                break

            kind = outcome.error_kind
            if not kind.is_transient or attempts >= max_attempts:
                break

            logger.info(
                f"Trial {trial_index} for {model} failed ({kind.value}), "
                f"retrying ({attempts}/{self.config.retry_limit})"
            )
            if self.config.retry_delay > 0:
                await asyncio.sleep(self.config.retry_delay)

        if not outcome.success:
            logger.warning(
                f"Trial {trial_index} for {model} failed after {attempts} attempt(s): "
                f"{outcome.error}"
            )
            return TrialRecord(
                model=model,
                prompt=prompt,
                timestamp=timestamp,
                success=False,
                trial_index=trial_index,
                attempts=attempts,
                error_kind=outcome.error_kind,
                error=outcome.error,
            )

        memory_mb = None
        if self.config.sample_memory:
            memory_mb = await self.client.model_memory_mb(model)

        return self._success_record(model, prompt, timestamp, trial_index, attempts, outcome, memory_mb)

    @staticmethod
    def _success_record(
        model: str,
        prompt: str,
        timestamp: datetime,
        trial_index: int,
        attempts: int,
        outcome: TrialOutcome,
        memory_mb: float | None,
    ) -> TrialRecord:
        tokens_per_second = outcome.completion_tokens / (outcome.total_duration_ms / 1000)

        logger.debug(
            f"Trial {trial_index} for {model}: TTFT={outcome.ttft_ms:.1f}ms, "
            f"tokens={outcome.completion_tokens}, "
            f"latency={outcome.total_duration_ms:.1f}ms"
        )

        return TrialRecord(
            model=model,
            prompt=prompt,
            timestamp=timestamp,
            success=True,
            trial_index=trial_index,
            tokens_per_second=tokens_per_second,
            ttft_ms=outcome.ttft_ms,
            total_duration_ms=outcome.total_duration_ms,
            timing_mode=outcome.timing_mode,
            prompt_tokens=outcome.prompt_tokens,
            completion_tokens=outcome.completion_tokens,
            attempts=attempts,
            memory_mb=memory_mb,
            eval_tokens_per_second=outcome.eval_tokens_per_second,
        )


def skipped_trial(
    model: str,
    prompt: str,
    trial_index: int,
    kind: ErrorKind = ErrorKind.MODEL_NOT_FOUND,
    message: str | None = None,
) -> TrialRecord:
    """Failed record for a trial that was never sent"""
    return TrialRecord(
        model=model,
        prompt=prompt,
        timestamp=datetime.now(UTC),
        success=False,
        trial_index=trial_index,
        attempts=0,
        error_kind=kind,
        error=message or f"Skipped: model '{model}' not found",
    )
