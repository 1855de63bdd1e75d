"""
Generation Client

Issues single generation requests against the Ollama API and measures
time-to-first-token and total duration. Failures are classified into an
ErrorKind and returned as data, retries are left to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from ollama_bench.config import get_user_agent
from ollama_bench.core.exceptions import (
    BackendUnavailableError,
    ErrorKind,
    GenerationError,
    OllamaBenchError,
)
from ollama_bench.schemas.ollama import GenerateChunk, ModelList

from .config import GenerationOptions, normalize_model_name
from .metrics import TimingMode

logger = logging.getLogger(__name__)

# Timeout for the listing endpoints used by the pre-flight check
LISTING_TIMEOUT = 10.0


@dataclass(frozen=True)
class TrialOutcome:
    """Outcome of one generation request"""

    timing_mode: TimingMode | None = None
    ttft_ms: float | None = None
    total_duration_ms: float | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    eval_tokens_per_second: float | None = None

    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error_kind is None

    @property
    def ttft_is_precise(self) -> bool:
        """False when TTFT is only the total duration of a single envelope"""
        return self.timing_mode is TimingMode.STREAMED

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "TrialOutcome":
        return cls(error_kind=kind, error=message)


class GenerationClient:
    """
    Client for the Ollama generation API.

    One instance wraps one ``httpx.AsyncClient`` whose connection pool is
    shared by every concurrent trial of a run.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"User-Agent": get_user_agent(), "Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        model: str,
        prompt: str,
        options: GenerationOptions | None = None,
        timeout: float | None = None,
        stream: bool = True,
    ) -> TrialOutcome:
        """Run one timed generation request.

        Args:
            model: Model name (e.g. "llama2:7b")
            prompt: Prompt text
            options: Sampling parameters, defaults apply when omitted
            timeout: Hard limit for the whole request in seconds
            stream: Request incremental fragments to measure TTFT precisely

        Returns:
            TrialOutcome with timings and token counts, or a classified error
        """
        if not model or not prompt:
            raise ValueError("model and prompt must be non-empty")

        timeout = timeout or self.timeout
        options = options or GenerationOptions()
        request_body = {
            "model": model,
            "prompt": prompt,
            "stream": stream,
            "options": options.to_ollama(),
        }

        try:
            return await asyncio.wait_for(
                self._generate(model, request_body, timeout, stream),
                timeout=timeout,
            )
        except GenerationError as e:
            return TrialOutcome.failure(e.kind, e.message)
        except asyncio.TimeoutError:
            return TrialOutcome.failure(
                ErrorKind.TIMEOUT, f"Request timed out after {timeout:g}s"
            )
        except httpx.ConnectTimeout:
            return TrialOutcome.failure(
                ErrorKind.BACKEND_UNREACHABLE, f"Timed out connecting to {self.base_url}"
            )
        except httpx.TimeoutException:
            return TrialOutcome.failure(
                ErrorKind.TIMEOUT, f"Request timed out after {timeout:g}s"
            )
        except httpx.ConnectError as e:
            return TrialOutcome.failure(
                ErrorKind.BACKEND_UNREACHABLE, f"Failed to connect to {self.base_url}: {e}"
            )
        except httpx.HTTPError as e:
            return TrialOutcome.failure(
                ErrorKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}"
            )

    async def _generate(
        self,
        model: str,
        request_body: dict,
        timeout: float,
        stream: bool,
    ) -> TrialOutcome:
        start_time = time.perf_counter()
        first_token_time: float | None = None
        final: GenerateChunk | None = None

        async with self._client.stream(
            "POST", "/api/generate", json=request_body, timeout=timeout
        ) as response:
            await self._check_status(response, model)

            if stream:
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    chunk = self._parse_chunk(line)
                    current_time = time.perf_counter()

                    if first_token_time is None and chunk.response:
                        first_token_time = current_time

                    if chunk.done:
                        final = chunk
                        end_time = current_time
                        break

                if final is None:
                    raise GenerationError(
                        ErrorKind.INVALID_RESPONSE,
                        "Stream ended before the final fragment",
                    )
                timing_mode = TimingMode.STREAMED
            else:
                raw = await response.aread()
                end_time = time.perf_counter()
                final = self._parse_chunk(raw)
                if not final.done:
                    raise GenerationError(
                        ErrorKind.INVALID_RESPONSE, "Response is not marked as done"
                    )
                timing_mode = TimingMode.TOTAL

        total_ms = (end_time - start_time) * 1000
        if timing_mode is TimingMode.STREAMED:
            # No text fragment at all: the terminal fragment is the first token
            ttft_ms = ((first_token_time or end_time) - start_time) * 1000
        else:
            ttft_ms = total_ms

        return self._build_outcome(final, ttft_ms, total_ms, timing_mode)

    async def _check_status(self, response: httpx.Response, model: str) -> None:
        if response.status_code == 200:
            return

        await response.aread()
        detail = response.text.strip()

        if response.status_code == 404:
            raise GenerationError(ErrorKind.MODEL_NOT_FOUND, f"Model '{model}' not found")

        message = f"HTTP {response.status_code}"
        if detail:
            message = f"{message}: {detail[:200]}"
        raise GenerationError(ErrorKind.TRANSPORT_ERROR, message)

    @staticmethod
    def _parse_chunk(raw: str | bytes) -> GenerateChunk:
        try:
            chunk = GenerateChunk.model_validate_json(raw)
        except ValidationError as e:
            raise GenerationError(
                ErrorKind.INVALID_RESPONSE,
                f"Failed to parse response: {e.errors()[0]['msg']}",
            ) from e

        if chunk.error:
            raise GenerationError(ErrorKind.INVALID_RESPONSE, f"Backend error: {chunk.error}")
        return chunk

    @staticmethod
    def _build_outcome(
        final: GenerateChunk,
        ttft_ms: float,
        total_ms: float,
        timing_mode: TimingMode,
    ) -> TrialOutcome:
        if final.prompt_eval_count is None or final.eval_count is None:
            raise GenerationError(
                ErrorKind.INVALID_RESPONSE, "Response is missing token counts"
            )

        if final.eval_count <= 0:
            raise GenerationError(ErrorKind.INVALID_RESPONSE, "No tokens were generated")

        if total_ms <= 0:
            raise GenerationError(ErrorKind.INVALID_RESPONSE, "Measured duration is zero")

        return TrialOutcome(
            timing_mode=timing_mode,
            ttft_ms=ttft_ms,
            total_duration_ms=total_ms,
            prompt_tokens=final.prompt_eval_count,
            completion_tokens=final.eval_count,
            eval_tokens_per_second=final.eval_tokens_per_second,
        )

    async def list_models(self) -> list[str]:
        """List installed model names (GET /api/tags)."""
        try:
            response = await self._client.get("/api/tags", timeout=LISTING_TIMEOUT)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise BackendUnavailableError(self.base_url) from e
        except httpx.HTTPError as e:
            raise BackendUnavailableError(self.base_url, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise BackendUnavailableError(self.base_url, f"HTTP {response.status_code}")

        try:
            listing = ModelList.model_validate_json(response.content)
        except ValidationError as e:
            raise OllamaBenchError(
                message="Failed to parse model listing",
                error_type=ErrorKind.INVALID_RESPONSE.value,
                hint=ErrorKind.INVALID_RESPONSE.hint(),
            ) from e

        return [m.name for m in listing.models]

    async def health_check(self) -> bool:
        """Check if the Ollama API is reachable."""
        try:
            await self.list_models()
            return True
        except BackendUnavailableError as e:
            logger.debug(f"Health check failed: {e.message}")
            return False

    async def model_memory_mb(self, model: str) -> float | None:
        """Size of ``model`` in memory as reported by /api/ps, in MiB."""
        try:
            response = await self._client.get("/api/ps", timeout=LISTING_TIMEOUT)
            if response.status_code != 200:
                logger.debug(f"/api/ps returned HTTP {response.status_code}")
                return None
            loaded = ModelList.model_validate_json(response.content)
        except (httpx.HTTPError, ValidationError) as e:
            logger.debug(f"Memory sample for {model} failed: {e}")
            return None

        target = normalize_model_name(model)
        for entry in loaded.models:
            if normalize_model_name(entry.name) == target and entry.size > 0:
                return entry.size / (1024 * 1024)
        return None


def has_model(available: list[str], model: str) -> bool:
    """Whether ``model`` is in a listing, honouring the implicit ``latest`` tag"""
    target = normalize_model_name(model)
    return any(normalize_model_name(name) == target for name in available)
