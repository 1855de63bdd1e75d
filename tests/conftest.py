"""
Test fixtures and configuration for pytest.

The Ollama backend is replaced by ``FakeOllama``, an ``httpx.MockTransport``
handler that serves /api/tags, /api/ps and /api/generate with scripted
behaviors per model.
"""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest
import pytest_asyncio

from ollama_bench.core.exceptions import ErrorKind
from ollama_bench.services.benchmark import (
    BenchmarkConfig,
    GenerationClient,
    TimingMode,
    TrialRecord,
)

BASE_URL = "http://ollama.test"


class FakeOllama:
    """Scriptable stand-in for an Ollama server.

    Each generate call for a model consumes the next scripted behavior for
    that model; once the script is exhausted every call succeeds.

    Behaviors: "ok", "timeout", "connect_error", "not_found", "server_error",
    "invalid_json", "no_counts", "no_tokens", "no_done", "slow", or a
    callable ``(request) -> httpx.Response``.
    """

    def __init__(self, models: list[str] | None = None):
        self.models = list(models or [])
        self.scripts: dict[str, list] = {}
        self.eval_counts: dict[str, int] = {}
        self.sizes: dict[str, int] = {}
        self.generate_calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0
        self.on_generate: Callable[[dict], None] | None = None

    def script(self, model: str, *behaviors) -> None:
        self.scripts.setdefault(model, []).extend(behaviors)

    def calls_for(self, model: str) -> list[dict]:
        return [c for c in self.generate_calls if c["model"] == model]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(
                200,
                json={"models": [{"name": name, "size": 1} for name in self.models]},
            )

        if request.url.path == "/api/ps":
            return httpx.Response(
                200,
                json={
                    "models": [
                        {"name": name, "size": size} for name, size in self.sizes.items()
                    ]
                },
            )

        if request.url.path == "/api/generate":
            body = json.loads(request.content)
            self.generate_calls.append(body)
            if self.on_generate:
                self.on_generate(body)

            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                if self.delay:
                    await asyncio.sleep(self.delay)
                return await self._generate(request, body)
            finally:
                self.in_flight -= 1

        return httpx.Response(404, json={"error": "not found"})

    async def _generate(self, request: httpx.Request, body: dict) -> httpx.Response:
        model = body["model"]
        script = self.scripts.get(model, [])
        behavior = script.pop(0) if script else "ok"

        if callable(behavior):
            return behavior(request)
        if behavior == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if behavior == "connect_error":
            raise httpx.ConnectError("connection refused", request=request)
        if behavior == "not_found":
            return httpx.Response(404, json={"error": f"model '{model}' not found"})
        if behavior == "server_error":
            return httpx.Response(500, json={"error": "out of memory"})
        if behavior == "invalid_json":
            return httpx.Response(200, content=b"this is not json")
        if behavior == "slow":
            await asyncio.sleep(5)

        eval_count = self.eval_counts.get(model, 20)
        final = {
            "model": model,
            "response": "",
            "done": True,
            "done_reason": "stop",
            "total_duration": 600_000_000,
            "prompt_eval_count": 12,
            "prompt_eval_duration": 100_000_000,
            "eval_count": eval_count,
            "eval_duration": 500_000_000,
        }
        if behavior == "no_counts":
            del final["prompt_eval_count"]
            del final["eval_count"]
        if behavior == "no_tokens":
            final["eval_count"] = 0

        if not body.get("stream", True):
            return httpx.Response(200, json={**final, "response": "Hello world"})

        fragments = [
            {"model": model, "response": "Hello", "done": False},
            {"model": model, "response": " world", "done": False},
        ]
        if behavior != "no_done":
            fragments.append(final)
        content = "\n".join(json.dumps(f) for f in fragments) + "\n"
        return httpx.Response(200, content=content.encode())


@pytest.fixture
def fake_ollama() -> FakeOllama:
    """Fake backend with two installed models."""
    return FakeOllama(models=["llama2:7b", "mistral:latest"])


@pytest_asyncio.fixture
async def client(fake_ollama: FakeOllama):
    """Generation client wired to the fake backend."""
    async with GenerationClient(BASE_URL, timeout=5.0, transport=fake_ollama.transport()) as c:
        yield c


@pytest.fixture
def make_config() -> Callable[..., BenchmarkConfig]:
    """Benchmark config with no delays, no warm-up and the fake base URL."""

    def _make(**overrides) -> BenchmarkConfig:
        values = {
            "base_url": BASE_URL,
            "iterations": 3,
            "warmup": False,
            "timeout": 5.0,
            "retry_delay": 0.0,
            "model_pause": 0.0,
        }
        values.update(overrides)
        return BenchmarkConfig(**values)

    return _make


@pytest.fixture
def make_record() -> Callable[..., TrialRecord]:
    """Factory for trial records used by aggregation tests."""

    def _make(
        model: str = "test-model",
        tps: float | None = 25.0,
        ttft: float = 200.0,
        prompt: str = "test",
        index: int = 0,
        success: bool = True,
        kind: ErrorKind | None = None,
        mode: TimingMode = TimingMode.STREAMED,
        memory_mb: float | None = None,
    ) -> TrialRecord:
        if not success:
            return TrialRecord(
                model=model,
                prompt=prompt,
                timestamp=datetime.now(UTC),
                success=False,
                trial_index=index,
                error_kind=kind or ErrorKind.TIMEOUT,
                error="Failed",
            )
        duration = 1000.0
        return TrialRecord(
            model=model,
            prompt=prompt,
            timestamp=datetime.now(UTC),
            success=True,
            trial_index=index,
            tokens_per_second=tps,
            ttft_ms=ttft,
            total_duration_ms=duration,
            timing_mode=mode,
            prompt_tokens=10,
            completion_tokens=max(1, round(tps * duration / 1000)),
            memory_mb=memory_mb,
        )

    return _make
