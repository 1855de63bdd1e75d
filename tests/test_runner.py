"""
End-to-end tests for the benchmark runner against the fake backend.
"""
import asyncio
import functools

import httpx
import pytest

from ollama_bench.core.exceptions import BackendUnavailableError, ConfigurationError, ErrorKind
from ollama_bench.output import render_table
from ollama_bench.services.benchmark import BenchmarkRunner, ProgressEvent, run_benchmark
from ollama_bench.services.benchmark import runner as runner_module


@pytest.fixture
def make_runner(fake_ollama, make_config):
    def _make(progress=None, **overrides):
        return BenchmarkRunner(make_config(**overrides), progress=progress, transport=fake_ollama.transport())

    return _make


class TestRun:
    """Full runs over several models."""

    @pytest.mark.asyncio
    async def test_two_models(self, make_runner, fake_ollama):
        fake_ollama.eval_counts["mistral"] = 30
        fake_ollama.delay = 0.02
        runner = make_runner()

        report = await runner.run(["llama2:7b", "mistral"])

        assert [s.model for s in report.summaries] == ["llama2:7b", "mistral"]
        assert len(report.trials) == 6
        assert report.winner.model == "mistral"
        assert report.winner.runner_up == "llama2:7b"
        assert report.winner.advantage_pct > 0
        assert report.total_duration_seconds >= 0
        assert report.config["iterations"] == 3

    @pytest.mark.asyncio
    async def test_missing_model_reported_with_zero_success(self, make_runner, fake_ollama):
        runner = make_runner()

        report = await runner.run(["phi-2", "llama2:7b"])

        missing = report.summary_for("phi-2")
        assert missing.success_rate == 0.0
        assert missing.total_trials == 3
        assert missing.errors == {"model_not_found": 3}
        assert report.summary_for("llama2:7b").success_rate == 1.0
        assert fake_ollama.calls_for("phi-2") == []
        assert report.winner.model == "llama2:7b"
        assert report.winner.advantage_pct is None
        assert "💡 Install with: ollama pull phi-2" in render_table(report)

    @pytest.mark.asyncio
    async def test_partial_timeouts(self, make_runner, fake_ollama):
        fake_ollama.script("llama2:7b", "ok", "timeout", "ok", "timeout", "ok")
        runner = make_runner(iterations=5, retry_limit=0)

        report = await runner.run(["llama2:7b", "mistral"])

        a = report.summary_for("llama2:7b")
        b = report.summary_for("mistral")
        assert a.success_rate == pytest.approx(0.6)
        assert a.errors == {"timeout": 2}
        assert b.success_rate == 1.0
        failed = [t for t in report.trials if t.model == "llama2:7b" and not t.success]
        assert all(t.error_kind is ErrorKind.TIMEOUT for t in failed)

    @pytest.mark.asyncio
    async def test_custom_prompts(self, make_runner, fake_ollama):
        runner = make_runner(iterations=2)

        report = await runner.run(["llama2:7b"], prompts=["one", "two"])

        assert [t.prompt for t in report.trials] == ["one", "two", "one", "two"]
        assert report.config["prompts"] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_duplicate_models_run_once(self, make_runner, fake_ollama):
        runner = make_runner()

        report = await runner.run(["llama2:7b", "llama2:7b"])

        assert len(report.summaries) == 1
        assert len(fake_ollama.generate_calls) == 3

    @pytest.mark.asyncio
    async def test_progress_reported_per_model(self, make_runner):
        events: list[ProgressEvent] = []
        runner = make_runner(progress=events.append)

        await runner.run(["llama2:7b", "mistral"])
        await asyncio.sleep(0)

        finished = [e.model for e in events if e.finished]
        assert finished == ["llama2:7b", "mistral"]


class TestPreflight:
    """Errors raised before any trial is started."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "models,overrides",
        [
            ([], {}),
            (["llama2:7b"], {"iterations": 0}),
            (["llama2:7b"], {"iterations": 1001}),
            (["llama2:7b"], {"timeout": 0}),
            (["llama2:7b"], {"base_url": "ollama.test"}),
            (["bad model!"], {}),
        ],
    )
    async def test_configuration_errors(self, make_runner, fake_ollama, models, overrides):
        runner = make_runner(**overrides)

        with pytest.raises(ConfigurationError):
            await runner.run(models)

        assert fake_ollama.generate_calls == []

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, make_runner):
        runner = make_runner()

        with pytest.raises(ConfigurationError):
            await runner.run(["llama2:7b"], prompts=["  "])

    @pytest.mark.asyncio
    async def test_backend_unreachable(self, make_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        runner = BenchmarkRunner(make_config(), transport=httpx.MockTransport(refuse))

        with pytest.raises(BackendUnavailableError) as exc_info:
            await runner.run(["llama2:7b"])

        assert exc_info.value.hint == "Start the backend with: ollama serve"


class TestCancel:
    """Cancellation produces a partial report."""

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, make_runner, fake_ollama):
        runner = make_runner()
        runner.cancel()

        report = await runner.run(["llama2:7b", "mistral"])

        assert report.cancelled
        assert report.trials == ()
        assert all(s.success_rate == 0.0 for s in report.summaries)
        assert report.winner is None
        assert fake_ollama.generate_calls == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, make_runner, fake_ollama):
        runner = make_runner()
        fake_ollama.on_generate = lambda body: runner.cancel()

        report = await runner.run(["llama2:7b", "mistral"])

        assert report.cancelled
        assert len(report.trials) == 1
        assert report.summary_for("mistral").total_trials == 0
        assert report.winner.model == "llama2:7b"


class TestRunBenchmark:
    """Convenience wrapper."""

    @pytest.mark.asyncio
    async def test_run_benchmark(self, monkeypatch, fake_ollama):
        monkeypatch.setattr(
            runner_module,
            "BenchmarkRunner",
            functools.partial(BenchmarkRunner, transport=fake_ollama.transport()),
        )

        report = await run_benchmark(["llama2:7b"], base_url="http://ollama.test", iterations=2, warmup=False)

        assert report.summary_for("llama2:7b").successful_trials == 2
        assert report.winner.model == "llama2:7b"
