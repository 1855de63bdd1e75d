"""
Tests for settings and benchmark configuration.
"""
import pytest

from ollama_bench.config import DEFAULT_PROMPT, Settings, get_user_agent
from ollama_bench.core.exceptions import ConfigurationError
from ollama_bench.services.benchmark import (
    BenchmarkConfig,
    GenerationOptions,
    normalize_model_name,
    validate_model_name,
)


class TestSettings:
    """Environment-driven defaults."""

    def test_defaults(self):
        settings = Settings()

        assert settings.base_url == "http://localhost:11434"
        assert settings.iterations == 5
        assert settings.timeout == 30.0
        assert settings.retry_limit == 2
        assert settings.warmup is True

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_BENCH_ITERATIONS", "7")
        monkeypatch.setenv("OLLAMA_BENCH_BASE_URL", "http://gpu-box:11434")
        monkeypatch.setenv("OLLAMA_BENCH_WARMUP", "false")

        settings = Settings()

        assert settings.iterations == 7
        assert settings.base_url == "http://gpu-box:11434"
        assert settings.warmup is False

    def test_user_agent(self):
        assert get_user_agent().startswith("ollama-bench/")


class TestBenchmarkConfig:
    """Building and validating run configuration."""

    def test_from_settings(self):
        config = BenchmarkConfig.from_settings(
            Settings(), iterations=10, temperature=0.1, max_tokens=None
        )

        assert config.iterations == 10
        assert config.prompts == [DEFAULT_PROMPT]
        assert config.options.temperature == 0.1
        assert config.options.max_tokens == 100

    def test_from_settings_unknown_option(self):
        with pytest.raises(TypeError):
            BenchmarkConfig.from_settings(Settings(), colour="blue")

    def test_default_is_valid(self):
        assert BenchmarkConfig().validate() == (True, "")

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"iterations": 0}, "Iterations must be greater than 0"),
            ({"iterations": 1001}, "Iterations must be 1000 or less"),
            ({"concurrency": 0}, "Concurrency must be at least 1"),
            ({"timeout": 0}, "Timeout must be greater than 0"),
            ({"retry_limit": -1}, "Retry limit cannot be negative"),
            ({"base_url": "localhost:11434"}, "Ollama URL must start with http:// or https://"),
            ({"prompts": []}, "At least one non-empty prompt is required"),
            ({"options": GenerationOptions(temperature=2.5)}, "Temperature must be between 0.0 and 2.0"),
            ({"options": GenerationOptions(top_p=0.0)}, "Top-p must be greater than 0.0 and at most 1.0"),
            ({"options": GenerationOptions(max_tokens=0)}, "Max tokens must be greater than 0"),
            ({"options": GenerationOptions(max_tokens=5000)}, "Max tokens must be 4096 or less"),
        ],
    )
    def test_invalid(self, kwargs, message):
        assert BenchmarkConfig(**kwargs).validate() == (False, message)

    def test_snapshot(self):
        config = BenchmarkConfig(options=GenerationOptions(stop=("\n",)))

        data = config.snapshot()

        assert data["options"]["stop"] == ["\n"]
        assert data["iterations"] == 5

    def test_options_to_ollama(self):
        assert GenerationOptions().to_ollama() == {
            "temperature": 0.7,
            "top_p": 0.9,
            "num_predict": 100,
        }


class TestModelNames:
    """Model name validation and normalization."""

    @pytest.mark.parametrize(
        "name", ["llama2", "llama2:7b", "mistral:7b-instruct-q4_0", "library/phi-2:2.7b", "qwen2.5:0.5b"]
    )
    def test_valid(self, name):
        validate_model_name(name)

    @pytest.mark.parametrize("name", ["", "bad model", "model;rm", "llama2:7b!"])
    def test_invalid(self, name):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_model_name(name)

        assert exc_info.value.details == {"field": "models"}

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("llama2", "llama2:latest"),
            ("llama2:7b", "llama2:7b"),
            ("library/phi", "library/phi:latest"),
            ("registry.local:5000/phi", "registry.local:5000/phi:latest"),
        ],
    )
    def test_normalize(self, name, expected):
        assert normalize_model_name(name) == expected
