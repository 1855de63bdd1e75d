"""
Benchmark Configuration

Defines configuration options for benchmark execution.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from ollama_bench.config import DEFAULT_PROMPT, Settings
from ollama_bench.core.exceptions import ConfigurationError

MAX_ITERATIONS = 1000
MAX_OUTPUT_TOKENS = 4096

# Alphanumerics plus the separators Ollama uses in names, tags and namespaces
_MODEL_NAME_RE = re.compile(r"^[\w.:/-]+$", re.ASCII)


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling parameters sent with every generation request"""

    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 100
    stop: tuple[str, ...] | None = None

    def to_ollama(self) -> dict[str, Any]:
        """Convert to the Ollama ``options`` object"""
        options: dict[str, Any] = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": self.max_tokens,
        }
        if self.stop:
            options["stop"] = list(self.stop)
        return options


@dataclass
class BenchmarkConfig:
    """Configuration for benchmark execution"""

    # Ollama API base URL
    base_url: str = "http://localhost:11434"

    # Prompts cycled through the measured trials
    prompts: list[str] = field(default_factory=lambda: [DEFAULT_PROMPT])

    # Trials per prompt
    iterations: int = 5

    # Maximum trials in flight for one model
    concurrency: int = 1

    # Run one discarded trial before measuring
    warmup: bool = True

    # Per-request hard timeout in seconds
    timeout: float = 30.0

    # Retries for transient failures, and the fixed delay between attempts
    retry_limit: int = 2
    retry_delay: float = 0.5

    # Stream responses (required for a real TTFT measurement)
    stream: bool = True

    # Sample the loaded model size from /api/ps after successful trials
    sample_memory: bool = False

    # Pause between models
    model_pause: float = 0.5

    options: GenerationOptions = field(default_factory=GenerationOptions)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "BenchmarkConfig":
        """Build a run configuration from settings, with non-None overrides applied"""
        values: dict[str, Any] = {
            "base_url": settings.base_url,
            "prompts": [settings.default_prompt],
            "iterations": settings.iterations,
            "concurrency": settings.concurrency,
            "warmup": settings.warmup,
            "timeout": settings.timeout,
            "retry_limit": settings.retry_limit,
            "retry_delay": settings.retry_delay,
            "stream": settings.stream,
            "sample_memory": settings.sample_memory,
            "model_pause": settings.model_pause,
        }
        option_values: dict[str, Any] = {
            "temperature": settings.temperature,
            "top_p": settings.top_p,
            "max_tokens": settings.max_tokens,
        }

        for key, value in overrides.items():
            if value is None:
                continue
            if key in option_values:
                option_values[key] = value
            elif key in values:
                values[key] = value
            else:
                raise TypeError(f"Unknown benchmark option: {key}")

        return cls(options=GenerationOptions(**option_values), **values)

    def validate(self) -> tuple[bool, str]:
        """Validate configuration"""
        if not self.base_url.startswith(("http://", "https://")):
            return False, "Ollama URL must start with http:// or https://"

        if not self.prompts or not all(p.strip() for p in self.prompts):
            return False, "At least one non-empty prompt is required"

        if self.iterations < 1:
            return False, "Iterations must be greater than 0"

        if self.iterations > MAX_ITERATIONS:
            return False, f"Iterations must be {MAX_ITERATIONS} or less"

        if self.concurrency < 1:
            return False, "Concurrency must be at least 1"

        if self.timeout <= 0:
            return False, "Timeout must be greater than 0"

        if self.retry_limit < 0:
            return False, "Retry limit cannot be negative"

        if self.retry_delay < 0:
            return False, "Retry delay cannot be negative"

        if not 0.0 <= self.options.temperature <= 2.0:
            return False, "Temperature must be between 0.0 and 2.0"

        if not 0.0 < self.options.top_p <= 1.0:
            return False, "Top-p must be greater than 0.0 and at most 1.0"

        if self.options.max_tokens <= 0:
            return False, "Max tokens must be greater than 0"

        if self.options.max_tokens > MAX_OUTPUT_TOKENS:
            return False, f"Max tokens must be {MAX_OUTPUT_TOKENS} or less"

        return True, ""

    def snapshot(self) -> dict[str, Any]:
        """Plain-data copy of the configuration for reports"""
        data = asdict(self)
        data["options"]["stop"] = list(self.options.stop) if self.options.stop else None
        return data


def validate_model_name(model: str) -> None:
    """Raise ConfigurationError unless ``model`` looks like an Ollama model name"""
    if not model:
        raise ConfigurationError("Invalid model name: empty model name", field="models")

    if not _MODEL_NAME_RE.match(model):
        raise ConfigurationError(
            f"Invalid model name: '{model}' "
            "(model names should be in format model:tag, e.g. llama2:7b)",
            field="models",
        )


def normalize_model_name(model: str) -> str:
    """Apply Ollama's implicit ``latest`` tag"""
    name = model.rsplit("/", 1)[-1]
    if ":" in name:
        return model
    return f"{model}:latest"
