"""Application configuration"""

from functools import lru_cache

from pydantic_settings import BaseSettings

APP_NAME = "ollama-bench"
APP_VERSION = "0.1.1"

DEFAULT_PROMPT = "Write a haiku about benchmarking language models."


class Settings(BaseSettings):
    """Application settings"""

    # Ollama API
    base_url: str = "http://localhost:11434"

    # Trials
    iterations: int = 5
    concurrency: int = 1
    warmup: bool = True
    default_prompt: str = DEFAULT_PROMPT

    # Requests
    timeout: float = 30.0  # seconds, per request
    retry_limit: int = 2  # retries after the first attempt
    retry_delay: float = 0.5  # seconds between attempts
    stream: bool = True  # streamed responses give a real TTFT

    # Sampling defaults
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 100

    # Query /api/ps for model size after successful trials
    sample_memory: bool = False

    # Pause between models so the backend can settle
    model_pause: float = 0.5

    class Config:
        env_prefix = "OLLAMA_BENCH_"
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_user_agent() -> str:
    return f"{APP_NAME}/{APP_VERSION}"
