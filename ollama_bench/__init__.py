"""Apache Bench-style performance benchmarking for Ollama models"""

from ollama_bench.config import APP_VERSION

__version__ = APP_VERSION
