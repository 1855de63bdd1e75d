"""ollama-bench command line interface.

Examples:
    # Benchmark a single model
    ollama-bench llama2:7b

    # Compare multiple models
    ollama-bench llama2:7b mistral:7b phi-2

    # Custom iterations, JSON output
    ollama-bench -n 10 -o json llama2:7b mistral:7b

    # Custom prompts
    ollama-bench -p "Explain quantum computing" -p "Write a limerick" llama2:7b
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from ollama_bench.config import APP_NAME, APP_VERSION, get_settings
from ollama_bench.core.exceptions import OllamaBenchError
from ollama_bench.output import OUTPUT_FORMATS, export_report, print_table, render
from ollama_bench.services.benchmark import (
    BenchmarkConfig,
    BenchmarkReport,
    BenchmarkRunner,
    LoggingProgress,
    ProgressReporter,
    QuietProgress,
    TerminalProgress,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="⚡ Apache Bench-style Ollama LLM performance benchmarking",
        epilog=__doc__.split("Examples:", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("models", nargs="+", metavar="MODEL", help="Models to benchmark (e.g., llama2:7b mistral:7b)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "-n", "--iterations", type=int, default=settings.iterations, metavar="COUNT",
        help="Number of test iterations per prompt and model",
    )
    parser.add_argument(
        "-p", "--prompt", action="append", dest="prompts", metavar="TEXT",
        help="Prompt to benchmark with (repeat for several prompts)",
    )
    parser.add_argument(
        "-m", "--max-tokens", type=int, default=settings.max_tokens, metavar="COUNT",
        help="Maximum tokens to generate",
    )
    parser.add_argument(
        "-t", "--temperature", type=float, default=settings.temperature, metavar="FLOAT",
        help="Temperature for generation",
    )
    parser.add_argument("--top-p", type=float, default=settings.top_p, metavar="FLOAT", help="Top-p for generation")
    parser.add_argument(
        "--timeout", type=float, default=settings.timeout, metavar="SECONDS",
        help="Request timeout in seconds",
    )
    parser.add_argument("--ollama-url", default=settings.base_url, metavar="URL", help="Ollama API base URL")
    parser.add_argument(
        "-c", "--concurrency", type=int, default=settings.concurrency, metavar="COUNT",
        help="Maximum concurrent requests per model",
    )
    parser.add_argument(
        "--retries", type=int, default=settings.retry_limit, metavar="COUNT",
        help="Retries for timeouts and transport errors",
    )
    parser.add_argument(
        "--no-warmup", dest="warmup", action="store_false", default=settings.warmup,
        help="Skip the discarded warm-up request",
    )
    parser.add_argument(
        "--no-stream", dest="stream", action="store_false", default=settings.stream,
        help="Disable streaming (TTFT then equals total duration)",
    )
    parser.add_argument(
        "--sample-memory", action="store_true", default=settings.sample_memory,
        help="Record loaded model size from /api/ps",
    )
    parser.add_argument("-o", "--output", choices=OUTPUT_FORMATS, default="table", help="Output format")
    parser.add_argument("-e", "--export", metavar="PATH", help="Export results to a .json, .csv or .md file")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Quiet mode (no progress indicators)")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def configure_logging(quiet: bool = False, verbose: bool = False, console: Console | None = None) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    # RichHandler prints above live progress bars on the same console
    logging.basicConfig(
        level=level,
        format="%(name)s - %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def config_from_args(args: argparse.Namespace) -> BenchmarkConfig:
    return BenchmarkConfig.from_settings(
        get_settings(),
        base_url=args.ollama_url,
        prompts=args.prompts,
        iterations=args.iterations,
        concurrency=args.concurrency,
        warmup=args.warmup,
        timeout=args.timeout,
        retry_limit=args.retries,
        stream=args.stream,
        sample_memory=args.sample_memory,
        temperature=args.temperature,
        top_p=args.top_p,
        max_tokens=args.max_tokens,
    )


def make_progress(args: argparse.Namespace, console: Console | None = None) -> ProgressReporter:
    if args.quiet:
        return QuietProgress()
    if args.verbose:
        return LoggingProgress()
    return TerminalProgress(console)


async def run_cli(args: argparse.Namespace, progress: ProgressReporter | None = None) -> BenchmarkReport:
    runner = BenchmarkRunner(config_from_args(args), progress=progress)

    loop = asyncio.get_running_loop()

    def on_interrupt():
        logger.warning("Interrupted, finishing in-flight requests (press Ctrl-C again to abort)")
        runner.cancel()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform, Ctrl-C aborts immediately
        pass

    try:
        return await runner.run(args.models)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    console = Console(emoji=False)
    err_console = Console(stderr=True, emoji=False)
    configure_logging(quiet=args.quiet, verbose=args.verbose, console=err_console)

    try:
        with make_progress(args, err_console) as progress:
            report = asyncio.run(run_cli(args, progress))

        if args.output == "table":
            print_table(report, console)
        else:
            print(render(report, args.output))

        if args.export:
            path = export_report(report, args.export)
            if not args.quiet:
                console.print(f"📊 Results exported to: {path}", markup=False, highlight=False)
    except OllamaBenchError as e:
        err_console.print(f"❌ {e.message}", style="bold red", markup=False, highlight=False)
        if e.hint:
            err_console.print(f"💡 {e.hint}", style="yellow", markup=False, highlight=False)
        return 1
    except KeyboardInterrupt:
        err_console.print("\nAborted.", style="red", markup=False, highlight=False)
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
