"""Rendering and export of benchmark reports.

Every function here is a one-way read of a finished BenchmarkReport.
"""

import csv
import io
import json
import logging
from pathlib import Path

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ollama_bench.core.exceptions import ConfigurationError, ErrorKind, ExportError
from ollama_bench.services.benchmark import BenchmarkReport, ModelSummary, compare

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("table", "json", "csv", "markdown")

# Width used when the table is rendered to a string
TABLE_WIDTH = 100


def format_duration(seconds: float) -> str:
    """Format as "1m 5s" or "42s" """
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _num(value: float | None, fmt: str, suffix: str = "", missing: str = "-") -> str:
    if value is None:
        return missing
    return f"{value:{fmt}}{suffix}"


def _comparisons(report: BenchmarkReport) -> list[tuple[ModelSummary, float, float | None]]:
    """(other, speed_pct, ttft_pct) for each other model with results"""
    winner = report.winner
    if winner is None:
        return []
    return [
        (other, *compare(winner.summary, other))
        for other in report.summaries
        if other.model != winner.model and other.has_results
    ]


def failure_hint(summary: ModelSummary, timeout: float | None = None) -> str | None:
    """Corrective action for the most frequent error kind of ``summary``"""
    if not summary.errors:
        return None
    kind = max(summary.errors, key=summary.errors.get)
    return ErrorKind(kind).hint(model=summary.model, timeout=timeout)


def _failures(report: BenchmarkReport) -> list[tuple[ModelSummary, str, str | None]]:
    """(summary, error kinds, hint) for each model without successful trials"""
    timeout = report.config.get("timeout")
    return [
        (s, ", ".join(sorted(s.errors)) or "no trials", failure_hint(s, timeout))
        for s in report.summaries
        if not s.has_results
    ]


def build_table(report: BenchmarkReport) -> Table:
    table = Table(box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Avg Speed", justify="right", style="green", no_wrap=True)
    table.add_column("TTFT", justify="right", style="yellow", no_wrap=True)
    table.add_column("Success", justify="right", no_wrap=True)

    for s in report.summaries:
        table.add_row(
            s.model,
            _num(s.avg_tokens_per_second, ".1f", " tok/s"),
            _num(s.avg_ttft_ms, ".0f", "ms"),
            f"{s.success_rate * 100:.1f}%",
        )
    return table


def print_table(report: BenchmarkReport, console: Console) -> None:
    """Results table with the winner line, failure hints and completion time"""
    if not report.summaries:
        console.print()
        console.print("No results to display.")
        return

    console.print()
    console.print(build_table(report))

    winner = report.winner
    if winner is not None and len(report.summaries) > 1:
        details = []
        if winner.advantage_pct is not None and winner.advantage_pct > 0:
            details.append(f"{winner.advantage_pct:.1f}% faster")
        if winner.ttft_advantage_pct is not None and winner.ttft_advantage_pct > 0:
            details.append(f"{winner.ttft_advantage_pct:.0f}% lower TTFT")
        suffix = f" ({', '.join(details)})" if details else ""
        console.print()
        console.print(Text(f"🏆 Winner: {winner.model}{suffix}", style="bold green"))

    for summary, kinds, hint in _failures(report):
        console.print(Text(f"⚠ {summary.model}: no successful trials ({kinds})", style="yellow"))
        if hint:
            console.print(Text(f"  💡 {hint}", style="dim"))

    if report.cancelled:
        console.print()
        console.print(Text("Benchmark was cancelled, results are partial.", style="yellow"))

    console.print()
    console.print(
        Text(f"📊 Completed in {format_duration(report.total_duration_seconds)}", style="bold cyan")
    )


def render_table(report: BenchmarkReport, width: int = TABLE_WIDTH) -> str:
    """Plain-text rendering of :func:`print_table`"""
    console = Console(file=io.StringIO(), width=width, color_system=None, emoji=False)
    print_table(report, console)
    return console.file.getvalue()


def render_json(report: BenchmarkReport, include_trials: bool = True) -> str:
    data = report.to_dict()
    if not include_trials:
        data.pop("trials")
    return json.dumps(data, indent=2, ensure_ascii=False)


def render_csv(report: BenchmarkReport) -> str:
    """One row per model"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(
        [
            "Model",
            "Total Tests",
            "Success Rate",
            "Avg Tokens/s",
            "Min Tokens/s",
            "Max Tokens/s",
            "Avg TTFT (ms)",
            "TTFT Mode",
        ]
    )
    for s in report.summaries:
        writer.writerow(
            [
                s.model,
                s.total_trials,
                f"{s.success_rate:.2f}",
                _num(s.avg_tokens_per_second, ".2f", missing=""),
                _num(s.min_tokens_per_second, ".2f", missing=""),
                _num(s.max_tokens_per_second, ".2f", missing=""),
                _num(s.avg_ttft_ms, ".0f", missing=""),
                s.timing_mode or "",
            ]
        )
    return buffer.getvalue()


def render_markdown(report: BenchmarkReport) -> str:
    lines = [
        "# Benchmark Results",
        "",
        "| Model | Success Rate | Avg Speed | Min Speed | Max Speed | Avg TTFT |",
        "|-------|--------------|-----------|-----------|-----------|----------|",
    ]
    for s in report.summaries:
        lines.append(
            f"| {s.model} | {s.success_rate * 100:.1f}% "
            f"| {_num(s.avg_tokens_per_second, '.1f', ' tok/s')} "
            f"| {_num(s.min_tokens_per_second, '.1f', ' tok/s')} "
            f"| {_num(s.max_tokens_per_second, '.1f', ' tok/s')} "
            f"| {_num(s.avg_ttft_ms, '.0f', 'ms')} |"
        )

    failures = _failures(report)
    if failures:
        lines.append("")
        lines.append("### Failed Models:")
        for summary, kinds, hint in failures:
            line = f"- {summary.model}: no successful trials ({kinds})"
            if hint:
                line = f"{line}. {hint}"
            lines.append(line)

    if report.winner is not None:
        lines.append("")
        lines.append(f"## Winner: {report.winner.model} 🏆")

        comparisons = _comparisons(report)
        if comparisons:
            lines.append("")
            lines.append("### Performance Comparison:")
            for other, speed_pct, ttft_pct in comparisons:
                if speed_pct > 0:
                    lines.append(f"- {speed_pct:.1f}% faster than {other.model}")
                if ttft_pct is not None and ttft_pct > 0:
                    lines.append(f"- {ttft_pct:.0f}% lower TTFT than {other.model}")

    lines.append("")
    lines.append(f"*Total duration: {format_duration(report.total_duration_seconds)}*")
    return "\n".join(lines) + "\n"


_RENDERERS = {
    "table": render_table,
    "json": render_json,
    "csv": render_csv,
    "markdown": render_markdown,
}

_EXPORT_SUFFIXES = {
    ".json": render_json,
    ".csv": render_csv,
    ".md": render_markdown,
}


def render(report: BenchmarkReport, output_format: str) -> str:
    try:
        renderer = _RENDERERS[output_format]
    except KeyError:
        raise ConfigurationError(
            f"Unknown output format '{output_format}' (choose from {', '.join(OUTPUT_FORMATS)})",
            field="output",
        ) from None
    return renderer(report)


def export_report(report: BenchmarkReport, path: str | Path) -> Path:
    """Write the report to ``path``; the format follows the file extension."""
    path = Path(path)
    renderer = _EXPORT_SUFFIXES.get(path.suffix.lower())
    if renderer is None:
        raise ConfigurationError(
            "Export file must have .json, .csv, or .md extension", field="export"
        )

    try:
        path.write_text(renderer(report), encoding="utf-8")
    except OSError as e:
        raise ExportError(str(path), e.strerror or str(e)) from e

    logger.info(f"Results exported to: {path}")
    return path
