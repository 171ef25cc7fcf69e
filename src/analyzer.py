"""Aggregate newline-delimited JSON metric output into summary reports."""

import json
import math
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import structlog

from src.models import AnalysisResult, FileReport, MetricStats

logger = structlog.get_logger()


RESULT_EXTENSIONS = (".json", ".jsonl", ".ndjson")


class ResultsError(Exception):
    """Base class for results-directory conditions."""


class ResultsDirectoryMissing(ResultsError):
    """Raised when the results directory does not exist."""


class ResultsDirectoryError(ResultsError):
    """Raised when the results directory cannot be listed."""


class NoResultFiles(ResultsError):
    """Raised when the results directory holds nothing to analyze."""


class FileReadError(Exception):
    """Raised when a single result file cannot be read."""


@dataclass(frozen=True)
class Sample:
    metric: str
    value: float
    test_type: Optional[str] = None


@dataclass(frozen=True)
class IgnoredRecord:
    """A well-formed record that carries no sample, e.g. a metric declaration."""

    kind: str


@dataclass(frozen=True)
class SkippedLine:
    reason: str


ParsedLine = Union[Sample, IgnoredRecord, SkippedLine]


def find_result_files(directory: str) -> List[str]:
    """List result files directly inside ``directory``, sorted by name.

    Raises:
        ResultsDirectoryMissing: If the directory does not exist.
        ResultsDirectoryError: If the directory cannot be listed.
        NoResultFiles: If no file has a result extension.
    """
    if not os.path.isdir(directory):
        raise ResultsDirectoryMissing(f"no results directory found at {directory}")

    try:
        entries = os.listdir(directory)
    except OSError as exc:
        raise ResultsDirectoryError(
            f"cannot list results directory {directory}: {exc}"
        ) from exc

    files = sorted(
        os.path.join(directory, entry)
        for entry in entries
        if entry.lower().endswith(RESULT_EXTENSIONS)
        and os.path.isfile(os.path.join(directory, entry))
    )
    if not files:
        raise NoResultFiles(f"no JSON result files found in {directory}")
    return files


def parse_line(line: str) -> ParsedLine:
    """Turn one output line into a Sample, an IgnoredRecord, or a SkippedLine."""
    try:
        record = json.loads(line)
    except ValueError:
        return SkippedLine("invalid json")

    if not isinstance(record, dict):
        return SkippedLine("not an object")
    if "type" not in record:
        return SkippedLine("missing type")
    if record["type"] != "Point":
        return IgnoredRecord(str(record["type"]))

    metric = record.get("metric")
    if not metric or not isinstance(metric, str):
        return SkippedLine("missing metric")

    data = record.get("data")
    if not isinstance(data, dict):
        data = record
    value = data.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return SkippedLine("missing value")
    if not math.isfinite(value):
        return SkippedLine("non-finite value")

    tags = data.get("tags") or {}
    test_type = tags.get("testType") if isinstance(tags, dict) else None
    if test_type is not None and not isinstance(test_type, str):
        test_type = str(test_type)

    return Sample(metric=metric, value=float(value), test_type=test_type or None)


def summarize(values: List[float]) -> MetricStats:
    """Descriptive statistics for one metric's samples."""
    if not values:
        return MetricStats()
    total = sum(values)
    return MetricStats(
        count=len(values),
        total=total,
        minimum=min(values),
        maximum=max(values),
        mean=total / len(values),
    )


def failure_rate(metrics: Dict[str, MetricStats]) -> float:
    """Failed-request sum over the number of http_reqs samples, as a percent."""
    failed = metrics.get("http_req_failed", MetricStats())
    requests = metrics.get("http_reqs", MetricStats())
    if requests.count == 0:
        return 0.0
    return failed.total / requests.count * 100


def check_pass_rate(metrics: Dict[str, MetricStats]) -> float:
    checks = metrics.get("checks", MetricStats())
    if checks.count == 0:
        return 0.0
    return checks.total / checks.count * 100


def analyze_file(path: str) -> FileReport:
    """Stream one result file and build its report.

    Raises:
        FileReadError: If the file cannot be opened or read.
    """
    report = FileReport(name=os.path.basename(path))
    values: Dict[str, List[float]] = {}
    test_type: Optional[str] = None

    try:
        # undecodable bytes become U+FFFD and fail JSON parsing on their own line
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                report.total_lines += 1
                parsed = parse_line(line)
                if isinstance(parsed, SkippedLine):
                    report.skipped_lines += 1
                    continue
                if isinstance(parsed, IgnoredRecord):
                    continue
                values.setdefault(parsed.metric, []).append(parsed.value)
                if test_type is None and parsed.test_type:
                    test_type = parsed.test_type
    except OSError as exc:
        raise FileReadError(f"cannot read {path}: {exc}") from exc

    report.metrics = {name: summarize(samples) for name, samples in sorted(values.items())}
    report.test_type = test_type or "unknown"
    report.total_requests = report.metrics.get("http_reqs", MetricStats()).total
    report.failure_rate = failure_rate(report.metrics)
    checks = report.metrics.get("checks", MetricStats())
    report.checks_passed = checks.total
    report.checks_total = checks.count
    report.check_pass_rate = check_pass_rate(report.metrics)

    logger.debug(
        "result_file_analyzed",
        file=report.name,
        lines=report.total_lines,
        skipped=report.skipped_lines,
        metrics=len(report.metrics),
    )
    return report


def analyze_directory(directory: str) -> AnalysisResult:
    """Analyze every result file in ``directory``.

    A file that cannot be read gets a report carrying the error; the
    remaining files are still processed.

    Raises:
        ResultsError: If the directory is missing, unlistable, or empty.
    """
    result = AnalysisResult(directory=directory)
    for path in find_result_files(directory):
        try:
            report = analyze_file(path)
        except FileReadError as exc:
            logger.warning("result_file_unreadable", file=path, error=str(exc.__cause__ or exc))
            report = FileReport(name=os.path.basename(path), error=str(exc.__cause__ or exc))
        result.files.append(report)
    return result


def format_report(result: AnalysisResult) -> str:
    """Render an AnalysisResult as plain text in a fixed field order."""
    lines = ["K6 Test Results Analysis", "=" * 50]
    for report in result.files:
        lines.append("")
        lines.append(f"File: {report.name}")
        lines.append("-" * 30)
        if report.error is not None:
            lines.append(f"Error analyzing {report.name}: {report.error}")
            continue
        lines.extend(_format_file(report))
    lines.append("")
    lines.append("=" * 50)
    return "\n".join(lines)


# -- internal helpers ---------------------------------------------------------


def _format_file(report: FileReport) -> List[str]:
    durations = report.durations
    lines = [
        f"Test Type: {report.test_type}",
        f"Total Lines: {report.total_lines}",
        f"Total Requests: {_number(report.total_requests)}",
        "Response Times (ms):",
        f"  - Average: {_ms(durations.mean)}",
        f"  - Min: {_ms(durations.minimum)}",
        f"  - Max: {_ms(durations.maximum)}",
        f"Failure Rate: {report.failure_rate:.2f}%",
        (
            f"Check Pass Rate: {report.check_pass_rate:.2f}% "
            f"({_number(report.checks_passed)}/{report.checks_total})"
        ),
    ]
    if report.skipped_lines:
        lines.append(f"Skipped Lines: {report.skipped_lines}")
    return lines


def _ms(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}ms"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"
