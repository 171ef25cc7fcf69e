"""Tests for results aggregation."""

import builtins
import json
import os

import pytest

from src.analyzer import (
    FileReadError,
    IgnoredRecord,
    NoResultFiles,
    ResultsDirectoryMissing,
    Sample,
    SkippedLine,
    analyze_directory,
    analyze_file,
    find_result_files,
    format_report,
    parse_line,
    summarize,
)
from src.models import AnalysisResult


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")
RESULTS_DIR = os.path.join(FIXTURES_DIR, "results")


def point(metric, value, **tags):
    record = {"type": "Point", "metric": metric, "data": {"value": value}}
    if tags:
        record["data"]["tags"] = tags
    return json.dumps(record)


def write_lines(path, lines):
    path.write_text("\n".join(lines) + "\n")
    return str(path)


class TestParseLine:
    def test_point(self):
        parsed = parse_line(point("http_reqs", 1, testType="load"))
        assert parsed == Sample(metric="http_reqs", value=1.0, test_type="load")

    def test_point_without_tags(self):
        parsed = parse_line(point("http_req_duration", 12.5))
        assert parsed == Sample(metric="http_req_duration", value=12.5, test_type=None)

    def test_top_level_value_accepted(self):
        line = json.dumps({"type": "Point", "metric": "checks", "value": 1, "tags": {"testType": "smoke"}})
        parsed = parse_line(line)
        assert parsed == Sample(metric="checks", value=1.0, test_type="smoke")

    def test_invalid_json(self):
        assert parse_line("{not json") == SkippedLine("invalid json")

    def test_metric_definition_ignored(self):
        line = json.dumps({"type": "Metric", "metric": "http_reqs", "data": {"type": "counter"}})
        assert parse_line(line) == IgnoredRecord("Metric")

    def test_record_without_type_skipped(self):
        line = json.dumps({"metric": "http_reqs", "data": {"value": 1}})
        assert parse_line(line) == SkippedLine("missing type")

    @pytest.mark.parametrize("line", [
        json.dumps({"type": "Point", "data": {"value": 1}}),
        json.dumps({"type": "Point", "metric": "http_reqs", "data": {}}),
        json.dumps({"type": "Point", "metric": "http_reqs", "data": {"value": "1"}}),
        json.dumps({"type": "Point", "metric": "http_reqs", "data": {"value": True}}),
        json.dumps([1, 2, 3]),
        "NaN",
    ])
    def test_missing_fields_skipped(self, line):
        assert isinstance(parse_line(line), SkippedLine)


class TestSummarize:
    def test_known_values(self):
        values = [120.5, 80.25, 300.0, 99.75]
        stats = summarize(values)
        assert stats.count == 4
        assert stats.total == pytest.approx(sum(values))
        assert stats.mean == pytest.approx(sum(values) / 4)
        assert stats.minimum == 80.25
        assert stats.maximum == 300.0

    def test_empty(self):
        stats = summarize([])
        assert stats.count == 0
        assert stats.total == 0
        assert stats.mean is None
        assert stats.minimum is None
        assert stats.maximum is None


class TestAnalyzeFile:
    def test_fixture_file(self):
        report = analyze_file(os.path.join(RESULTS_DIR, "load-run.json"))
        assert report.name == "load-run.json"
        assert report.test_type == "load"
        assert report.total_lines == 18
        assert report.skipped_lines == 1
        assert report.total_requests == 4
        assert report.durations.mean == pytest.approx(250.0)
        assert report.durations.minimum == 100.0
        assert report.durations.maximum == 400.0
        assert report.failure_rate == pytest.approx(25.0)
        assert report.checks_passed == 3
        assert report.checks_total == 4
        assert report.check_pass_rate == pytest.approx(75.0)

    def test_fifty_requests_five_failures(self, tmp_path):
        lines = [
            '{"type":"Point","metric":"http_reqs","data":{"value":1,"tags":{"testType":"load"}}}'
        ] * 50
        lines += [point("http_req_failed", 1)] * 5
        report = analyze_file(write_lines(tmp_path / "run.json", lines))
        assert report.total_requests == 50
        assert report.failure_rate == pytest.approx(10.0)
        assert "Failure Rate: 10.00%" in format_report_for(report)

    def test_duration_mean_matches_inputs(self, tmp_path):
        values = [12.0, 48.5, 7.25, 101.0, 33.3]
        lines = [point("http_req_duration", v) for v in values]
        report = analyze_file(write_lines(tmp_path / "run.json", lines))
        assert report.durations.count == len(values)
        assert report.durations.mean == pytest.approx(sum(values) / len(values))
        assert report.durations.minimum == min(values)
        assert report.durations.maximum == max(values)

    def test_no_valid_lines(self, tmp_path):
        report = analyze_file(write_lines(tmp_path / "run.json", ["{not json", "garbage", "[]"]))
        assert report.total_lines == 3
        assert report.skipped_lines == 3
        assert report.metrics == {}
        assert report.total_requests == 0
        assert report.failure_rate == 0
        assert report.check_pass_rate == 0
        text = format_report_for(report)
        assert "Average: N/A" in text
        assert "Check Pass Rate: 0.00% (0/0)" in text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("")
        report = analyze_file(str(path))
        assert report.total_lines == 0
        assert report.test_type == "unknown"

    def test_malformed_line_does_not_change_stats(self, tmp_path):
        clean = [
            point("http_reqs", 1, testType="stress"),
            point("http_req_duration", 40),
            point("http_req_failed", 1),
            point("checks", 1),
            point("http_req_duration", 60),
        ]
        dirty = clean[:2] + ["{not json"] + clean[2:]
        a = analyze_file(write_lines(tmp_path / "clean.json", clean))
        b = analyze_file(write_lines(tmp_path / "dirty.json", dirty))
        assert a.metrics == b.metrics
        assert a.failure_rate == b.failure_rate
        assert a.check_pass_rate == b.check_pass_rate
        assert b.skipped_lines == 1

    def test_first_test_type_wins(self, tmp_path):
        lines = [
            point("http_reqs", 1),
            point("http_reqs", 1, testType="smoke"),
            point("http_reqs", 1, testType="load"),
        ]
        report = analyze_file(write_lines(tmp_path / "run.json", lines))
        assert report.test_type == "smoke"

    def test_failure_rate_uses_request_sample_count(self, tmp_path):
        # http_reqs values are summed for the total but counted for the rate
        lines = [point("http_reqs", 2)] * 4 + [point("http_req_failed", 1)] * 2
        report = analyze_file(write_lines(tmp_path / "run.json", lines))
        assert report.total_requests == 8
        assert report.failure_rate == pytest.approx(50.0)

    def test_failures_without_requests_report_zero(self, tmp_path):
        report = analyze_file(write_lines(tmp_path / "run.json", [point("http_req_failed", 1)]))
        assert report.failure_rate == 0

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(FileReadError):
            analyze_file(str(tmp_path / "missing.json"))

    def test_undecodable_line_is_skipped(self, tmp_path):
        path = tmp_path / "run.json"
        good = [point("http_reqs", 1, testType="load")] * 3
        content = "\n".join(good).encode() + b'\n{"truncated": "\xe2\x82\n'
        content += point("http_reqs", 1).encode() + b"\n"
        path.write_bytes(content)
        report = analyze_file(str(path))
        assert report.total_lines == 5
        assert report.skipped_lines == 1
        assert report.total_requests == 4
        assert report.test_type == "load"

    def test_metric_declarations_not_counted_as_skipped(self, tmp_path):
        lines = [
            json.dumps({"type": "Metric", "metric": "http_reqs", "data": {"type": "counter"}}),
            point("http_reqs", 1),
            json.dumps({"type": "Metric", "metric": "checks", "data": {"type": "rate"}}),
            point("checks", 1),
        ]
        report = analyze_file(write_lines(tmp_path / "run.json", lines))
        assert report.total_lines == 4
        assert report.skipped_lines == 0
        assert "Skipped Lines" not in format_report_for(report)


def deny_open(monkeypatch, *names):
    """Make ``open`` in the analyzer fail with EACCES for the given file names."""
    real_open = builtins.open

    def fake_open(path, *args, **kwargs):
        if os.path.basename(str(path)) in names:
            raise PermissionError(13, "Permission denied", str(path))
        return real_open(path, *args, **kwargs)

    monkeypatch.setattr("src.analyzer.open", fake_open, raising=False)


def format_report_for(report):
    return format_report(AnalysisResult(directory="x", files=[report]))


class TestDirectory:
    def test_find_only_result_files(self):
        files = find_result_files(RESULTS_DIR)
        assert [os.path.basename(f) for f in files] == ["load-run.json"]

    def test_files_sorted_and_non_recursive(self, tmp_path):
        (tmp_path / "b.json").write_text("")
        (tmp_path / "a.ndjson").write_text("")
        (tmp_path / "c.jsonl").write_text("")
        (tmp_path / "sub.json").mkdir()
        (tmp_path / "sub.json" / "inner.json").write_text("")
        names = [os.path.basename(f) for f in find_result_files(str(tmp_path))]
        assert names == ["a.ndjson", "b.json", "c.jsonl"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ResultsDirectoryMissing):
            find_result_files(str(tmp_path / "nope"))

    def test_empty_directory(self, tmp_path):
        with pytest.raises(NoResultFiles):
            find_result_files(str(tmp_path))

    def test_bad_file_does_not_abort_run(self, tmp_path, monkeypatch):
        write_lines(tmp_path / "a.json", [point("http_reqs", 1, testType="load")])
        write_lines(tmp_path / "b.json", [point("http_reqs", 1)])
        write_lines(tmp_path / "c.json", [point("http_reqs", 1, testType="spike")])
        deny_open(monkeypatch, "b.json")
        result = analyze_directory(str(tmp_path))
        assert [r.name for r in result.files] == ["a.json", "b.json", "c.json"]
        assert result.files[0].error is None
        assert "Permission denied" in result.files[1].error
        assert result.files[2].test_type == "spike"
        assert "Error analyzing b.json" in format_report(result)


class TestFormatReport:
    def test_field_order(self):
        result = analyze_directory(RESULTS_DIR)
        text = format_report(result)
        expected = [
            "File: load-run.json",
            "Test Type: load",
            "Total Lines: 18",
            "Total Requests: 4",
            "  - Average: 250.00ms",
            "  - Min: 100.00ms",
            "  - Max: 400.00ms",
            "Failure Rate: 25.00%",
            "Check Pass Rate: 75.00% (3/4)",
            "Skipped Lines: 1",
        ]
        positions = [text.index(line) for line in expected]
        assert positions == sorted(positions)

    def test_deterministic(self):
        first = format_report(analyze_directory(RESULTS_DIR))
        second = format_report(analyze_directory(RESULTS_DIR))
        assert first == second
