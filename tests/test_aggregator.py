import pytest
from conftest import make_container

from kubexec.models import ExecutionResult, ExecutionStatus
from kubexec.reconcile.aggregator import NO_MATCH_REPORT, aggregate, split_report


def ok(name, stdout):
    return ExecutionResult(container=make_container(name), stdout=stdout)


def failed(name, error, stdout="", status=ExecutionStatus.FAILED):
    return ExecutionResult(container=make_container(name), stdout=stdout, status=status, error=error)


def test_no_results_reports_no_match():
    assert aggregate([]) == NO_MATCH_REPORT
    assert split_report(NO_MATCH_REPORT) == []


def test_single_success_entry_exact_format():
    report = aggregate([ok("web-1", "hi\n")])

    assert report == (
        "@@ entry 1/1 status=succeeded length=35 @@\n"
        "Container: web-1/web-1\n"
        "output: hi\n"
        "\n"
    )


def test_entries_keep_legacy_container_output_layout_in_order():
    report = aggregate([ok("web-1", "hi"), ok("web-2", "hi")])

    assert "Container: web-1/web-1\noutput: hi\n" in report
    assert "Container: web-2/web-2\noutput: hi\n" in report
    assert report.index("web-1/web-1") < report.index("web-2/web-2")


def test_aggregate_is_deterministic():
    results = [ok("web-1", "a\n"), failed("web-2", "boom", stdout="partial"), ok("web-3", "")]

    assert aggregate(results) == aggregate(list(results))


def test_failure_entry_is_distinct_from_success():
    report = aggregate(
        [failed("web-1", "command timed out after 1.0s", stdout="part", status=ExecutionStatus.TIMED_OUT), ok("web-2", "hi")]
    )

    assert "status=timed_out" in report
    assert "status=succeeded" in report
    assert "Container: web-1/web-1\nerror: command timed out after 1.0s\noutput: part\n" in report


def test_multiline_error_is_flattened_to_one_line():
    report = aggregate([failed("web-1", "exit 2:\nno such file\n")])

    assert "error: exit 2: no such file\n" in report


def test_split_report_recovers_entries():
    results = [
        ok("web-1", "hi\n"),
        failed("web-2", "command exited with code 3", stdout="half", status=ExecutionStatus.FAILED),
        failed("web-3", "kubectl binary not found", status=ExecutionStatus.ERROR),
    ]

    entries = split_report(aggregate(results))

    assert [e.index for e in entries] == [1, 2, 3]
    assert [e.container for e in entries] == ["web-1/web-1", "web-2/web-2", "web-3/web-3"]
    assert [e.status for e in entries] == [
        ExecutionStatus.SUCCEEDED,
        ExecutionStatus.FAILED,
        ExecutionStatus.ERROR,
    ]
    assert entries[0].output == "hi\n"
    assert entries[0].error is None
    assert entries[1].output == "half"
    assert entries[1].error == "command exited with code 3"
    assert entries[2].output == ""


def test_entry_length_counts_utf8_bytes():
    report = aggregate([ok("web-1", "é\n"), ok("web-2", "€ ok")])

    # "é" is two bytes, so the body is 35 bytes but only 34 characters long
    assert report.startswith("@@ entry 1/2 status=succeeded length=35 @@\n")
    _, _, rest = report.partition("@@\n")
    body = rest[: rest.index("@@ entry 2/2")]
    assert len(body.encode("utf-8")) == 35
    assert len(body) == 34

    first, second = split_report(report)
    assert first.output == "é\n"
    assert second.container == "web-2/web-2"
    assert second.output == "€ ok"


def test_split_report_is_not_confused_by_output_that_looks_like_entries():
    tricky = (
        "@@ entry 9/9 status=succeeded length=3 @@\n"
        "Container: fake/fake\n"
        "output: spoofed\n"
        "error: nope\n"
    )
    results = [ok("web-1", tricky), ok("web-2", "plain")]

    entries = split_report(aggregate(results))

    assert len(entries) == 2
    assert entries[0].output == tricky
    assert entries[1].container == "web-2/web-2"
    assert entries[1].output == "plain"


def test_split_report_rejects_malformed_input():
    with pytest.raises(ValueError):
        split_report("Container: web-1\noutput: hi\n")

    truncated = aggregate([ok("web-1", "hello world")])[:-5]
    with pytest.raises(ValueError):
        split_report(truncated)
