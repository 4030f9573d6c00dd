"""
Tests for ecosystem summaries and report comparison.
"""

from modcheck.governance import ResultStatus, Severity, ValidationResult
from modcheck.validation import (
    BatchResult,
    EcosystemSummary,
    FailedItem,
    ReportAggregator,
    ValidationReport,
    compare_reports,
    score_bucket,
)


def report(module_id, score, status, failing=(), passing=()):
    results = [
        ValidationResult(rule_id=rule_id, status=ResultStatus.FAIL, severity=Severity.ERROR, message="")
        for rule_id in failing
    ] + [
        ValidationResult(rule_id=rule_id, status=ResultStatus.PASS, severity=Severity.ERROR, message="")
        for rule_id in passing
    ]
    return ValidationReport(
        module_id=module_id,
        module_path=f"/modules/{module_id}",
        results=results,
        overall_score=score,
        status=status,
    ).freeze()


def ecosystem():
    return [
        report("auth", 95.0, ResultStatus.PASS, passing=["README_EXISTS"]),
        report("billing", 85.0, ResultStatus.WARNING, failing=["GITIGNORE_REQUIRED"]),
        report("search", 60.0, ResultStatus.FAIL, failing=["README_EXISTS", "GITIGNORE_REQUIRED"]),
        report("admin", 40.0, ResultStatus.FAIL, failing=["README_EXISTS", "BUILD_SCRIPT_REQUIRED"]),
    ]


def test_summarize_reports():
    summary = ReportAggregator().summarize(ecosystem())

    assert summary.total_modules == 4
    assert summary.average_score == 70.0
    assert summary.score_distribution == {"excellent": 1, "good": 1, "fair": 0, "poor": 2}
    assert summary.status_breakdown == {"pass": 1, "warning": 1, "fail": 2, "error": 0}
    assert summary.top_violations == [
        {"rule_id": "GITIGNORE_REQUIRED", "count": 2},
        {"rule_id": "README_EXISTS", "count": 2},
        {"rule_id": "BUILD_SCRIPT_REQUIRED", "count": 1},
    ]
    assert summary.trend is None


def test_batch_failures_count_as_errors():
    batch = BatchResult(total=3)
    batch.reports["/modules/auth"] = ecosystem()[0]
    batch.failed_items.append(FailedItem(module_path="/modules/slow", reason="timeout"))
    batch.failed_items.append(FailedItem(module_path="/modules/gone", reason="path_not_found"))

    summary = ReportAggregator().summarize(batch)

    assert summary.total_modules == 3
    assert summary.status_breakdown["error"] == 2
    assert summary.average_score == 95.0


def test_empty_summary():
    summary = ReportAggregator().summarize([])

    assert summary.total_modules == 0
    assert summary.average_score == 0.0
    assert summary.top_violations == []


def test_trend_against_previous():
    aggregator = ReportAggregator()
    previous = aggregator.summarize(ecosystem()[:3])
    current = [
        report("auth", 100.0, ResultStatus.PASS),
        report("billing", 85.0, ResultStatus.WARNING),
        report("admin", 40.0, ResultStatus.FAIL),
    ]

    trend = aggregator.summarize(current, previous=EcosystemSummary.from_dict(previous.to_dict())).trend

    assert trend["average_score_delta"] == -5.0
    assert trend["total_modules_delta"] == 0
    assert trend["module_score_deltas"] == {"auth": 5.0, "billing": 0.0}
    assert trend["new_modules"] == ["admin"]
    assert trend["removed_modules"] == ["search"]
    assert trend["status_deltas"] == {"pass": 0, "warning": 0, "fail": 0, "error": 0}


def test_compare_reports():
    before = report("auth", 50.0, ResultStatus.FAIL, failing=["README_EXISTS"], passing=["GITIGNORE_REQUIRED"])
    after = report("auth", 50.0, ResultStatus.FAIL, failing=["GITIGNORE_REQUIRED", "BUILD_SCRIPT_REQUIRED"],
                   passing=["README_EXISTS"])

    diff = compare_reports(before, after)

    assert diff["fixed_violations"] == 1
    assert diff["fixed_violation_rules"] == ["README_EXISTS"]
    assert diff["regressions"] == 1
    assert diff["new_violations"] == 2
    assert diff["new_violation_rules"] == ["GITIGNORE_REQUIRED", "BUILD_SCRIPT_REQUIRED"]
    assert diff["score_change"] == 0.0


def test_score_buckets():
    assert score_bucket(90) == "excellent"
    assert score_bucket(89.99) == "good"
    assert score_bucket(70) == "fair"
    assert score_bucket(69.9) == "poor"
