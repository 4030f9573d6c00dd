"""
Report Aggregator - Ecosystem summaries and report comparison.
"""

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Union

from ..governance.models import ResultStatus
from .models import BatchResult, EcosystemSummary, ValidationReport

# Lower bound of each score bucket, highest first
SCORE_BUCKETS = [("excellent", 90), ("good", 80), ("fair", 70)]
TOP_VIOLATIONS = 10


def score_bucket(score: float) -> str:
    for name, lower in SCORE_BUCKETS:
        if score >= lower:
            return name
    return "poor"


class ReportAggregator:
    """
    Merges module reports into an EcosystemSummary.

    Summaries are recomputed from scratch on every call; nothing is stored.
    """

    def summarize(
        self,
        reports: Union[Iterable[ValidationReport], BatchResult],
        previous: Optional[EcosystemSummary] = None
    ) -> EcosystemSummary:
        """
        Aggregate reports.

        Args:
            reports: Module reports, or a BatchResult (its failed items count as errors)
            previous: Earlier summary to compute trend deltas against

        Returns:
            EcosystemSummary
        """
        errored = 0
        if isinstance(reports, BatchResult):
            errored = len(reports.failed_items)
            reports = list(reports.reports.values())
        else:
            reports = list(reports)

        summary = EcosystemSummary(
            total_modules=len(reports) + errored,
            score_distribution={"excellent": 0, "good": 0, "fair": 0, "poor": 0},
            status_breakdown={"pass": 0, "warning": 0, "fail": 0, "error": errored},
            module_scores=[
                {"module_id": r.module_id, "score": r.overall_score, "status": r.status.value}
                for r in reports
            ],
        )

        if reports:
            scores = [r.overall_score for r in reports]
            summary.average_score = round(sum(scores) / len(scores), 2)
            for score in scores:
                summary.score_distribution[score_bucket(score)] += 1

        for report in reports:
            summary.status_breakdown[report.status.value.lower()] += 1

        violations: Counter = Counter()
        for report in reports:
            for result in report.results:
                if result.status == ResultStatus.FAIL:
                    violations[result.rule_id] += 1
        # ties broken by rule id so the list is reproducible
        ranked = sorted(violations.items(), key=lambda item: (-item[1], item[0]))
        summary.top_violations = [
            {"rule_id": rule_id, "count": count} for rule_id, count in ranked[:TOP_VIOLATIONS]
        ]

        if previous is not None:
            summary.trend = self._trend(summary, previous)
        return summary

    @staticmethod
    def _trend(current: EcosystemSummary, previous: EcosystemSummary) -> Dict[str, Any]:
        previous_scores = {m["module_id"]: m["score"] for m in previous.module_scores}
        current_scores = {m["module_id"]: m["score"] for m in current.module_scores}
        return {
            "average_score_delta": round(current.average_score - previous.average_score, 2),
            "total_modules_delta": current.total_modules - previous.total_modules,
            "status_deltas": {
                key: current.status_breakdown.get(key, 0) - previous.status_breakdown.get(key, 0)
                for key in ("pass", "warning", "fail", "error")
            },
            "module_score_deltas": {
                module_id: round(score - previous_scores[module_id], 2)
                for module_id, score in current_scores.items()
                if module_id in previous_scores
            },
            "new_modules": sorted(set(current_scores) - set(previous_scores)),
            "removed_modules": sorted(set(previous_scores) - set(current_scores)),
        }


def compare_reports(before: ValidationReport, after: ValidationReport) -> Dict[str, Any]:
    """
    Compare two reports of the same module.

    new_violations: rules passing before and failing now (regressions).
    fixed_violations: rules failing before and passing now.
    """
    before_status = {r.rule_id: r.status for r in before.results}
    after_status = {r.rule_id: r.status for r in after.results}

    def failing(status: ResultStatus) -> bool:
        return status in (ResultStatus.FAIL, ResultStatus.WARNING, ResultStatus.ERROR)

    new: List[str] = sorted(
        rule_id for rule_id, status in after_status.items()
        if failing(status) and before_status.get(rule_id) == ResultStatus.PASS
    )
    fixed: List[str] = sorted(
        rule_id for rule_id, status in after_status.items()
        if status == ResultStatus.PASS and rule_id in before_status and failing(before_status[rule_id])
    )
    appeared: List[str] = sorted(
        rule_id for rule_id, status in after_status.items()
        if failing(status) and rule_id not in before_status
    )
    return {
        "module_id": after.module_id,
        "score_change": round(after.overall_score - before.overall_score, 2),
        "status_before": before.status.value,
        "status_after": after.status.value,
        "new_violations": len(new) + len(appeared),
        "fixed_violations": len(fixed),
        "regressions": len(new),
        "new_violation_rules": new + appeared,
        "fixed_violation_rules": fixed,
    }
