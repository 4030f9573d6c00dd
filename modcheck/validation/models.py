"""
Validation - Data Models

Reports, options and results for single-module validation, batch runs,
auto-fix sessions and ecosystem summaries.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..errors import ReportFrozenError
from ..governance.models import FixActionType, ResultStatus, Severity, ValidationResult
from ..security.models import SecurityScanOptions, SecurityScanResult


# =============================================================================
# Options
# =============================================================================

@dataclass
class ValidationOptions:
    """
    Options for one validation run.

    Attributes:
        include_rules: Only evaluate these rule ids (None = all applicable)
        exclude_rules: Skip these rule ids
        timeout: Seconds before the run raises ValidationTimeoutError (None = no limit)
        analyze_dependencies: Run the dependency graph stage
        scan_security: Run the security scan stage
        security: Scanner pass toggles and output filters
        peer_modules: Other module directories the graph is built against
        include_external: Expand into node_modules for external dependencies
        max_depth: Bound for external expansion
        analysis_in_score: Count graph and security findings as results
        min_recommendation_group: Smallest failure group that gets a recommendation
    """
    include_rules: Optional[List[str]] = None
    exclude_rules: Optional[List[str]] = None
    timeout: Optional[float] = None
    analyze_dependencies: bool = True
    scan_security: bool = True
    security: SecurityScanOptions = field(default_factory=SecurityScanOptions)
    peer_modules: List[str] = field(default_factory=list)
    include_external: bool = False
    max_depth: Optional[int] = None
    analysis_in_score: bool = False
    min_recommendation_group: int = 1


@dataclass
class BatchOptions:
    """Options for a batch run."""
    max_concurrent: int = 3
    timeout: Optional[float] = 30.0
    continue_on_error: bool = True
    validation: ValidationOptions = field(default_factory=ValidationOptions)
    # Build the dependency graph across every module in the batch
    batch_graph: bool = True
    on_progress: Optional[Callable[[Dict[str, int]], None]] = None
    on_item_complete: Optional[Callable[[str, "ValidationReport"], None]] = None


# =============================================================================
# Report
# =============================================================================

class Priority(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class Recommendation:
    """A grouped, best-effort suggestion derived from failed results."""
    priority: Priority
    category: str
    title: str
    description: str
    effort: Priority
    impact: Priority
    steps: List[str] = field(default_factory=list)
    related_rules: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "effort": self.effort.value,
            "impact": self.impact.value,
            "steps": list(self.steps),
            "related_rules": list(self.related_rules),
        }


@dataclass
class ReportMetrics:
    """Counts derived from a report's results."""
    total_rules: int = 0
    passed_rules: int = 0
    failed_rules: int = 0
    warning_rules: int = 0
    error_rules: int = 0
    severity_breakdown: Dict[str, Dict[str, int]] = field(default_factory=dict)
    category_breakdown: Dict[str, Dict[str, int]] = field(default_factory=dict)
    auto_fixable_violations: int = 0
    files_scanned: int = 0
    duration_ms: float = 0.0

    @classmethod
    def from_results(cls, results: List[ValidationResult], files_scanned: int = 0,
                     duration_ms: float = 0.0) -> "ReportMetrics":
        metrics = cls(
            total_rules=len(results),
            severity_breakdown={s.value.lower(): {"passed": 0, "failed": 0} for s in Severity},
            files_scanned=files_scanned,
            duration_ms=duration_ms,
        )
        for result in results:
            if result.status == ResultStatus.PASS:
                metrics.passed_rules += 1
            elif result.status == ResultStatus.FAIL:
                metrics.failed_rules += 1
            elif result.status == ResultStatus.WARNING:
                metrics.warning_rules += 1
            else:
                metrics.error_rules += 1

            bucket = "passed" if result.passed else "failed"
            metrics.severity_breakdown[result.severity.value.lower()][bucket] += 1

            category = result.category.value if result.category else "OTHER"
            counts = metrics.category_breakdown.setdefault(category, {"passed": 0, "failed": 0, "total": 0})
            counts[bucket] += 1
            counts["total"] += 1

            if result.can_auto_fix and not result.passed:
                metrics.auto_fixable_violations += 1
        return metrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rules": self.total_rules,
            "passed_rules": self.passed_rules,
            "failed_rules": self.failed_rules,
            "warning_rules": self.warning_rules,
            "error_rules": self.error_rules,
            "severity_breakdown": self.severity_breakdown,
            "category_breakdown": self.category_breakdown,
            "auto_fixable_violations": self.auto_fixable_violations,
            "files_scanned": self.files_scanned,
            "duration_ms": round(self.duration_ms, 3),
        }


@dataclass
class ValidationReport:
    """
    Validation outcome for one module.

    Built by the orchestrator and frozen once scored. After freeze() any
    attribute assignment raises ReportFrozenError; results and
    recommendations become tuples.
    """
    module_id: str
    module_path: str
    module_type: str = "other"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    results: List[ValidationResult] = field(default_factory=list)
    overall_score: float = 0.0
    status: ResultStatus = ResultStatus.PASS
    metrics: ReportMetrics = field(default_factory=ReportMetrics)
    recommendations: List[Recommendation] = field(default_factory=list)
    dependency_analysis: Optional[Dict[str, Any]] = None
    security: Optional[SecurityScanResult] = None
    warnings: List[str] = field(default_factory=list)
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __setattr__(self, name, value):
        if self.__dict__.get("_frozen", False):
            raise ReportFrozenError(f"Report for {self.module_id} is frozen; cannot set '{name}'")
        super().__setattr__(name, value)

    @property
    def frozen(self) -> bool:
        return self.__dict__.get("_frozen", False)

    def add_result(self, result: ValidationResult) -> None:
        if self.frozen:
            raise ReportFrozenError(f"Report for {self.module_id} is frozen; cannot add results")
        self.results.append(result)

    def freeze(self) -> "ValidationReport":
        self.results = tuple(self.results)
        self.recommendations = tuple(self.recommendations)
        self.warnings = tuple(self.warnings)
        self.__dict__["_frozen"] = True
        return self

    # ─── Queries ──────────────────────────────────

    def result_for(self, rule_id: str) -> Optional[ValidationResult]:
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        return None

    def failed_results(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.passed]

    def auto_fixable_results(self) -> List[ValidationResult]:
        return [
            r for r in self.results
            if r.can_auto_fix and r.status in (ResultStatus.FAIL, ResultStatus.WARNING)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "module_id": self.module_id,
            "module_path": self.module_path,
            "module_type": self.module_type,
            "timestamp": self.timestamp.isoformat(),
            "overall_score": self.overall_score,
            "status": self.status.value,
            "results": [r.to_dict() for r in self.results],
            "metrics": self.metrics.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "dependency_analysis": self.dependency_analysis,
            "security": self.security.to_dict() if self.security else None,
            "warnings": list(self.warnings),
        }


# =============================================================================
# Batch
# =============================================================================

@dataclass(frozen=True)
class FailedItem:
    """A module that produced no report in a batch run."""
    module_path: str
    reason: str                 # "timeout", "path_not_found", "error" or "cancelled"
    message: str = ""
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_path": self.module_path,
            "reason": self.reason,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class BatchResult:
    """Outcome of a batch run; reports are keyed by module path in input order."""
    total: int
    reports: Dict[str, ValidationReport] = field(default_factory=dict)
    failed_items: List[FailedItem] = field(default_factory=list)
    continue_on_error: bool = True
    duration_ms: float = 0.0
    max_in_flight: int = 0
    duplicates_ignored: int = 0

    @property
    def completed(self) -> int:
        return len(self.reports)

    @property
    def cancelled(self) -> List[FailedItem]:
        return [f for f in self.failed_items if f.reason == "cancelled"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": len(self.failed_items),
            "continue_on_error": self.continue_on_error,
            "duration_ms": round(self.duration_ms, 3),
            "max_in_flight": self.max_in_flight,
            "duplicates_ignored": self.duplicates_ignored,
            "reports": [r.to_dict() for r in self.reports.values()],
            "failed_items": [f.to_dict() for f in self.failed_items],
        }


# =============================================================================
# Auto-fix
# =============================================================================

class FixStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class FileChange:
    """One filesystem change an auto-fix makes (or would make)."""
    action: FixActionType
    path: str
    description: str
    existed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "path": self.path,
            "description": self.description,
            "existed": self.existed,
        }


@dataclass
class AutoFixResult:
    """Outcome of applying one rule's auto-fix to one module."""
    rule_id: str
    module_path: str
    status: FixStatus
    changes: List[FileChange] = field(default_factory=list)
    backups: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
    rolled_back: bool = False
    error: Optional[str] = None
    attempts: int = 0
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == FixStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "module_path": self.module_path,
            "status": self.status.value,
            "changes": [c.to_dict() for c in self.changes],
            "backups": dict(self.backups),
            "dry_run": self.dry_run,
            "rolled_back": self.rolled_back,
            "error": self.error,
            "attempts": self.attempts,
            "duration_ms": round(self.duration_ms, 3),
        }


@dataclass
class FixSession:
    """Validate, fix and re-validate one module."""
    before: ValidationReport
    after: ValidationReport
    fixes: List[AutoFixResult] = field(default_factory=list)

    @property
    def fixed_rules(self) -> List[str]:
        fixed = []
        for fix in self.fixes:
            result = self.after.result_for(fix.rule_id)
            if fix.succeeded and result is not None and result.passed:
                fixed.append(fix.rule_id)
        return fixed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "before": self.before.to_dict(),
            "after": self.after.to_dict(),
            "fixes": [f.to_dict() for f in self.fixes],
            "fixed_rules": self.fixed_rules,
        }


# =============================================================================
# Ecosystem
# =============================================================================

@dataclass
class EcosystemSummary:
    """Aggregate view over many module reports."""
    total_modules: int
    average_score: float = 0.0
    status_breakdown: Dict[str, int] = field(default_factory=dict)
    score_distribution: Dict[str, int] = field(default_factory=dict)
    top_violations: List[Dict[str, Any]] = field(default_factory=list)
    module_scores: List[Dict[str, Any]] = field(default_factory=list)
    trend: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_modules": self.total_modules,
            "average_score": self.average_score,
            "status_breakdown": dict(self.status_breakdown),
            "score_distribution": dict(self.score_distribution),
            "top_violations": list(self.top_violations),
            "module_scores": list(self.module_scores),
            "trend": self.trend,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EcosystemSummary":
        """Rebuild a summary from its to_dict() form (for trend input)."""
        return cls(
            total_modules=int(raw.get("total_modules", 0)),
            average_score=float(raw.get("average_score", 0.0)),
            status_breakdown=dict(raw.get("status_breakdown") or {}),
            score_distribution=dict(raw.get("score_distribution") or {}),
            top_violations=list(raw.get("top_violations") or []),
            module_scores=list(raw.get("module_scores") or []),
        )
