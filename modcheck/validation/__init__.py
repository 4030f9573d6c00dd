"""
Validation module - Pipeline orchestration, batch runs, auto-fix and summaries.
"""

from .models import (
    ValidationOptions,
    BatchOptions,
    Priority,
    Recommendation,
    ReportMetrics,
    ValidationReport,
    FailedItem,
    BatchResult,
    FixStatus,
    FileChange,
    AutoFixResult,
    FixSession,
    EcosystemSummary
)

from .autofix import AutoFixApplier, render_content, set_dotted

from .orchestrator import (
    ValidationOrchestrator,
    calculate_score,
    derive_status,
    exit_code_for,
    EXIT_OK,
    EXIT_FAIL,
    EXIT_ERROR
)

from .batch import BatchScheduler, failure_for

from .aggregator import ReportAggregator, compare_reports, score_bucket

__all__ = [
    # Models
    "ValidationOptions",
    "BatchOptions",
    "Priority",
    "Recommendation",
    "ReportMetrics",
    "ValidationReport",
    "FailedItem",
    "BatchResult",
    "FixStatus",
    "FileChange",
    "AutoFixResult",
    "FixSession",
    "EcosystemSummary",
    # Auto-fix
    "AutoFixApplier",
    "render_content",
    "set_dotted",
    # Orchestration
    "ValidationOrchestrator",
    "calculate_score",
    "derive_status",
    "exit_code_for",
    "EXIT_OK",
    "EXIT_FAIL",
    "EXIT_ERROR",
    # Batch
    "BatchScheduler",
    "failure_for",
    # Aggregation
    "ReportAggregator",
    "compare_reports",
    "score_bucket",
]
