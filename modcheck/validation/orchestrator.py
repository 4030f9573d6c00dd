"""
Validation Orchestrator - Main entry point for validating one module.

Runs the pipeline stages in a fixed order:
probe -> rule engine -> dependency analysis -> security scan
and turns their output into a scored, frozen ValidationReport.
"""

import os
import time
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config import VERSION, ModCheckSettings
from ..core.deadline import Deadline
from ..core.facts import ModuleFacts
from ..core.probe import ModuleStructureProbe
from ..errors import PathNotFoundError
from ..governance.catalog import RuleCatalog
from ..governance.engine import ComplianceRuleEngine
from ..governance.models import ResultStatus, RuleCategory, Severity, ValidationResult
from ..graph.analyzer import DependencyGraphAnalyzer
from ..graph.layers import ArchitectureConfig
from ..graph.models import GraphAnalysisResult
from ..security.scanner import SecurityPatternScanner
from .autofix import AutoFixApplier
from .models import (
    BatchResult,
    FixSession,
    Priority,
    Recommendation,
    ReportMetrics,
    ValidationOptions,
    ValidationReport,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAIL = 1
EXIT_ERROR = 2


# =============================================================================
# Scoring
# =============================================================================

def calculate_score(results: Sequence[ValidationResult]) -> float:
    """100 * passed / total, or 100 when there is nothing to evaluate."""
    if not results:
        return 100.0
    passed = sum(1 for r in results if r.passed)
    return round(100.0 * passed / len(results), 2)


def derive_status(results: Sequence[ValidationResult]) -> ResultStatus:
    """
    Overall status of a set of results.

    FAIL if any result errored or any CRITICAL/ERROR rule did not pass,
    WARNING if only WARNING/INFO rules did not pass, PASS otherwise.
    """
    if any(r.status == ResultStatus.ERROR for r in results):
        return ResultStatus.FAIL
    failed = [r for r in results if not r.passed]
    if any(r.severity.blocking for r in failed):
        return ResultStatus.FAIL
    if failed:
        return ResultStatus.WARNING
    return ResultStatus.PASS


def exit_code_for(outcome: Union[ValidationReport, BatchResult, FixSession]) -> int:
    """
    Process exit code for a validation outcome.

    0 when nothing failed (WARNING counts as passing), 1 when a report
    failed, 2 when a batch lost modules to errors, timeouts or cancellation.
    """
    if isinstance(outcome, FixSession):
        outcome = outcome.after
    if isinstance(outcome, BatchResult):
        if outcome.failed_items:
            return EXIT_ERROR
        reports = list(outcome.reports.values())
    else:
        reports = [outcome]
    if any(r.status in (ResultStatus.FAIL, ResultStatus.ERROR) for r in reports):
        return EXIT_FAIL
    return EXIT_OK


# =============================================================================
# Orchestrator
# =============================================================================

class ValidationOrchestrator:
    """
    Validates modules end to end.

    Usage:
        orchestrator = ValidationOrchestrator()
        report = orchestrator.validate("packages/auth")
        print(report.status.value, report.overall_score)

        session = orchestrator.fix("packages/auth")
        print(session.fixed_rules)
    """

    def __init__(
        self,
        catalog: Optional[RuleCatalog] = None,
        settings: Optional[ModCheckSettings] = None,
        architecture: Optional[ArchitectureConfig] = None,
        probe: Optional[ModuleStructureProbe] = None,
        scanner: Optional[SecurityPatternScanner] = None,
        fixer: Optional[AutoFixApplier] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            catalog: Rules to evaluate. If None, uses the built-in rules.
            settings: Runtime settings. If None, uses the defaults.
            architecture: Layering for dependency analysis
            probe: Custom probe (e.g. with an in-memory filesystem)
            scanner: Custom security scanner
            fixer: Custom auto-fix applier
        """
        self.settings = settings or ModCheckSettings()
        self.catalog = catalog or RuleCatalog.with_builtin_rules()
        self.probe = probe or ModuleStructureProbe(
            max_excerpt_bytes=self.settings.max_excerpt_bytes,
            max_file_size=self.settings.max_file_size,
        )
        self.engine = ComplianceRuleEngine(self.catalog, max_file_lines=self.settings.max_file_lines)
        self.analyzer = DependencyGraphAnalyzer(architecture, filesystem=self.probe.fs)
        self.scanner = scanner or SecurityPatternScanner(max_file_size=self.settings.max_file_size)
        self.fixer = fixer or AutoFixApplier(filesystem=self.probe.fs, backup_dir=self.settings.backup_dir)

    @classmethod
    def from_settings(cls, settings: Optional[ModCheckSettings] = None) -> "ValidationOrchestrator":
        """Build an orchestrator from settings, loading rule and layer files if configured."""
        settings = settings or ModCheckSettings.from_env()
        if settings.rules_file:
            catalog = RuleCatalog.from_yaml(settings.rules_file)
        else:
            catalog = RuleCatalog.with_builtin_rules()
        architecture = None
        if settings.architecture_file:
            architecture = ArchitectureConfig.from_yaml(settings.architecture_file)
        return cls(catalog=catalog, settings=settings, architecture=architecture)

    # ─── Validation ───────────────────────────────

    def validate(
        self,
        module_path: str,
        options: Optional[ValidationOptions] = None,
        graph: Optional[GraphAnalysisResult] = None
    ) -> ValidationReport:
        """
        Validate one module.

        Args:
            module_path: Module directory
            options: Rule filters, timeout and stage toggles
            graph: Precomputed dependency analysis containing this module

        Returns:
            Frozen ValidationReport

        Raises:
            PathNotFoundError: If the module directory does not exist
            ValidationTimeoutError: If options.timeout is exceeded
        """
        options = options or ValidationOptions()
        deadline = Deadline(module_path, options.timeout)
        started = time.perf_counter()

        facts = self.probe.probe(module_path, deadline=deadline)
        deadline.check("probe")

        results = self.engine.evaluate(facts, options.include_rules, options.exclude_rules)
        deadline.check("rule evaluation")

        report = ValidationReport(
            module_id=facts.module_id,
            module_path=facts.module_path,
            module_type=facts.module_type,
            warnings=list(facts.warnings),
        )
        for result in results:
            report.add_result(result)

        if options.analyze_dependencies:
            analysis = self._analysis_for(facts, options, graph)
            report.dependency_analysis = self._dependency_section(analysis, facts)
            if options.analysis_in_score:
                for result in self._graph_results(analysis, facts):
                    report.add_result(result)
            deadline.check("dependency analysis")

        if options.scan_security:
            report.security = self.scanner.scan(facts, options.security, deadline=deadline)
            if options.analysis_in_score:
                for result in self.scanner.to_validation_results(report.security.vulnerabilities):
                    report.add_result(result)
            deadline.check("security scan")

        report.overall_score = calculate_score(report.results)
        report.status = derive_status(report.results)
        report.metrics = ReportMetrics.from_results(
            list(report.results),
            files_scanned=len(facts.excerpts),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        report.recommendations = self.recommendations(report, options.min_recommendation_group)
        report.freeze()

        logger.info(
            "Validated %s: %s (score %.1f, %d results)",
            report.module_id, report.status.value, report.overall_score, len(report.results)
        )
        return report

    def analyze_dependencies(
        self,
        module_paths: Sequence[str],
        include_external: bool = False,
        max_depth: Optional[int] = None
    ) -> GraphAnalysisResult:
        """
        Build the dependency graph across module directories.

        Only manifests are read. Paths that do not exist are left out and
        noted in the result's warnings.
        """
        peers: List[ModuleFacts] = []
        missing: List[str] = []
        for path in module_paths:
            try:
                peers.append(self.probe.probe_manifest(path))
            except PathNotFoundError:
                missing.append(path)
        analysis = self.analyzer.analyze(peers, include_external=include_external, max_depth=max_depth)
        for path in missing:
            analysis.warnings.append(f"Module path not found: {path}")
        return analysis

    def _analysis_for(
        self,
        facts: ModuleFacts,
        options: ValidationOptions,
        graph: Optional[GraphAnalysisResult]
    ) -> GraphAnalysisResult:
        if graph is not None and any(n.module_path == facts.module_path for n in graph.graph.nodes):
            return graph

        modules = [facts]
        own = os.path.abspath(facts.module_path)
        for path in options.peer_modules:
            if os.path.abspath(path) == own:
                continue
            try:
                modules.append(self.probe.probe_manifest(path))
            except PathNotFoundError:
                logger.warning("Peer module not found: %s", path)
        return self.analyzer.analyze(modules, include_external=options.include_external, max_depth=options.max_depth)

    @staticmethod
    def _node_id(analysis: GraphAnalysisResult, facts: ModuleFacts) -> Optional[str]:
        for node in analysis.graph.nodes:
            if node.module_path == facts.module_path and node.type != "external":
                return node.id
        return None

    def _dependency_section(self, analysis: GraphAnalysisResult, facts: ModuleFacts) -> Dict[str, Any]:
        node_id = self._node_id(analysis, facts)
        node = analysis.graph.node(node_id) if node_id else None
        return {
            "module": node_id,
            "layer": node.layer if node else None,
            "dependencies": analysis.graph.successors(node_id) if node_id else [],
            "dependents": analysis.graph.predecessors(node_id) if node_id else [],
            "cycles": [c.to_dict() for c in analysis.cycles_for(node_id)] if node_id else [],
            "violations": [v.to_dict() for v in analysis.violations_for(node_id)] if node_id else [],
            "unresolved": [u.to_dict() for u in analysis.unresolved_for(node_id)] if node_id else [],
            "build_order": [list(level) for level in analysis.build_order],
            "truncated": analysis.truncated,
            "warnings": list(analysis.warnings),
            "statistics": analysis.get_statistics(),
        }

    def _graph_results(self, analysis: GraphAnalysisResult, facts: ModuleFacts) -> List[ValidationResult]:
        """Cycles and layer violations of this module expressed as results."""
        node_id = self._node_id(analysis, facts)
        if node_id is None:
            return []

        results = []
        for cycle in analysis.cycles_for(node_id):
            results.append(ValidationResult(
                rule_id="DEPENDENCY_CYCLE",
                status=ResultStatus.FAIL if cycle.severity.blocking else ResultStatus.WARNING,
                severity=cycle.severity,
                message=f"Dependency cycle: {cycle.to_dict()['path']}",
                category=RuleCategory.DEPENDENCIES,
                rule_name="Dependency cycle",
                remediation="Break the cycle by extracting shared code into a lower layer",
            ))
        for violation in analysis.violations_for(node_id):
            # informational violations stay in the dependency section only
            if violation.severity == Severity.INFO:
                continue
            results.append(ValidationResult(
                rule_id=f"LAYER_{violation.violation_type.value.upper()}",
                status=ResultStatus.FAIL if violation.severity.blocking else ResultStatus.WARNING,
                severity=violation.severity,
                message=violation.message,
                category=RuleCategory.DEPENDENCIES,
                rule_name="Layer violation",
                remediation="Depend only on the next layer down",
            ))
        return results

    # ─── Recommendations ──────────────────────────

    def recommendations(self, report: ValidationReport, min_group_size: int = 1) -> List[Recommendation]:
        """
        Group failed results into recommendations.

        Best effort: groups smaller than min_group_size are left out.
        """
        results = list(report.results)
        min_group_size = max(1, min_group_size)
        items: List[Recommendation] = []

        def failed(severity: Severity) -> List[ValidationResult]:
            return [r for r in results if not r.passed and r.severity == severity]

        critical = failed(Severity.CRITICAL)
        if len(critical) >= min_group_size:
            items.append(Recommendation(
                priority=Priority.HIGH,
                category="CRITICAL_FIXES",
                title="Fix critical issues",
                description=f"{len(critical)} critical issues must be resolved immediately",
                effort=Priority.HIGH,
                impact=Priority.HIGH,
                steps=[r.remediation or r.message for r in critical],
                related_rules=[r.rule_id for r in critical],
            ))

        auto_fixable = report.auto_fixable_results()
        if len(auto_fixable) >= min_group_size:
            items.append(Recommendation(
                priority=Priority.MEDIUM,
                category="AUTO_FIX",
                title="Apply available auto-fixes",
                description=f"{len(auto_fixable)} violations can be fixed automatically",
                effort=Priority.LOW,
                impact=Priority.MEDIUM,
                steps=["Run the fix operation for this module", "Re-validate to confirm the fixes"],
                related_rules=[r.rule_id for r in auto_fixable],
            ))

        errors = failed(Severity.ERROR)
        if len(errors) >= min_group_size:
            items.append(Recommendation(
                priority=Priority.MEDIUM,
                category="ERROR_FIXES",
                title="Resolve error-level issues",
                description=f"{len(errors)} error-level issues should be fixed",
                effort=Priority.MEDIUM,
                impact=Priority.MEDIUM,
                steps=[r.remediation or r.message for r in errors],
                related_rules=[r.rule_id for r in errors],
            ))

        minor = failed(Severity.WARNING) + failed(Severity.INFO)
        if len(minor) >= min_group_size:
            items.append(Recommendation(
                priority=Priority.LOW,
                category="IMPROVEMENTS",
                title="Address warnings",
                description=f"{len(minor)} warnings could be improved",
                effort=Priority.LOW,
                impact=Priority.LOW,
                steps=[r.remediation or r.message for r in minor],
                related_rules=[r.rule_id for r in minor],
            ))

        security = report.security
        if security is not None and security.total >= min_group_size:
            urgent = security.summary.get("critical", 0) + security.summary.get("high", 0)
            items.append(Recommendation(
                priority=Priority.HIGH if urgent else Priority.MEDIUM,
                category="SECURITY",
                title="Review security findings",
                description=f"{security.total} security findings (risk score {security.risk_score})",
                effort=Priority.MEDIUM,
                impact=Priority.HIGH if urgent else Priority.MEDIUM,
                steps=list(security.recommendations),
                related_rules=sorted({f"SECURITY_{v.type.value.upper()}" for v in security.vulnerabilities}),
            ))

        dependency = report.dependency_analysis or {}
        cycles = dependency.get("cycles") or []
        if len(cycles) >= min_group_size:
            items.append(Recommendation(
                priority=Priority.HIGH,
                category="DEPENDENCIES",
                title="Break dependency cycles",
                description=f"{len(cycles)} dependency cycles include this module",
                effort=Priority.HIGH,
                impact=Priority.HIGH,
                steps=[f"Break {c['path']}" for c in cycles],
                related_rules=["DEPENDENCY_CYCLE"],
            ))

        return items

    # ─── Auto-fix ─────────────────────────────────

    def fix(
        self,
        module_path: str,
        options: Optional[ValidationOptions] = None,
        dry_run: bool = False,
        confirmed: bool = False
    ) -> FixSession:
        """
        Validate, apply every available auto-fix, then re-validate.

        Args:
            module_path: Module directory
            options: Validation options used for both runs
            dry_run: Only compute the change sets
            confirmed: Allow fixes that require confirmation

        Returns:
            FixSession with the before/after reports and each fix result
        """
        before = self.validate(module_path, options)
        fixes = []
        seen = set()
        for result in before.auto_fixable_results():
            if result.rule_id in seen:
                continue
            seen.add(result.rule_id)
            rule = self.catalog.get_rule(result.rule_id)
            if rule is None or not rule.can_auto_fix:
                continue
            fixes.append(self.fixer.apply(before.module_path, rule, dry_run=dry_run, confirmed=confirmed))

        applied = any(f.succeeded for f in fixes)
        after = self.validate(module_path, options) if applied and not dry_run else before
        logger.info(
            "Fixed %s: %d/%d fixes applied, score %.1f -> %.1f",
            before.module_id, sum(1 for f in fixes if f.succeeded), len(fixes),
            before.overall_score, after.overall_score
        )
        return FixSession(before=before, after=after, fixes=fixes)

    # ─── Health ───────────────────────────────────

    def health(self) -> Dict[str, Any]:
        """Liveness information for the command surface."""
        rules = self.catalog.get_all_rules()
        return {
            "status": "healthy",
            "version": VERSION,
            "rules": len(rules),
            "enabled_rules": sum(1 for r in rules if r.enabled),
            "max_concurrent": self.settings.max_concurrent,
        }
