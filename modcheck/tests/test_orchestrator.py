"""
Tests for the validation orchestrator: scoring, status, reports and fixes.
"""

import os
import time

import pytest

from modcheck.config import ModCheckSettings
from modcheck.core import LocalFileSystem, ModuleStructureProbe
from modcheck.errors import PathNotFoundError, ReportFrozenError, ValidationTimeoutError
from modcheck.governance import (
    ComplianceRule,
    ResultStatus,
    RuleCatalog,
    Severity,
    ValidationResult,
)
from modcheck.validation import (
    EXIT_FAIL,
    EXIT_OK,
    ValidationOptions,
    ValidationOrchestrator,
    calculate_score,
    derive_status,
    exit_code_for,
)


def readme_and_test_script_catalog():
    return RuleCatalog([
        ComplianceRule.from_dict({
            "rule_id": "README_REQUIRED",
            "category": "DOCUMENTATION",
            "severity": "ERROR",
            "conditions": [{"field": "README.md", "operator": "file_exists"}],
        }),
        ComplianceRule.from_dict({
            "rule_id": "TEST_SCRIPT_REQUIRED",
            "category": "TESTING",
            "severity": "WARNING",
            "conditions": [{"field": "package.scripts.test", "operator": "exists"}],
        }),
    ])


def result(status, severity=Severity.WARNING, rule_id="SOME_RULE"):
    return ValidationResult(rule_id=rule_id, status=status, severity=severity, message="")


class SlowProbe(ModuleStructureProbe):
    def probe(self, module_path, deadline=None):
        time.sleep(0.05)
        return super().probe(module_path, deadline)


class SlowDisk(LocalFileSystem):
    def read_bytes(self, path, limit=None):
        time.sleep(0.05)
        return super().read_bytes(path, limit)


def failing_rules(report):
    return {r.rule_id for r in report.results if r.status == ResultStatus.FAIL}


def test_missing_readme_and_test_script_fails(make_module):
    """Test the ERROR failure fails the module and both rules count against the score."""
    path = make_module("bare", manifest={"name": "bare", "version": "1.0.0"})
    orchestrator = ValidationOrchestrator(catalog=readme_and_test_script_catalog())

    report = orchestrator.validate(path)

    assert [r.status for r in report.results] == [ResultStatus.FAIL, ResultStatus.WARNING]
    assert report.overall_score == 0.0
    assert report.status == ResultStatus.FAIL
    assert exit_code_for(report) == EXIT_FAIL
    assert report.metrics.total_rules == 2


def test_compliant_module_scores_100(compliant_module):
    report = ValidationOrchestrator().validate(compliant_module)

    assert report.overall_score == 100.0
    assert report.status == ResultStatus.PASS
    assert report.recommendations == ()
    assert exit_code_for(report) == EXIT_OK
    assert report.module_type == "other"
    assert report.security.total == 0


def test_warning_only_module_exits_ok(make_module):
    path = make_module("docs", files={"README.md": "# Docs\n"}, manifest={"name": "docs"})
    orchestrator = ValidationOrchestrator(catalog=readme_and_test_script_catalog())

    report = orchestrator.validate(path)

    assert report.status == ResultStatus.WARNING
    assert report.overall_score == 50.0
    assert exit_code_for(report) == EXIT_OK


def test_score_and_status_helpers():
    assert calculate_score([]) == 100.0
    assert derive_status([]) == ResultStatus.PASS
    assert calculate_score([result(ResultStatus.PASS), result(ResultStatus.FAIL), result(ResultStatus.PASS)]) == 66.67
    assert derive_status([result(ResultStatus.PASS), result(ResultStatus.ERROR, Severity.INFO)]) == ResultStatus.FAIL
    assert derive_status([result(ResultStatus.WARNING, Severity.CRITICAL)]) == ResultStatus.FAIL
    assert derive_status([result(ResultStatus.WARNING), result(ResultStatus.PASS)]) == ResultStatus.WARNING


def test_report_is_frozen(compliant_module):
    report = ValidationOrchestrator().validate(compliant_module)

    assert report.frozen
    assert isinstance(report.results, tuple)
    with pytest.raises(ReportFrozenError):
        report.overall_score = 0.0
    with pytest.raises(ReportFrozenError):
        report.add_result(result(ResultStatus.FAIL))


def test_missing_module_raises(tmp_path):
    with pytest.raises(PathNotFoundError):
        ValidationOrchestrator().validate(str(tmp_path / "missing"))


def test_timeout_raises(compliant_module):
    orchestrator = ValidationOrchestrator(probe=SlowProbe())

    with pytest.raises(ValidationTimeoutError) as exc:
        orchestrator.validate(compliant_module, ValidationOptions(timeout=0.01))
    assert isinstance(exc.value, TimeoutError)
    assert exc.value.timeout == 0.01


def test_timeout_stops_reading_files(make_module):
    """Test an expired pipeline stops at the next file instead of reading the rest."""
    path = make_module("wide", files={f"src/part{i}.js": "module.exports = 1;\n" for i in range(12)},
                       manifest={"name": "wide"})
    orchestrator = ValidationOrchestrator(probe=ModuleStructureProbe(filesystem=SlowDisk()))
    started = time.monotonic()

    with pytest.raises(ValidationTimeoutError):
        orchestrator.validate(path, ValidationOptions(timeout=0.1))

    assert time.monotonic() - started < 0.4


def test_rule_filters_applied(make_module):
    path = make_module("bare", manifest={"name": "bare"})
    options = ValidationOptions(include_rules=["README_EXISTS"], analyze_dependencies=False, scan_security=False)

    report = ValidationOrchestrator().validate(path, options)

    assert [r.rule_id for r in report.results] == ["README_EXISTS"]
    assert report.dependency_analysis is None
    assert report.security is None


def test_security_findings_in_score(make_module):
    path = make_module("risky", files={"src/run.js": "eval(input);\n"}, manifest={"name": "risky"})
    options = ValidationOptions(include_rules=["PACKAGE_JSON_EXISTS"], analysis_in_score=True)

    report = ValidationOrchestrator().validate(path, options)

    assert [r.rule_id for r in report.results] == ["PACKAGE_JSON_EXISTS", "SECURITY_CODE"]
    assert report.status == ResultStatus.FAIL
    assert report.overall_score == 50.0


def test_peer_modules_cycle(make_module):
    """Test a cycle with a peer module shows up in the dependency section."""
    core = make_module("kernel", manifest={"name": "kernel", "layer": "core", "dependencies": {"utils": "1.0.0"}})
    utils = make_module("utils", manifest={"name": "utils", "layer": "core", "dependencies": {"kernel": "1.0.0"}})
    options = ValidationOptions(include_rules=["PACKAGE_JSON_EXISTS"], peer_modules=[utils], analysis_in_score=True)

    report = ValidationOrchestrator().validate(core, options)

    section = report.dependency_analysis
    assert section["module"] == "kernel"
    assert section["dependencies"] == ["utils"]
    assert section["dependents"] == ["utils"]
    assert [c["modules"] for c in section["cycles"]] == [["kernel", "utils"]]
    cycle_result = report.result_for("DEPENDENCY_CYCLE")
    assert cycle_result.severity == Severity.CRITICAL
    assert cycle_result.status == ResultStatus.FAIL
    assert "DEPENDENCIES" in [r.category for r in report.recommendations]


def test_recommendations_grouped(make_module):
    path = make_module("bare", manifest={"name": "bare"})

    report = ValidationOrchestrator().validate(path)

    by_category = {r.category: r for r in report.recommendations}
    assert "AUTO_FIX" in by_category
    assert "README_EXISTS" in by_category["AUTO_FIX"].related_rules
    assert "ERROR_FIXES" in by_category
    assert "IMPROVEMENTS" in by_category
    assert "CRITICAL_FIXES" not in by_category


def test_fix_applies_and_revalidates(make_module):
    path = make_module("fixme", files={"src/index.ts": "export const x = 1;\n"}, manifest={"name": "fixme", "version": "1.0.0"})
    orchestrator = ValidationOrchestrator()

    session = orchestrator.fix(path)

    assert session.before.result_for("README_EXISTS").status == ResultStatus.FAIL
    assert set(session.fixed_rules) >= {"README_EXISTS", "GITIGNORE_REQUIRED", "TEST_DIRECTORY_REQUIRED",
                                        "BUILD_SCRIPT_REQUIRED", "TYPESCRIPT_CONFIG_REQUIRED"}
    assert session.after.status == ResultStatus.PASS
    assert session.after.overall_score == 100.0
    with open(os.path.join(path, "README.md"), encoding="utf-8") as f:
        assert f.read().startswith("# fixme")


def test_fix_dry_run_changes_nothing(make_module):
    path = make_module("fixme", manifest={"name": "fixme"})
    before_files = sorted(os.listdir(path))

    session = ValidationOrchestrator().fix(path, dry_run=True)

    assert sorted(os.listdir(path)) == before_files
    assert session.after is session.before
    assert all(f.dry_run and f.changes for f in session.fixes)


def test_from_settings_loads_rules_file(tmp_path):
    rules = tmp_path / "rules.yaml"
    rules.write_text("disabled: [GITIGNORE_REQUIRED]\n", encoding="utf-8")
    settings = ModCheckSettings(rules_file=str(rules), max_concurrent=5)

    orchestrator = ValidationOrchestrator.from_settings(settings)
    health = orchestrator.health()

    assert health["status"] == "healthy"
    assert health["rules"] == health["enabled_rules"] + 1
    assert health["max_concurrent"] == 5


def test_revalidation_is_stable(make_module):
    path = make_module("steady", files={"src/index.js": "module.exports = {};\n"}, manifest={"name": "steady"})
    orchestrator = ValidationOrchestrator()

    first = orchestrator.validate(path)
    second = orchestrator.validate(path)

    assert second.overall_score == first.overall_score
    assert failing_rules(second) == failing_rules(first)
    assert failing_rules(first)


def test_revalidation_after_fix_ignores_backups(make_module):
    """Test fix backups under .modcheck never show up as module files."""
    path = make_module("fixme", files={"src/index.ts": "export const x = 1;\n"}, manifest={"name": "fixme", "version": "1.0.0"})
    orchestrator = ValidationOrchestrator()

    session = orchestrator.fix(path)
    first = orchestrator.validate(path)
    second = orchestrator.validate(path)

    assert any(f.backups for f in session.fixes)
    assert os.path.isdir(os.path.join(path, ".modcheck", "backups"))
    assert first.overall_score == second.overall_score == session.after.overall_score
    assert failing_rules(first) == failing_rules(second) == failing_rules(session.after)
    facts = ModuleStructureProbe().probe(path)
    assert not [f for f in facts.files if f.startswith(".modcheck")]
    assert ".modcheck" not in facts.directories
