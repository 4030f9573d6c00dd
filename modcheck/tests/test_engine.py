"""
Tests for the compliance rule engine.
"""

from modcheck.core import ModuleStructureProbe
from modcheck.governance import (
    SCOPE_CHECKS,
    ComplianceRule,
    ComplianceRuleEngine,
    ResultStatus,
    RuleCatalog,
    RuleScope,
)


def readme_and_test_script_catalog():
    return RuleCatalog([
        ComplianceRule.from_dict({
            "rule_id": "README_REQUIRED",
            "name": "README required",
            "category": "DOCUMENTATION",
            "severity": "ERROR",
            "conditions": [{"field": "README.md", "operator": "file_exists"}],
        }),
        ComplianceRule.from_dict({
            "rule_id": "TEST_SCRIPT_REQUIRED",
            "name": "Test script required",
            "category": "TESTING",
            "severity": "WARNING",
            "conditions": [{"field": "package.scripts.test", "operator": "exists"}],
        }),
    ])


def test_missing_readme_and_test_script(make_module):
    """Test an ERROR rule fails and a WARNING rule warns."""
    path = make_module("bare", manifest={"name": "bare", "version": "1.0.0"})
    facts = ModuleStructureProbe().probe(path)

    results = ComplianceRuleEngine(readme_and_test_script_catalog()).evaluate(facts)

    assert [(r.rule_id, r.status) for r in results] == [
        ("README_REQUIRED", ResultStatus.FAIL),
        ("TEST_SCRIPT_REQUIRED", ResultStatus.WARNING),
    ]
    assert results[0].message == "README.md is missing"
    assert results[0].file_path == "README.md"


def test_compliant_module_passes_builtins(compliant_module):
    facts = ModuleStructureProbe().probe(compliant_module)

    results = ComplianceRuleEngine().evaluate(facts)

    assert all(r.passed for r in results), [r.to_dict() for r in results if not r.passed]


def test_evaluation_is_deterministic(make_module):
    path = make_module("mixed", files={"src/index.js": "const x = 1;\n"}, manifest={"name": "mixed"})
    facts = ModuleStructureProbe().probe(path)
    engine = ComplianceRuleEngine()

    first = [(r.rule_id, r.status, r.message) for r in engine.evaluate(facts)]
    second = [(r.rule_id, r.status, r.message) for r in engine.evaluate(facts)]

    assert first == second
    assert [rule_id for rule_id, _, _ in first] == sorted(rule_id for rule_id, _, _ in first)


def test_evaluator_failure_becomes_error_result(make_module, monkeypatch):
    """Test a raising check is isolated to its own rule."""
    def broken_check(facts, max_file_lines):
        raise RuntimeError("boom")

    monkeypatch.setitem(SCOPE_CHECKS, RuleScope.FILE, broken_check)
    path = make_module("mod", manifest={"name": "mod", "version": "1.0.0"})
    facts = ModuleStructureProbe().probe(path)

    results = {r.rule_id: r for r in ComplianceRuleEngine().evaluate(facts)}

    failed = results["FILE_SIZE_LIMIT"]
    assert failed.status == ResultStatus.ERROR
    assert failed.message.startswith("evaluator-failure")
    assert failed.can_auto_fix is False
    assert results["PACKAGE_JSON_EXISTS"].status == ResultStatus.PASS


def test_include_and_exclude_filters(make_module):
    path = make_module("mod", manifest={"name": "mod"})
    facts = ModuleStructureProbe().probe(path)
    engine = ComplianceRuleEngine()

    included = engine.evaluate(facts, include_rules=["README_EXISTS", "GITIGNORE_REQUIRED"])
    excluded = engine.evaluate(facts, exclude_rules=["README_EXISTS"])

    assert [r.rule_id for r in included] == ["GITIGNORE_REQUIRED", "README_EXISTS"]
    assert "README_EXISTS" not in [r.rule_id for r in excluded]


def test_builtin_checks_flag_problems(make_module):
    path = make_module("messy", files={
        "src/users.js": "const users = mockData;\n",
        "src/big.js": "line\n" * 12,
        "config.yaml": "password: 'hunter2hunter2'\n",
    }, manifest={"name": "messy"})
    facts = ModuleStructureProbe().probe(path)

    results = {r.rule_id: r for r in ComplianceRuleEngine(max_file_lines=10).evaluate(facts)}

    assert results["NO_MOCK_DATA"].status == ResultStatus.FAIL
    assert results["NO_MOCK_DATA"].file_path == "src/users.js"
    assert results["FILE_SIZE_LIMIT"].status == ResultStatus.WARNING
    assert results["FILE_SIZE_LIMIT"].file_path == "src/big.js"
    assert results["SECURITY_CONFIG_CHECK"].status == ResultStatus.FAIL
    assert results["SECURITY_CONFIG_CHECK"].line_number == 1
    assert results["BUILD_SCRIPT_REQUIRED"].status == ResultStatus.FAIL


def test_auto_fix_flag_follows_rule(make_module):
    path = make_module("mod", manifest={"name": "mod"})
    facts = ModuleStructureProbe().probe(path)

    results = {r.rule_id: r for r in ComplianceRuleEngine().evaluate(facts)}

    assert results["README_EXISTS"].can_auto_fix is True
    assert results["NO_MOCK_DATA"].can_auto_fix is False
