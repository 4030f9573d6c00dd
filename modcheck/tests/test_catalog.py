"""
Tests for the rule catalog and rule definitions.
"""

import pytest

from modcheck.errors import RuleConfigurationError, RuleConflictError
from modcheck.governance import (
    BUILTIN_RULES,
    ComplianceRule,
    ConditionOperator,
    FixActionType,
    RuleCatalog,
    RuleCategory,
    RuleCondition,
    Severity,
)


def _rule(rule_id="CUSTOM_RULE", **overrides):
    data = {
        "rule_id": rule_id,
        "name": "Custom rule",
        "category": "STRUCTURE",
        "severity": "ERROR",
        "conditions": [{"field": "README.md", "operator": "file_exists"}],
    }
    data.update(overrides)
    return ComplianceRule.from_dict(data)


def test_builtin_rules_listed_in_id_order():
    """Test the built-in catalog lists rules sorted by id."""
    catalog = RuleCatalog.with_builtin_rules()
    ids = [r.rule_id for r in catalog.get_all_rules()]

    assert len(ids) == len(BUILTIN_RULES)
    assert ids == sorted(ids)
    assert "PACKAGE_JSON_EXISTS" in catalog


def test_register_duplicate_raises_conflict():
    catalog = RuleCatalog.with_builtin_rules()

    with pytest.raises(RuleConflictError) as exc:
        catalog.register_rule(_rule("README_EXISTS"))
    assert exc.value.rule_id == "README_EXISTS"


def test_disable_and_enable():
    """Test disabled rules drop out of the applicable set and come back."""
    catalog = RuleCatalog.with_builtin_rules()
    catalog.disable_rule("GITIGNORE_REQUIRED")

    applicable = [r.rule_id for r in catalog.get_applicable_rules("other")]
    assert "GITIGNORE_REQUIRED" not in applicable
    assert catalog.get_rule("GITIGNORE_REQUIRED").enabled is False

    catalog.enable_rule("GITIGNORE_REQUIRED")
    assert "GITIGNORE_REQUIRED" in [r.rule_id for r in catalog.get_applicable_rules("other")]


def test_disable_unknown_rule_is_noop():
    catalog = RuleCatalog.with_builtin_rules()
    before = catalog.get_rules_summary()

    catalog.disable_rule("NO_SUCH_RULE")

    assert catalog.get_rules_summary() == before


def test_applicable_types_filter():
    catalog = RuleCatalog([_rule("UI_ONLY", applicable_types=["frontend-component"]), _rule("ALL_TYPES")])

    assert [r.rule_id for r in catalog.get_applicable_rules("frontend-component")] == ["ALL_TYPES", "UI_ONLY"]
    assert [r.rule_id for r in catalog.get_applicable_rules("backend-api")] == ["ALL_TYPES"]


@pytest.mark.parametrize("condition", [
    {"field": "scripts.test", "operator": "approximately", "value": 1},
    {"field": "unknown_root.value", "operator": "exists"},
    {"field": "scripts.test", "operator": "exists", "value": True},
    {"field": "scripts.test", "operator": "equals"},
    {"field": "name", "operator": "matches_regex", "value": "(unclosed"},
])
def test_invalid_conditions_rejected_at_load(condition):
    with pytest.raises(RuleConfigurationError):
        _rule(conditions=[condition])


def test_invalid_rule_fields_rejected():
    with pytest.raises(RuleConfigurationError):
        _rule("lower_case_id")
    with pytest.raises(RuleConfigurationError):
        _rule(severity="FATAL")
    with pytest.raises(RuleConfigurationError):
        ComplianceRule.from_dict({"name": "no id"})


def test_legacy_rule_keys_accepted():
    """Test camelCase keys and the update_package_json fix alias."""
    rule = ComplianceRule.from_dict({
        "ruleId": "TEST_SCRIPT",
        "name": "Test script",
        "category": "testing",
        "severity": "warning",
        "applicableTo": ["backend-api"],
        "conditions": [{"field": "scripts.test", "operator": "exists"}],
        "autoFix": [{"action": "update_package_json", "target": "scripts.test", "content": "jest"}],
    })

    assert rule.category == RuleCategory.TESTING
    assert rule.severity == Severity.WARNING
    assert rule.applicable_types == ("backend-api",)
    assert rule.auto_fix.action == FixActionType.UPDATE_MANIFEST
    assert rule.can_auto_fix


def test_condition_describe():
    condition = RuleCondition("scripts.test", ConditionOperator.EXISTS)
    assert condition.describe() == "exists(scripts.test)"
    assert condition.to_dict() == {"field": "scripts.test", "operator": "exists"}


def test_from_yaml_adds_and_disables(tmp_path):
    config = tmp_path / "rules.yaml"
    config.write_text(
        "rules:\n"
        "  - rule_id: LICENSE_REQUIRED\n"
        "    name: License file\n"
        "    category: DOCUMENTATION\n"
        "    severity: WARNING\n"
        "    conditions:\n"
        "      - field: LICENSE\n"
        "        operator: file_exists\n"
        "disabled:\n"
        "  - GITIGNORE_REQUIRED\n",
        encoding="utf-8",
    )

    catalog = RuleCatalog.from_yaml(str(config))

    assert "LICENSE_REQUIRED" in catalog
    assert len(catalog) == len(BUILTIN_RULES) + 1
    assert catalog.get_rule("GITIGNORE_REQUIRED").enabled is False


def test_from_yaml_conflict_adds_nothing(tmp_path):
    config = tmp_path / "rules.yaml"
    config.write_text(
        "rules:\n"
        "  - rule_id: NEW_RULE\n"
        "    conditions: [{field: README.md, operator: file_exists}]\n"
        "  - rule_id: README_EXISTS\n"
        "    conditions: [{field: README.md, operator: file_exists}]\n",
        encoding="utf-8",
    )
    catalog = RuleCatalog.with_builtin_rules()

    with pytest.raises(RuleConflictError):
        catalog.load_yaml(str(config))
    assert "NEW_RULE" not in catalog


def test_from_yaml_bad_file(tmp_path):
    config = tmp_path / "rules.yaml"
    config.write_text("rules: [unclosed\n", encoding="utf-8")

    with pytest.raises(RuleConfigurationError):
        RuleCatalog.from_yaml(str(config))
    with pytest.raises(RuleConfigurationError):
        RuleCatalog.from_yaml(str(tmp_path / "missing.yaml"))
