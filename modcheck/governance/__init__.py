"""
Compliance Governance Package

Provides compliance rule definitions, the rule catalog, condition
evaluation and the rule engine.

Usage:
    from modcheck.governance import RuleCatalog, ComplianceRuleEngine

    # Evaluate the built-in rules
    engine = ComplianceRuleEngine(RuleCatalog.with_builtin_rules())
    results = engine.evaluate(facts)

    # Or add custom rules from YAML
    catalog = RuleCatalog.from_yaml(".modcheck/rules.yaml")
"""

from .models import (
    Severity,
    RuleCategory,
    RuleScope,
    ConditionOperator,
    FixActionType,
    ResultStatus,
    RuleCondition,
    AutoFixAction,
    ComplianceRule,
    ValidationResult,
)

from .conditions import evaluate_condition

from .catalog import (
    BUILTIN_RULES,
    RuleCatalog,
)

from .engine import (
    SCOPE_CHECKS,
    CheckOutcome,
    ComplianceRuleEngine,
)


__all__ = [
    # Models
    "Severity",
    "RuleCategory",
    "RuleScope",
    "ConditionOperator",
    "FixActionType",
    "ResultStatus",
    "RuleCondition",
    "AutoFixAction",
    "ComplianceRule",
    "ValidationResult",
    # Conditions
    "evaluate_condition",
    # Catalog
    "BUILTIN_RULES",
    "RuleCatalog",
    # Engine
    "SCOPE_CHECKS",
    "CheckOutcome",
    "ComplianceRuleEngine",
]
