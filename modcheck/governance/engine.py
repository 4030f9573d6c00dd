"""
Compliance Governance - Rule Engine

Evaluates the applicable rules of a RuleCatalog against ModuleFacts and
produces one ValidationResult per rule, in catalog order.
"""

import re
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from ..core.facts import ModuleFacts
from .catalog import RuleCatalog
from .conditions import evaluate_condition
from .models import (
    ComplianceRule, ConditionOperator, ResultStatus, RuleScope, ValidationResult
)

logger = logging.getLogger(__name__)


@dataclass
class CheckOutcome:
    """Pass/fail of one rule before it is turned into a result."""
    passed: bool
    message: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None


# =============================================================================
# Scope built-in checks (used by rules without conditions)
# =============================================================================

SENSITIVE_VALUE_PATTERNS = [
    re.compile(r"password\s*[:=]\s*['\"][^'\"]{8,}['\"]", re.IGNORECASE),
    re.compile(r"secret\s*[:=]\s*['\"][^'\"]{10,}['\"]", re.IGNORECASE),
    re.compile(r"api[_-]?key\s*[:=]\s*['\"][^'\"]{15,}['\"]", re.IGNORECASE),
    re.compile(r"token\s*[:=]\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"private[_-]?key\s*[:=]\s*['\"][^'\"]{50,}['\"]", re.IGNORECASE),
]

MOCK_CONTENT_PATTERNS = [
    re.compile(r"\b(mock|fake|dummy)[_-]?(data|users?|responses?|values?|records?)\b", re.IGNORECASE),
    re.compile(r"\bplaceholder\b", re.IGNORECASE),
    re.compile(r"TODO:\s*replace", re.IGNORECASE),
    re.compile(r"\b(sample|example)[_-]data\b", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
]

MOCK_FILENAME_PATTERN = re.compile(r"(mock|fake|dummy|fixture|placeholder)", re.IGNORECASE)

LOCK_FILES = {"package-lock.json", "yarn.lock", "pnpm-lock.yaml"}


def _first_match_line(text: str, patterns: Iterable[re.Pattern]) -> Optional[int]:
    for number, line in enumerate(text.splitlines(), start=1):
        if any(p.search(line) for p in patterns):
            return number
    return None


def check_module_manifest(facts: ModuleFacts, max_file_lines: int) -> CheckOutcome:
    if not facts.manifest_present:
        return CheckOutcome(False, "package.json is missing")
    if not facts.manifest:
        return CheckOutcome(False, "package.json is empty or not valid JSON", "package.json")
    return CheckOutcome(True, "package.json exists and is valid JSON", "package.json")


def check_package_metadata(facts: ModuleFacts, max_file_lines: int) -> CheckOutcome:
    missing = [key for key in ("name", "version") if not isinstance(facts.manifest.get(key), str)]
    if missing:
        return CheckOutcome(False, f"package.json is missing: {', '.join(missing)}", "package.json")
    return CheckOutcome(True, "package.json declares name and version", "package.json")


def check_file_sizes(facts: ModuleFacts, max_file_lines: int) -> CheckOutcome:
    oversized = [
        (path, facts.line_counts[path])
        for path in facts.production_source_files
        if facts.line_counts.get(path, 0) > max_file_lines
    ]
    if oversized:
        path, lines = oversized[0]
        return CheckOutcome(
            False,
            f"{len(oversized)} files exceed the {max_file_lines}-line limit (first: {path}, {lines} lines)",
            path,
        )
    return CheckOutcome(True, f"All source files are under {max_file_lines} lines")


def check_config_secrets(facts: ModuleFacts, max_file_lines: int) -> CheckOutcome:
    candidates = sorted(set(facts.config_files) | set(facts.production_source_files))
    for path in candidates:
        if path.rsplit("/", 1)[-1] in LOCK_FILES or path not in facts.excerpts:
            continue
        line = _first_match_line(facts.excerpts[path], SENSITIVE_VALUE_PATTERNS)
        if line is not None:
            return CheckOutcome(False, f"Potential hardcoded secret in {path}", path, line)
    return CheckOutcome(True, "No sensitive values found in configuration")


def check_mock_data(facts: ModuleFacts, max_file_lines: int) -> CheckOutcome:
    for path in facts.production_source_files:
        if MOCK_FILENAME_PATTERN.search(path.rsplit("/", 1)[-1]):
            return CheckOutcome(False, f"Mock data file detected: {path}", path)
        text = facts.excerpts.get(path)
        if text is None:
            continue
        line = _first_match_line(text, MOCK_CONTENT_PATTERNS)
        if line is not None:
            return CheckOutcome(False, f"Mock data content detected in {path}", path, line)
    return CheckOutcome(True, "No mock data detected")


SCOPE_CHECKS: Dict[RuleScope, Callable[[ModuleFacts, int], CheckOutcome]] = {
    RuleScope.MODULE: check_module_manifest,
    RuleScope.PACKAGE: check_package_metadata,
    RuleScope.FILE: check_file_sizes,
    RuleScope.CONFIG: check_config_secrets,
    RuleScope.CODE: check_mock_data,
}


# =============================================================================
# Engine
# =============================================================================

class ComplianceRuleEngine:
    """
    Evaluates compliance rules against module facts.

    Every rule is evaluated in isolation: an exception while checking one
    rule becomes an ERROR result for that rule and evaluation continues.
    """

    def __init__(self, catalog: Optional[RuleCatalog] = None, max_file_lines: int = 200):
        """
        Initialize the engine.

        Args:
            catalog: Rules to evaluate. If None, uses the built-in rules.
            max_file_lines: Line limit for the FILE scope built-in check
        """
        self.catalog = catalog or RuleCatalog.with_builtin_rules()
        self.max_file_lines = max_file_lines

    def select_rules(
        self,
        module_type: Optional[str],
        include_rules: Optional[List[str]] = None,
        exclude_rules: Optional[List[str]] = None
    ) -> List[ComplianceRule]:
        """Applicable rules after include/exclude filtering, in catalog order."""
        rules = self.catalog.get_applicable_rules(module_type)
        if include_rules:
            wanted = set(include_rules)
            rules = [r for r in rules if r.rule_id in wanted]
        if exclude_rules:
            unwanted = set(exclude_rules)
            rules = [r for r in rules if r.rule_id not in unwanted]
        return rules

    def evaluate(
        self,
        facts: ModuleFacts,
        include_rules: Optional[List[str]] = None,
        exclude_rules: Optional[List[str]] = None
    ) -> List[ValidationResult]:
        """
        Evaluate all applicable rules.

        Args:
            facts: Module snapshot
            include_rules: Only evaluate these rule ids (if given)
            exclude_rules: Skip these rule ids

        Returns:
            One ValidationResult per evaluated rule, in catalog order
        """
        rules = self.select_rules(facts.module_type, include_rules, exclude_rules)
        results = [self.evaluate_rule(rule, facts) for rule in rules]
        logger.debug(
            "Evaluated %d rules for %s (%d not passing)",
            len(results), facts.module_id, sum(1 for r in results if not r.passed)
        )
        return results

    def evaluate_rule(self, rule: ComplianceRule, facts: ModuleFacts) -> ValidationResult:
        """Evaluate one rule, capturing any failure as an ERROR result."""
        start = time.perf_counter()
        try:
            outcome = self._check(rule, facts)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.warning("Rule %s failed to evaluate on %s: %s", rule.rule_id, facts.module_id, e)
            return ValidationResult(
                rule_id=rule.rule_id,
                status=ResultStatus.ERROR,
                severity=rule.severity,
                message=f"evaluator-failure: {type(e).__name__}: {e}",
                can_auto_fix=False,
                execution_time=elapsed,
                category=rule.category,
                rule_name=rule.name,
                remediation="Check the rule definition and the module structure",
            )

        if outcome.passed:
            status = ResultStatus.PASS
        elif rule.severity.blocking:
            status = ResultStatus.FAIL
        else:
            status = ResultStatus.WARNING

        return ValidationResult(
            rule_id=rule.rule_id,
            status=status,
            severity=rule.severity,
            message=outcome.message,
            file_path=outcome.file_path,
            line_number=outcome.line_number,
            can_auto_fix=rule.can_auto_fix,
            execution_time=(time.perf_counter() - start) * 1000,
            category=rule.category,
            rule_name=rule.name,
            remediation=rule.remediation,
        )

    def _check(self, rule: ComplianceRule, facts: ModuleFacts) -> CheckOutcome:
        if not rule.conditions:
            return SCOPE_CHECKS[rule.scope](facts, self.max_file_lines)

        for condition in rule.conditions:
            if not evaluate_condition(condition, facts):
                file_path = condition.field if condition.operator.is_path_check else None
                if condition.operator == ConditionOperator.FILE_EXISTS:
                    message = f"{condition.field} is missing"
                elif condition.operator == ConditionOperator.DIRECTORY_EXISTS:
                    message = f"Directory {condition.field} is missing"
                else:
                    message = f"Condition not met: {condition.describe()}"
                return CheckOutcome(False, message, file_path)

        return CheckOutcome(True, f"{rule.name}: all {len(rule.conditions)} conditions met")
