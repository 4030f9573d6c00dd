"""
Compliance Governance - Data Models

Data classes for compliance rules, their conditions and auto-fix actions,
and the per-rule validation results produced by the rule engine.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..core.facts import validate_field_path
from ..errors import RuleConfigurationError


class Severity(Enum):
    """Severity level of a rule or result."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def downgraded(self) -> "Severity":
        """One level less severe (INFO stays INFO)."""
        return _SEVERITY_ORDER[max(0, self.rank - 1)]

    @property
    def blocking(self) -> bool:
        """ERROR and CRITICAL failures fail a module."""
        return self in (Severity.ERROR, Severity.CRITICAL)


_SEVERITY_ORDER = [Severity.INFO, Severity.WARNING, Severity.ERROR, Severity.CRITICAL]
_SEVERITY_RANK = {s: i for i, s in enumerate(_SEVERITY_ORDER)}


class RuleCategory(Enum):
    """What area of a module a rule checks."""
    STRUCTURE = "STRUCTURE"
    DOCUMENTATION = "DOCUMENTATION"
    CONFIGURATION = "CONFIGURATION"
    TESTING = "TESTING"
    SECURITY = "SECURITY"
    PERFORMANCE = "PERFORMANCE"
    DEPENDENCIES = "DEPENDENCIES"
    STANDARDS = "STANDARDS"
    INTEGRATION = "INTEGRATION"


class RuleScope(Enum):
    """What a rule looks at; selects the built-in check for condition-less rules."""
    MODULE = "MODULE"
    FILE = "FILE"
    PACKAGE = "PACKAGE"
    CONFIG = "CONFIG"
    CODE = "CODE"


class ConditionOperator(Enum):
    """Closed set of condition operators."""
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    MATCHES_REGEX = "matches_regex"
    FILE_EXISTS = "file_exists"
    DIRECTORY_EXISTS = "directory_exists"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"

    @property
    def takes_value(self) -> bool:
        return self not in EXISTENCE_OPERATORS

    @property
    def is_path_check(self) -> bool:
        """Field is a module-relative path rather than a facts dot path."""
        return self in (ConditionOperator.FILE_EXISTS, ConditionOperator.DIRECTORY_EXISTS)


EXISTENCE_OPERATORS = frozenset({
    ConditionOperator.EXISTS,
    ConditionOperator.NOT_EXISTS,
    ConditionOperator.FILE_EXISTS,
    ConditionOperator.DIRECTORY_EXISTS,
})


class FixActionType(Enum):
    """Kinds of remediation an auto-fix can perform."""
    CREATE_FILE = "create_file"
    UPDATE_FILE = "update_file"
    DELETE_FILE = "delete_file"
    CREATE_DIRECTORY = "create_directory"
    UPDATE_MANIFEST = "update_manifest"
    RUN_COMMAND = "run_command"


# Older rule files use the manifest's file name for this action.
_FIX_ACTION_ALIASES = {"update_package_json": FixActionType.UPDATE_MANIFEST}


class ResultStatus(Enum):
    """Outcome of evaluating one rule."""
    PASS = "PASS"
    FAIL = "FAIL"
    WARNING = "WARNING"
    ERROR = "ERROR"


RULE_ID_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")


def coerce_enum(enum_cls, raw: Any, what: str):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        pass
    if isinstance(raw, str):
        for candidate in (raw.upper(), raw.lower()):
            try:
                return enum_cls(candidate)
            except ValueError:
                continue
    allowed = ", ".join(m.value for m in enum_cls)
    raise RuleConfigurationError(f"Unknown {what} '{raw}'. Expected one of: {allowed}")


@dataclass(frozen=True)
class RuleCondition:
    """
    One check against module facts.

    Attributes:
        field: Dot path into ModuleFacts, or a module-relative path for
               file_exists / directory_exists
        operator: Comparison to perform
        value: Operand for comparison operators; must be None for existence checks
    """
    field: str
    operator: ConditionOperator
    value: Any = None

    def __post_init__(self):
        operator = coerce_enum(ConditionOperator, self.operator, "condition operator")
        object.__setattr__(self, "operator", operator)

        if not isinstance(self.field, str) or not self.field.strip():
            raise RuleConfigurationError("Condition field must be a non-empty string")
        if not operator.is_path_check:
            validate_field_path(self.field)

        if operator.takes_value and self.value is None:
            raise RuleConfigurationError(
                f"Operator '{operator.value}' on '{self.field}' requires a value"
            )
        if not operator.takes_value and self.value is not None:
            raise RuleConfigurationError(
                f"Operator '{operator.value}' on '{self.field}' must not carry a value"
            )
        if operator == ConditionOperator.MATCHES_REGEX:
            if not isinstance(self.value, str):
                raise RuleConfigurationError(f"matches_regex on '{self.field}' needs a string pattern")
            try:
                re.compile(self.value)
            except re.error as e:
                raise RuleConfigurationError(f"Invalid regex for '{self.field}': {e}")

    @classmethod
    def from_dict(cls, data: Dict) -> "RuleCondition":
        if not isinstance(data, dict):
            raise RuleConfigurationError(f"Condition must be a mapping, got {type(data).__name__}")
        return cls(field=data.get("field", ""), operator=data.get("operator", ""), value=data.get("value"))

    def describe(self) -> str:
        if self.operator.takes_value:
            return f"{self.field} {self.operator.value} {self.value!r}"
        return f"{self.operator.value}({self.field})"

    def to_dict(self) -> Dict:
        data = {"field": self.field, "operator": self.operator.value}
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass(frozen=True)
class AutoFixAction:
    """
    Declared remediation for a rule.

    Attributes:
        action: What to do
        target: Module-relative path (or manifest dot path for update_manifest)
        content: New content; required for create/update and manifest updates
        command: Argument list for run_command
        requires_confirmation: Whether a caller should confirm before applying
    """
    action: FixActionType
    target: str = ""
    content: Any = None
    command: Optional[Tuple[str, ...]] = None
    requires_confirmation: bool = False

    def __post_init__(self):
        raw = self.action
        action = _FIX_ACTION_ALIASES.get(raw) if isinstance(raw, str) else None
        action = action or coerce_enum(FixActionType, raw, "auto-fix action")
        object.__setattr__(self, "action", action)

        if isinstance(self.command, str):
            object.__setattr__(self, "command", tuple(self.command.split()))
        elif self.command is not None:
            object.__setattr__(self, "command", tuple(str(part) for part in self.command))

        if action != FixActionType.RUN_COMMAND and not self.target:
            raise RuleConfigurationError(f"Auto-fix '{action.value}' needs a target")
        if action in (FixActionType.CREATE_FILE, FixActionType.UPDATE_FILE, FixActionType.UPDATE_MANIFEST) \
                and self.content is None:
            raise RuleConfigurationError(f"Auto-fix '{action.value}' needs content")
        if action == FixActionType.RUN_COMMAND and not self.command:
            raise RuleConfigurationError("Auto-fix 'run_command' needs a command")

    @classmethod
    def from_dict(cls, data: Dict) -> "AutoFixAction":
        if not isinstance(data, dict):
            raise RuleConfigurationError(f"Auto-fix must be a mapping, got {type(data).__name__}")
        return cls(
            action=data.get("action", ""),
            target=data.get("target", ""),
            content=data.get("content"),
            command=data.get("command"),
            requires_confirmation=bool(data.get("requires_confirmation", data.get("requiresConfirmation", False))),
        )

    def to_dict(self) -> Dict:
        return {
            "action": self.action.value,
            "target": self.target,
            "content": self.content,
            "command": list(self.command) if self.command else None,
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True)
class ComplianceRule:
    """
    A named, versioned compliance check.

    All conditions must hold for the rule to pass. A rule without
    conditions is judged by the built-in check for its scope.
    """
    rule_id: str
    name: str
    category: RuleCategory
    severity: Severity
    scope: RuleScope = RuleScope.MODULE
    conditions: Tuple[RuleCondition, ...] = ()
    auto_fix: Optional[AutoFixAction] = None
    applicable_types: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    description: str = ""
    remediation: str = ""
    enabled: bool = True
    version: str = "1.0.0"

    def __post_init__(self):
        if not isinstance(self.rule_id, str) or not RULE_ID_PATTERN.match(self.rule_id):
            raise RuleConfigurationError(
                f"Rule id '{self.rule_id}' must be SCREAMING_SNAKE_CASE"
            )
        object.__setattr__(self, "category", coerce_enum(RuleCategory, self.category, "rule category"))
        object.__setattr__(self, "severity", coerce_enum(Severity, self.severity, "severity"))
        object.__setattr__(self, "scope", coerce_enum(RuleScope, self.scope, "rule scope"))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        object.__setattr__(self, "applicable_types", tuple(self.applicable_types))
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def can_auto_fix(self) -> bool:
        return self.auto_fix is not None

    def applies_to(self, module_type: Optional[str]) -> bool:
        """Empty applicable_types means every module type."""
        return not self.applicable_types or module_type in self.applicable_types

    def with_enabled(self, enabled: bool) -> "ComplianceRule":
        return replace(self, enabled=enabled)

    @classmethod
    def from_dict(cls, data: Dict) -> "ComplianceRule":
        """
        Build a rule from a mapping (YAML/JSON rule files).

        Accepts both snake_case and the camelCase keys of older rule files.

        Raises:
            RuleConfigurationError: On any invalid or missing field
        """
        if not isinstance(data, dict):
            raise RuleConfigurationError(f"Rule must be a mapping, got {type(data).__name__}")

        rule_id = data.get("rule_id", data.get("ruleId"))
        if not rule_id:
            raise RuleConfigurationError("Rule is missing 'rule_id'")

        try:
            conditions = tuple(RuleCondition.from_dict(c) for c in data.get("conditions") or [])
            raw_fix = data.get("auto_fix", data.get("autoFix"))
            # Older files declare a list of fix steps; only the first is used.
            if isinstance(raw_fix, list):
                raw_fix = raw_fix[0] if raw_fix else None
            auto_fix = AutoFixAction.from_dict(raw_fix) if raw_fix else None
        except RuleConfigurationError as e:
            raise RuleConfigurationError(f"Rule {rule_id}: {e}")

        return cls(
            rule_id=rule_id,
            name=data.get("name", rule_id),
            category=data.get("category", "STANDARDS"),
            severity=data.get("severity", "WARNING"),
            scope=data.get("scope", "MODULE"),
            conditions=conditions,
            auto_fix=auto_fix,
            applicable_types=tuple(data.get("applicable_types", data.get("applicableTo")) or ()),
            tags=tuple(data.get("tags") or ()),
            description=data.get("description", ""),
            remediation=data.get("remediation", ""),
            enabled=bool(data.get("enabled", True)),
            version=str(data.get("version", "1.0.0")),
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "severity": self.severity.value,
            "scope": self.scope.value,
            "conditions": [c.to_dict() for c in self.conditions],
            "auto_fix": self.auto_fix.to_dict() if self.auto_fix else None,
            "can_auto_fix": self.can_auto_fix,
            "applicable_types": list(self.applicable_types),
            "tags": list(self.tags),
            "remediation": self.remediation,
            "enabled": self.enabled,
            "version": self.version,
        }


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of one rule against one module.

    Attributes:
        rule_id: Rule that produced the result
        status: PASS, FAIL, WARNING or ERROR
        severity: Severity of the rule
        message: Human-readable outcome
        file_path: File the result points at, if any
        line_number: Line the result points at, if any
        can_auto_fix: True only if the rule declares an auto-fix
        execution_time: Evaluation time in milliseconds
        category: Rule category (used for recommendations)
        rule_name: Display name of the rule
        remediation: Suggested fix
    """
    rule_id: str
    status: ResultStatus
    severity: Severity
    message: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    can_auto_fix: bool = False
    execution_time: float = 0.0
    category: Optional[RuleCategory] = None
    rule_name: str = ""
    remediation: str = ""

    @property
    def passed(self) -> bool:
        return self.status == ResultStatus.PASS

    def to_dict(self) -> Dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "status": self.status.value,
            "severity": self.severity.value,
            "category": self.category.value if self.category else None,
            "message": self.message,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "can_auto_fix": self.can_auto_fix,
            "execution_time": round(self.execution_time, 3),
            "remediation": self.remediation,
        }
