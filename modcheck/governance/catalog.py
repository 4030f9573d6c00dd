"""
Compliance Governance - Rule Catalog

Holds the built-in and user-registered compliance rules. Rules are
validated when they are loaded, so a bad operator or unknown field fails
here and never during evaluation.
"""

import json
import logging
import threading
from typing import Dict, List, Optional

from ..errors import RuleConfigurationError, RuleConflictError
from .models import (
    AutoFixAction, ComplianceRule, ConditionOperator, FixActionType,
    RuleCategory, RuleCondition, RuleScope, Severity
)

logger = logging.getLogger(__name__)


README_TEMPLATE = (
    "# {{ name }}\n\n{{ description }}\n\n"
    "## Installation\n\n```bash\nnpm install\n```\n\n"
    "## Usage\n\n```typescript\nimport {} from '{{ module_id }}';\n```\n\n"
    "## Testing\n\n```bash\nnpm test\n```\n"
)

GITIGNORE_TEMPLATE = (
    "node_modules/\ndist/\nbuild/\n*.log\n.DS_Store\n"
    ".env.local\n.env.*.local\ncoverage/\n*.tgz\n"
)

PACKAGE_JSON_TEMPLATE = json.dumps({
    "name": "{{ module_id }}",
    "version": "1.0.0",
    "description": "{{ description }}",
    "main": "dist/index.js",
    "types": "dist/index.d.ts",
    "scripts": {"build": "tsc", "test": "jest", "lint": "eslint src/**/*.ts"},
}, indent=2) + "\n"

TSCONFIG_TEMPLATE = json.dumps({
    "compilerOptions": {
        "target": "ES2022",
        "module": "ESNext",
        "moduleResolution": "bundler",
        "declaration": True,
        "outDir": "./dist",
        "rootDir": "./src",
        "strict": True,
        "esModuleInterop": True,
        "skipLibCheck": True,
    },
    "include": ["src/**/*"],
    "exclude": ["node_modules", "dist", "tests"],
}, indent=2) + "\n"


def _condition(field: str, operator: ConditionOperator, value=None) -> RuleCondition:
    return RuleCondition(field=field, operator=operator, value=value)


# Default rules every module is checked against
BUILTIN_RULES = [
    ComplianceRule(
        rule_id="PACKAGE_JSON_EXISTS",
        name="Package manifest required",
        description="Every module must have a package.json with valid configuration",
        category=RuleCategory.CONFIGURATION,
        severity=Severity.CRITICAL,
        scope=RuleScope.MODULE,
        conditions=(_condition("package.json", ConditionOperator.FILE_EXISTS),),
        auto_fix=AutoFixAction(FixActionType.CREATE_FILE, "package.json", PACKAGE_JSON_TEMPLATE),
        remediation="Create a package.json in the module root with name, version and scripts",
        tags=("required", "structure"),
    ),
    ComplianceRule(
        rule_id="README_EXISTS",
        name="README.md required",
        description="Every module must document itself in a README.md",
        category=RuleCategory.DOCUMENTATION,
        severity=Severity.ERROR,
        scope=RuleScope.MODULE,
        conditions=(
            _condition("README.md", ConditionOperator.FILE_EXISTS),
            _condition("has_documentation", ConditionOperator.EQUALS, True),
        ),
        auto_fix=AutoFixAction(FixActionType.CREATE_FILE, "README.md", README_TEMPLATE),
        remediation="Add a README.md with description, installation and usage sections",
        tags=("documentation", "required"),
    ),
    ComplianceRule(
        rule_id="TYPESCRIPT_CONFIG_REQUIRED",
        name="TypeScript configuration required",
        description="Modules are built with tsc and must have a tsconfig.json",
        category=RuleCategory.CONFIGURATION,
        severity=Severity.ERROR,
        scope=RuleScope.MODULE,
        conditions=(_condition("tsconfig.json", ConditionOperator.FILE_EXISTS),),
        auto_fix=AutoFixAction(FixActionType.CREATE_FILE, "tsconfig.json", TSCONFIG_TEMPLATE),
        remediation="Create tsconfig.json with compilerOptions",
        tags=("typescript", "configuration"),
    ),
    ComplianceRule(
        rule_id="TEST_DIRECTORY_REQUIRED",
        name="Test directory required",
        description="Modules should keep their tests in a tests directory",
        category=RuleCategory.TESTING,
        severity=Severity.WARNING,
        scope=RuleScope.MODULE,
        conditions=(_condition("has_tests", ConditionOperator.EQUALS, True),),
        auto_fix=AutoFixAction(FixActionType.CREATE_DIRECTORY, "tests"),
        remediation="Create a tests/ or __tests__/ directory with test files",
        tags=("testing", "structure"),
    ),
    ComplianceRule(
        rule_id="BUILD_SCRIPT_REQUIRED",
        name="Build script required",
        description="The manifest must declare a build script",
        category=RuleCategory.CONFIGURATION,
        severity=Severity.ERROR,
        scope=RuleScope.PACKAGE,
        conditions=(_condition("scripts.build", ConditionOperator.EXISTS),),
        auto_fix=AutoFixAction(FixActionType.UPDATE_MANIFEST, "scripts.build", "tsc"),
        remediation="Add a build script to the manifest scripts section",
        tags=("scripts", "build"),
    ),
    ComplianceRule(
        rule_id="GITIGNORE_REQUIRED",
        name=".gitignore required",
        description="Modules should exclude build artifacts from version control",
        category=RuleCategory.CONFIGURATION,
        severity=Severity.WARNING,
        scope=RuleScope.MODULE,
        conditions=(_condition(".gitignore", ConditionOperator.FILE_EXISTS),),
        auto_fix=AutoFixAction(FixActionType.CREATE_FILE, ".gitignore", GITIGNORE_TEMPLATE),
        remediation="Create .gitignore excluding node_modules/, dist/, *.log and .DS_Store",
        tags=("git", "configuration"),
    ),
    ComplianceRule(
        rule_id="NO_MOCK_DATA",
        name="No mock data",
        description="Production source must not contain mock data or placeholders",
        category=RuleCategory.STANDARDS,
        severity=Severity.CRITICAL,
        scope=RuleScope.CODE,
        remediation="Remove mock data and placeholders; use real data sources",
        tags=("data", "critical"),
    ),
    ComplianceRule(
        rule_id="FILE_SIZE_LIMIT",
        name="File size limit",
        description="Source files should stay under the line limit",
        category=RuleCategory.STANDARDS,
        severity=Severity.WARNING,
        scope=RuleScope.FILE,
        remediation="Split large files into smaller, focused modules",
        tags=("size", "maintainability"),
    ),
    ComplianceRule(
        rule_id="SECURITY_CONFIG_CHECK",
        name="No secrets in configuration",
        description="Configuration files must not contain hardcoded credentials",
        category=RuleCategory.SECURITY,
        severity=Severity.CRITICAL,
        scope=RuleScope.CONFIG,
        remediation="Move credentials to environment variables or a secret store",
        tags=("security", "configuration"),
    ),
]


class RuleCatalog:
    """
    Registry of compliance rules.

    Safe for concurrent reads; register/enable/disable are serialized.
    Listing order is by rule_id, which fixes evaluation order.
    """

    def __init__(self, rules: Optional[List[ComplianceRule]] = None):
        self._lock = threading.RLock()
        self._rules: Dict[str, ComplianceRule] = {}
        for rule in rules or []:
            self.register_rule(rule)

    @classmethod
    def with_builtin_rules(cls) -> "RuleCatalog":
        """Catalog pre-loaded with the default rule set."""
        return cls(list(BUILTIN_RULES))

    @classmethod
    def from_yaml(cls, config_path: str, include_builtins: bool = True) -> "RuleCatalog":
        """
        Load rules from a YAML file.

        The file holds a `rules` list of rule mappings and an optional
        `disabled` list of rule ids.

        Args:
            config_path: Path to the rules file
            include_builtins: Start from the built-in rules

        Returns:
            Configured RuleCatalog

        Raises:
            RuleConfigurationError: If the file or any rule is invalid
            RuleConflictError: If a rule id is declared twice
        """
        catalog = cls.with_builtin_rules() if include_builtins else cls()
        catalog.load_yaml(config_path)
        return catalog

    def load_yaml(self, config_path: str) -> int:
        """Register every rule in a YAML file. Returns the number added."""
        try:
            import yaml
        except ImportError:
            raise ImportError("PyYAML is required for YAML rules. Install with: pip install pyyaml")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except OSError as e:
            raise RuleConfigurationError(f"Cannot read rules file {config_path}: {e}")
        except yaml.YAMLError as e:
            raise RuleConfigurationError(f"Invalid YAML in {config_path}: {e}")

        if isinstance(raw_config, list):
            raw_config = {"rules": raw_config}
        if not isinstance(raw_config, dict):
            raise RuleConfigurationError(f"{config_path} must contain a mapping or a list of rules")

        # Parse everything before registering so a bad file adds nothing.
        rules = [ComplianceRule.from_dict(r) for r in raw_config.get("rules") or []]
        with self._lock:
            seen = set(self._rules)
            for rule in rules:
                if rule.rule_id in seen:
                    raise RuleConflictError(rule.rule_id)
                seen.add(rule.rule_id)
            for rule in rules:
                self._rules[rule.rule_id] = rule
            for rule_id in raw_config.get("disabled") or []:
                self.disable_rule(rule_id)

        logger.info("Loaded %d rules from %s", len(rules), config_path)
        return len(rules)

    # ─── Writes ───────────────────────────────────

    def register_rule(self, rule: ComplianceRule) -> None:
        """
        Add a rule.

        Raises:
            RuleConflictError: If a rule with the same id exists
        """
        with self._lock:
            if rule.rule_id in self._rules:
                raise RuleConflictError(rule.rule_id)
            self._rules[rule.rule_id] = rule

    def disable_rule(self, rule_id: str) -> None:
        """Disable a rule. Unknown ids are ignored."""
        self._set_enabled(rule_id, False)

    def enable_rule(self, rule_id: str) -> None:
        """Re-enable a rule. Unknown ids are ignored."""
        self._set_enabled(rule_id, True)

    def _set_enabled(self, rule_id: str, enabled: bool) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is not None and rule.enabled != enabled:
                self._rules[rule_id] = rule.with_enabled(enabled)

    # ─── Reads ────────────────────────────────────

    def get_rule(self, rule_id: str) -> Optional[ComplianceRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def get_all_rules(self) -> List[ComplianceRule]:
        """All rules, enabled or not, ordered by rule_id."""
        with self._lock:
            snapshot = list(self._rules.values())
        return sorted(snapshot, key=lambda r: r.rule_id)

    def get_applicable_rules(self, module_type: Optional[str] = None) -> List[ComplianceRule]:
        """Enabled rules that apply to the module type, ordered by rule_id."""
        return [
            rule for rule in self.get_all_rules()
            if rule.enabled and rule.applies_to(module_type)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._rules

    def get_rules_summary(self) -> List[Dict]:
        """Get summary of all rules."""
        return [rule.to_dict() for rule in self.get_all_rules()]
