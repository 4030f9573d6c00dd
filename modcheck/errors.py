"""
ModCheck - Error Taxonomy

Exceptions raised by the validation pipeline. Errors that only affect one
rule or one module are normally caught and encoded as data (a result, a
failed batch item, or a facts-level warning); the rest reach the caller.
"""

from typing import Optional


class ModCheckError(Exception):
    """Base exception for all modcheck errors."""


class PathNotFoundError(ModCheckError):
    """The module directory itself does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Module path not found: {path}")
        self.path = path


class RuleEvaluationError(ModCheckError):
    """A rule's conditions or built-in check failed to evaluate."""

    def __init__(self, rule_id: str, reason: str) -> None:
        super().__init__(f"Rule {rule_id} failed to evaluate: {reason}")
        self.rule_id = rule_id
        self.reason = reason


class ManifestParseError(ModCheckError):
    """A module manifest could not be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not parse manifest {path}: {reason}")
        self.path = path
        self.reason = reason


class GraphConstructionError(ModCheckError):
    """A declared dependency could not be resolved to an in-scope module."""

    def __init__(self, source: str, dependency: str, reason: str = "not an in-scope module") -> None:
        super().__init__(f"Unresolved dependency {source} -> {dependency}: {reason}")
        self.source = source
        self.dependency = dependency
        self.reason = reason


class ValidationTimeoutError(ModCheckError, TimeoutError):
    """A module pipeline exceeded its time budget."""

    def __init__(self, module_path: str, timeout: float) -> None:
        super().__init__(f"Validation of {module_path} timed out after {timeout:.1f}s")
        self.module_path = module_path
        self.timeout = timeout


class AutoFixApplyError(ModCheckError):
    """An auto-fix step failed; the applier rolls back before raising this."""

    def __init__(self, rule_id: str, reason: str, target: Optional[str] = None) -> None:
        location = f" ({target})" if target else ""
        super().__init__(f"Auto-fix for {rule_id}{location} failed: {reason}")
        self.rule_id = rule_id
        self.reason = reason
        self.target = target


class RuleConfigurationError(ModCheckError):
    """A rule definition is invalid. Raised when the rule is loaded."""


class RuleConflictError(ModCheckError):
    """A rule with the same id is already registered."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule already registered: {rule_id}")
        self.rule_id = rule_id


class ReportFrozenError(ModCheckError):
    """A scored ValidationReport was modified."""
