"""
Security scanning - Pattern Scanner

Runs the dependency, code, configuration and secret passes over the
excerpts a ModuleStructureProbe captured. Every finding gets a stable
fingerprint; duplicates are dropped before filters are applied.
"""

import hashlib
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..core.deadline import Deadline
from ..core.facts import ModuleFacts
from ..core.manifest import MANIFEST_FILENAME, declared_dependencies
from ..core.probe import ModuleStructureProbe
from ..governance.models import ResultStatus, RuleCategory, Severity, ValidationResult
from .comments import comment_style, strip_comments
from .models import (
    RISK_WEIGHTS,
    FindingLocation,
    SecurityScanOptions,
    SecurityScanResult,
    SecurityVulnerability,
    VulnerabilitySeverity,
    VulnerabilityType,
)
from .patterns import (
    CONFIG_PATTERNS,
    DANGEROUS_CALL_PATTERNS,
    DEFAULT_CREDENTIAL_PATTERNS,
    DOM_SINK_PATTERNS,
    SECRET_PATTERNS,
    SQL_INJECTION_PATTERNS,
    STRING_TIMER_PATTERN,
    TYPE_RECOMMENDATIONS,
    URGENT_RECOMMENDATION,
    VOLUME_RECOMMENDATION,
    VULNERABILITY_DATABASE,
    SecurityPattern,
    is_vulnerable,
)

logger = logging.getLogger(__name__)

LOCK_FILES = {"package-lock.json", "yarn.lock", "pnpm-lock.yaml", "npm-shrinkwrap.json"}
CODE_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")
SNIPPET_LIMIT = 200

# Security severity -> rule severity when findings become ValidationResults
SEVERITY_MAP = {
    VulnerabilitySeverity.CRITICAL: Severity.CRITICAL,
    VulnerabilitySeverity.HIGH: Severity.ERROR,
    VulnerabilitySeverity.MEDIUM: Severity.WARNING,
    VulnerabilitySeverity.LOW: Severity.INFO,
    VulnerabilitySeverity.INFO: Severity.INFO,
}


def fingerprint(vtype: VulnerabilityType, file_path: Optional[str], line: Optional[int], matched: str) -> str:
    """sha256 over (type, file, line, matched text), first 16 hex chars."""
    key = f"{vtype.value}:{file_path or ''}:{line or 0}:{matched}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def risk_score(vulnerabilities: Iterable[SecurityVulnerability]) -> int:
    """min(100, critical*10 + high*6 + medium*3 + low*1)."""
    return min(100, sum(RISK_WEIGHTS[v.severity] for v in vulnerabilities))


class SecurityPatternScanner:
    """
    Line-based security scanner over module excerpts.

    Usage:
        scanner = SecurityPatternScanner()
        result = scanner.scan(facts)
        for vuln in result.vulnerabilities:
            print(vuln.severity.value, vuln.title, vuln.file_path)
    """

    def __init__(self, max_file_size: int = 1024 * 1024):
        self.max_file_size = max_file_size

    # ─── Entry points ─────────────────────────────

    def scan(
        self,
        facts: ModuleFacts,
        options: Optional[SecurityScanOptions] = None,
        deadline: Optional[Deadline] = None
    ) -> SecurityScanResult:
        """
        Scan one module.

        Args:
            facts: Probed module facts
            options: Pass toggles and output filters
            deadline: Checked before each file is scanned

        Returns:
            SecurityScanResult with filtered findings, summary and risk score
        """
        options = options or SecurityScanOptions()
        started = time.perf_counter()

        texts, skipped = self._scannable_files(facts)
        findings: List[SecurityVulnerability] = []

        if options.scan_dependencies:
            findings.extend(self._scan_dependencies(facts))
        for path in sorted(texts):
            if deadline is not None:
                deadline.check("security scan")
            stripped = strip_comments(texts[path], comment_style(path))
            original_lines = texts[path].splitlines()
            stripped_lines = stripped.splitlines()
            if options.scan_code and path.endswith(CODE_EXTENSIONS):
                findings.extend(self._scan_code(path, stripped_lines, original_lines))
            if options.scan_configuration and self._is_config_file(facts, path):
                findings.extend(self._scan_configuration(path, stripped_lines, original_lines))
            if options.scan_secrets:
                findings.extend(self._scan_lines(path, stripped_lines, original_lines, SECRET_PATTERNS))

        unique = self._deduplicate(findings)
        projected = self._apply_filters(unique, options)

        result = SecurityScanResult(
            scan_id=uuid.uuid4().hex,
            module_path=facts.module_path,
            timestamp=datetime.now(timezone.utc),
            vulnerabilities=projected,
            summary=self._summarize(unique),
            risk_score=risk_score(unique),
            recommendations=self.recommendations(unique),
            files_scanned=len(texts),
            files_skipped=skipped,
            duplicates_removed=len(findings) - len(unique),
            filtered_out=len(unique) - len(projected),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        logger.debug(
            "Scanned %s: %d files, %d findings, risk %d",
            facts.module_id, result.files_scanned, len(unique), result.risk_score,
        )
        return result

    def scan_path(self, module_path: str, options: Optional[SecurityScanOptions] = None) -> SecurityScanResult:
        """Probe a module directory and scan it."""
        facts = ModuleStructureProbe(max_file_size=self.max_file_size).probe(module_path)
        return self.scan(facts, options)

    # ─── File selection ───────────────────────────

    def _scannable_files(self, facts: ModuleFacts):
        texts: Dict[str, str] = {}
        skipped = list(facts.skipped_files)
        for path in facts.files:
            if path not in facts.excerpts:
                continue
            name = path.rsplit("/", 1)[-1]
            if name in LOCK_FILES or name.endswith(".min.js"):
                skipped.append(path)
                continue
            text = facts.excerpts[path]
            if len(text.encode("utf-8")) > self.max_file_size:
                skipped.append(path)
                continue
            texts[path] = text
        return texts, sorted(set(skipped))

    @staticmethod
    def _is_config_file(facts: ModuleFacts, path: str) -> bool:
        name = path.rsplit("/", 1)[-1].lower()
        return path in facts.config_files or ".config." in name or name.startswith("config.")

    # ─── Passes ───────────────────────────────────

    def _scan_dependencies(self, facts: ModuleFacts) -> List[SecurityVulnerability]:
        findings = []
        manifest_text = facts.excerpts.get(MANIFEST_FILENAME, "")
        for package, version in sorted(declared_dependencies(facts.manifest).items()):
            for advisory in VULNERABILITY_DATABASE.get(package, []):
                if not is_vulnerable(version, advisory.fixed_version):
                    continue
                line = self._manifest_line(manifest_text, package)
                matched = f"{package}@{version}"
                findings.append(self._make(
                    VulnerabilityType.DEPENDENCY,
                    advisory.severity,
                    title=f"{advisory.cve}: {advisory.title}",
                    description=f"{package}@{version} is affected by {advisory.cve}; fixed in {advisory.fixed_version}",
                    recommendation=f"Upgrade {package} to {advisory.fixed_version} or later",
                    file_path=MANIFEST_FILENAME,
                    line=line,
                    column=None,
                    snippet=matched,
                    matched=matched,
                    cwe=advisory.cwe,
                    cvss=advisory.cvss,
                    affected_package=package,
                    affected_version=version,
                    fixed_version=advisory.fixed_version,
                    references=(advisory.reference,),
                ))
        return findings

    def _scan_code(self, path: str, lines: List[str], original: List[str]) -> List[SecurityVulnerability]:
        findings = self._scan_lines(path, lines, original, DANGEROUS_CALL_PATTERNS)
        findings.extend(self._scan_lines(path, lines, original, SQL_INJECTION_PATTERNS, first_only=True))
        findings.extend(self._scan_lines(path, lines, original, [STRING_TIMER_PATTERN]))
        for dynamic, plain in DOM_SINK_PATTERNS:
            for number, line in enumerate(lines, start=1):
                pattern = dynamic if dynamic.regex.search(line) else plain
                match = pattern.regex.search(line)
                if match:
                    findings.append(self._from_match(pattern, path, number, match, original))
        return findings

    def _scan_configuration(self, path: str, lines: List[str], original: List[str]) -> List[SecurityVulnerability]:
        return self._scan_lines(path, lines, original, CONFIG_PATTERNS + DEFAULT_CREDENTIAL_PATTERNS)

    def _scan_lines(
        self,
        path: str,
        lines: List[str],
        original: List[str],
        patterns: List[SecurityPattern],
        first_only: bool = False,
    ) -> List[SecurityVulnerability]:
        """Apply each pattern to each line; first_only stops at one match per line."""
        findings = []
        for number, line in enumerate(lines, start=1):
            for pattern in patterns:
                match = pattern.regex.search(line)
                if match:
                    findings.append(self._from_match(pattern, path, number, match, original))
                    if first_only:
                        break
        return findings

    # ─── Finding construction ─────────────────────

    def _from_match(self, pattern: SecurityPattern, path: str, number: int, match, original: List[str]):
        snippet = original[number - 1].strip() if number - 1 < len(original) else match.group(0)
        return self._make(
            pattern.type,
            pattern.severity,
            title=pattern.title,
            description=pattern.description,
            recommendation=pattern.recommendation,
            file_path=path,
            line=number,
            column=match.start() + 1,
            snippet=snippet,
            matched=match.group(0),
            cwe=pattern.cwe,
            cvss=pattern.cvss,
        )

    @staticmethod
    def _make(vtype, severity, *, title, description, recommendation, file_path, line, column,
              snippet, matched, cwe=None, cvss=None, affected_package=None, affected_version=None,
              fixed_version=None, references=()) -> SecurityVulnerability:
        fp = fingerprint(vtype, file_path, line, matched)
        return SecurityVulnerability(
            id=f"{vtype.value}-{fp}",
            type=vtype,
            severity=severity,
            title=title,
            description=description,
            location=FindingLocation(file_path, line, column, snippet[:SNIPPET_LIMIT]),
            recommendation=recommendation,
            fingerprint=fp,
            cwe=cwe,
            cvss=cvss,
            affected_package=affected_package,
            affected_version=affected_version,
            fixed_version=fixed_version,
            references=tuple(references),
        )

    @staticmethod
    def _manifest_line(manifest_text: str, package: str) -> Optional[int]:
        needle = f'"{package}"'
        for number, line in enumerate(manifest_text.splitlines(), start=1):
            if needle in line:
                return number
        return None

    # ─── Post-processing ──────────────────────────

    @staticmethod
    def _deduplicate(findings: List[SecurityVulnerability]) -> List[SecurityVulnerability]:
        seen = set()
        unique = []
        for finding in findings:
            if finding.fingerprint in seen:
                continue
            seen.add(finding.fingerprint)
            unique.append(finding)
        return unique

    @staticmethod
    def _apply_filters(findings: List[SecurityVulnerability], options: SecurityScanOptions) -> List[SecurityVulnerability]:
        result = list(findings)
        if options.include_types:
            result = [v for v in result if v.type in options.include_types]
        if options.exclude_types:
            result = [v for v in result if v.type not in options.exclude_types]
        if options.min_severity is not None:
            result = [v for v in result if v.severity.rank >= options.min_severity.rank]
        if options.max_vulnerabilities is not None:
            # stable sort keeps scan order within a severity
            result = sorted(result, key=lambda v: -v.severity.rank)[:max(0, options.max_vulnerabilities)]
        return result

    @staticmethod
    def _summarize(findings: List[SecurityVulnerability]) -> Dict[str, int]:
        summary = {severity.value: 0 for severity in VulnerabilitySeverity}
        for finding in findings:
            summary[finding.severity.value] += 1
        summary["total"] = len(findings)
        return summary

    @staticmethod
    def recommendations(findings: List[SecurityVulnerability]) -> List[str]:
        """Recommendations grouped per vulnerability type, urgent items first."""
        if not findings:
            return []

        items: List[str] = []
        if any(f.severity.rank >= VulnerabilitySeverity.HIGH.rank for f in findings):
            items.append(URGENT_RECOMMENDATION)
        present = {f.type for f in findings}
        for vtype in VulnerabilityType:
            if vtype in present:
                items.extend(TYPE_RECOMMENDATIONS.get(vtype, []))
        if len(findings) > 10:
            items.append(VOLUME_RECOMMENDATION)
        return items

    @staticmethod
    def to_validation_results(findings: Iterable[SecurityVulnerability]) -> List[ValidationResult]:
        """Express findings as rule results with rule id SECURITY_<TYPE>."""
        results = []
        for finding in findings:
            severity = SEVERITY_MAP[finding.severity]
            results.append(ValidationResult(
                rule_id=f"SECURITY_{finding.type.value.upper()}",
                status=ResultStatus.FAIL if severity.blocking else ResultStatus.WARNING,
                severity=severity,
                message=f"{finding.title}: {finding.description}",
                file_path=finding.file_path,
                line_number=finding.line_number,
                category=RuleCategory.SECURITY,
                rule_name=finding.title,
                remediation=finding.recommendation,
            ))
        return results
