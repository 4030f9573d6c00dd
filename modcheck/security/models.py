"""
Security scanning - Data Models

Findings, scan options and scan results for the security pattern scanner.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class VulnerabilityType(Enum):
    """Which scanner pass produced a finding."""
    DEPENDENCY = "dependency"
    CODE = "code"
    CONFIGURATION = "configuration"
    SECRETS = "secrets"
    INJECTION = "injection"
    PERMISSIONS = "permissions"


class VulnerabilitySeverity(Enum):
    """Severity of a security finding."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {
    VulnerabilitySeverity.INFO: 0,
    VulnerabilitySeverity.LOW: 1,
    VulnerabilitySeverity.MEDIUM: 2,
    VulnerabilitySeverity.HIGH: 3,
    VulnerabilitySeverity.CRITICAL: 4,
}

# Contribution of one finding to the risk score
RISK_WEIGHTS = {
    VulnerabilitySeverity.CRITICAL: 10,
    VulnerabilitySeverity.HIGH: 6,
    VulnerabilitySeverity.MEDIUM: 3,
    VulnerabilitySeverity.LOW: 1,
    VulnerabilitySeverity.INFO: 0,
}


@dataclass(frozen=True)
class FindingLocation:
    """Where a finding was detected."""
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    column: Optional[int] = None
    snippet: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "line_number": self.line_number,
            "column": self.column,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class SecurityVulnerability:
    """
    One security finding.

    Attributes:
        id: Stable id derived from the fingerprint
        type: Scanner pass that produced it
        severity: Finding severity
        title: Short title
        description: What was found
        location: File, line, column and source snippet
        cwe: CWE identifier, e.g. "CWE-95"
        cvss: CVSS base score when known
        affected_package: Vulnerable package (dependency findings)
        affected_version: Declared version (dependency findings)
        fixed_version: First fixed version (dependency findings)
        recommendation: How to fix it
        references: Advisory URLs
        fingerprint: Dedup key over (type, file, line, matched text)
        detected_at: Detection time (UTC)
    """
    id: str
    type: VulnerabilityType
    severity: VulnerabilitySeverity
    title: str
    description: str
    location: FindingLocation
    recommendation: str
    fingerprint: str
    cwe: Optional[str] = None
    cvss: Optional[float] = None
    affected_package: Optional[str] = None
    affected_version: Optional[str] = None
    fixed_version: Optional[str] = None
    references: tuple = ()
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def file_path(self) -> Optional[str]:
        return self.location.file_path

    @property
    def line_number(self) -> Optional[int]:
        return self.location.line_number

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "location": self.location.to_dict(),
            "cwe": self.cwe,
            "cvss": self.cvss,
            "affected_package": self.affected_package,
            "affected_version": self.affected_version,
            "fixed_version": self.fixed_version,
            "recommendation": self.recommendation,
            "references": list(self.references),
            "fingerprint": self.fingerprint,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass
class SecurityScanOptions:
    """
    Which passes to run and how to project the findings.

    The type/severity/count filters never change what is scanned; they are
    applied to the deduplicated findings at the end.
    """
    scan_dependencies: bool = True
    scan_code: bool = True
    scan_configuration: bool = True
    scan_secrets: bool = True
    include_types: Optional[Set[VulnerabilityType]] = None
    exclude_types: Optional[Set[VulnerabilityType]] = None
    min_severity: Optional[VulnerabilitySeverity] = None
    max_vulnerabilities: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SecurityScanOptions":
        raw = raw or {}

        def types(key: str) -> Optional[Set[VulnerabilityType]]:
            values = raw.get(key)
            return {VulnerabilityType(v) for v in values} if values else None

        min_severity = raw.get("min_severity")
        return cls(
            scan_dependencies=bool(raw.get("scan_dependencies", True)),
            scan_code=bool(raw.get("scan_code", True)),
            scan_configuration=bool(raw.get("scan_configuration", True)),
            scan_secrets=bool(raw.get("scan_secrets", True)),
            include_types=types("include_types"),
            exclude_types=types("exclude_types"),
            min_severity=VulnerabilitySeverity(min_severity) if min_severity else None,
            max_vulnerabilities=raw.get("max_vulnerabilities"),
        )


@dataclass
class SecurityScanResult:
    """
    Result of scanning one module.

    `summary` and `risk_score` cover every deduplicated finding;
    `vulnerabilities` is the filtered projection.
    """
    scan_id: str
    module_path: str
    timestamp: datetime
    vulnerabilities: List[SecurityVulnerability] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    risk_score: int = 0
    recommendations: List[str] = field(default_factory=list)
    files_scanned: int = 0
    files_skipped: List[str] = field(default_factory=list)
    duplicates_removed: int = 0
    filtered_out: int = 0
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return self.summary.get("total", 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "module_path": self.module_path,
            "timestamp": self.timestamp.isoformat(),
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "summary": dict(self.summary),
            "risk_score": self.risk_score,
            "recommendations": list(self.recommendations),
            "files_scanned": self.files_scanned,
            "files_skipped": list(self.files_skipped),
            "duplicates_removed": self.duplicates_removed,
            "filtered_out": self.filtered_out,
            "duration_ms": round(self.duration_ms, 3),
        }
