"""
Security module - Pattern-based security scanning of module excerpts.
"""

from .models import (
    VulnerabilityType,
    VulnerabilitySeverity,
    FindingLocation,
    SecurityVulnerability,
    SecurityScanOptions,
    SecurityScanResult
)

from .comments import comment_style, strip_comments

from .patterns import (
    VULNERABILITY_DATABASE,
    parse_version,
    is_vulnerable
)

from .scanner import (
    SecurityPatternScanner,
    fingerprint,
    risk_score
)

__all__ = [
    # Models
    "VulnerabilityType",
    "VulnerabilitySeverity",
    "FindingLocation",
    "SecurityVulnerability",
    "SecurityScanOptions",
    "SecurityScanResult",
    # Comments
    "comment_style",
    "strip_comments",
    # Patterns
    "VULNERABILITY_DATABASE",
    "parse_version",
    "is_vulnerable",
    # Scanner
    "SecurityPatternScanner",
    "fingerprint",
    "risk_score",
]
