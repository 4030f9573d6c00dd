"""
Security scanning - Pattern Tables

Regex tables for the code, configuration and secret passes, plus the
small built-in advisory table used by the dependency pass.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern

from .models import VulnerabilitySeverity, VulnerabilityType


@dataclass(frozen=True)
class SecurityPattern:
    """One line-level detection rule."""
    key: str
    type: VulnerabilityType
    severity: VulnerabilitySeverity
    regex: Pattern
    title: str
    description: str
    recommendation: str
    cwe: Optional[str] = None
    cvss: Optional[float] = None


def _pattern(key, vtype, severity, regex, title, description, recommendation,
             cwe=None, cvss=None, flags=0) -> SecurityPattern:
    return SecurityPattern(
        key=key,
        type=vtype,
        severity=severity,
        regex=re.compile(regex, flags),
        title=title,
        description=description,
        recommendation=recommendation,
        cwe=cwe,
        cvss=cvss,
    )


_T = VulnerabilityType
_S = VulnerabilitySeverity


# =============================================================================
# Code pass
# =============================================================================

# Member calls such as `regex.exec(` or `obj.eval(` are not the global sinks
_NOT_MEMBER = r"(?<![\w.$])"

DANGEROUS_CALL_PATTERNS: List[SecurityPattern] = [
    _pattern(
        "eval", _T.CODE, _S.HIGH, _NOT_MEMBER + r"eval\s*\(",
        "Use of eval()",
        "eval() executes arbitrary code and is a code injection vector",
        "Avoid eval(); parse data with JSON.parse or use a lookup table",
        cwe="CWE-95", cvss=7.5,
    ),
    _pattern(
        "function_constructor", _T.CODE, _S.HIGH, r"\bnew\s+Function\s*\(",
        "Use of the Function constructor",
        "new Function() compiles strings into code at runtime",
        "Replace dynamic code construction with explicit functions",
        cwe="CWE-95", cvss=7.5,
    ),
    _pattern(
        "exec", _T.CODE, _S.HIGH, r"(?:" + _NOT_MEMBER + r"|child_process\.)exec(?:Sync)?\s*\(",
        "Shell command execution",
        "exec()/execSync() run commands through a shell",
        "Use execFile/spawn with an argument list and validate all inputs",
        cwe="CWE-78", cvss=8.0,
    ),
]

# DOM sinks; the dynamic variant is checked first so one line yields one finding
DOM_SINK_PATTERNS: List[tuple] = [
    (
        _pattern(
            "dynamic_inner_html", _T.INJECTION, _S.HIGH,
            r"\.(?:inner|outer)HTML\s*=(?!=)[^;\n]*(?:\+|\$\{)",
            "Cross-site scripting via innerHTML",
            "innerHTML/outerHTML is assigned a string built from dynamic values",
            "Use textContent or sanitize the markup before inserting it",
            cwe="CWE-79", cvss=7.5,
        ),
        _pattern(
            "inner_html", _T.CODE, _S.MEDIUM, r"\.(?:inner|outer)HTML\s*=(?!=)",
            "Assignment to innerHTML",
            "innerHTML/outerHTML assignment can inject markup",
            "Prefer textContent or a templating layer that escapes output",
            cwe="CWE-79", cvss=5.4,
        ),
    ),
    (
        _pattern(
            "dynamic_document_write", _T.INJECTION, _S.HIGH,
            r"\bdocument\.write(?:ln)?\s*\([^)\n]*(?:\+|\$\{)",
            "Cross-site scripting via document.write",
            "document.write() is called with a string built from dynamic values",
            "Build DOM nodes explicitly instead of writing markup",
            cwe="CWE-79", cvss=7.5,
        ),
        _pattern(
            "document_write", _T.CODE, _S.MEDIUM, r"\bdocument\.write(?:ln)?\s*\(",
            "Use of document.write()",
            "document.write() inserts raw markup into the page",
            "Build DOM nodes explicitly instead of writing markup",
            cwe="CWE-79", cvss=5.4,
        ),
    ),
]

# setTimeout/setInterval with a string body behave like eval
STRING_TIMER_PATTERN = _pattern(
    "string_timer", _T.INJECTION, _S.HIGH,
    r"\bset(?:Timeout|Interval)\s*\(\s*(?:['\"][^'\"]*['\"]\s*\+|`[^`]*\$\{)",
    "String passed to a timer function",
    "setTimeout/setInterval with a dynamic string evaluates code",
    "Pass a function instead of a string",
    cwe="CWE-79", cvss=7.5,
)

_SQL = r"(?:SELECT\b[^'\"`]*\bFROM|INSERT\s+INTO|UPDATE\b[^'\"`]*\bSET|DELETE\s+FROM)"

SQL_INJECTION_PATTERNS: List[SecurityPattern] = [
    _pattern(
        "sql_concat", _T.INJECTION, _S.HIGH,
        r"['\"][^'\"]*" + _SQL + r"[^'\"]*['\"]\s*\+",
        "SQL built by string concatenation",
        "A SQL statement is concatenated with runtime values",
        "Use parameterized queries or a query builder",
        cwe="CWE-89", cvss=8.5, flags=re.IGNORECASE,
    ),
    _pattern(
        "sql_template", _T.INJECTION, _S.HIGH,
        r"`[^`]*" + _SQL + r"[^`]*\$\{",
        "SQL built from a template literal",
        "A SQL statement interpolates runtime values",
        "Use parameterized queries or a query builder",
        cwe="CWE-89", cvss=8.5, flags=re.IGNORECASE,
    ),
    _pattern(
        "query_concat", _T.INJECTION, _S.HIGH,
        r"\.(?:query|execute|raw)\s*\(\s*(?:['\"][^'\"]*['\"]\s*\+|[A-Za-z_$][\w$]*\s*\+)",
        "Query call with concatenated input",
        "A database query call receives a concatenated string",
        "Use parameterized queries or a query builder",
        cwe="CWE-89", cvss=8.5,
    ),
]


# =============================================================================
# Configuration pass
# =============================================================================

CONFIG_PATTERNS: List[SecurityPattern] = [
    _pattern(
        "tls_disabled", _T.CONFIGURATION, _S.MEDIUM,
        r"""['"]?\b(?:ssl|secure|rejectUnauthorized|verify_ssl|tls)\b['"]?\s*[:=]\s*['"]?false\b""",
        "TLS verification disabled",
        "Transport security is switched off in configuration",
        "Enable TLS and certificate verification",
        cwe="CWE-16", cvss=5.9, flags=re.IGNORECASE,
    ),
    _pattern(
        "debug_enabled", _T.CONFIGURATION, _S.MEDIUM,
        r"""['"]?\bdebug\b['"]?\s*[:=]\s*['"]?(?:true|1)\b""",
        "Debug mode enabled",
        "Debug mode is enabled in configuration",
        "Disable debug mode outside local development",
        cwe="CWE-16", cvss=5.3, flags=re.IGNORECASE,
    ),
    _pattern(
        "cors_wildcard", _T.CONFIGURATION, _S.MEDIUM,
        r"""['"]?\b(?:cors|origin|allowed_?origins?|Access-Control-Allow-Origin)\b['"]?\s*[:=]\s*\[?\s*['"]\*['"]""",
        "Wildcard CORS origin",
        "Cross-origin requests are allowed from any origin",
        "Restrict CORS to known origins",
        cwe="CWE-16", cvss=5.3, flags=re.IGNORECASE,
    ),
]

DEFAULT_CREDENTIAL_PATTERNS: List[SecurityPattern] = [
    _pattern(
        "default_credentials", _T.CONFIGURATION, _S.HIGH,
        r"""['"]?\b(?:user(?:name)?|password|passwd|pwd)\b['"]?\s*[:=]\s*['"]?(?:admin|root|password|123456|changeme|default)['"]?\s*(?:[,;}]|$)""",
        "Default credentials",
        "A well-known default user name or password is configured",
        "Replace default credentials and load them from a secret store",
        cwe="CWE-1391", cvss=8.0, flags=re.IGNORECASE,
    ),
]


# =============================================================================
# Secrets pass
# =============================================================================

_SECRET_RECOMMENDATION = "Remove the secret from source, rotate it, and load it from the environment"


def _secret(key, severity, regex, title, flags=0) -> SecurityPattern:
    return _pattern(
        key, _T.SECRETS, severity, regex, title,
        f"{title} appears to be hard-coded",
        _SECRET_RECOMMENDATION,
        cwe="CWE-798", cvss=7.5, flags=flags,
    )


_ASSIGN = r"""['"]?\s*[:=]\s*['"][^'"\s]{8,}['"]"""

SECRET_PATTERNS: List[SecurityPattern] = [
    _secret("private_key", _S.CRITICAL, r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "Private key"),
    _secret("secret_access_key", _S.CRITICAL, r"\b(?:aws_)?secret_access_key" + _ASSIGN, "Secret access key", re.IGNORECASE),
    _secret("secret_key", _S.CRITICAL, r"\bsecret_?key" + _ASSIGN, "Secret key", re.IGNORECASE),
    _secret("stripe_live_key", _S.CRITICAL, r"\bsk_live_[0-9a-zA-Z]{16,}", "Stripe live key"),
    _secret("api_key", _S.HIGH, r"\bapi_?key" + _ASSIGN, "API key", re.IGNORECASE),
    _secret("access_key", _S.HIGH, r"\baccess_?key(?:_id)?" + _ASSIGN, "Access key", re.IGNORECASE),
    _secret("token", _S.HIGH, r"\b(?:auth_?|access_?)?token" + _ASSIGN, "Token", re.IGNORECASE),
    _secret("github_token", _S.HIGH, r"\bgh[po]_[0-9a-zA-Z]{30,}", "GitHub token"),
    _secret("openai_key", _S.HIGH, r"\bsk-[0-9a-zA-Z]{20,}", "API secret key"),
    _secret("slack_token", _S.HIGH, r"\bxoxb-[0-9A-Za-z-]{20,}", "Slack bot token"),
    _secret("google_api_key", _S.HIGH, r"\bAIza[0-9A-Za-z_-]{35}", "Google API key"),
    _secret("stripe_test_key", _S.MEDIUM, r"\bsk_test_[0-9a-zA-Z]{16,}", "Stripe test key"),
    _secret("password", _S.MEDIUM, r"\bpass(?:word|wd)?" + _ASSIGN, "Password", re.IGNORECASE),
    _secret("database_url", _S.MEDIUM, r"\b(?:postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis)://[^:\s'\"/]+:[^@\s'\"]+@", "Database URL with credentials"),
]


# =============================================================================
# Dependency pass
# =============================================================================

@dataclass(frozen=True)
class Advisory:
    """A known-vulnerable version range for a package."""
    package: str
    fixed_version: str
    cve: str
    title: str
    severity: VulnerabilitySeverity
    cvss: float
    cwe: str
    reference: str


VULNERABILITY_DATABASE: Dict[str, List[Advisory]] = {
    "lodash": [
        Advisory(
            package="lodash",
            fixed_version="4.17.11",
            cve="CVE-2018-16487",
            title="Prototype pollution in lodash",
            severity=_S.HIGH,
            cvss=7.5,
            cwe="CWE-1321",
            reference="https://nvd.nist.gov/vuln/detail/CVE-2018-16487",
        ),
    ],
    "axios": [
        Advisory(
            package="axios",
            fixed_version="0.21.2",
            cve="CVE-2021-3749",
            title="Regular expression denial of service in axios",
            severity=_S.MEDIUM,
            cvss=5.3,
            cwe="CWE-1333",
            reference="https://nvd.nist.gov/vuln/detail/CVE-2021-3749",
        ),
    ],
    "express": [
        Advisory(
            package="express",
            fixed_version="4.18.0",
            cve="CVE-2022-24999",
            title="Prototype pollution via qs in express",
            severity=_S.HIGH,
            cvss=8.1,
            cwe="CWE-22",
            reference="https://nvd.nist.gov/vuln/detail/CVE-2022-24999",
        ),
    ],
}

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(spec: str) -> Optional[tuple]:
    """
    Extract the base version of a semver range as a 3-tuple.

    "^4.17.4" -> (4, 17, 4); "~0.21" -> (0, 21, 0). Returns None for
    ranges with no concrete version ("*", "latest", "workspace:*").
    """
    if not isinstance(spec, str):
        return None
    cleaned = spec.strip().lstrip("^~>=<v ")
    match = _VERSION_RE.match(cleaned)
    if not match:
        return None
    return tuple(int(part or 0) for part in match.groups())


def is_vulnerable(declared: str, fixed_version: str) -> bool:
    """True when the declared base version is older than the fixed version."""
    current = parse_version(declared)
    fixed = parse_version(fixed_version)
    if current is None or fixed is None:
        return False
    return current < fixed


# =============================================================================
# Recommendations
# =============================================================================

TYPE_RECOMMENDATIONS: Dict[VulnerabilityType, List[str]] = {
    _T.DEPENDENCY: [
        "Update vulnerable dependencies to their fixed versions",
        "Run a dependency audit as part of CI",
    ],
    _T.SECRETS: [
        "Move secrets to environment variables or a secret manager",
        "Rotate any credential that was committed",
    ],
    _T.INJECTION: [
        "Use parameterized queries for all database access",
        "Escape or sanitize untrusted input before rendering it",
    ],
    _T.CODE: [
        "Remove dynamic code execution (eval, Function, exec)",
        "Review DOM sinks for untrusted data",
    ],
    _T.CONFIGURATION: [
        "Review configuration for insecure production settings",
        "Keep TLS verification enabled and CORS origins restricted",
    ],
    _T.PERMISSIONS: [
        "Apply the principle of least privilege",
    ],
}

URGENT_RECOMMENDATION = "Address critical and high severity findings before release"
VOLUME_RECOMMENDATION = "Schedule a dedicated security review; more than 10 findings were reported"
