from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import logging
from typing import Any, Dict, List, Optional

from modcheck.config import VERSION, ModCheckSettings, configure_logging
from modcheck.core import discover_modules
from modcheck.errors import (
    ModCheckError,
    PathNotFoundError,
    RuleConfigurationError,
    RuleConflictError,
    ValidationTimeoutError,
)
from modcheck.security import SecurityScanOptions
from modcheck.validation import (
    BatchOptions,
    BatchScheduler,
    EcosystemSummary,
    ReportAggregator,
    ValidationOptions,
    ValidationOrchestrator,
    compare_reports,
    exit_code_for,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="ModCheck Engine",
    description="Module compliance, dependency-graph and security validation",
    version=VERSION
)

# Enable CORS (so editor integrations and dashboards can call the API)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- GLOBAL STATE ---
# One orchestrator per process; the rule catalog is loaded once
state: Dict[str, Any] = {
    "settings": None,
    "orchestrator": None,
}
startup_error = None


def get_orchestrator() -> ValidationOrchestrator:
    """Lazy initialization of the orchestrator on first request."""
    if state["orchestrator"] is None:
        settings = state["settings"] or ModCheckSettings.from_env()
        state["settings"] = settings
        state["orchestrator"] = ValidationOrchestrator.from_settings(settings)
        logger.info("Loaded %d rules", len(state["orchestrator"].catalog))
    return state["orchestrator"]


def raise_http_error(e: Exception, action: str):
    """Map modcheck errors onto HTTP status codes."""
    if isinstance(e, PathNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (RuleConfigurationError, RuleConflictError, ValueError)):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ValidationTimeoutError):
        raise HTTPException(status_code=504, detail=str(e))
    if isinstance(e, ModCheckError):
        raise HTTPException(status_code=500, detail=f"{action} failed: {str(e)}")
    raise e


@app.on_event("startup")
async def load_engine():
    """Configure logging and load the rule catalog on startup"""
    global startup_error
    settings = ModCheckSettings.from_env()
    configure_logging(settings.log_level)
    state["settings"] = settings
    try:
        get_orchestrator()
    except ModCheckError as e:
        startup_error = str(e)
        logger.error("Failed to load rules: %s", e)


# --- REQUEST MODELS ---

class SecurityRequest(BaseModel):
    scan_dependencies: bool = True
    scan_code: bool = True
    scan_configuration: bool = True
    scan_secrets: bool = True
    include_types: Optional[List[str]] = None
    exclude_types: Optional[List[str]] = None
    min_severity: Optional[str] = None
    max_vulnerabilities: Optional[int] = None


class ValidateRequest(BaseModel):
    module_path: str
    include_rules: Optional[List[str]] = None
    exclude_rules: Optional[List[str]] = None
    timeout: Optional[float] = None
    peer_modules: List[str] = Field(default_factory=list)
    analyze_dependencies: bool = True
    scan_security: bool = True
    analysis_in_score: bool = False
    security: Optional[SecurityRequest] = None


class BatchRequest(BaseModel):
    # Module directories or glob patterns
    module_paths: List[str] = Field(default_factory=list)
    # Ecosystem root; every directory below it holding a package.json is added
    root: Optional[str] = None
    include_rules: Optional[List[str]] = None
    exclude_rules: Optional[List[str]] = None
    max_concurrent: Optional[int] = None
    timeout: Optional[float] = None
    continue_on_error: bool = True


class FixRequest(BaseModel):
    module_path: str
    dry_run: bool = False
    confirmed: bool = False


class SummaryRequest(BatchRequest):
    previous: Optional[Dict[str, Any]] = None


def _validation_options(request) -> ValidationOptions:
    options = ValidationOptions(
        include_rules=request.include_rules,
        exclude_rules=request.exclude_rules,
    )
    if isinstance(request, ValidateRequest):
        options.timeout = request.timeout
        options.peer_modules = list(request.peer_modules)
        options.analyze_dependencies = request.analyze_dependencies
        options.scan_security = request.scan_security
        options.analysis_in_score = request.analysis_in_score
        if request.security is not None:
            options.security = SecurityScanOptions.from_dict(request.security.model_dump())
    return options


def _run_batch(request: BatchRequest):
    orchestrator = get_orchestrator()
    settings = orchestrator.settings
    options = BatchOptions(
        max_concurrent=request.max_concurrent or settings.max_concurrent,
        timeout=request.timeout if request.timeout is not None else settings.timeout_seconds,
        continue_on_error=request.continue_on_error,
        validation=_validation_options(request),
    )
    paths = list(request.module_paths)
    if request.root:
        paths.extend(discover_modules(request.root))
    return BatchScheduler(orchestrator, settings).run(paths, options)


# --- CORE ENDPOINTS ---

@app.get("/")
def health_check():
    health = get_orchestrator().health()
    health["startup_error"] = startup_error
    return health


@app.get("/rules")
def list_rules(
    module_type: Optional[str] = Query(None, description="Only rules applicable to this module type")
):
    """Returns the rule catalog (optionally filtered by module type)"""
    catalog = get_orchestrator().catalog
    if module_type:
        rules = catalog.get_applicable_rules(module_type)
        return {"total": len(rules), "rules": [r.to_dict() for r in rules]}
    return {"total": len(catalog), "rules": catalog.get_rules_summary()}


# --- VALIDATION ENDPOINTS ---

@app.post("/validate")
def validate_module(request: ValidateRequest):
    """
    Validate one module.

    Runs probe, rules, dependency analysis and security scan and returns
    the scored report with the exit code a CLI would use.
    """
    try:
        options = _validation_options(request)
        report = get_orchestrator().validate(request.module_path, options)
    except Exception as e:
        raise_http_error(e, "Validation")
    result = report.to_dict()
    result["exit_code"] = exit_code_for(report)
    return result


@app.post("/batch")
def validate_batch(request: BatchRequest):
    """
    Validate many modules with bounded concurrency.

    Per-module failures are listed in failed_items; they do not fail the request.
    """
    try:
        batch = _run_batch(request)
    except Exception as e:
        raise_http_error(e, "Batch validation")
    result = batch.to_dict()
    result["summary"] = ReportAggregator().summarize(batch).to_dict()
    result["exit_code"] = exit_code_for(batch)
    return result


@app.post("/fix")
def fix_module(request: FixRequest):
    """
    Apply every available auto-fix to a module and re-validate it.
    """
    try:
        session = get_orchestrator().fix(request.module_path, dry_run=request.dry_run,
                                         confirmed=request.confirmed)
    except Exception as e:
        raise_http_error(e, "Auto-fix")
    result = session.to_dict()
    result["comparison"] = compare_reports(session.before, session.after)
    result["exit_code"] = exit_code_for(session)
    return result


@app.post("/summary")
def ecosystem_summary(request: SummaryRequest):
    """
    Validate modules and return only the ecosystem summary.

    When `previous` (an earlier summary) is supplied, trend deltas are included.
    """
    try:
        batch = _run_batch(request)
        previous = EcosystemSummary.from_dict(request.previous) if request.previous else None
    except Exception as e:
        raise_http_error(e, "Summary")
    return ReportAggregator().summarize(batch, previous).to_dict()
