"""
Batch Scheduler - Validate many modules with bounded concurrency.

Pipelines run on a ThreadPoolExecutor, but the scheduler never has more
than `max_concurrent` live futures outstanding. A module that passes its
timeout is recorded as failed and abandoned at once, freeing its slot for
the next module; the pipeline itself stops at its next deadline check.
Only the scheduler thread records outcomes.
"""

import time
import logging
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Deque, Dict, List, Optional, Sequence, Tuple, Union

from ..config import ModCheckSettings
from ..core.probe import GLOB_CHARS, discover_modules
from ..errors import PathNotFoundError, ValidationTimeoutError
from ..graph.models import GraphAnalysisResult
from .models import BatchOptions, BatchResult, FailedItem, ValidationReport
from .orchestrator import ValidationOrchestrator

logger = logging.getLogger(__name__)

Outcome = Union[ValidationReport, FailedItem]


def failure_for(module_path: str, error: BaseException) -> FailedItem:
    """Classify a pipeline exception as a FailedItem."""
    if isinstance(error, ValidationTimeoutError):
        reason = "timeout"
    elif isinstance(error, PathNotFoundError):
        reason = "path_not_found"
    else:
        reason = "error"
    return FailedItem(
        module_path=module_path,
        reason=reason,
        message=str(error),
        error_type=type(error).__name__,
    )


class BatchScheduler:
    """
    Runs the validation pipeline over many modules.

    Usage:
        scheduler = BatchScheduler()
        batch = scheduler.run(["packages/auth", "packages/billing"],
                              BatchOptions(max_concurrent=2, timeout=10))
        print(batch.completed, len(batch.failed_items))
    """

    def __init__(
        self,
        orchestrator: Optional[ValidationOrchestrator] = None,
        settings: Optional[ModCheckSettings] = None
    ):
        self.settings = settings or ModCheckSettings()
        self.orchestrator = orchestrator or ValidationOrchestrator(settings=self.settings)

    def default_options(self) -> BatchOptions:
        return BatchOptions(
            max_concurrent=self.settings.max_concurrent,
            timeout=self.settings.timeout_seconds,
        )

    def run(self, module_paths: Sequence[str], options: Optional[BatchOptions] = None) -> BatchResult:
        """
        Validate every module path.

        Args:
            module_paths: Module directories or glob patterns ("packages/*")
            options: Concurrency, timeout, error policy and callbacks

        Returns:
            BatchResult where completed + len(failed_items) equals the number
            of distinct paths after glob expansion (duplicates are validated
            once and counted in duplicates_ignored)
        """
        options = options or self.default_options()
        expanded = self.expand_paths(module_paths)
        paths = list(dict.fromkeys(expanded))
        duplicates = len(expanded) - len(paths)
        if duplicates:
            logger.warning("Ignoring %d duplicate module paths", duplicates)

        started = time.perf_counter()
        result = BatchResult(
            total=len(paths),
            continue_on_error=options.continue_on_error,
            duplicates_ignored=duplicates,
        )
        if not paths:
            return result

        limit = max(1, options.max_concurrent)
        graph = self._shared_graph(paths, options)
        validation = replace(options.validation, timeout=options.timeout)

        outcomes: Dict[str, Outcome] = {}
        pending: Deque[str] = deque(paths)
        in_flight: Dict[Future, Tuple[str, Optional[float]]] = {}
        stopping = False

        logger.info("Validating %d modules (max %d concurrent)", len(paths), limit)
        # Sized for every module so abandoned (timed-out) workers never block dispatch
        pool = ThreadPoolExecutor(max_workers=len(paths), thread_name_prefix="modcheck")
        try:
            while pending or in_flight:
                while pending and not stopping and len(in_flight) < limit:
                    path = pending.popleft()
                    future = pool.submit(self.orchestrator.validate, path, validation, graph)
                    deadline = time.monotonic() + options.timeout if options.timeout is not None else None
                    in_flight[future] = (path, deadline)
                    result.max_in_flight = max(result.max_in_flight, len(in_flight))

                if stopping and pending:
                    for path in pending:
                        self._record(outcomes, path, FailedItem(
                            module_path=path,
                            reason="cancelled",
                            message="Not started because an earlier module failed",
                        ), options, len(paths))
                    pending.clear()

                if not in_flight:
                    break

                done, _ = wait(list(in_flight), timeout=self._wait_time(in_flight),
                               return_when=FIRST_COMPLETED)

                for future in done:
                    path, _ = in_flight.pop(future)
                    try:
                        outcome: Outcome = future.result()
                    except Exception as e:
                        logger.warning("Validation of %s failed: %s", path, e)
                        outcome = failure_for(path, e)
                    self._record(outcomes, path, outcome, options, len(paths))
                    if isinstance(outcome, FailedItem) and not options.continue_on_error:
                        stopping = True

                now = time.monotonic()
                expired = [
                    future for future, (_, deadline) in in_flight.items()
                    if deadline is not None and now >= deadline
                ]
                for future in expired:
                    path, _ = in_flight.pop(future)
                    self._abandon(future, path)
                    logger.warning("Validation of %s timed out after %.1fs", path, options.timeout)
                    self._record(outcomes, path, failure_for(
                        path, ValidationTimeoutError(path, options.timeout)), options, len(paths))
                    if not options.continue_on_error:
                        stopping = True
        finally:
            # Abandoned pipelines stop at their own deadline check; do not join them here
            pool.shutdown(wait=False)

        for path in paths:
            outcome = outcomes[path]
            if isinstance(outcome, FailedItem):
                result.failed_items.append(outcome)
            else:
                result.reports[path] = outcome

        result.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Batch finished: %d completed, %d failed in %.0fms",
            result.completed, len(result.failed_items), result.duration_ms
        )
        return result

    @staticmethod
    def expand_paths(module_paths: Sequence[str]) -> List[str]:
        """Replace glob patterns by the module directories they match."""
        expanded: List[str] = []
        for entry in module_paths:
            if any(ch in entry for ch in GLOB_CHARS):
                expanded.extend(discover_modules(entry))
            else:
                expanded.append(entry)
        return expanded

    # ─── Internals ────────────────────────────────

    def _shared_graph(self, paths: List[str], options: BatchOptions) -> Optional[GraphAnalysisResult]:
        """One dependency graph over every module in the batch."""
        validation = options.validation
        if not (options.batch_graph and validation.analyze_dependencies):
            return None
        return self.orchestrator.analyze_dependencies(
            paths, include_external=validation.include_external, max_depth=validation.max_depth
        )

    @staticmethod
    def _abandon(future: Future, path: str) -> None:
        if future.cancel():
            return
        # already running; its late result is discarded
        future.add_done_callback(lambda _: logger.debug("Discarding late result for %s", path))

    @staticmethod
    def _wait_time(in_flight: Dict[Future, Tuple[str, Optional[float]]]) -> Optional[float]:
        deadlines = [d for _, d in in_flight.values() if d is not None]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - time.monotonic())

    def _record(
        self,
        outcomes: Dict[str, Outcome],
        path: str,
        outcome: Outcome,
        options: BatchOptions,
        total: int
    ) -> None:
        outcomes[path] = outcome
        if isinstance(outcome, ValidationReport) and options.on_item_complete is not None:
            try:
                options.on_item_complete(path, outcome)
            except Exception:
                logger.exception("on_item_complete callback failed for %s", path)
        if options.on_progress is not None:
            try:
                options.on_progress({"completed": len(outcomes), "total": total})
            except Exception:
                logger.exception("on_progress callback failed")
