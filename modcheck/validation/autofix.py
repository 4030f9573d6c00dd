"""
Auto-Fix Applier

Applies a rule's declared AutoFixAction to a module directory. Every file
the action touches is backed up first; any failure restores the backups
and removes what was created, so a fix is applied completely or not at all.
"""

import os
import re
import json
import time
import logging
import subprocess
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.filesystem import FileSystem, LocalFileSystem
from ..core.manifest import MANIFEST_FILENAME, parse_manifest
from ..errors import AutoFixApplyError, PathNotFoundError
from ..governance.models import AutoFixAction, ComplianceRule, FixActionType
from .models import AutoFixResult, FileChange, FixStatus

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_content(content: Any, context: Dict[str, str]) -> Any:
    """Substitute {{ key }} placeholders in string content."""
    if not isinstance(content, str):
        return content
    return PLACEHOLDER_PATTERN.sub(lambda m: context.get(m.group(1), m.group(0)), content)


def set_dotted(data: Dict[str, Any], dotted: str, value: Any) -> None:
    """Set data['a']['b'] for 'a.b', creating intermediate mappings."""
    parts = [p for p in dotted.split(".") if p]
    if not parts:
        raise ValueError("empty manifest path")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if child is None:
            child = {}
            current[part] = child
        elif not isinstance(child, dict):
            raise ValueError(f"'{part}' is not an object")
        current = child
    current[parts[-1]] = value


class _Transaction:
    """Backups and creations made while applying one fix, for rollback."""

    def __init__(self):
        self.backups: List[Tuple[str, str]] = []      # (original, backup)
        self.created_files: List[str] = []
        self.created_dirs: List[str] = []


class AutoFixApplier:
    """
    Applies auto-fixes with mandatory backup and rollback.

    Usage:
        applier = AutoFixApplier()
        result = applier.apply("packages/auth", catalog.get_rule("README_EXISTS"))
        if not result.succeeded:
            print(result.error)
    """

    def __init__(
        self,
        filesystem: Optional[FileSystem] = None,
        backup_dir: str = ".modcheck/backups",
        max_retries: int = 3,
        retry_delay: float = 0.05,
        command_timeout: float = 120.0
    ):
        """
        Initialize the applier.

        Args:
            filesystem: Filesystem collaborator (local disk by default)
            backup_dir: Backup directory; relative paths are inside the module
            max_retries: Attempts per filesystem operation
            retry_delay: Fixed delay between attempts, in seconds
            command_timeout: Limit for run_command actions, in seconds
        """
        self.fs = filesystem or LocalFileSystem()
        self.backup_dir = backup_dir
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout

    # ─── Public API ───────────────────────────────

    def apply(
        self,
        module_path: str,
        rule: ComplianceRule,
        dry_run: bool = False,
        confirmed: bool = False
    ) -> AutoFixResult:
        """
        Apply a rule's auto-fix to a module.

        Args:
            module_path: Module directory
            rule: Rule whose auto_fix is applied
            dry_run: Compute the change set without touching the filesystem
            confirmed: Allow actions that require confirmation

        Returns:
            AutoFixResult; FAILED results have already been rolled back

        Raises:
            PathNotFoundError: If the module directory does not exist
        """
        root = os.path.abspath(module_path)
        if not self.fs.is_dir(root):
            raise PathNotFoundError(module_path)

        started = time.perf_counter()
        result = AutoFixResult(rule_id=rule.rule_id, module_path=root, status=FixStatus.SKIPPED, dry_run=dry_run)
        action = rule.auto_fix
        if action is None:
            result.error = "Rule declares no auto-fix"
            return result
        if action.requires_confirmation and not confirmed and not dry_run:
            result.error = "Auto-fix requires confirmation"
            return result

        try:
            result.changes = self.plan(root, action)
        except ValueError as e:
            result.status = FixStatus.FAILED
            result.error = str(AutoFixApplyError(rule.rule_id, str(e), action.target))
            return result
        if dry_run:
            result.status = FixStatus.SUCCESS
            result.duration_ms = (time.perf_counter() - started) * 1000
            return result

        tx = _Transaction()
        try:
            context = self._context(root)
            self._execute(root, rule.rule_id, action, context, tx, result)
            result.status = FixStatus.SUCCESS
            logger.info("Applied auto-fix %s to %s", rule.rule_id, root)
        except (AutoFixApplyError, OSError, ValueError) as e:
            error = e if isinstance(e, AutoFixApplyError) else AutoFixApplyError(rule.rule_id, str(e), action.target)
            logger.warning("Auto-fix %s failed on %s, rolling back: %s", rule.rule_id, root, e)
            rollback_errors = self._rollback(tx)
            result.status = FixStatus.FAILED
            result.rolled_back = True
            result.error = str(error)
            if rollback_errors:
                result.error += "; rollback incomplete: " + "; ".join(rollback_errors)
        result.backups = {os.path.relpath(orig, root).replace(os.sep, "/"): backup for orig, backup in tx.backups}
        result.duration_ms = (time.perf_counter() - started) * 1000
        return result

    def plan(self, module_path: str, action: AutoFixAction) -> List[FileChange]:
        """The change set an action would make, without making it."""
        root = os.path.abspath(module_path)
        if action.action == FixActionType.UPDATE_MANIFEST:
            path = os.path.join(root, MANIFEST_FILENAME)
            return [FileChange(action.action, MANIFEST_FILENAME,
                               f"Set {action.target} in {MANIFEST_FILENAME}", self.fs.exists(path))]
        if action.action == FixActionType.RUN_COMMAND:
            return [FileChange(action.action, action.target or ".",
                               f"Run {' '.join(action.command)}", True)]

        path = self._resolve(root, action.target)
        existed = self.fs.exists(path)
        descriptions = {
            FixActionType.CREATE_FILE: f"{'Overwrite' if existed else 'Create'} {action.target}",
            FixActionType.UPDATE_FILE: f"Update {action.target}",
            FixActionType.DELETE_FILE: f"Delete {action.target}",
            FixActionType.CREATE_DIRECTORY: f"Create directory {action.target}",
        }
        return [FileChange(action.action, action.target, descriptions[action.action], existed)]

    def rollback(self, result: AutoFixResult) -> bool:
        """
        Undo a successful fix from its recorded backups.

        Files the fix created are removed; backed-up files are restored.
        """
        tx = _Transaction()
        for rel_path, backup in result.backups.items():
            tx.backups.append((self._resolve(result.module_path, rel_path), backup))
        for change in result.changes:
            if change.existed:
                continue
            path = self._resolve(result.module_path, change.path)
            if change.action in (FixActionType.CREATE_FILE, FixActionType.UPDATE_MANIFEST):
                tx.created_files.append(path)
            elif change.action == FixActionType.CREATE_DIRECTORY:
                tx.created_dirs.append(path)
        errors = self._rollback(tx)
        for message in errors:
            logger.error("Rollback of %s: %s", result.rule_id, message)
        return not errors

    # ─── Execution ────────────────────────────────

    def _execute(
        self,
        root: str,
        rule_id: str,
        action: AutoFixAction,
        context: Dict[str, str],
        tx: _Transaction,
        result: AutoFixResult
    ) -> None:
        kind = action.action

        if kind == FixActionType.RUN_COMMAND:
            if action.target:
                self._backup(root, self._resolve(root, action.target), tx, result)
            self._run_command(root, rule_id, action)
            return

        if kind == FixActionType.UPDATE_MANIFEST:
            path = os.path.join(root, MANIFEST_FILENAME)
            manifest: Dict[str, Any] = {}
            if self.fs.exists(path):
                self._backup(root, path, tx, result)
                manifest, error = parse_manifest(self.fs.read_text(path), MANIFEST_FILENAME)
                if error is not None:
                    raise AutoFixApplyError(rule_id, str(error), MANIFEST_FILENAME)
            else:
                tx.created_files.append(path)
            set_dotted(manifest, action.target, render_content(action.content, context))
            text = json.dumps(manifest, indent=2) + "\n"
            self._retry(result, lambda: self.fs.write_text(path, text))
            return

        path = self._resolve(root, action.target)
        existed = self.fs.exists(path)

        if kind == FixActionType.CREATE_DIRECTORY:
            if existed and not self.fs.is_dir(path):
                raise AutoFixApplyError(rule_id, "a file with that name exists", action.target)
            if not existed:
                tx.created_dirs.append(path)
                self._retry(result, lambda: self.fs.make_dirs(path))
            return

        if kind == FixActionType.DELETE_FILE:
            if existed:
                self._backup(root, path, tx, result)
                self._retry(result, lambda: self.fs.remove_file(path))
            return

        if kind == FixActionType.UPDATE_FILE and not existed:
            raise AutoFixApplyError(rule_id, "file to update does not exist", action.target)

        content = render_content(action.content, context)
        if existed:
            self._backup(root, path, tx, result)
        else:
            tx.created_files.append(path)
        self._retry(result, lambda: self.fs.write_text(path, str(content)))

    def _run_command(self, root: str, rule_id: str, action: AutoFixAction) -> None:
        try:
            proc = subprocess.run(
                list(action.command),
                cwd=root,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            # subprocess.run kills the process on TimeoutExpired
            raise AutoFixApplyError(rule_id, f"command timed out after {self.command_timeout:.0f}s")
        except FileNotFoundError:
            raise AutoFixApplyError(rule_id, f"command not found: {action.command[0]}")

        if proc.returncode != 0:
            stderr = proc.stderr.strip() if proc.stderr else "no output"
            raise AutoFixApplyError(rule_id, f"command exited with {proc.returncode}: {stderr}")

    # ─── Backup / rollback ────────────────────────

    def _backup(self, root: str, path: str, tx: _Transaction, result: AutoFixResult) -> str:
        rel = os.path.relpath(path, root).replace(os.sep, "/")
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        name = f"{rel.replace('/', '__')}.{timestamp}.backup"
        backup_path = os.path.join(self._backup_root(root), name)
        self._retry(result, lambda: self.fs.copy_file(path, backup_path))
        tx.backups.append((path, backup_path))
        logger.debug("Backed up %s to %s", path, backup_path)
        return backup_path

    def _rollback(self, tx: _Transaction) -> List[str]:
        errors: List[str] = []
        for original, backup in reversed(tx.backups):
            try:
                self.fs.copy_file(backup, original)
            except OSError as e:
                errors.append(f"restore {original}: {e}")
        for path in reversed(tx.created_files):
            if self.fs.exists(path):
                try:
                    self.fs.remove_file(path)
                except OSError as e:
                    errors.append(f"remove {path}: {e}")
        for path in reversed(tx.created_dirs):
            if self.fs.is_dir(path):
                try:
                    self.fs.remove_dir(path)
                except OSError as e:
                    errors.append(f"remove directory {path}: {e}")
        return errors

    def _backup_root(self, root: str) -> str:
        if os.path.isabs(self.backup_dir):
            return self.backup_dir
        return os.path.join(root, self.backup_dir)

    # ─── Helpers ──────────────────────────────────

    def _retry(self, result: AutoFixResult, operation: Callable[[], None]) -> None:
        """Run a filesystem operation with bounded fixed-backoff retries."""
        for attempt in range(1, self.max_retries + 1):
            result.attempts += 1
            try:
                operation()
                return
            except OSError as e:
                if attempt == self.max_retries:
                    raise
                logger.debug("Filesystem operation failed (attempt %d/%d): %s", attempt, self.max_retries, e)
                time.sleep(self.retry_delay)

    @staticmethod
    def _resolve(root: str, rel_path: str) -> str:
        path = os.path.abspath(os.path.join(root, *rel_path.strip("/").split("/")))
        if path != root and not path.startswith(root.rstrip(os.sep) + os.sep):
            raise ValueError(f"target {rel_path} escapes the module directory")
        return path

    def _context(self, root: str) -> Dict[str, str]:
        name = os.path.basename(root.rstrip(os.sep))
        manifest: Dict[str, Any] = {}
        path = os.path.join(root, MANIFEST_FILENAME)
        if self.fs.is_file(path):
            manifest, _ = parse_manifest(self.fs.read_text(path), MANIFEST_FILENAME)
        module_id = manifest.get("name") if isinstance(manifest.get("name"), str) else name
        description = manifest.get("description") if isinstance(manifest.get("description"), str) else ""
        return {
            "name": name,
            "module_id": module_id,
            "description": description or f"The {module_id} module.",
        }
