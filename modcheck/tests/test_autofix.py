"""
Tests for the auto-fix applier: backups, rollback and dry runs.
"""

import json
import os
import sys

import pytest

from modcheck.core import LocalFileSystem
from modcheck.errors import PathNotFoundError
from modcheck.governance import AutoFixAction, ComplianceRule, FixActionType, RuleCatalog
from modcheck.validation import AutoFixApplier, FixStatus, render_content, set_dotted

ORIGINAL_MANIFEST = b'{\n    "name": "billing",\n    "version": "2.0.0"\n}\n'


def fix_rule(action, rule_id="CUSTOM_FIX", **kwargs):
    return ComplianceRule(
        rule_id=rule_id,
        name="Custom fix",
        category="STRUCTURE",
        severity="ERROR",
        auto_fix=AutoFixAction(action, **kwargs),
    )


def builtin(rule_id):
    return RuleCatalog.with_builtin_rules().get_rule(rule_id)


@pytest.fixture
def billing(tmp_path):
    path = tmp_path / "billing"
    path.mkdir()
    (path / "package.json").write_bytes(ORIGINAL_MANIFEST)
    return str(path)


def read_bytes(path):
    with open(path, "rb") as f:
        return f.read()


class FlakyFileSystem(LocalFileSystem):
    """Fails the first `failures` writes."""

    def __init__(self, failures):
        self.failures = failures

    def write_bytes(self, path, data):
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk busy")
        super().write_bytes(path, data)


def test_create_file_renders_template(billing):
    result = AutoFixApplier().apply(billing, builtin("README_EXISTS"))

    assert result.status == FixStatus.SUCCESS
    assert [(c.action, c.path, c.existed) for c in result.changes] == [(FixActionType.CREATE_FILE, "README.md", False)]
    assert result.backups == {}
    with open(os.path.join(billing, "README.md"), encoding="utf-8") as f:
        content = f.read()
    assert content.startswith("# billing\n")
    assert "import {} from 'billing';" in content


def test_update_manifest_keeps_byte_identical_backup(billing):
    """Test the backup holds the exact original bytes and rollback restores them."""
    applier = AutoFixApplier()

    result = applier.apply(billing, builtin("BUILD_SCRIPT_REQUIRED"))

    manifest = json.loads(read_bytes(os.path.join(billing, "package.json")))
    assert manifest == {"name": "billing", "version": "2.0.0", "scripts": {"build": "tsc"}}

    backup = result.backups["package.json"]
    assert os.path.dirname(backup) == os.path.join(billing, ".modcheck", "backups")
    assert os.path.basename(backup).startswith("package.json.")
    assert backup.endswith(".backup")
    assert read_bytes(backup) == ORIGINAL_MANIFEST

    assert applier.rollback(result)
    assert read_bytes(os.path.join(billing, "package.json")) == ORIGINAL_MANIFEST


def test_rollback_removes_created_files(billing):
    applier = AutoFixApplier()
    result = applier.apply(billing, builtin("GITIGNORE_REQUIRED"))
    assert os.path.exists(os.path.join(billing, ".gitignore"))

    assert applier.rollback(result)

    assert not os.path.exists(os.path.join(billing, ".gitignore"))


def test_failed_fix_is_rolled_back(billing):
    """Test a failing command leaves the module exactly as it was."""
    script = "open('package.json', 'w').write('junk'); raise SystemExit(3)"
    rule = fix_rule("run_command", target="package.json", command=[sys.executable, "-c", script])

    result = AutoFixApplier().apply(billing, rule)

    assert result.status == FixStatus.FAILED
    assert result.rolled_back
    assert "exited with 3" in result.error
    assert read_bytes(os.path.join(billing, "package.json")) == ORIGINAL_MANIFEST


def test_malformed_manifest_update_fails(tmp_path):
    path = tmp_path / "broken"
    path.mkdir()
    (path / "package.json").write_text("{not json", encoding="utf-8")

    result = AutoFixApplier().apply(str(path), builtin("BUILD_SCRIPT_REQUIRED"))

    assert result.status == FixStatus.FAILED
    assert (path / "package.json").read_text(encoding="utf-8") == "{not json"


def test_update_missing_file_fails(billing):
    rule = fix_rule("update_file", target="CHANGELOG.md", content="# Changes\n")

    result = AutoFixApplier().apply(billing, rule)

    assert result.status == FixStatus.FAILED
    assert "does not exist" in result.error
    assert not os.path.exists(os.path.join(billing, "CHANGELOG.md"))


def test_create_file_overwrites_with_backup(billing):
    original = b"# Old\n"
    with open(os.path.join(billing, "README.md"), "wb") as f:
        f.write(original)

    result = AutoFixApplier().apply(billing, builtin("README_EXISTS"))

    assert result.changes[0].existed
    assert read_bytes(result.backups["README.md"]) == original


def test_dry_run_touches_nothing(billing):
    before = sorted(os.listdir(billing))

    result = AutoFixApplier().apply(billing, builtin("BUILD_SCRIPT_REQUIRED"), dry_run=True)

    assert result.status == FixStatus.SUCCESS
    assert result.dry_run
    assert result.changes[0].path == "package.json"
    assert sorted(os.listdir(billing)) == before
    assert read_bytes(os.path.join(billing, "package.json")) == ORIGINAL_MANIFEST


def test_confirmation_required(billing):
    rule = fix_rule("delete_file", target="package.json", requires_confirmation=True)
    applier = AutoFixApplier()

    skipped = applier.apply(billing, rule)
    assert skipped.status == FixStatus.SKIPPED
    assert os.path.exists(os.path.join(billing, "package.json"))

    deleted = applier.apply(billing, rule, confirmed=True)
    assert deleted.status == FixStatus.SUCCESS
    assert not os.path.exists(os.path.join(billing, "package.json"))
    assert read_bytes(deleted.backups["package.json"]) == ORIGINAL_MANIFEST


def test_rule_without_fix_is_skipped(billing):
    result = AutoFixApplier().apply(billing, builtin("NO_MOCK_DATA"))

    assert result.status == FixStatus.SKIPPED


def test_target_outside_module_rejected(billing):
    rule = fix_rule("create_file", target="../escape.txt", content="x")

    result = AutoFixApplier().apply(billing, rule)

    assert result.status == FixStatus.FAILED
    assert not os.path.exists(os.path.join(os.path.dirname(billing), "escape.txt"))


def test_missing_module_raises(tmp_path):
    with pytest.raises(PathNotFoundError):
        AutoFixApplier().apply(str(tmp_path / "gone"), builtin("README_EXISTS"))


def test_transient_write_failures_retried(billing):
    applier = AutoFixApplier(filesystem=FlakyFileSystem(failures=2), retry_delay=0)

    result = applier.apply(billing, builtin("GITIGNORE_REQUIRED"))

    assert result.status == FixStatus.SUCCESS
    assert result.attempts == 3


def test_persistent_write_failure_rolls_back(billing):
    applier = AutoFixApplier(filesystem=FlakyFileSystem(failures=10), max_retries=2, retry_delay=0)

    result = applier.apply(billing, builtin("GITIGNORE_REQUIRED"))

    assert result.status == FixStatus.FAILED
    assert result.rolled_back
    assert not os.path.exists(os.path.join(billing, ".gitignore"))


def test_template_helpers():
    assert render_content("# {{ name }} ({{missing}})", {"name": "auth"}) == "# auth ({{missing}})"
    assert render_content(42, {}) == 42

    data = {"scripts": {"test": "jest"}}
    set_dotted(data, "scripts.build", "tsc")
    assert data == {"scripts": {"test": "jest", "build": "tsc"}}
    with pytest.raises(ValueError):
        set_dotted({"scripts": "jest"}, "scripts.build", "tsc")
