"""
Module facts - point-in-time snapshot of one module.

ModuleFacts is what every later stage reads: the rule engine resolves
condition fields against it, the scanner reads its excerpts, and the
dependency analyzer reads its manifest. Facts are immutable once probed.

Condition fields are dot paths whose first segment must be a key of
FIELD_ACCESSORS; the remaining segments walk into dicts/lists.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import RuleConfigurationError


class _Missing:
    """Sentinel for a field that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()

TEST_DIRECTORIES = ("tests", "test", "__tests__", "src/__tests__")
TYPESCRIPT_EXTENSIONS = (".ts", ".tsx")
SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py")
CONFIG_EXTENSIONS = (".json", ".yaml", ".yml", ".env", ".toml", ".ini")
README_MIN_LENGTH = 50


def _is_test_path(rel_path: str) -> bool:
    lowered = rel_path.lower()
    name = lowered.rsplit("/", 1)[-1]
    if any(marker in lowered for marker in ("__tests__/", "__mocks__/")):
        return True
    if lowered.startswith(("tests/", "test/")) or "/tests/" in lowered or "/test/" in lowered:
        return True
    return (
        ".test." in name
        or ".spec." in name
        or name.startswith("test_")
        or name.endswith("_test.py")
    )


@dataclass(frozen=True)
class ModuleFacts:
    """
    Immutable snapshot of a module's observable state.

    Attributes:
        module_path: Absolute path of the module directory
        module_id: Manifest name, or the directory name when there is none
        name: Directory name
        module_type: Declared or inferred module type
        files: Module-relative file paths (POSIX separators), sorted
        directories: Module-relative directory paths, sorted
        manifest: Parsed manifest ({} when absent or malformed)
        manifest_present: Whether a manifest file exists at all
        excerpts: Relative path -> text excerpt (truncated at the byte ceiling)
        line_counts: Relative path -> line count of the excerpt
        truncated_files: Files whose excerpt was cut at the byte ceiling
        skipped_files: Binary or oversized files that were not read
        file_sizes: Relative path -> size in bytes, for every file the probe sized
        warnings: Facts-level warnings (unreadable files, manifest errors)
    """
    module_path: str
    module_id: str
    name: str
    module_type: str = "other"
    files: Tuple[str, ...] = ()
    directories: Tuple[str, ...] = ()
    manifest: Dict[str, Any] = field(default_factory=dict)
    manifest_present: bool = False
    excerpts: Dict[str, str] = field(default_factory=dict)
    line_counts: Dict[str, int] = field(default_factory=dict)
    truncated_files: Tuple[str, ...] = ()
    skipped_files: Tuple[str, ...] = ()
    file_sizes: Dict[str, int] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()

    # ─── Derived facts ────────────────────────────

    def has_file(self, rel_path: str) -> bool:
        return rel_path.strip("/").replace("\\", "/") in self.files

    def has_directory(self, rel_path: str) -> bool:
        return rel_path.strip("/").replace("\\", "/") in self.directories

    @property
    def has_tests(self) -> bool:
        return any(self.has_directory(d) for d in TEST_DIRECTORIES)

    @property
    def has_typescript(self) -> bool:
        return self.has_file("tsconfig.json") or any(f.endswith(TYPESCRIPT_EXTENSIONS) for f in self.files)

    @property
    def has_documentation(self) -> bool:
        readme = self.excerpts.get("README.md")
        if readme is not None:
            return len(readme.strip()) >= README_MIN_LENGTH
        # oversized READMEs are listed but never read
        return self.file_sizes.get("README.md", 0) >= README_MIN_LENGTH

    @property
    def source_files(self) -> List[str]:
        return [f for f in self.files if f.endswith(SOURCE_EXTENSIONS)]

    @property
    def production_source_files(self) -> List[str]:
        return [f for f in self.source_files if not _is_test_path(f)]

    @property
    def config_files(self) -> List[str]:
        return [
            f for f in self.files
            if f.endswith(CONFIG_EXTENSIONS) or f.rsplit("/", 1)[-1].startswith(".env")
        ]

    @property
    def content(self) -> str:
        """All captured source excerpts joined in path order."""
        return "\n".join(self.excerpts[f] for f in self.source_files if f in self.excerpts)

    @property
    def max_line_count(self) -> int:
        counts = [self.line_counts[f] for f in self.source_files if f in self.line_counts]
        return max(counts) if counts else 0

    def to_dict(self) -> Dict:
        return {
            "module_path": self.module_path,
            "module_id": self.module_id,
            "name": self.name,
            "module_type": self.module_type,
            "files": list(self.files),
            "directories": list(self.directories),
            "manifest_present": self.manifest_present,
            "has_tests": self.has_tests,
            "has_typescript": self.has_typescript,
            "has_documentation": self.has_documentation,
            "truncated_files": list(self.truncated_files),
            "skipped_files": list(self.skipped_files),
            "warnings": list(self.warnings),
        }


def _manifest_section(key: str) -> Callable[[ModuleFacts], Any]:
    def accessor(facts: ModuleFacts) -> Any:
        return facts.manifest.get(key, MISSING)
    return accessor


# Root segment of a condition field -> value getter.
FIELD_ACCESSORS: Dict[str, Callable[[ModuleFacts], Any]] = {
    "module_path": lambda f: f.module_path,
    "module_id": lambda f: f.module_id,
    "name": lambda f: f.name,
    "module_type": lambda f: f.module_type,
    "files": lambda f: list(f.files),
    "directories": lambda f: list(f.directories),
    "package": lambda f: f.manifest if f.manifest_present else MISSING,
    "scripts": _manifest_section("scripts"),
    "dependencies": _manifest_section("dependencies"),
    "dev_dependencies": _manifest_section("devDependencies"),
    "version": _manifest_section("version"),
    "has_tests": lambda f: f.has_tests,
    "has_typescript": lambda f: f.has_typescript,
    "has_documentation": lambda f: f.has_documentation,
    "content": lambda f: f.content,
    "line_count": lambda f: f.max_line_count,
    "file_count": lambda f: len(f.files),
}

# camelCase spellings used in existing rule files
FIELD_ALIASES: Dict[str, str] = {
    "moduleId": "module_id",
    "moduleType": "module_type",
    "manifest": "package",
    "devDependencies": "dev_dependencies",
    "hasTests": "has_tests",
    "hasTypeScript": "has_typescript",
    "hasDocumentation": "has_documentation",
    "lineCount": "line_count",
    "fileCount": "file_count",
}


def _split_field(field_path: str) -> Tuple[str, List[str]]:
    parts = [p for p in field_path.split(".") if p]
    if not parts:
        raise RuleConfigurationError("Condition field must not be empty")
    root = FIELD_ALIASES.get(parts[0], parts[0])
    return root, parts[1:]


def validate_field_path(field_path: str) -> None:
    """Raise RuleConfigurationError if the field's root has no accessor."""
    root, _ = _split_field(field_path)
    if root not in FIELD_ACCESSORS:
        known = ", ".join(sorted(FIELD_ACCESSORS))
        raise RuleConfigurationError(f"Unknown condition field '{field_path}'. Known roots: {known}")


def resolve_field(facts: ModuleFacts, field_path: str) -> Any:
    """
    Resolve a dot path against facts.

    Returns MISSING when any segment after the root does not resolve.
    """
    root, rest = _split_field(field_path)
    accessor = FIELD_ACCESSORS.get(root)
    if accessor is None:
        raise RuleConfigurationError(f"Unknown condition field '{field_path}'")

    value = accessor(facts)
    for segment in rest:
        if value is MISSING:
            return MISSING
        if isinstance(value, dict):
            value = value.get(segment, MISSING)
        elif isinstance(value, list) and segment.isdigit():
            index = int(segment)
            value = value[index] if index < len(value) else MISSING
        else:
            return MISSING
    return value


def facts_path(facts: ModuleFacts, rel_path: Optional[str] = None) -> str:
    """Join a module-relative path onto the module directory."""
    if not rel_path:
        return facts.module_path
    return os.path.join(facts.module_path, *rel_path.strip("/").split("/"))
