"""
Module Structure Probe

Reads one module directory into a ModuleFacts snapshot: which files and
directories exist, the tolerant-parsed manifest, and capped text excerpts
for the rule engine and the security scanner.

Only a missing module directory is fatal. Unreadable files, binary files
and broken manifests are recorded on the facts instead.
"""

import os
import glob
import logging
from typing import Dict, List, Optional, Set, Tuple

from ..errors import PathNotFoundError
from .deadline import Deadline
from .facts import ModuleFacts
from .filesystem import FileSystem, LocalFileSystem
from .manifest import MANIFEST_FILENAME, parse_manifest, declared_dependencies

logger = logging.getLogger(__name__)


DEFAULT_SKIP_DIRS = {
    "node_modules", ".git", "dist", "build", "coverage",
    "__pycache__", ".venv", "venv", ".modcheck",
}

# Bytes inspected when deciding whether a file is binary
SNIFF_BYTES = 8000
TEXT_BYTES = bytes(range(32, 127)) + b"\n\r\t\f\b"


def looks_binary(chunk: bytes) -> bool:
    """
    Content sniffing for binary data.

    A NUL byte, or more than 30% bytes outside printable ASCII that are not
    valid UTF-8, marks the chunk as binary.
    """
    if not chunk:
        return False
    if b"\x00" in chunk:
        return True
    try:
        chunk.decode("utf-8")
        return False
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the sniff boundary is still text.
        if e.start >= len(chunk) - 3:
            return False
    non_text = chunk.translate(None, TEXT_BYTES)
    return len(non_text) / len(chunk) > 0.30


def infer_module_type(manifest: Dict, files: List[str], directories: List[str]) -> str:
    """
    Work out the module type.

    An explicit manifest `moduleType` wins; otherwise dependencies and
    path conventions decide.
    """
    declared = manifest.get("moduleType")
    if isinstance(declared, str) and declared:
        return declared

    deps = declared_dependencies(manifest)
    if "react" in deps or "vue" in deps:
        return "frontend-component"
    if any(name in deps for name in ("express", "fastify", "koa", "firebase-functions")):
        return "backend-api"
    if manifest.get("bin"):
        return "cli-tool"

    paths = [p.lower() for p in list(directories) + list(files)]
    if any("component" in p for p in paths):
        return "frontend-component"
    if any(seg in p for p in paths for seg in ("api/", "routes/", "functions/")):
        return "backend-api"
    ts_files = [p.lower() for p in files if p.endswith((".ts", ".tsx"))]
    if ts_files and all(p.endswith(".d.ts") or "types" in p for p in ts_files):
        return "shared-types"
    if any(p.startswith(("bin/", "cli/")) or p in ("bin", "cli") for p in paths):
        return "cli-tool"
    return "other"


class ModuleStructureProbe:
    """
    Builds ModuleFacts for a module directory.

    Usage:
        probe = ModuleStructureProbe()
        facts = probe.probe("packages/auth")
        print(facts.module_type, len(facts.files))
    """

    def __init__(
        self,
        filesystem: Optional[FileSystem] = None,
        max_excerpt_bytes: int = 64 * 1024,
        max_file_size: int = 1024 * 1024,
        max_depth: int = 10,
        skip_dirs: Optional[Set[str]] = None
    ):
        """
        Initialize the probe.

        Args:
            filesystem: Filesystem collaborator (local disk by default)
            max_excerpt_bytes: Excerpts are cut at this many bytes
            max_file_size: Larger files are listed but never read
            max_depth: Directory nesting limit for the walk
            skip_dirs: Directory names never descended into
        """
        self.fs = filesystem or LocalFileSystem()
        self.max_excerpt_bytes = max_excerpt_bytes
        self.max_file_size = max_file_size
        self.max_depth = max_depth
        self.skip_dirs = DEFAULT_SKIP_DIRS | set(skip_dirs or ())

    def probe(self, module_path: str, deadline: Optional[Deadline] = None) -> ModuleFacts:
        """
        Snapshot a module.

        Args:
            module_path: Path to the module directory
            deadline: Checked per directory and per file while probing

        Returns:
            ModuleFacts for the module

        Raises:
            PathNotFoundError: If module_path does not exist or is not a directory
            ValidationTimeoutError: If the deadline passes mid-probe
        """
        root = os.path.abspath(module_path)
        if not self.fs.exists(root) or not self.fs.is_dir(root):
            raise PathNotFoundError(module_path)

        warnings: List[str] = []
        files, directories = self._walk(root, warnings, deadline)

        manifest: Dict = {}
        manifest_present = MANIFEST_FILENAME in files
        if manifest_present:
            manifest = self._read_manifest(root, warnings)

        excerpts: Dict[str, str] = {}
        line_counts: Dict[str, int] = {}
        truncated: List[str] = []
        skipped: List[str] = []
        sizes: Dict[str, int] = {}
        for rel_path in files:
            if deadline is not None:
                deadline.check("probe")
            self._capture_excerpt(root, rel_path, excerpts, line_counts, truncated, skipped, sizes, warnings)

        name = os.path.basename(root.rstrip(os.sep)) or root
        manifest_name = manifest.get("name")
        module_id = manifest_name if isinstance(manifest_name, str) and manifest_name else name

        facts = ModuleFacts(
            module_path=root,
            module_id=module_id,
            name=name,
            module_type=infer_module_type(manifest, files, directories),
            files=tuple(files),
            directories=tuple(directories),
            manifest=manifest,
            manifest_present=manifest_present,
            excerpts=excerpts,
            line_counts=line_counts,
            truncated_files=tuple(truncated),
            skipped_files=tuple(skipped),
            file_sizes=sizes,
            warnings=tuple(warnings),
        )
        logger.debug(
            "Probed %s: %d files, %d dirs, %d warnings",
            module_id, len(files), len(directories), len(warnings)
        )
        return facts

    def probe_manifest(self, module_path: str) -> ModuleFacts:
        """
        Snapshot only a module's manifest.

        Enough for dependency graph construction; no files are walked.

        Raises:
            PathNotFoundError: If module_path does not exist or is not a directory
        """
        root = os.path.abspath(module_path)
        if not self.fs.exists(root) or not self.fs.is_dir(root):
            raise PathNotFoundError(module_path)

        warnings: List[str] = []
        manifest_present = self.fs.is_file(os.path.join(root, MANIFEST_FILENAME))
        manifest = self._read_manifest(root, warnings) if manifest_present else {}

        name = os.path.basename(root.rstrip(os.sep)) or root
        manifest_name = manifest.get("name")
        return ModuleFacts(
            module_path=root,
            module_id=manifest_name if isinstance(manifest_name, str) and manifest_name else name,
            name=name,
            module_type=infer_module_type(manifest, [], []),
            files=(MANIFEST_FILENAME,) if manifest_present else (),
            manifest=manifest,
            manifest_present=manifest_present,
            warnings=tuple(warnings),
        )

    # ─── Walk ─────────────────────────────────────

    def _walk(
        self,
        root: str,
        warnings: List[str],
        deadline: Optional[Deadline] = None
    ) -> Tuple[List[str], List[str]]:
        files: List[str] = []
        directories: List[str] = []
        stack: List[Tuple[str, str, int]] = [(root, "", 0)]

        while stack:
            if deadline is not None:
                deadline.check("probe")
            abs_dir, rel_dir, depth = stack.pop()
            try:
                entries = self.fs.list_dir(abs_dir)
            except OSError as e:
                warnings.append(f"Cannot list {rel_dir or '.'}: {e}")
                continue

            for entry in entries:
                abs_path = os.path.join(abs_dir, entry)
                rel_path = f"{rel_dir}/{entry}" if rel_dir else entry
                if self.fs.is_dir(abs_path):
                    if entry in self.skip_dirs:
                        continue
                    directories.append(rel_path)
                    if depth + 1 < self.max_depth:
                        stack.append((abs_path, rel_path, depth + 1))
                    else:
                        warnings.append(f"Directory depth limit reached at {rel_path}")
                elif self.fs.is_file(abs_path):
                    files.append(rel_path)

        return sorted(files), sorted(directories)

    # ─── Reads ────────────────────────────────────

    def _read_manifest(self, root: str, warnings: List[str]) -> Dict:
        path = os.path.join(root, MANIFEST_FILENAME)
        try:
            text = self.fs.read_text(path, limit=self.max_file_size)
        except OSError as e:
            warnings.append(f"Cannot read {MANIFEST_FILENAME}: {e}")
            return {}

        manifest, error = parse_manifest(text, MANIFEST_FILENAME)
        if error is not None:
            warnings.append(str(error))
        return manifest

    def _capture_excerpt(
        self,
        root: str,
        rel_path: str,
        excerpts: Dict[str, str],
        line_counts: Dict[str, int],
        truncated: List[str],
        skipped: List[str],
        sizes: Dict[str, int],
        warnings: List[str]
    ) -> None:
        abs_path = os.path.join(root, *rel_path.split("/"))
        try:
            size = self.fs.size(abs_path)
            sizes[rel_path] = size
            if size > self.max_file_size:
                skipped.append(rel_path)
                return
            data = self.fs.read_bytes(abs_path, limit=self.max_excerpt_bytes + 1)
        except OSError as e:
            warnings.append(f"Cannot read {rel_path}: {e}")
            logger.warning("Unreadable file %s: %s", abs_path, e)
            return

        if looks_binary(data[:SNIFF_BYTES]):
            skipped.append(rel_path)
            return

        if len(data) > self.max_excerpt_bytes:
            data = data[:self.max_excerpt_bytes]
            truncated.append(rel_path)

        text = data.decode("utf-8", errors="replace")
        excerpts[rel_path] = text
        line_counts[rel_path] = text.count("\n") + (1 if text and not text.endswith("\n") else 0)


GLOB_CHARS = "*?["


def _is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in GLOB_CHARS)


def _glob_base(pattern: str) -> str:
    """Directory part of a glob pattern before its first wildcard."""
    first = min(pattern.index(ch) for ch in GLOB_CHARS if ch in pattern)
    return os.path.dirname(pattern[:first]) or "."


def discover_modules(pattern_or_root: str, skip_dirs: Optional[Set[str]] = None) -> List[str]:
    """
    Find module directories.

    A glob pattern ("packages/*", "apps/**/") expands to the directories it
    matches. A plain directory is treated as an ecosystem root: every
    directory below it (itself included) that holds a package.json is a
    module. Skipped directories are never returned or descended into.

    Returns:
        Sorted module directory paths
    """
    skip = DEFAULT_SKIP_DIRS | set(skip_dirs or ())

    if _is_glob(pattern_or_root):
        base = _glob_base(pattern_or_root)
        matches = [
            os.path.normpath(p) for p in glob.glob(pattern_or_root, recursive=True)
            if os.path.isdir(p)
        ]
        found = {
            p for p in matches
            if not any(part in skip for part in os.path.relpath(p, base).split(os.sep))
        }
        if not found:
            logger.warning("No module directories match %s", pattern_or_root)
        return sorted(found)

    if not os.path.isdir(pattern_or_root):
        raise PathNotFoundError(pattern_or_root)

    modules: List[str] = []
    for root, dirs, files in os.walk(pattern_or_root):
        # Filter directories
        dirs[:] = [d for d in dirs if d not in skip]
        if MANIFEST_FILENAME in files:
            modules.append(os.path.normpath(root))
    logger.info("Discovered %d modules under %s", len(modules), pattern_or_root)
    return sorted(modules)
