"""
Core module for modcheck - reading modules into facts.
"""

from .filesystem import FileSystem, LocalFileSystem

from .manifest import (
    MANIFEST_FILENAME,
    parse_manifest,
    declared_dependencies
)

from .deadline import Deadline

from .facts import (
    MISSING,
    FIELD_ACCESSORS,
    ModuleFacts,
    resolve_field,
    validate_field_path
)

from .probe import (
    ModuleStructureProbe,
    discover_modules,
    infer_module_type,
    looks_binary
)

__all__ = [
    # Filesystem
    "FileSystem",
    "LocalFileSystem",
    # Deadline
    "Deadline",
    # Manifest
    "MANIFEST_FILENAME",
    "parse_manifest",
    "declared_dependencies",
    # Facts
    "MISSING",
    "FIELD_ACCESSORS",
    "ModuleFacts",
    "resolve_field",
    "validate_field_path",
    # Probe
    "ModuleStructureProbe",
    "discover_modules",
    "infer_module_type",
    "looks_binary",
]
