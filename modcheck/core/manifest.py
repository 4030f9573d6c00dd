"""
Tolerant manifest parsing.

Modules describe themselves with a package.json style manifest. Broken
manifests must never abort a validation run, so parse failures come back
as an empty manifest plus the error that explains it.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from ..errors import ManifestParseError

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"


def parse_manifest(text: str, path: str = MANIFEST_FILENAME) -> Tuple[Dict[str, Any], Optional[ManifestParseError]]:
    """
    Parse manifest JSON without raising.

    Args:
        text: Raw manifest contents
        path: Manifest path, used in error messages

    Returns:
        (manifest, error). On failure the manifest is {} and error is set.
    """
    # Some editors write a BOM.
    text = text.lstrip("\ufeff")
    if not text.strip():
        return {}, ManifestParseError(path, "manifest is empty")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        error = ManifestParseError(path, f"line {e.lineno} column {e.colno}: {e.msg}")
        logger.warning("%s", error)
        return {}, error

    if not isinstance(data, dict):
        error = ManifestParseError(path, f"expected a JSON object, got {type(data).__name__}")
        logger.warning("%s", error)
        return {}, error

    return data, None


def declared_dependencies(manifest: Dict[str, Any], include_dev: bool = True) -> Dict[str, str]:
    """
    Collect dependency name -> version spec from a manifest.

    Non-dict sections and non-string versions are ignored.
    """
    sections = ["dependencies", "peerDependencies"]
    if include_dev:
        sections.append("devDependencies")

    deps: Dict[str, str] = {}
    for section in sections:
        entries = manifest.get(section)
        if not isinstance(entries, dict):
            continue
        for name, version in entries.items():
            if isinstance(name, str) and name and name not in deps:
                deps[name] = version if isinstance(version, str) else ""
    return deps
