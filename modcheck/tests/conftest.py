"""
Shared fixtures: throwaway module directories under tmp_path.
"""

import json
from pathlib import Path
from typing import Dict, Optional, Union

import pytest


def write_module(
    root: Path,
    name: str,
    files: Optional[Dict[str, Union[str, bytes]]] = None,
    manifest: Optional[Dict] = None
) -> str:
    """
    Create a module directory.

    Keys ending in "/" create empty directories; bytes values are written
    as binary files.
    """
    path = root / name
    path.mkdir(parents=True, exist_ok=True)
    if manifest is not None:
        (path / "package.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    for rel_path, content in (files or {}).items():
        target = path / rel_path
        if rel_path.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return str(path)


@pytest.fixture
def make_module(tmp_path):
    def factory(name="module", files=None, manifest=None):
        return write_module(tmp_path, name, files, manifest)
    return factory


README_TEXT = (
    "# Auth\n\nAuthentication helpers for the platform services.\n\n"
    "## Usage\n\nImport the client and call login().\n"
)


@pytest.fixture
def compliant_module(make_module):
    """A module that passes every built-in rule."""
    return make_module(
        "auth",
        files={
            "README.md": README_TEXT,
            ".gitignore": "node_modules/\ndist/\n",
            "tsconfig.json": "{\"compilerOptions\": {\"strict\": true}}\n",
            "src/index.ts": "export function login(user: string): boolean {\n  return user.length > 0;\n}\n",
            "tests/index.test.ts": "import { login } from '../src';\n",
        },
        manifest={
            "name": "auth",
            "version": "1.0.0",
            "scripts": {"build": "tsc", "test": "jest"},
        },
    )
