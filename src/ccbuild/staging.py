"""Scratch directories and patched third-party files for the compiler."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ccbuild.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEAD_CODE_STUB = "// Not needed in closure compiler\nexport function deadCode() {}"

REGISTER_ELEMENT_SOURCE = "node_modules/document-register-element/build/document-register-element.max.js"
REGISTER_ELEMENT_PATCHED = (
    "build/patched-module/document-register-element/build/document-register-element.max.js"
)


def cleanup_build_dir(root: Path | str) -> None:
    """Reset the fake and patched module trees and make sure build/cc exists."""
    root = Path(root)
    (root / "build/cc").mkdir(parents=True, exist_ok=True)
    shutil.rmtree(root / "build/fake-module", ignore_errors=True)
    shutil.rmtree(root / "build/patched-module", ignore_errors=True)
    for directory in (
        "build/patched-module/document-register-element/build",
        "build/fake-module/third_party/babel",
        "build/fake-module/src/polyfills",
    ):
        (root / directory).mkdir(parents=True, exist_ok=True)


def write_dead_code_stubs(root: Path | str, paths: list[str]) -> list[str]:
    """
    Write a dead-code module at each missing path.

    Returns the paths that were written. Existing files are left alone.
    """
    root = Path(root)
    written = []
    for rel in paths:
        target = root / rel
        if target.exists():
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(DEAD_CODE_STUB)
        written.append(rel)
    return written


def patch_register_element(root: Path | str) -> bool:
    """
    Copy document-register-element into a module that has an export.

    Without an export the compiler does not emit a goog.provide for it and
    compilation fails. See google/closure-compiler#1831.

    Returns True if the patched copy was written by this call.
    """
    root = Path(root)
    patched = root / REGISTER_ELEMENT_PATCHED
    if patched.exists():
        return False
    source = root / REGISTER_ELEMENT_SOURCE
    if not source.is_file():
        raise ConfigurationError(f"{REGISTER_ELEMENT_SOURCE} is missing; install node dependencies first")
    original = source.read_text()
    patched.parent.mkdir(parents=True, exist_ok=True)
    patched.write_text(original + "\n\nexport function deadCode() {}\n")
    logger.debug("Patched %s", REGISTER_ELEMENT_PATCHED)
    return True
