"""Source globs handed to the compiler, and their expansion on disk."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from pathspec import PathSpec

BASE_GLOBS = [
    "3p/**/*.js",
    "ads/**/*.js",
    "extensions/**/*.js",
    "build/**/*.js",
    "!build/cc/**",
    "!build/polyfills.js",
    "!build/polyfills/**/*.js",
    "src/**/*.js",
    "!third_party/babel/custom-babel-helpers.js",
    # Not part of the runtime or extension binaries.
    "!extensions/amp-access/0.1/amp-login-done.js",
    "builtins/**.js",
    "third_party/caja/html-sanitizer.js",
    "third_party/closure-library/sha384-generated.js",
    "third_party/mustache/**/*.js",
    "node_modules/promise-pjs/promise.js",
    "build/patched-module/document-register-element/build/document-register-element.max.js",
    "node_modules/core-js/modules/**.js",
    # Duplicates of the modules one level up that confuse the compiler.
    "!node_modules/core-js/modules/library/**.js",
    # No tests.
    "!**_test.js",
    "!**/test-*.js",
    "!**/*.extern.js",
]

BABEL_HELPERS_STUB = "build/fake-module/third_party/babel/custom-babel-helpers.js"

POLYFILL_STUBS = [
    "build/fake-module/src/polyfills.js",
    "build/fake-module/src/polyfills/promise.js",
    "build/fake-module/src/polyfills/math-sign.js",
]


def source_globs(include_polyfills: bool) -> list[str]:
    """
    Glob list for one build variant.

    Polyfills ship once, with the main binary. Builds that include them drop
    the fake-module stubs; every other build drops the real polyfills.
    """
    globs = list(BASE_GLOBS)
    if include_polyfills:
        globs += [
            "!build/fake-module/src/polyfills.js",
            "!build/fake-module/src/polyfills/**/*.js",
        ]
    else:
        globs += [
            "!src/polyfills.js",
            "!src/polyfills/**/*.js",
        ]
    return globs


def unneeded_files(include_polyfills: bool) -> list[str]:
    """Paths that must exist as dead-code stubs for this variant."""
    files = [BABEL_HELPERS_STUB]
    if not include_polyfills:
        files += POLYFILL_STUBS
    return files


@dataclass(frozen=True)
class SourceFilter:
    """Compiled include and exclude specs for one glob list."""

    include_spec: PathSpec
    exclude_spec: PathSpec
    bases: tuple[str, ...]

    def match(self, rel_path: str) -> bool:
        """Return True when a posix relative path survives the glob list."""
        return self.include_spec.match_file(rel_path) and not self.exclude_spec.match_file(rel_path)


def build_source_filter(globs: list[str]) -> SourceFilter:
    """
    Compile a gulp-style glob list.

    ``!``-prefixed patterns go to the exclude spec and remove matches of
    every positive pattern regardless of position. Patterns are matched
    with gitwildmatch rules, so a ``**`` sharing a path component with
    other characters (``builtins/**.js``) stays within that component.
    """
    include_lines = [g for g in globs if not g.startswith("!")]
    exclude_lines = [g[1:] for g in globs if g.startswith("!")]
    return SourceFilter(
        include_spec=PathSpec.from_lines("gitwildmatch", include_lines),
        exclude_spec=PathSpec.from_lines("gitwildmatch", exclude_lines),
        bases=_walk_bases(include_lines),
    )


def _static_prefix(pattern: str) -> str:
    """Leading directories of a pattern that contain no wildcards."""
    parts = pattern.split("/")
    prefix = []
    for part in parts[:-1]:
        if any(ch in part for ch in "*?["):
            break
        prefix.append(part)
    return "/".join(prefix)


def _walk_bases(patterns: list[str]) -> tuple[str, ...]:
    """Smallest set of directories covering every positive pattern."""
    bases: list[str] = []
    for base in sorted({_static_prefix(p) for p in patterns}):
        if any(base == b or b == "" or base.startswith(b + "/") for b in bases):
            continue
        bases.append(base)
    return tuple(bases)


def _walk(root: Path, base: str):
    start = root / base if base else root
    if not start.is_dir():
        return
    for dirpath, _dirnames, filenames in os.walk(start):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        for name in filenames:
            yield name if rel_dir == "." else f"{rel_dir}/{name}"


def resolve_sources(root: Path | str, globs: list[str]) -> list[str]:
    """
    Expand a glob list against ``root``.

    Returns sorted posix paths relative to ``root``.
    """
    root = Path(root)
    source_filter = build_source_filter(globs)
    found = {
        rel
        for base in source_filter.bases
        for rel in _walk(root, base)
        if source_filter.match(rel)
    }
    return sorted(found)
