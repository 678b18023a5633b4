"""Build configuration and process-level switches."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ccbuild.queue import MAX_PARALLEL

DEV_SOURCE_MAP_BASE = "http://localhost:8000/"
PROD_SOURCE_MAP_BASE = "https://raw.githubusercontent.com/ampproject/amphtml/{version}/"

DEFAULT_EXTERNS = [
    "build-system/amp.extern.js",
    "third_party/closure-compiler/externs/intersection_observer.js",
]

JS_MODULE_ROOT = [
    "node_modules/",
    "build/patched-module/",
    "build/fake-module/",
]

HIDE_WARNINGS_FOR = [
    "node_modules/",
    "build/patched-module/",
    # Known type errors, whitelisted until fixed upstream.
    "src/service.js",
    "3p/environment.js",
    "src/document-state.js",
]


@dataclass(frozen=True)
class BuildFlags:
    """Process-level switches. Read once per build, never per target."""

    prod_build: bool = False
    typecheck_only: bool = False
    pseudo_names: bool = False
    fortesting: bool = False


@dataclass(frozen=True)
class RuntimeVersion:
    """Version and token stamped into compiled output."""

    version: str
    token: str

    @property
    def is_development(self) -> bool:
        return "development" in self.token

    @classmethod
    def from_env(cls) -> RuntimeVersion:
        """
        Read the runtime version from the environment.

        CCBUILD_RUNTIME_VERSION defaults to the current time in milliseconds,
        CCBUILD_RUNTIME_TOKEN to a production token.
        """
        version = os.environ.get("CCBUILD_RUNTIME_VERSION") or str(int(time.time() * 1000))
        token = os.environ.get("CCBUILD_RUNTIME_TOKEN") or "prod-" + version
        return cls(version=version, token=token)


@dataclass
class BuildConfig:
    """Where things live and how the compiler is launched."""

    root: Path = field(default_factory=Path.cwd)
    compiler_path: str = "build-system/runner/dist/runner.jar"
    launcher: list[str] = field(
        default_factory=lambda: ["java", "-XX:+TieredCompilation", "-jar"]
    )
    max_parallel: int = MAX_PARALLEL
    window_config: dict[str, Any] = field(default_factory=dict)
    window_config_name: str = "AMP_CONFIG"

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    def source_map_base(self, flags: BuildFlags, version: RuntimeVersion) -> str:
        """Prefix that source map entries are resolved against."""
        if flags.prod_build:
            # Point at the tagged sources for this release
            return PROD_SOURCE_MAP_BASE.format(version=version.version)
        return DEV_SOURCE_MAP_BASE

    def compiler_command(self, args: list[str]) -> list[str]:
        return [*self.launcher, self.compiler_path, *args]
