"""Core data models for ccbuild."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class TaskState(str, Enum):
    """Possible states for an admitted unit of work."""

    CREATED = "created"
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def finished(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED)


@dataclass(eq=False)
class CompileTask:
    """A unit of work gated by the admission queue."""

    id: str
    runner: Callable[[Any], Any]
    payload: Any = None
    future: asyncio.Future | None = None
    state: TaskState = TaskState.CREATED
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None
    error: str | None = None


@dataclass
class CompileOptions:
    """Per-target compiler options."""

    check_types: bool = False
    prevent_remove_and_make_dir: bool = False
    wrapper: str | None = None  # Must contain the <%= contents %> placeholder
    include_window_config: bool = False
    include_polyfills: bool = False
    externs: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompileOptions:
        """Build options from a manifest record (camelCase or snake_case keys)."""
        aliases = {
            "checkTypes": "check_types",
            "preventRemoveAndMakeDir": "prevent_remove_and_make_dir",
            "includeWindowConfig": "include_window_config",
            "includePolyfills": "include_polyfills",
        }
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ValueError(f"Unknown compile option: {key}")
            kwargs[name] = value
        if "externs" in kwargs:
            kwargs["externs"] = list(kwargs["externs"] or [])
        return cls(**kwargs)


@dataclass
class CompileRequest:
    """One compilation unit: an entry module and where its output goes."""

    entry: str
    output_dir: str
    output_filename: str
    options: CompileOptions = field(default_factory=CompileOptions)

    @property
    def intermediate_filename(self) -> str:
        """Scratch file the compiler writes before post-processing."""
        name = self.entry.replace("/", "_")
        if name.startswith("."):
            name = name[1:]
        return "build/cc/" + name

    @property
    def output_path(self) -> str:
        return f"{self.output_dir}/{self.output_filename}"


@dataclass
class CompileResult:
    """Outcome of a successful compiler run."""

    entry: str
    output_path: str | None  # None in type-check-only mode
    source_map_path: str | None
    duration: float
    warnings: str = ""
