"""ccbuild - rate-limited closure compiler builds."""

from ccbuild.build import Builder
from ccbuild.config import BuildConfig, BuildFlags, RuntimeVersion
from ccbuild.errors import BuildError, CompilationFailure, ConfigurationError
from ccbuild.models import CompileOptions, CompileRequest, CompileResult, CompileTask, TaskState
from ccbuild.queue import MAX_PARALLEL, AdmissionQueue

__version__ = "0.1.0"
__all__ = [
    "AdmissionQueue",
    "Builder",
    "BuildConfig",
    "BuildError",
    "BuildFlags",
    "CompilationFailure",
    "CompileOptions",
    "CompileRequest",
    "CompileResult",
    "CompileTask",
    "ConfigurationError",
    "MAX_PARALLEL",
    "RuntimeVersion",
    "TaskState",
]
