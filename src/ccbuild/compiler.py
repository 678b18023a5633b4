"""Compile task runner: one external compiler invocation per entry module."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ccbuild.config import (
    DEFAULT_EXTERNS,
    HIDE_WARNINGS_FOR,
    JS_MODULE_ROOT,
    BuildConfig,
    BuildFlags,
    RuntimeVersion,
)
from ccbuild.errors import CompilationFailure
from ccbuild.models import CompileOptions, CompileRequest, CompileResult
from ccbuild.sources import resolve_sources, source_globs, unneeded_files
from ccbuild.staging import cleanup_build_dir, patch_register_element, write_dead_code_stubs

logger = logging.getLogger(__name__)

PROCESS_SHIM = 'var process={env:{NODE_ENV:"production"}};'
CONTENTS_PLACEHOLDER = "<%= contents %>"


@dataclass
class CompileContext:
    """Everything a compile run needs besides the request itself."""

    config: BuildConfig
    flags: BuildFlags
    version: RuntimeVersion


def window_config_template(config: dict[str, Any], name: str = "AMP_CONFIG") -> str:
    """Script that installs the window config unless the page already set one."""
    return f"self.{name}||(self.{name}={json.dumps(config, sort_keys=True)});"


def build_wrapper(
    options: CompileOptions,
    output_filename: str,
    window_template: str = "",
) -> str:
    """
    Output wrapper passed to the compiler.

    ``%output%`` is where the compiler places the compiled code. A custom
    wrapper's ``<%= contents %>`` placeholder takes the process shim plus
    the output; the window config only goes in front of the default wrapper.
    """
    if options.wrapper:
        wrapper = options.wrapper.replace(CONTENTS_PLACEHOLDER, PROCESS_SHIM + "%output%", 1)
    else:
        wrapper = (
            (window_template if options.include_window_config else "")
            + "(function(){" + PROCESS_SHIM + "%output%})();"
        )
    return wrapper + f"\n//# sourceMappingURL={output_filename}.map\n"


def build_externs(options: CompileOptions) -> list[str]:
    return DEFAULT_EXTERNS + list(options.externs)


def build_defines(check_types: bool, flags: BuildFlags) -> list[str]:
    defines = []
    if check_types:
        # Keep SIMPLE_OPTIMIZATIONS: whitespace-only does no strict type checks
        defines.append("TYPECHECK_ONLY=true")
    if flags.pseudo_names:
        defines.append("PSEUDO_NAMES=true")
    if flags.fortesting:
        defines.append("FORTESTING=true")
    return defines


def build_compiler_flags(
    request: CompileRequest,
    context: CompileContext,
    wrapper: str,
) -> dict[str, Any]:
    """
    Compiler flags for one request, excluding the input sources.

    Booleans are switches, lists repeat the flag once per value.
    """
    options = request.options
    check_types = options.check_types or context.flags.typecheck_only
    intermediate = request.intermediate_filename
    base = context.config.source_map_base(context.flags, context.version)

    compiler_flags: dict[str, Any] = {
        "compilation_level": "SIMPLE_OPTIMIZATIONS",
        # Turns on more optimizations
        "assume_function_wrapper": True,
        "language_in": "ECMASCRIPT6",
        "language_out": "ECMASCRIPT5",
        "externs": build_externs(options),
        "js_module_root": list(JS_MODULE_ROOT),
        "entry_point": request.entry,
        "process_common_js_modules": True,
        # Strips every input that is not explicitly required
        "only_closure_dependencies": True,
        "output_wrapper": wrapper,
        "create_source_map": intermediate + ".map",
        "source_map_location_mapping": "|" + base,
        "warning_level": "DEFAULT",
        "hide_warnings_for": list(HIDE_WARNINGS_FOR),
        "js_output_file": intermediate,
    }

    defines = build_defines(check_types, context.flags)
    if defines:
        compiler_flags["define"] = defines
    if check_types:
        compiler_flags["jscomp_error"] = "checkTypes"
    return compiler_flags


def flags_to_args(compiler_flags: dict[str, Any]) -> list[str]:
    args: list[str] = []
    for name, value in compiler_flags.items():
        if value is True:
            args.append(f"--{name}")
        elif value is False or value is None:
            continue
        elif isinstance(value, (list, tuple)):
            for item in value:
                args += [f"--{name}", str(item)]
        else:
            args += [f"--{name}", str(value)]
    return args


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def write_flagfile(path: Path, sources: list[str]) -> None:
    """Input list goes through a flag file to stay under argv limits."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"--js {_quote(src)}\n" for src in sources))


async def run_compiler(entry: str, command: list[str], cwd: Path) -> str:
    """
    Run the compiler and return its stderr (warnings).

    Raises:
        CompilationFailure: The compiler could not start or exited non-zero.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CompilationFailure(entry, f"Cannot launch compiler: {e}") from e

    try:
        _stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    output = stderr.decode(errors="replace")
    if proc.returncode != 0:
        raise CompilationFailure(entry, output.strip() or "compiler failed", proc.returncode)
    return output


def stamp_version(text: str, version: RuntimeVersion) -> str:
    return text.replace("$internalRuntimeVersion$", version.version).replace(
        "$internalRuntimeToken$", version.token
    )


def write_outputs(request: CompileRequest, context: CompileContext) -> tuple[Path, Path]:
    """Move the intermediate output and its source map into place."""
    root = context.config.root
    intermediate = root / request.intermediate_filename
    output_dir = root / request.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / request.output_filename
    output_path.write_text(stamp_version(intermediate.read_text(), context.version))

    map_path = output_dir / (request.output_filename + ".map")
    shutil.copyfile(root / (request.intermediate_filename + ".map"), map_path)
    return output_path, map_path


async def compile_entry(request: CompileRequest, context: CompileContext) -> CompileResult:
    """
    Compile one entry module.

    Stages scratch files, runs the compiler and, unless the build is
    type-check-only, writes the stamped output and its source map.

    Raises:
        CompilationFailure: The compiler failed.
    """
    options = request.options
    root = context.config.root
    start_time = time.time()
    intermediate = request.intermediate_filename
    logger.info("Starting closure compiler for %s", request.entry)

    if not options.prevent_remove_and_make_dir:
        cleanup_build_dir(root)

    window_template = ""
    if options.include_window_config:
        window_template = window_config_template(
            context.config.window_config, context.config.window_config_name
        )
    wrapper = build_wrapper(options, request.output_filename, window_template)

    patch_register_element(root)
    (root / intermediate).unlink(missing_ok=True)

    write_dead_code_stubs(root, unneeded_files(options.include_polyfills))
    sources = await asyncio.to_thread(
        resolve_sources, root, source_globs(options.include_polyfills)
    )
    logger.debug("%s: %d input files", request.entry, len(sources))

    flagfile = root / (intermediate + ".flags")
    write_flagfile(flagfile, sources)
    args = flags_to_args(build_compiler_flags(request, context, wrapper))
    args += ["--flagfile", str(flagfile.relative_to(root))]

    warnings = await run_compiler(
        request.entry, context.config.compiler_command(args), root
    )
    if warnings.strip():
        logger.debug("%s: compiler warnings:\n%s", request.entry, warnings.rstrip())

    if context.flags.typecheck_only:
        # Type checking only; nothing to write
        return CompileResult(
            entry=request.entry,
            output_path=None,
            source_map_path=None,
            duration=time.time() - start_time,
            warnings=warnings,
        )

    output_path, map_path = write_outputs(request, context)
    logger.info("Compiled %s to %s via %s", request.entry, request.output_path, intermediate)
    return CompileResult(
        entry=request.entry,
        output_path=str(output_path),
        source_map_path=str(map_path),
        duration=time.time() - start_time,
        warnings=warnings,
    )
