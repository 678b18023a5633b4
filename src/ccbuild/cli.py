#!/usr/bin/env python3
"""
ccbuild: compile entry modules with the closure compiler, four at a time.

Usage:
    ccbuild ./src/amp.js --out dist/v0.js --include-polyfills --type prod
    ccbuild --manifest targets.json --max-parallel 2
    ccbuild --manifest targets.json --typecheck_only
    ccbuild --clean
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import posixpath
import sys
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ccbuild import journal
from ccbuild.build import Builder
from ccbuild.config import BuildConfig, BuildFlags, RuntimeVersion
from ccbuild.errors import BuildError, ConfigurationError
from ccbuild.models import CompileOptions, CompileRequest, CompileTask, TaskState
from ccbuild.queue import MAX_PARALLEL, AdmissionQueue
from ccbuild.staging import cleanup_build_dir

logger = logging.getLogger("ccbuild")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the command line tool."""
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def load_manifest(path: str | Path) -> list[CompileRequest]:
    """
    Read build targets from a JSON manifest.

    The manifest is a list of objects with ``entry``, ``outputDir``,
    ``outputFilename`` and an optional ``options`` object. Snake-case keys
    are accepted too.
    """
    data = json.loads(Path(path).read_text())
    if not isinstance(data, list):
        raise ConfigurationError(f"{path}: manifest must be a list of targets")

    requests = []
    for i, item in enumerate(data):
        try:
            entry = item["entry"]
            output_dir = item.get("outputDir", item.get("output_dir"))
            output_filename = item.get("outputFilename", item.get("output_filename"))
            if output_dir is None or output_filename is None:
                raise KeyError("outputDir/outputFilename")
            options = CompileOptions.from_dict(item.get("options") or {})
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"{path}: invalid target #{i}: {e}") from e
        requests.append(CompileRequest(entry, output_dir, output_filename, options))
    return requests


def requests_from_args(args: argparse.Namespace) -> list[CompileRequest]:
    requests = load_manifest(args.manifest) if args.manifest else []
    if args.entry:
        if not args.out:
            raise ConfigurationError("--out is required when an entry module is given")
        output_dir, output_filename = posixpath.split(args.out)
        options = CompileOptions(
            check_types=args.check_types,
            wrapper=args.wrapper,
            include_window_config=args.include_window_config,
            include_polyfills=args.include_polyfills,
            externs=list(args.externs),
        )
        requests.append(CompileRequest(args.entry, output_dir or ".", output_filename, options))
    return requests


@dataclass
class SummaryRow:
    entry: str
    state: str = "running"
    duration: float | None = None
    detail: str = ""
    task: CompileTask | None = None


@dataclass
class BuildSummary:
    """Per-target outcomes collected from queue events."""

    rows: dict[str, SummaryRow] = field(default_factory=dict)

    def attach(self, queue: AdmissionQueue) -> None:
        queue.on_start(self.started)
        queue.on_complete(self.completed)
        queue.on_failure(self.failed)

    def started(self, task: CompileTask) -> None:
        self.rows[task.id] = SummaryRow(entry=task.payload.request.entry, task=task)

    def completed(self, task: CompileTask, result, duration: float) -> None:
        row = self.rows[task.id]
        row.state = "succeeded"
        row.duration = duration
        row.detail = result.output_path or "type check only"

    def failed(self, task: CompileTask, error: BaseException) -> None:
        row = self.rows[task.id]
        row.state = "failed"
        row.duration = (task.completed_at or 0) - (task.started_at or 0)
        row.detail = str(error).splitlines()[0] if str(error) else type(error).__name__

    def finish(self) -> None:
        """Mark rows whose runner was cancelled mid-compile."""
        for row in self.rows.values():
            if row.state == "running" and row.task and row.task.state is TaskState.CANCELLED:
                row.state = "cancelled"


def print_summary(summary: BuildSummary, total: int) -> None:
    """Print a table of every target that was started."""
    console = Console(stderr=True)
    table = Table(title="Build Results", border_style="green")
    table.add_column("Entry", style="dim")
    table.add_column("State")
    table.add_column("Time", justify="right")
    table.add_column("Output")

    styles = {"succeeded": "green", "failed": "red", "running": "yellow", "cancelled": "magenta"}
    for row in summary.rows.values():
        style = styles.get(row.state, "")
        table.add_row(
            row.entry,
            f"[{style}]{row.state}[/{style}]",
            f"{row.duration:.2f}s" if row.duration is not None else "-",
            row.detail,
        )

    not_started = total - len(summary.rows)
    if not_started > 0:
        table.caption = f"{not_started} target(s) not started"
    console.print(table)


async def run_build(args: argparse.Namespace) -> int:
    """Run every requested compilation. Returns the process exit status."""
    config = BuildConfig(root=Path(args.root), max_parallel=args.max_parallel)
    if args.compiler:
        config.compiler_path = args.compiler
    if args.window_config:
        config.window_config = json.loads(Path(args.window_config).read_text())
    flags = BuildFlags(
        prod_build=bool(args.type),
        typecheck_only=args.typecheck_only,
        pseudo_names=args.pseudo_names,
        fortesting=args.fortesting,
    )

    requests = requests_from_args(args)
    if not requests:
        raise ConfigurationError("Nothing to compile: give an entry module or --manifest")

    queue = AdmissionQueue(config.max_parallel)
    summary = BuildSummary()
    summary.attach(queue)

    conn = await journal.init_db(args.journal) if args.journal else None
    builder = Builder(
        config, flags, RuntimeVersion.from_env(), queue=queue, journal_conn=conn
    )
    try:
        await builder.build(requests)
    except ConfigurationError:
        raise
    except BuildError:
        # Already reported by the failure policy; first failure aborts the build
        return 1
    finally:
        # Unwind targets still queued or compiling before the journal closes
        queue.cancel()
        await queue.drain()
        summary.finish()
        if summary.rows:
            print_summary(summary, len(requests))
        try:
            await builder.flush_journal()
        finally:
            if conn is not None:
                await conn.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccbuild",
        description="Compile entry modules with the closure compiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ccbuild ./src/amp.js --out dist/v0.js --include-polyfills
  ccbuild --manifest targets.json --type prod
  ccbuild --manifest targets.json --typecheck_only
        """,
    )

    # Target selection
    parser.add_argument("entry", nargs="?", help="Entry module to compile")
    parser.add_argument("--out", "-o", help="Output file for the entry module")
    parser.add_argument("--manifest", "-m", help="JSON file listing build targets")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Reset the scratch directories and exit",
    )

    # Per-target options for the positional entry
    parser.add_argument("--check-types", action="store_true", help="Type check this entry")
    parser.add_argument("--wrapper", help="Custom output wrapper with a <%%= contents %%> placeholder")
    parser.add_argument("--include-window-config", action="store_true")
    parser.add_argument("--include-polyfills", action="store_true")
    parser.add_argument(
        "--externs",
        action="append",
        default=[],
        help="Additional externs file (repeatable)",
    )

    # Process-level switches
    parser.add_argument("--type", help="Build type; any value selects a production build")
    parser.add_argument(
        "--typecheck_only", "--typecheck-only",
        dest="typecheck_only",
        action="store_true",
        help="Type check everything and write no output",
    )
    parser.add_argument(
        "--pseudo_names", "--pseudo-names",
        dest="pseudo_names",
        action="store_true",
        help="Compile with readable pseudo names",
    )
    parser.add_argument("--fortesting", action="store_true", help="Mark the build as a testing build")

    # Environment
    parser.add_argument("--root", default=".", help="Repository root (default: .)")
    parser.add_argument("--compiler", help="Path to the compiler jar, relative to the root")
    parser.add_argument("--window-config", help="JSON file with the window config")
    parser.add_argument(
        "--max-parallel", "-j",
        type=int,
        default=MAX_PARALLEL,
        help=f"Max concurrent compiler processes (default: {MAX_PARALLEL})",
    )
    parser.add_argument("--journal", help="Record every compile run in this SQLite file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.max_parallel < 1:
        parser.error("--max-parallel must be at least 1")

    configure_logging(verbose=args.verbose)

    if args.clean:
        cleanup_build_dir(args.root)
        logger.info("Reset scratch directories under %s", Path(args.root) / "build")
        return 0

    try:
        return asyncio.run(run_build(args))
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
