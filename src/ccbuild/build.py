"""Build driver: one closure_compile call per compilation unit."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import aiosqlite

from ccbuild import journal
from ccbuild.compiler import CompileContext, compile_entry
from ccbuild.config import BuildConfig, BuildFlags, RuntimeVersion
from ccbuild.errors import ConfigurationError
from ccbuild.models import CompileOptions, CompileRequest, CompileResult
from ccbuild.queue import AdmissionQueue

logger = logging.getLogger(__name__)

FailurePolicy = Callable[[CompileRequest, BaseException], None]
Runner = Callable[[CompileRequest, CompileContext], Awaitable[CompileResult]]


def log_failure(request: CompileRequest, error: BaseException) -> None:
    """Default failure policy: report and let the caller decide."""
    logger.error("Compilation error %s", error)


@dataclass
class BuildRun:
    """A submitted request and its bookkeeping for the journal."""

    request: CompileRequest
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)
    queued: asyncio.Task | None = None
    started: bool = False


class Builder:
    """
    Submits compile requests through an admission queue.

    Example:
        builder = Builder(BuildConfig(root=repo), BuildFlags(prod_build=True))
        await asyncio.gather(
            builder.closure_compile("./src/amp.js", "dist", "v0.js",
                                    CompileOptions(include_polyfills=True)),
            builder.closure_compile("./extensions/amp-ad/0.1/amp-ad.js",
                                    "dist/v0", "amp-ad-0.1.js"),
        )
    """

    def __init__(
        self,
        config: BuildConfig | None = None,
        flags: BuildFlags | None = None,
        version: RuntimeVersion | None = None,
        *,
        queue: AdmissionQueue | None = None,
        journal_conn: aiosqlite.Connection | None = None,
        failure_policy: FailurePolicy = log_failure,
        runner: Runner = compile_entry,
    ) -> None:
        self.config = config or BuildConfig()
        self.flags = flags or BuildFlags()
        self.version = version or RuntimeVersion.from_env()
        self.queue = queue or AdmissionQueue(self.config.max_parallel)
        self.context = CompileContext(self.config, self.flags, self.version)
        self.failure_policy = failure_policy
        self._journal = journal_conn
        self._runner = runner
        self._writes: set[asyncio.Task] = set()

    def closure_compile(
        self,
        entry: str,
        output_dir: str,
        output_filename: str,
        options: CompileOptions | None = None,
    ) -> asyncio.Future:
        """
        Queue one entry module for compilation.

        Returns:
            Future resolving to a CompileResult once the output and its
            source map are written, or failing with the runner's error.

        Raises:
            ConfigurationError: The runtime token is a development token.
        """
        if self.version.is_development:
            raise ConfigurationError("Should compile with a prod token")
        request = CompileRequest(
            entry=entry,
            output_dir=output_dir,
            output_filename=output_filename,
            options=options or CompileOptions(),
        )
        run = BuildRun(request)
        run.queued = self._write(run, "queued")
        future = self.queue.submit(self._run, run)
        future.add_done_callback(functools.partial(self._on_done, run))
        return future

    async def build(self, requests: list[CompileRequest]) -> list[CompileResult]:
        """Compile every request; fails with the first error."""
        futures = [
            self.closure_compile(r.entry, r.output_dir, r.output_filename, r.options)
            for r in requests
        ]
        return list(await asyncio.gather(*futures))

    async def flush_journal(self) -> None:
        """Wait for journal writes scheduled outside a runner."""
        while self._writes:
            await asyncio.gather(*self._writes)

    async def _run(self, run: BuildRun) -> CompileResult:
        run.started = True
        try:
            if run.queued is not None:
                await asyncio.shield(run.queued)
            await self._record(run, "running", started_at=time.time())
            try:
                result = await self._runner(run.request, self.context)
            except Exception as e:
                self.failure_policy(run.request, e)
                await self._record(run, "failed", completed_at=time.time(), error=str(e))
                raise
        except asyncio.CancelledError:
            await self._record(run, "cancelled", completed_at=time.time())
            raise
        await self._record(run, "succeeded", completed_at=time.time())
        return result

    def _on_done(self, run: BuildRun, future: asyncio.Future) -> None:
        # Cancelled before admission: the runner never saw it.
        if future.cancelled() and not run.started:
            self._write(run, "cancelled", completed_at=time.time())

    def _write(self, run: BuildRun, state: str, **fields: Any) -> asyncio.Task | None:
        if self._journal is None:
            return None
        write = asyncio.ensure_future(self._record(run, state, **fields))
        self._writes.add(write)
        write.add_done_callback(self._writes.discard)
        return write

    async def _record(self, run: BuildRun, state: str, **fields: Any) -> None:
        if self._journal is None:
            return
        await journal.save_run(self._journal, {
            "id": run.id,
            "entry": run.request.entry,
            "output_path": run.request.output_path,
            "state": state,
            "created_at": run.created_at,
            "runtime_version": self.version.version,
            **fields,
        })
