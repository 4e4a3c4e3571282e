"""Session runner: one operation on one worker.

Steps run strictly in sequence: immediate directives, payload transfer and
remote execution, then deferred directives. Deferred directives run on
every exit path unless termination was requested.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .cancellation import CancellationController
from .config import Operation, Worker
from .directives import Directive, DirectiveKind, preprocess
from .errors import FleetworkError, RemoteExecutionError, SessionInterrupted, TransferError
from .streams import OutputCallback, log_output, multiplex
from .transport import SPAWN_ERRORS, Transport, remote_path
from .workspace import as_dir, input_dir, output_dir

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Status of a worker's session."""

    PENDING = "pending"
    TRANSFERRING = "transferring"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


StatusCallback = Callable[[str, SessionStatus], None]  # (host, status) -> None


@dataclass
class RunResult:
    """Outcome of one session."""

    host: str
    succeeded: bool
    error_detail: str | None = None
    interrupted: bool = False
    exit_status: int | None = None


@dataclass
class Session:
    """Runtime record of one in-flight operation on one worker."""

    worker: Worker
    operation: Operation
    handle: Any = None

    @property
    def host(self) -> str:
        return self.worker.host


class SessionRunner:
    """Runs operations on single workers over the configured transports."""

    def __init__(
        self,
        transport: Transport,
        controller: CancellationController,
        work_root: Path,
        on_output: OutputCallback = log_output,
        on_status: StatusCallback | None = None,
        silent: bool = False,
    ):
        self.transport = transport
        self.controller = controller
        self.work_root = Path(work_root)
        self.on_output = on_output
        self.on_status = on_status
        self.silent = silent

    def _emit_status(self, host: str, status: SessionStatus) -> None:
        if self.on_status:
            self.on_status(host, status)

    async def run(self, worker: Worker, operation: Operation) -> RunResult:
        """Run ``operation`` on ``worker``. Per-host failures are returned, not raised."""
        session = Session(worker, operation)
        script = preprocess(operation.script)
        error: FleetworkError | None = None
        deferred_error: FleetworkError | None = None
        exit_status: int | None = None

        try:
            self._emit_status(worker.host, SessionStatus.TRANSFERRING)
            for directive in script.immediate:
                await self._transfer(session, directive)
            exit_status = await self._execute(session, script.payload)
        except FleetworkError as e:
            error = e
        finally:
            deferred_error = await self._run_deferred(session, script.deferred)

        error = error or deferred_error
        if error is None:
            self._emit_status(worker.host, SessionStatus.SUCCESS)
            return RunResult(worker.host, succeeded=True, exit_status=exit_status)

        interrupted = self.controller.is_cancelled()
        self._emit_status(
            worker.host, SessionStatus.INTERRUPTED if interrupted else SessionStatus.FAILED
        )
        return RunResult(
            worker.host,
            succeeded=False,
            error_detail=str(error),
            interrupted=interrupted,
            exit_status=getattr(error, "exit_status", exit_status),
        )

    def _checkpoint(self, session: Session) -> None:
        if self.controller.is_cancelled():
            raise SessionInterrupted(session.host)

    def _endpoints(self, session: Session, directive: Directive) -> tuple[str, str]:
        """Resolve a directive to (source, destination) rsync endpoints."""
        host = session.host
        if directive.kind is DirectiveKind.UPLOAD:
            return directive.local, remote_path(host, directive.remote)
        if directive.kind is DirectiveKind.DOWNLOAD:
            return remote_path(host, directive.remote), directive.local
        if directive.kind is DirectiveKind.UPLOAD_INPUT:
            remote = directive.remote or session.operation.remote_input_dir
            return as_dir(input_dir(self.work_root, host)), remote_path(host, remote)
        remote = directive.remote or session.operation.remote_output_dir
        return remote_path(host, as_dir(remote)), as_dir(output_dir(self.work_root, host))

    async def _transfer(self, session: Session, directive: Directive) -> None:
        source, destination = self._endpoints(session, directive)
        verb = "Uploading" if directive.is_upload else "Downloading"
        if not self.silent:
            logger.info("[%s] %s %s to %s", session.host, verb, source, destination)
        await self._sync(session, source, destination)

    async def _sync(self, session: Session, source: str, destination: str) -> None:
        self._checkpoint(session)
        try:
            handle = await self.transport.sync(source, destination)
        except SPAWN_ERRORS as e:
            raise TransferError(session.host, source, destination, reason=str(e)) from e

        status = await self._stream(session, handle)
        if status != 0:
            raise TransferError(session.host, source, destination, exit_status=status)

    async def _execute(self, session: Session, payload: str) -> int:
        """Ship the payload to the remote script path and run it there."""
        script_path = self.transport.settings.remote_script_path
        with tempfile.NamedTemporaryFile(
            "w", prefix="fleetwork_", suffix=".sh", delete=False
        ) as f:
            f.write(payload)
        try:
            await self._sync(session, f.name, remote_path(session.host, script_path))
        finally:
            os.unlink(f.name)

        self._checkpoint(session)
        self._emit_status(session.host, SessionStatus.RUNNING)
        try:
            handle = await self.transport.shell(session.host, script_path)
        except SPAWN_ERRORS as e:
            raise RemoteExecutionError(session.host, reason=str(e)) from e

        status = await self._stream(session, handle)
        if status != 0:
            raise RemoteExecutionError(session.host, exit_status=status)
        return status

    async def _stream(self, session: Session, handle: Any) -> int:
        """Register ``handle``, forward its output, and wait for it to exit."""
        session.handle = handle
        self.controller.register(session.host, handle)
        try:
            await multiplex(session.host, handle.stdout, handle.stderr, self.on_output)
            return await handle.wait()
        except BaseException:
            handle.terminate()
            raise
        finally:
            self.controller.deregister(session.host)
            session.handle = None

    async def _run_deferred(
        self, session: Session, directives: list[Directive]
    ) -> FleetworkError | None:
        """Run deferred directives best-effort. Returns the first failure.

        Directives skipped after termination was requested are reported
        as an interruption.
        """
        if not directives:
            return None
        if self.controller.is_cancelled():
            logger.info("[%s] Skipping %d deferred transfer(s) after interrupt",
                        session.host, len(directives))
            return SessionInterrupted(session.host)

        self._emit_status(session.host, SessionStatus.TRANSFERRING)
        first_error: FleetworkError | None = None
        for directive in directives:
            try:
                await self._transfer(session, directive)
            except SessionInterrupted as e:
                first_error = first_error or e
                break
            except FleetworkError as e:
                if self.controller.is_cancelled():
                    logger.info("[%s] Deferred transfer interrupted: %s", session.host, e)
                else:
                    logger.error("[%s] Deferred transfer failed: %s", session.host, e)
                first_error = first_error or e
        return first_error
