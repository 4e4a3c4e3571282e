"""Fan-out of one operation across the fleet."""

from __future__ import annotations

import asyncio
import logging

from .cancellation import CancellationController
from .config import Config, Operation, Worker
from .session import RunResult, SessionRunner, SessionStatus, StatusCallback
from .streams import OutputCallback, log_output
from .transport import Transport, create_transport

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs an operation on every selected worker concurrently.

    Failures are fail-soft by default: one worker's failure never stops its
    siblings. With ``fail_fast`` the first unexpected failure requests
    termination of every other session through the controller.
    """

    def __init__(
        self,
        config: Config,
        controller: CancellationController | None = None,
        on_output: OutputCallback = log_output,
        on_status: StatusCallback | None = None,
        silent: bool = False,
        fail_fast: bool | None = None,
        transport: Transport | None = None,
    ):
        self.config = config
        self.controller = controller or CancellationController()
        self.on_output = on_output
        self.on_status = on_status
        self.silent = silent
        self.fail_fast = config.fail_fast if fail_fast is None else fail_fast
        self.transport = transport or create_transport(config.transport)
        self.statuses: dict[str, SessionStatus] = {}
        self.runner = SessionRunner(
            self.transport,
            self.controller,
            config.work_root,
            on_output=on_output,
            on_status=self._emit_status,
            silent=silent,
        )

    def _emit_status(self, host: str, status: SessionStatus) -> None:
        self.statuses[host] = status
        if self.on_status:
            self.on_status(host, status)

    async def run_operation(self, operation: Operation, host_filter: str = "") -> list[RunResult]:
        """Run ``operation`` on the workers matching ``host_filter`` and wait for all."""
        workers = self.config.select(host_filter)
        if not workers:
            logger.warning("No worker matches host %r", host_filter)
            return []

        for worker in workers:
            self._emit_status(worker.host, SessionStatus.PENDING)

        tasks = [self._run_worker(worker, operation) for worker in workers]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for worker, outcome in zip(workers, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Unexpected error on worker %s", worker.host, exc_info=outcome)
                outcome = RunResult(worker.host, succeeded=False, error_detail=repr(outcome))
            results.append(outcome)

        self._report(results)
        return results

    async def _run_worker(self, worker: Worker, operation: Operation) -> RunResult:
        if not self.silent:
            logger.info("Running %s on worker: %s", operation.name, worker.host)

        result = await self.runner.run(worker, operation)

        if result.succeeded:
            if not self.silent:
                logger.info("Script completed on worker: %s", worker.host)
        elif result.interrupted:
            logger.info("Worker %s interrupted", worker.host)
        else:
            logger.error("Failed on worker %s: %s", worker.host, result.error_detail)
            if self.fail_fast and self.controller.request_termination():
                logger.warning("Stopping remaining workers after failure on %s", worker.host)
        return result

    def _report(self, results: list[RunResult]) -> None:
        failed = [r.host for r in results if not r.succeeded and not r.interrupted]
        interrupted = [r.host for r in results if r.interrupted]
        if failed:
            logger.error("Failed workers: %s", ", ".join(failed))
        if interrupted:
            logger.info("Interrupted workers: %s", ", ".join(interrupted))
        if not self.silent:
            logger.info("Run complete on all workers.")


def failed(results: list[RunResult]) -> list[RunResult]:
    """Results of sessions that did not succeed."""
    return [r for r in results if not r.succeeded]
