"""Shared fixtures: an in-memory transport standing in for rsync and ssh."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from fleetwork.config import Config, Worker
from fleetwork.transport import TransportSettings


class FakeProcess:
    """Transport handle backed by in-memory streams."""

    def __init__(self, stdout=(), stderr=(), exit_status=0, block=False):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for reader, lines in ((self.stdout, stdout), (self.stderr, stderr)):
            for line in lines:
                reader.feed_data(f"{line}\n".encode())
        self.exit_status = exit_status
        self.terminated = False
        self._exited = asyncio.Event()
        if not block:
            self._finish()

    def _finish(self):
        for reader in (self.stdout, self.stderr):
            if not reader.at_eof():
                reader.feed_eof()
        self._exited.set()

    def terminate(self):
        if self._exited.is_set():
            return
        self.terminated = True
        self.exit_status = -15
        self._finish()

    async def wait(self):
        await self._exited.wait()
        return self.exit_status


class FakeTransport:
    """Records every call. Behaviour is configured per host or per endpoint."""

    def __init__(self, settings: TransportSettings | None = None):
        self.settings = settings or TransportSettings()
        self.calls: list[tuple[str, str, str]] = []
        self.payloads: dict[str, str] = {}
        self.shell_output: dict[str, list[str]] = {}
        self.shell_stderr: dict[str, list[str]] = {}
        self.shell_exit: dict[str, int] = {}
        self.failing_endpoints: set[str] = set()
        self.spawn_errors: set[str] = set()
        self.blocking_hosts: set[str] = set()
        self.started: dict[str, asyncio.Event] = {}
        self.processes: list[FakeProcess] = []

    def started_event(self, host: str) -> asyncio.Event:
        return self.started.setdefault(host, asyncio.Event())

    async def sync(self, source: str, destination: str) -> FakeProcess:
        self.calls.append(("sync", source, destination))
        if source in self.spawn_errors or destination in self.spawn_errors:
            raise FileNotFoundError("rsync")
        host, _, path = destination.partition(":")
        if path == self.settings.remote_script_path:
            self.payloads[host] = Path(source).read_text()
        failing = source in self.failing_endpoints or destination in self.failing_endpoints
        process = FakeProcess(stderr=["rsync: error"] if failing else (),
                              exit_status=23 if failing else 0)
        self.processes.append(process)
        return process

    async def shell(self, host: str, script_path: str) -> FakeProcess:
        self.calls.append(("shell", host, script_path))
        process = FakeProcess(
            stdout=self.shell_output.get(host, ()),
            stderr=self.shell_stderr.get(host, ()),
            exit_status=self.shell_exit.get(host, 0),
            block=host in self.blocking_hosts,
        )
        self.processes.append(process)
        self.started_event(host).set()
        return process

    def calls_for(self, host: str) -> list[tuple[str, str, str]]:
        prefix = f"{host}:"
        return [
            c for c in self.calls
            if c[1] == host or c[1].startswith(prefix) or c[2].startswith(prefix)
        ]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        workers=[Worker("a"), Worker("b"), Worker("c")],
        scripts={"run": "echo hi\n"},
        work_root=tmp_path / "workers",
    )


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """The CLI reconfigures the root logger; undo that between tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
