"""Transport invocation: rsync for file sync, ssh or asyncssh for the remote shell.

Both transports are external processes. Each call returns a handle with
``stdout``/``stderr`` line readers, an idempotent graceful ``terminate()``
and ``wait()`` returning the exit status.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass, field

import asyncssh

logger = logging.getLogger(__name__)

# Allow long lines from chatty remote scripts.
STREAM_LIMIT = 1024 * 1024

DEFAULT_REMOTE_SCRIPT_PATH = "/tmp/fleetwork-exec.sh"

# Failures that mean a transport could not be started at all.
SPAWN_ERRORS = (OSError, asyncssh.Error)


@dataclass
class TransportSettings:
    """Options for the external transports."""

    shell: str = "ssh"  # "ssh" or "asyncssh"
    ssh_options: list[str] = field(default_factory=list)
    rsync_options: list[str] = field(default_factory=list)
    remote_script_path: str = DEFAULT_REMOTE_SCRIPT_PATH


def remote_path(host: str, path: str) -> str:
    """Format an rsync remote endpoint."""
    return f"{host}:{path}"


def rsync_command(source: str, destination: str, options: list[str] | None = None) -> list[str]:
    return ["rsync", "-r", "--mkpath", *(options or []), source, destination]


def login_shell_command(script_path: str) -> str:
    """Remote command that runs a transferred script under a login shell."""
    inner = f"sh {shlex.quote(script_path)}"
    return f"bash --login -c {shlex.quote(inner)}"


def ssh_command(host: str, command: str, options: list[str] | None = None) -> list[str]:
    # -tt forces a pty so remote children get SIGHUP when ssh goes away.
    return ["ssh", "-tt", *(options or []), host, command]


class ProcessHandle:
    """Handle to a local transport subprocess."""

    def __init__(self, process: asyncio.subprocess.Process, description: str):
        self.process = process
        self.description = description
        self.stdout = process.stdout
        self.stderr = process.stderr

    def terminate(self) -> None:
        """Ask the process to shut down (SIGTERM, never SIGKILL)."""
        if self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            pass

    async def wait(self) -> int:
        return await self.process.wait()

    def __repr__(self) -> str:
        return f"<ProcessHandle pid={self.process.pid} {self.description}>"


class SSHProcessHandle:
    """Handle to a remote process started over an asyncssh connection."""

    def __init__(
        self,
        conn: asyncssh.SSHClientConnection,
        process: asyncssh.SSHClientProcess,
        description: str,
    ):
        self.conn = conn
        self.process = process
        self.description = description
        self.stdout = process.stdout
        self.stderr = process.stderr
        self._terminated = False

    def terminate(self) -> None:
        """Signal the remote process and close the channel so the pty hangs up."""
        if self._terminated:
            return
        self._terminated = True
        try:
            self.process.terminate()
        except (OSError, asyncssh.Error):
            pass
        self.process.close()

    async def wait(self) -> int:
        try:
            completed = await self.process.wait()
        finally:
            self.conn.close()
            await self.conn.wait_closed()
        if completed.returncode is None:
            return 255
        return completed.returncode

    def __repr__(self) -> str:
        return f"<SSHProcessHandle {self.description}>"


async def _spawn(args: list[str]) -> ProcessHandle:
    logger.debug("Spawning: %s", shlex.join(args))
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        limit=STREAM_LIMIT,
    )
    return ProcessHandle(process, args[0])


class Transport:
    """Starts rsync transfers and remote shell invocations as subprocesses."""

    def __init__(self, settings: TransportSettings | None = None):
        self.settings = settings or TransportSettings()

    async def sync(self, source: str, destination: str) -> ProcessHandle:
        """Start an rsync transfer. Raises OSError if rsync cannot be spawned."""
        return await _spawn(rsync_command(source, destination, self.settings.rsync_options))

    async def shell(self, host: str, script_path: str):
        """Start the transferred script on ``host`` under a login shell."""
        command = login_shell_command(script_path)
        return await _spawn(ssh_command(host, command, self.settings.ssh_options))


class AsyncSSHTransport(Transport):
    """Runs the remote shell through asyncssh instead of the ssh binary."""

    async def shell(self, host: str, script_path: str) -> SSHProcessHandle:
        username, _, hostname = host.rpartition("@")
        options = {"username": username} if username else {}

        conn = await asyncssh.connect(hostname, **options)
        try:
            process = await conn.create_process(
                login_shell_command(script_path),
                term_type="xterm",
                stdin=asyncssh.DEVNULL,
                encoding="utf-8",
                errors="replace",
            )
        except BaseException:
            conn.close()
            raise
        return SSHProcessHandle(conn, process, f"{host}:{script_path}")


def create_transport(settings: TransportSettings) -> Transport:
    """Build the transport for the configured shell backend."""
    if settings.shell == "asyncssh":
        return AsyncSSHTransport(settings)
    return Transport(settings)
