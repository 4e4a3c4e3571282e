"""Error types for fleetwork."""

from __future__ import annotations


class FleetworkError(Exception):
    """Base class for all fleetwork errors."""


class ConfigError(FleetworkError, ValueError):
    """The configuration file could not be parsed or validated."""


class TransferError(FleetworkError):
    """The file synchronization transport failed."""

    def __init__(
        self,
        host: str,
        source: str,
        destination: str,
        exit_status: int | None = None,
        reason: str = "",
    ):
        self.host = host
        self.source = source
        self.destination = destination
        self.exit_status = exit_status
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        detail = self.reason or f"rsync exited with status {self.exit_status}"
        return f"transfer {self.source} -> {self.destination} failed: {detail}"


class RemoteExecutionError(FleetworkError):
    """The remote shell transport exited non-zero or could not be started."""

    def __init__(self, host: str, exit_status: int | None = None, reason: str = ""):
        self.host = host
        self.exit_status = exit_status
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.reason:
            return f"remote script failed: {self.reason}"
        return f"remote script exited with status {self.exit_status}"


class SessionInterrupted(FleetworkError):
    """A session stopped at a checkpoint because termination was requested."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"session on {host} interrupted")
