"""Configuration loader for fleetwork."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .transport import DEFAULT_REMOTE_SCRIPT_PATH, TransportSettings

DEFAULT_REMOTE_INPUT_DIR = "/tmp/worker/input"
DEFAULT_REMOTE_OUTPUT_DIR = "/tmp/worker/output"

# Operations that may be given as top-level keys.
TOP_LEVEL_OPERATIONS = ("setup", "run")


@dataclass(frozen=True)
class Worker:
    """A remote host under management."""

    host: str


@dataclass(frozen=True)
class Operation:
    """A named script plus the remote directories its shorthands use."""

    name: str
    script: str
    remote_input_dir: str = DEFAULT_REMOTE_INPUT_DIR
    remote_output_dir: str = DEFAULT_REMOTE_OUTPUT_DIR


@dataclass
class Config:
    """Main configuration for a fleet."""

    workers: list[Worker]
    scripts: dict[str, str] = field(default_factory=dict)
    remote_input_dir: str = DEFAULT_REMOTE_INPUT_DIR
    remote_output_dir: str = DEFAULT_REMOTE_OUTPUT_DIR
    work_root: Path = field(default_factory=lambda: Path("workers"))
    fail_fast: bool = False
    transport: TransportSettings = field(default_factory=TransportSettings)
    source_path: Path | None = None  # Path to the original config file

    def operation(self, name: str) -> Operation:
        """Return the named operation. Raises KeyError for unknown names."""
        return self.make_operation(name, self.scripts[name])

    def make_operation(self, name: str, script: str) -> Operation:
        """Bind an ad-hoc script to this fleet's remote directories."""
        return Operation(
            name=name,
            script=script,
            remote_input_dir=self.remote_input_dir,
            remote_output_dir=self.remote_output_dir,
        )

    def select(self, host_filter: str = "") -> list[Worker]:
        """Workers matching ``host_filter`` exactly; all workers if empty."""
        if not host_filter:
            return list(self.workers)
        return [worker for worker in self.workers if worker.host == host_filter]


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file: {e}") from e

    config = parse_config(raw or {}, base_dir=config_path.parent)
    config.source_path = config_path
    return config


def parse_config(raw: dict[str, Any], base_dir: Path | None = None) -> Config:
    """Parse raw YAML data into a Config object."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")

    workers = _parse_workers(raw.get("workers"))
    scripts = _parse_scripts(raw)

    work_root = Path(raw.get("work_root", "workers")).expanduser()
    if base_dir is not None and not work_root.is_absolute():
        work_root = base_dir / work_root

    return Config(
        workers=workers,
        scripts=scripts,
        remote_input_dir=_string(raw, "remote_input_dir", DEFAULT_REMOTE_INPUT_DIR),
        remote_output_dir=_string(raw, "remote_output_dir", DEFAULT_REMOTE_OUTPUT_DIR),
        work_root=work_root,
        fail_fast=bool(raw.get("fail_fast", False)),
        transport=_parse_transport(raw.get("transport") or {}),
    )


def _string(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key) or default
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string")
    return value


def _parse_workers(workers_raw: Any) -> list[Worker]:
    """Parse the workers section. Hosts must be unique."""
    if not workers_raw:
        raise ConfigError("No workers defined in configuration")
    if not isinstance(workers_raw, list):
        raise ConfigError("'workers' must be a list")

    workers = []
    seen: set[str] = set()
    for worker_raw in workers_raw:
        host = worker_raw.get("host") if isinstance(worker_raw, dict) else worker_raw
        if not host or not isinstance(host, str):
            raise ConfigError(f"Worker must have a 'host' field: {worker_raw!r}")
        if host in seen:
            raise ConfigError(f"Duplicate worker host: {host}")
        seen.add(host)
        workers.append(Worker(host=host))
    return workers


def _parse_scripts(raw: dict[str, Any]) -> dict[str, str]:
    """Collect top-level setup/run scripts and the named scripts section."""
    scripts: dict[str, str] = {}
    for name in TOP_LEVEL_OPERATIONS:
        if raw.get(name) is not None:
            scripts[name] = raw[name]

    named = raw.get("scripts") or {}
    if not isinstance(named, dict):
        raise ConfigError("'scripts' must be a mapping of name to script")
    for name, script in named.items():
        if name in scripts:
            raise ConfigError(f"Script '{name}' is defined twice")
        scripts[str(name)] = script

    for name, script in scripts.items():
        if not isinstance(script, str):
            raise ConfigError(f"Script '{name}' must be a string")
    return scripts


def _parse_transport(transport_raw: dict[str, Any]) -> TransportSettings:
    if not isinstance(transport_raw, dict):
        raise ConfigError("'transport' must be a mapping")

    shell = transport_raw.get("shell", "ssh")
    if shell not in ("ssh", "asyncssh"):
        raise ConfigError(f"Unknown shell transport: {shell!r} (expected 'ssh' or 'asyncssh')")

    ssh_options = transport_raw.get("ssh_options", [])
    rsync_options = transport_raw.get("rsync_options", [])
    for key, value in (("ssh_options", ssh_options), ("rsync_options", rsync_options)):
        if not isinstance(value, list):
            raise ConfigError(f"'transport.{key}' must be a list")

    return TransportSettings(
        shell=shell,
        ssh_options=[str(o) for o in ssh_options],
        rsync_options=[str(o) for o in rsync_options],
        remote_script_path=transport_raw.get("remote_script_path", DEFAULT_REMOTE_SCRIPT_PATH),
    )
