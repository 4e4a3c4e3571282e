"""fleetwork: run scripts and sync directories across a fleet of hosts over SSH."""

from .cancellation import CancellationController, CancelState
from .config import Config, Operation, Worker, load_config
from .directives import Directive, DirectiveKind, Order, PreprocessedScript, preprocess
from .orchestrator import Orchestrator
from .session import RunResult, SessionRunner, SessionStatus

__all__ = [
    "CancellationController",
    "CancelState",
    "Config",
    "Operation",
    "Worker",
    "load_config",
    "Directive",
    "DirectiveKind",
    "Order",
    "PreprocessedScript",
    "preprocess",
    "Orchestrator",
    "RunResult",
    "SessionRunner",
    "SessionStatus",
]
