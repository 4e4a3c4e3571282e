#!/usr/bin/env python3
"""Main entry point for fleetwork."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .cancellation import CancellationController
from .config import Config, Operation, load_config
from .errors import ConfigError
from .logging_setup import setup_logging
from .orchestrator import Orchestrator, failed
from .session import RunResult
from .workspace import bootstrap

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

# Scripts for bulk synchronization of the per-worker input/output directories.
PUSH_SCRIPT = "upload-input\n"
PULL_SCRIPT = "download-output\n"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fleetwork",
        description="Run scripts and sync files across a fleet of SSH hosts",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("fleetwork.yml"),
        help="Path to the YAML configuration file (default: fleetwork.yml)",
    )
    parser.add_argument("--host", default="", help="Only run on this worker host")
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Do not narrate per-worker progress (errors are still shown)",
    )
    parser.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging")
    parser.add_argument("--log-file", help="Also write logs to this file")

    commands = parser.add_subparsers(dest="command", required=True, metavar="<command>")
    commands.add_parser(
        "bootstrap", help="Create the input/output directories for the configured workers"
    )
    run = commands.add_parser("run", help="Run a named script or a script file on the workers")
    run.add_argument("script", nargs="?", default="run", help="Script name or ./path (default: run)")
    exec_ = commands.add_parser("exec", help="Run a shell command on the workers")
    exec_.add_argument("words", nargs=argparse.REMAINDER, help="Command to run")
    commands.add_parser("push", help="Upload each worker's input directory")
    commands.add_parser("pull", help="Download each worker's output directory")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file, console=not args.dashboard)

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.host and not config.select(args.host):
        print(f"Error: unknown worker host: {args.host}", file=sys.stderr)
        return 1

    if args.command == "bootstrap":
        bootstrap(config.select(args.host), config.work_root)
        return 0

    try:
        operation = resolve_operation(config, args)
    except (KeyError, FileNotFoundError) as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1
    if operation is None:
        print("Aborted.")
        return 0

    if args.dashboard:
        return _run_dashboard(config, operation, args)
    return _run_headless(config, operation, args)


def resolve_operation(config: Config, args: argparse.Namespace) -> Operation | None:
    """Turn the command line into an operation. None means the operator declined."""
    if args.command == "exec":
        if not args.words:
            raise KeyError("Missing command for 'exec'")
        return config.make_operation("exec", " ".join(args.words) + "\n")
    if args.command == "push":
        return config.make_operation("push", PUSH_SCRIPT)
    if args.command == "pull":
        return config.make_operation("pull", PULL_SCRIPT)

    name = args.script
    if not name.startswith(("./", "/")):
        if name not in config.scripts:
            raise KeyError(f"Unknown script: {name}")
        return config.operation(name)

    path = Path(name)
    if not path.is_file():
        raise FileNotFoundError(f"Script file not found: {name}")
    if not args.yes and not confirm(
        f"The script file '{name}' will be executed on all workers. "
        "Are you sure you want to continue? (y/N): "
    ):
        return None
    return config.make_operation(path.name, path.read_text())


def confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower().startswith("y")


def exit_status(results: list[RunResult], controller: CancellationController) -> int:
    """0 on success, 1 on a real failure, 130 when the operator interrupted."""
    if any(not r.succeeded and not r.interrupted for r in results):
        return 1
    if controller.operator_interrupted and any(r.interrupted for r in results):
        return EXIT_INTERRUPTED
    return 1 if failed(results) else 0


def _run_headless(config: Config, operation: Operation, args: argparse.Namespace) -> int:
    """Run the operation without the TUI dashboard."""
    # ANSI colors for different workers
    colors = [
        "\033[36m",  # Cyan
        "\033[33m",  # Yellow
        "\033[35m",  # Magenta
        "\033[32m",  # Green
        "\033[34m",  # Blue
        "\033[91m",  # Light Red
        "\033[96m",  # Light Cyan
        "\033[93m",  # Light Yellow
    ]
    use_color = sys.stdout.isatty()
    reset = "\033[0m" if use_color else ""

    # Assign colors to workers
    worker_colors = {
        worker.host: colors[i % len(colors)] if use_color else ""
        for i, worker in enumerate(config.workers)
    }

    def on_output(host: str, line: str) -> None:
        logger.info("%s[%s]%s %s", worker_colors.get(host, ""), host, reset, line)

    controller = CancellationController()
    orchestrator = Orchestrator(
        config, controller, on_output=on_output, silent=args.silent
    )

    async def _run() -> list[RunResult]:
        controller.install_signal_handlers()
        try:
            return await orchestrator.run_operation(operation, args.host)
        finally:
            controller.remove_signal_handlers()

    results = asyncio.run(_run())
    return exit_status(results, controller)


def _run_dashboard(config: Config, operation: Operation, args: argparse.Namespace) -> int:
    from .dashboard import Dashboard

    app = Dashboard(config, operation, host_filter=args.host, silent=args.silent)
    app.run()

    if not app.finished:
        return EXIT_INTERRUPTED

    failed_hosts = [r.host for r in failed(app.results)]
    if failed_hosts:
        print(f"\nFailed workers: {', '.join(failed_hosts)}", file=sys.stderr)
    return exit_status(app.results, app.controller)


if __name__ == "__main__":
    sys.exit(main())
