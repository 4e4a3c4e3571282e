"""Local per-worker directory layout: <work_root>/<host>/{input,output}."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Worker

logger = logging.getLogger(__name__)


def worker_dir(work_root: Path, host: str) -> Path:
    return Path(work_root) / host


def input_dir(work_root: Path, host: str) -> Path:
    return worker_dir(work_root, host) / "input"


def output_dir(work_root: Path, host: str) -> Path:
    return worker_dir(work_root, host) / "output"


def as_dir(path: str | Path) -> str:
    """Render ``path`` with a trailing slash so rsync copies its contents."""
    text = str(path)
    return text if text.endswith("/") else text + "/"


def bootstrap(workers: list[Worker], work_root: Path) -> list[Path]:
    """Create input/output directories for every worker. Safe to re-run."""
    logger.info("Bootstrapping worker directories...")
    created = []
    for worker in workers:
        for path in (input_dir(work_root, worker.host), output_dir(work_root, worker.host)):
            path.mkdir(parents=True, exist_ok=True)
            created.append(path)
        logger.info("Created directories for worker: %s", worker.host)
    logger.info("Bootstrap complete.")
    return created
