"""Fan-in of a transport's stdout and stderr into one ordered line stream."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Type alias for output callback
OutputCallback = Callable[[str, str], None]  # (host, line) -> None

QUEUE_SIZE = 10

_DONE = object()


def log_output(host: str, line: str) -> None:
    """Default output sink: log the line labeled with its host."""
    logger.info("[%s] %s", host, line)


def _decode(line: Any) -> str:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    return line.rstrip("\r\n")


async def _read_lines(host: str, stream: Any, queue: asyncio.Queue) -> None:
    while True:
        try:
            line = await stream.readline()
        except ValueError as e:
            logger.warning("[%s] Output line too long, dropping the rest of the stream: %s",
                           host, e)
            return
        if not line:
            break
        await queue.put(_decode(line))


async def _close_when_done(
    host: str, readers: list[asyncio.Task], queue: asyncio.Queue
) -> None:
    results = await asyncio.gather(*readers, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning("[%s] Output reader stopped early: %s", host, result)
    await queue.put(_DONE)


async def multiplex(
    host: str,
    stdout: Any,
    stderr: Any,
    on_output: OutputCallback = log_output,
) -> int:
    """Forward every line of ``stdout`` and ``stderr`` to ``on_output``.

    One reader task per stream feeds a bounded queue, a closer task marks
    the queue finished once both readers are done, and this coroutine
    drains it in arrival order. Either stream may be None. Returns the
    number of lines forwarded.
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
    readers = [
        asyncio.create_task(_read_lines(host, stream, queue))
        for stream in (stdout, stderr)
        if stream is not None
    ]
    closer = asyncio.create_task(_close_when_done(host, readers, queue))

    count = 0
    try:
        while True:
            line = await queue.get()
            if line is _DONE:
                break
            on_output(host, line)
            count += 1
    finally:
        if not closer.done():
            for task in readers:
                task.cancel()
            closer.cancel()
            await asyncio.gather(closer, *readers, return_exceptions=True)
    return count
