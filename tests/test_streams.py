import asyncio
import logging

import pytest

from fleetwork.streams import log_output, multiplex


def _reader(*chunks: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    if eof:
        reader.feed_eof()
    return reader


def test_multiplex_forwards_both_streams_labeled_with_host():
    lines = []

    async def run():
        stdout = _reader(b"out 1\nout 2\n")
        stderr = _reader(b"err 1\r\n")
        return await multiplex("web1", stdout, stderr, lambda h, l: lines.append((h, l)))

    count = asyncio.run(run())

    assert count == 3
    assert sorted(lines) == [("web1", "err 1"), ("web1", "out 1"), ("web1", "out 2")]
    # each stream keeps its own order
    assert [l for _, l in lines if l.startswith("out")] == ["out 1", "out 2"]


def test_multiplex_handles_text_streams_and_missing_stream():
    class TextStream:
        def __init__(self, lines):
            self.lines = list(lines)

        async def readline(self):
            return self.lines.pop(0) if self.lines else ""

    lines = []
    count = asyncio.run(
        multiplex("h", TextStream(["a\n", "b"]), None, lambda h, l: lines.append(l))
    )
    assert count == 2
    assert lines == ["a", "b"]


def test_multiplex_drains_more_lines_than_the_queue_holds():
    payload = b"".join(f"line {i}\n".encode() for i in range(500))
    lines = []

    async def run():
        return await multiplex("h", _reader(payload), _reader(b""), lambda h, l: lines.append(l))

    assert asyncio.run(run()) == 500
    assert lines[0] == "line 0" and lines[-1] == "line 499"


def test_multiplex_replaces_undecodable_bytes():
    lines = []

    async def run():
        await multiplex("h", _reader(b"caf\xe9\n"), None, lambda h, l: lines.append(l))

    asyncio.run(run())
    assert lines == ["caf�"]


def test_sink_error_propagates_and_stops_readers():
    def boom(host, line):
        raise RuntimeError("sink broke")

    async def run():
        stdout = _reader(b"x\n", eof=False)
        stderr = _reader(b"", eof=False)
        await multiplex("h", stdout, stderr, boom)

    with pytest.raises(RuntimeError, match="sink broke"):
        asyncio.run(run())


def test_log_output_prefixes_host(caplog):
    caplog.set_level(logging.INFO, logger="fleetwork.streams")
    log_output("db1", "hello")
    assert caplog.records[-1].getMessage() == "[db1] hello"


def test_overlong_line_is_reported_with_host(caplog):
    caplog.set_level(logging.WARNING, logger="fleetwork.streams")
    lines = []

    async def run():
        stdout = asyncio.StreamReader(limit=16)
        stdout.feed_data(b"x" * 100 + b"\nafter\n")
        stdout.feed_eof()
        return await multiplex("db1", stdout, _reader(b"err\n"), lambda h, l: lines.append(l))

    asyncio.run(run())

    assert "err" in lines
    assert "x" * 100 not in lines
    assert any("[db1]" in r.getMessage() and "too long" in r.getMessage()
               for r in caplog.records)
