"""Script preprocessing: split an operation script into shell payload and
file transfer directives.

Recognized lines (the keyword must start the line):

    upload <local> <remote>        runs before the payload
    download <remote> <local>      runs after the payload
    upload-input [remote]          <work_root>/<host>/input/ -> remote
    download-output [remote]       remote -> <work_root>/<host>/output/

Everything else is shell and is passed through verbatim.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class DirectiveKind(Enum):
    """Kind of transfer requested by a directive line."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    UPLOAD_INPUT = "upload-input"
    DOWNLOAD_OUTPUT = "download-output"


class Order(Enum):
    """When a directive runs relative to the payload."""

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


_ORDER = {
    DirectiveKind.UPLOAD: Order.IMMEDIATE,
    DirectiveKind.UPLOAD_INPUT: Order.IMMEDIATE,
    DirectiveKind.DOWNLOAD: Order.DEFERRED,
    DirectiveKind.DOWNLOAD_OUTPUT: Order.DEFERRED,
}

# Longest keywords first so "upload-input" never matches as "upload".
_KEYWORDS = sorted((kind.value for kind in DirectiveKind), key=len, reverse=True)

# Shell lines end at "\n" only, unlike str.splitlines().
_LINE_END = re.compile(r"(?<=\n)")


@dataclass(frozen=True)
class Directive:
    """A single parsed transfer line.

    ``remote`` is None for a shorthand directive that relies on the
    operation's default remote directory. ``local`` is None for both
    shorthands; the session resolves it from the worker's workspace.
    """

    kind: DirectiveKind
    remote: str | None
    local: str | None = None
    line_number: int = 0

    @property
    def order(self) -> Order:
        return _ORDER[self.kind]

    @property
    def is_upload(self) -> bool:
        return self.kind in (DirectiveKind.UPLOAD, DirectiveKind.UPLOAD_INPUT)


@dataclass(frozen=True)
class ParseWarning:
    """A directive line that was dropped because it was malformed."""

    line_number: int
    line: str
    reason: str


@dataclass
class PreprocessedScript:
    """Result of preprocessing an operation script."""

    payload: str
    directives: list[Directive] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)

    @property
    def immediate(self) -> list[Directive]:
        return [d for d in self.directives if d.order is Order.IMMEDIATE]

    @property
    def deferred(self) -> list[Directive]:
        return [d for d in self.directives if d.order is Order.DEFERRED]


def _match_keyword(line: str) -> tuple[str, str] | None:
    """Return (keyword, arguments) if the line starts with a directive keyword."""
    for keyword in _KEYWORDS:
        if line == keyword:
            return keyword, ""
        if line.startswith(keyword) and line[len(keyword)] in " \t":
            return keyword, line[len(keyword) + 1 :]
    return None


def _parse(kind: DirectiveKind, args: list[str], line_number: int) -> Directive | str:
    """Build a directive from its arguments, or return why it is malformed."""
    if kind is DirectiveKind.UPLOAD:
        if len(args) != 2:
            return f"expected 'upload <local> <remote>', got {len(args)} argument(s)"
        return Directive(kind, remote=args[1], local=args[0], line_number=line_number)

    if kind is DirectiveKind.DOWNLOAD:
        if len(args) != 2:
            return f"expected 'download <remote> <local>', got {len(args)} argument(s)"
        return Directive(kind, remote=args[0], local=args[1], line_number=line_number)

    if len(args) > 1:
        return f"expected '{kind.value} [remote]', got {len(args)} arguments"
    return Directive(kind, remote=args[0] if args else None, line_number=line_number)


def preprocess(script: str) -> PreprocessedScript:
    """Split ``script`` into its shell payload and ordered transfer directives.

    Pure and deterministic. Non-directive lines are copied to the payload
    with their original line endings, so running ``preprocess`` on a
    returned payload gives back the same payload and no directives.
    """
    result = PreprocessedScript(payload="")
    payload_lines: list[str] = []

    lines = [raw for raw in _LINE_END.split(script) if raw]
    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        match = _match_keyword(line)
        if match is None:
            payload_lines.append(raw)
            continue

        keyword, rest = match
        parsed = _parse(DirectiveKind(keyword), rest.split(), line_number)
        if isinstance(parsed, str):
            warning = ParseWarning(line_number, line, parsed)
            logger.warning("Ignoring malformed directive on line %d (%r): %s",
                           line_number, line, parsed)
            result.warnings.append(warning)
            continue
        result.directives.append(parsed)

    result.payload = "".join(payload_lines)
    return result
