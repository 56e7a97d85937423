"""Terminal output sink: streamed chunks, styled plain text, or JSON."""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from enum import StrEnum

import click

_NUMBERED = re.compile(r"^(\d+)\. ")


class OutputFormat(StrEnum):
    PLAIN = "plain"
    JSON = "json"


def _green(text: str) -> str:
    return f"\033[32m{text}\033[0m"


def _red(text: str) -> str:
    return f"\033[31m{text}\033[0m"


def _dim(text: str) -> str:
    return f"\033[90m{text}\033[0m"


def style_inline(text: str) -> str:
    """Render ``**bold**`` and `` `code` `` spans with ANSI codes.

    Closing codes reset only the attribute that was opened (22m, 39m) so the
    two styles can overlap.
    """
    out: list[str] = []
    in_bold = False
    index = 0
    while index < len(text):
        if text.startswith("**", index):
            out.append("\033[22m" if in_bold else "\033[1m")
            in_bold = not in_bold
            index += 2
            continue
        out.append(text[index])
        index += 1
    styled = "".join(out)

    out = []
    in_code = False
    for char in styled:
        if char == "`":
            out.append("\033[39m" if in_code else "\033[36m")
            in_code = not in_code
        else:
            out.append(char)
    return "".join(out)


def render_line(line: str) -> str:
    if line.startswith("### "):
        return f"\033[1;36m{line[4:]}\033[0m"
    if line.startswith("## "):
        return f"\033[1;33m{line[3:]}\033[0m"
    if line.startswith("# "):
        return f"\033[1;32m{line[2:]}\033[0m"
    if line.startswith("```"):
        return _dim(line)
    if line.startswith(("- ", "* ")):
        return f"  • {style_inline(line[2:])}"
    match = _NUMBERED.match(line)
    if match:
        return f"  {match.group(1)}. {style_inline(line[match.end():])}"
    return style_inline(line)


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} bytes"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024 or unit == "GB":
            break
    return f"{value:.1f} {unit}"


def status_line(name: str, ok: bool, message: str) -> str:
    icon = _green("✓") if ok else _red("✗")
    return f"  {icon} {name}: {message}"


class TerminalOutput:
    """Output sink for one CLI invocation.

    Response text goes to stdout; progress and diagnostics go to stderr so a
    JSON document on stdout stays parseable.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.PLAIN) -> None:
        self.output_format = output_format

    def show_progress(self, message: str) -> None:
        if self.output_format is OutputFormat.PLAIN:
            click.echo(_dim(f"⏳ {message}"), err=True)

    def show_info(self, message: str) -> None:
        click.echo(message, err=True)

    def write_chunk(self, chunk: str) -> None:
        click.echo(chunk, nl=False)

    def end_stream(self) -> None:
        click.echo()

    def show_response(self, text: str, provider: str, *, cached: bool) -> None:
        if self.output_format is OutputFormat.JSON:
            click.echo(
                json.dumps(
                    {
                        "response": text,
                        "provider": provider,
                        "cached": cached,
                        "timestamp": datetime.now(UTC).isoformat(),
                    },
                    indent=2,
                )
            )
            return
        click.echo()
        for line in text.split("\n"):
            click.echo(render_line(line))
