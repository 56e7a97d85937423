"""Local documentation lookup (--help, man, tldr) used to ground prompts."""

import asyncio
import logging
import os
import re
import shutil
from dataclasses import dataclass

from clai.errors import CommandFailed

logger = logging.getLogger(__name__)

# man output without a pager still carries "X\bX" bold and "_\bX" underline overstrikes
_OVERSTRIKE = re.compile(r".\x08")


@dataclass(frozen=True, slots=True)
class CommandContext:
    help_output: str | None = None
    man_page: str | None = None
    tldr_page: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.help_output is None and self.man_page is None and self.tldr_page is None


def base_command(command: str) -> str:
    parts = command.split()
    return parts[0] if parts else command


class ContextGatherer:
    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self.timeout_seconds = timeout_seconds

    async def _run(self, *argv: str, env: dict[str, str] | None = None) -> str:
        display = " ".join(argv)
        if shutil.which(argv[0]) is None:
            raise CommandFailed(display)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
            )
        except OSError as exc:
            raise CommandFailed(display) from exc
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self.timeout_seconds)
        except TimeoutError as exc:
            process.kill()
            await process.wait()
            raise CommandFailed(display) from exc
        if process.returncode != 0:
            raise CommandFailed(display)
        return stdout.decode("utf-8", errors="replace").strip()

    async def help_output(self, command: str) -> str:
        name = base_command(command)
        try:
            return await self._run(name, "--help")
        except CommandFailed:
            return await self._run(name, "-h")

    async def man_page(self, command: str) -> str:
        name = base_command(command)
        env = {**os.environ, "MANPAGER": "cat", "PAGER": "cat", "MANWIDTH": "100"}
        output = await self._run("man", name, env=env)
        if not output:
            raise CommandFailed(f"man {name}")
        return _OVERSTRIKE.sub("", output)

    async def tldr_page(self, command: str) -> str | None:
        if shutil.which("tldr") is None:
            return None
        return await self._run("tldr", base_command(command))

    async def gather(self, command: str) -> CommandContext:
        results = await asyncio.gather(
            self.help_output(command),
            self.man_page(command),
            self.tldr_page(command),
            return_exceptions=True,
        )
        values: list[str | None] = []
        for result in results:
            if isinstance(result, CommandFailed):
                logger.debug("Context lookup skipped: %s", result)
                values.append(None)
            elif isinstance(result, BaseException):
                raise result
            else:
                values.append(result or None)
        help_output, man_page, tldr_page = values
        return CommandContext(help_output=help_output, man_page=man_page, tldr_page=tldr_page)
