"""Click CLI group: explain, suggest, examples, man, cache, and providers commands."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import click
from pydantic import ValidationError

from clai.cache.store import CacheStore, open_cache
from clai.cli.output import OutputFormat, TerminalOutput, format_bytes, status_line
from clai.config import PROVIDER_NAMES, Settings, get_settings, validate_settings
from clai.core.context import ContextGatherer
from clai.core.engine import ClaiEngine, EngineResult, Mode
from clai.errors import CacheError, ClaiError
from clai.logging import configure_logging
from clai.providers.factory import build_resolver
from clai.providers.ollama import OllamaProvider
from clai.providers.platform import detect_platform


class DefaultCommandGroup(click.Group):
    """Group that treats an unknown first argument as input for ``explain``.

    ``clai git rebase`` is shorthand for ``clai explain git rebase``.
    """

    default_command = "explain"

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if args and args[0] not in self.commands and args[0] not in (
            *ctx.help_option_names,
            "--version",
        ):
            args = [self.default_command, *args]
        return super().parse_args(ctx, args)


@dataclass(frozen=True, slots=True)
class RequestOptions:
    provider: str | None
    json_output: bool
    verbose: bool
    no_cache: bool
    stream: bool


def request_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option(
            "--provider",
            type=click.Choice(PROVIDER_NAMES),
            default=None,
            help="Force a specific provider (no fallback).",
        ),
        click.option("--json", "json_output", is_flag=True, help="Output as JSON for scripting."),
        click.option("--verbose", "-v", is_flag=True, help="Show diagnostic output."),
        click.option("--no-cache", is_flag=True, help="Bypass the response cache."),
        click.option(
            "--stream/--no-stream",
            default=True,
            show_default=True,
            help="Stream response tokens as they arrive.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_settings(*, verbose: bool = False) -> Settings:
    try:
        settings = get_settings()
        validate_settings(settings)
    except ValidationError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc
    except ClaiError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(settings.log_level, json_output=settings.log_json, verbose=verbose)
    return settings


def build_engine(settings: Settings, options: RequestOptions) -> ClaiEngine:
    use_cache = settings.cache_enabled and not options.no_cache
    cache = open_cache(settings.cache_path(), settings.cache_ttl_days) if use_cache else None
    return ClaiEngine(
        build_resolver(settings, forced=options.provider),
        cache,
        ContextGatherer(settings.context_timeout_seconds),
        use_cache=use_cache,
        # a JSON document needs the final text, so JSON output never streams
        stream=options.stream and not options.json_output,
        verbose=options.verbose,
    )


def run_request(mode: Mode, text: str, options: RequestOptions) -> EngineResult:
    settings = load_settings(verbose=options.verbose)
    engine = build_engine(settings, options)
    sink = TerminalOutput(OutputFormat.JSON if options.json_output else OutputFormat.PLAIN)
    handlers = {
        Mode.EXPLAIN: engine.explain,
        Mode.SUGGEST: engine.suggest,
        Mode.EXAMPLES: engine.examples,
        Mode.MAN: engine.summarize_man,
    }
    try:
        return asyncio.run(handlers[mode](text, sink))
    except ClaiError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group(cls=DefaultCommandGroup)
@click.version_option(package_name="clai", prog_name="clai")
def cli() -> None:
    """LLM-powered CLI help assistant.

    Explains commands, suggests commands for a task, shows examples and
    summarizes man pages using the first available provider
    (mlx, ollama, anthropic, openai).
    """


_RAW_ARGS = {"ignore_unknown_options": True}


@cli.command(context_settings=_RAW_ARGS)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@request_options
def explain(command: tuple[str, ...], **kwargs: Any) -> None:
    """Explain a command in plain language (e.g. clai explain tar -xzf)."""
    run_request(Mode.EXPLAIN, " ".join(command), RequestOptions(**kwargs))


@cli.command(context_settings=_RAW_ARGS)
@click.argument("task", nargs=-1, type=click.UNPROCESSED)
@request_options
def suggest(task: tuple[str, ...], **kwargs: Any) -> None:
    """Suggest commands for a task described in natural language."""
    task_text = " ".join(task).strip()
    if not task_text:
        if not sys.stdin.isatty():
            raise click.UsageError("Please describe the task you want to accomplish")
        task_text = click.prompt("Enter task to accomplish", default="", show_default=False).strip()
        if not task_text:
            raise click.UsageError('No task provided. Try: clai suggest "find large files"')
    run_request(Mode.SUGGEST, task_text, RequestOptions(**kwargs))


@cli.command(context_settings=_RAW_ARGS)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@request_options
def examples(command: tuple[str, ...], **kwargs: Any) -> None:
    """Show practical, copy-pasteable examples for a command."""
    run_request(Mode.EXAMPLES, " ".join(command), RequestOptions(**kwargs))


@cli.command("man")
@click.argument("command")
@request_options
def man_command(command: str, **kwargs: Any) -> None:
    """Summarize the man page of a command."""
    run_request(Mode.MAN, command, RequestOptions(**kwargs))


def _open_store(settings: Settings) -> CacheStore:
    try:
        return CacheStore(settings.cache_path(), settings.cache_ttl_days, sweep_on_open=False)
    except CacheError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.group(invoke_without_command=True)
@click.pass_context
def cache(ctx: click.Context) -> None:
    """Manage the response cache (default: stats)."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(cache_stats)


@cache.command("stats")
def cache_stats() -> None:
    """Show cache statistics."""
    store = _open_store(load_settings())
    try:
        store.cleanup_expired()
        stats = store.stats()
    except CacheError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo("Cache Statistics")
    click.echo(f"  Entries: {stats.count}")
    click.echo(f"  Size:    {format_bytes(stats.size_bytes)}")
    click.echo(f"  Path:    {stats.path}")


@cache.command("clear")
def cache_clear() -> None:
    """Clear all cached responses."""
    store = _open_store(load_settings())
    try:
        removed = store.clear_all()
    except CacheError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Cache cleared ({removed} entries removed)")


async def _provider_report(settings: Settings) -> dict[str, Any]:
    resolver = build_resolver(settings)
    statuses = await resolver.statuses()
    report: dict[str, Any] = {
        "platform": detect_platform().description,
        "forced": resolver.forced,
        "chain": list(resolver.chain),
        "providers": [{"name": name, "available": ok} for name, ok in statuses],
    }
    if dict(statuses).get("ollama"):
        ollama = OllamaProvider(settings.ollama_model, host=settings.ollama_host)
        report["ollama_models"] = [str(item.get("name", "")) for item in await ollama.list_models()]
    return report


_UNAVAILABLE_HINTS = {
    "mlx": "requires Apple Silicon macOS and the 'mlx' extra",
    "ollama": "start an Ollama server (ollama serve) or set CLAI_OLLAMA_HOST",
    "anthropic": "set ANTHROPIC_API_KEY",
    "openai": "set OPENAI_API_KEY",
}


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Print the report as JSON.")
def providers(json_output: bool) -> None:
    """Report which providers in the fallback chain are available."""
    settings = load_settings()
    report = asyncio.run(_provider_report(settings))
    if json_output:
        click.echo(json.dumps(report, indent=2))
        return
    click.echo(f"Platform: {report['platform']}")
    if report["forced"]:
        click.echo(f"Forced provider: {report['forced']}")
    click.echo("Providers (priority order):")
    for item in report["providers"]:
        name = item["name"]
        if item["available"]:
            click.echo(status_line(name, True, "available"))
        else:
            click.echo(status_line(name, False, _UNAVAILABLE_HINTS.get(name, "unavailable")))
    models = report.get("ollama_models")
    if models:
        click.echo(f"Ollama models: {', '.join(models)}")
