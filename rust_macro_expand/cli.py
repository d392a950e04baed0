from __future__ import annotations

import asyncio
import json
import logging

import typer

from rust_macro_expand.core.commands import expand_document
from rust_macro_expand.core.discovery import (
    DEFAULT_FLAGS,
    DEFAULT_TOOL,
    build_command,
    path_to_module,
    resolve_document,
)
from rust_macro_expand.core.errors import (
    DiscoveryError,
    ExpandError,
    ResourceError,
    ValidationError,
)
from rust_macro_expand.core.events import EventBus
from rust_macro_expand.core.registry import InMemoryRegistry, JsonSettingsRegistry, ProjectRegistry
from rust_macro_expand.core.renderer import ArtifactRenderer
from rust_macro_expand.core.settings import Settings, SettingsError, load_settings
from rust_macro_expand.core.store import SessionStore
from rust_macro_expand.core.view import ConsoleView
from rust_macro_expand.core.watcher import DocumentWatcher

app = typer.Typer(add_completion=False, no_args_is_help=True)

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

EXIT_CODES: dict[type[ExpandError], int] = {
    DiscoveryError: 1,
    ValidationError: 2,
    ResourceError: 3,
}


@app.callback()
def _callback() -> None:
    """rust-macro-expand: expand Rust macros for a file into a linked scratch crate."""
    return


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


def _print_errors(errors: list[ExpandError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def _fail(error: ExpandError) -> typer.Exit:
    _print_errors([error])
    return typer.Exit(code=EXIT_CODES.get(type(error), 1))


def _settings_or_exit(settings_file: str | None) -> Settings:
    try:
        return load_settings(settings_file)
    except FileNotFoundError:
        raise _fail(
            ValidationError(
                code="E_SETTINGS_FILE_NOT_FOUND",
                message=f"settings file not found: {settings_file}",
                path="settings",
            )
        )
    except SettingsError as e:
        raise _fail(
            ValidationError(
                code="E_SETTINGS_FILE_INVALID",
                message=str(e),
                file=settings_file,
                path="settings",
            )
        )


def _registry(linked_projects: str | None) -> ProjectRegistry:
    if linked_projects:
        return JsonSettingsRegistry(linked_projects)
    return InMemoryRegistry()


async def _expand_once(
    path: str,
    *,
    settings: Settings,
    registry: ProjectRegistry,
    tool: str,
    flags: str,
    timeout: float | None,
) -> None:
    view = ConsoleView()
    renderer = ArtifactRenderer(view, timeout=timeout)
    async with SessionStore(settings=settings, registry=registry, renderer=renderer) as store:
        await expand_document(store, path, tool=tool, flags=flags)


async def _watch(
    paths: list[str],
    *,
    settings: Settings,
    settings_file: str | None,
    registry: ProjectRegistry,
    tool: str,
    flags: str,
    timeout: float | None,
    interval: float,
) -> None:
    bus = EventBus()
    view = ConsoleView()
    renderer = ArtifactRenderer(view, timeout=timeout)
    watcher = DocumentWatcher(bus, interval=interval)
    if settings_file:
        watcher.watch_settings(settings_file)

    async with SessionStore(
        bus=bus, settings=settings, registry=registry, renderer=renderer
    ) as store:
        for p in paths:
            session = await expand_document(store, p, tool=tool, flags=flags)
            watcher.track(session.source_path)
        try:
            await watcher.run(asyncio.Event())
        finally:
            await bus.drain()


@app.command("expand")
def expand_cmd(
    path: str = typer.Argument(..., help="Rust source file (.rs) to expand"),
    settings_file: str | None = typer.Option(None, "--settings", help="YAML settings file"),
    linked_projects: str | None = typer.Option(
        None,
        "--linked-projects",
        help="JSON editor settings file whose rust-analyzer.linkedProjects gets the scratch crate",
    ),
    tool: str = typer.Option(DEFAULT_TOOL, "--tool", help="Expand tool command"),
    flags: str = typer.Option(DEFAULT_FLAGS, "--flags", help="Flags passed to the tool"),
    timeout: float | None = typer.Option(None, "--timeout", help="Give up after this many seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Expand macros once, print the generated file and remove the scratch crate."""
    _configure_logging(verbose)
    settings = _settings_or_exit(settings_file)
    try:
        asyncio.run(
            _expand_once(
                path,
                settings=settings,
                registry=_registry(linked_projects),
                tool=tool,
                flags=flags,
                timeout=timeout,
            )
        )
    except ExpandError as e:
        raise _fail(e)


@app.command("watch")
def watch_cmd(
    paths: list[str] = typer.Argument(..., help="Rust source files (.rs) to track"),
    settings_file: str | None = typer.Option(
        None, "--settings", help="YAML settings file (reloaded when it changes)"
    ),
    linked_projects: str | None = typer.Option(
        None,
        "--linked-projects",
        help="JSON editor settings file whose rust-analyzer.linkedProjects gets the scratch crates",
    ),
    tool: str = typer.Option(DEFAULT_TOOL, "--tool", help="Expand tool command"),
    flags: str = typer.Option(DEFAULT_FLAGS, "--flags", help="Flags passed to the tool"),
    timeout: float | None = typer.Option(None, "--timeout", help="Give up after this many seconds"),
    interval: float = typer.Option(0.5, "--interval", help="Seconds between file checks"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Track documents: re-expand on save, clean up when a file goes away or on Ctrl-C."""
    _configure_logging(verbose)
    settings = _settings_or_exit(settings_file)
    try:
        asyncio.run(
            _watch(
                paths,
                settings=settings,
                settings_file=settings_file,
                registry=_registry(linked_projects),
                tool=tool,
                flags=flags,
                timeout=timeout,
                interval=interval,
            )
        )
    except ExpandError as e:
        raise _fail(e)
    except KeyboardInterrupt:
        typer.echo("stopped", err=True)


@app.command("module-path")
def module_path_cmd(
    path: str = typer.Argument(..., help="Rust source file (.rs)"),
    tool: str = typer.Option(DEFAULT_TOOL, "--tool", help="Expand tool command"),
    flags: str = typer.Option(DEFAULT_FLAGS, "--flags", help="Flags passed to the tool"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Show the crate, module path and command that expand would use."""
    if format not in ("text", "json"):
        raise _fail(
            ValidationError(
                code="E_UNKNOWN_FORMAT",
                message=f"unknown format: {format} (choose one of: text, json)",
                path="format",
            )
        )
    try:
        info = resolve_document(path)
    except ExpandError as e:
        raise _fail(e)

    module = path_to_module(info.source_path, info.crate_dir)
    command = build_command(module, tool=tool, flags=flags)
    if format == "json":
        payload = {
            "crate": info.crate_name,
            "crate_dir": str(info.crate_dir),
            "source": str(info.source_path),
            "module": module,
            "command": command,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"crate: {info.crate_name} ({info.crate_dir})")
    typer.echo(f"module: {module or '<crate root>'}")
    typer.echo(f"command: {command}")


@app.command("settings")
def settings_cmd(
    settings_file: str | None = typer.Option(None, "--settings", help="YAML settings file"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Print the effective settings."""
    if format not in ("text", "json"):
        raise _fail(
            ValidationError(
                code="E_UNKNOWN_FORMAT",
                message=f"unknown format: {format} (choose one of: text, json)",
                path="format",
            )
        )
    options = _settings_or_exit(settings_file).to_options()
    if format == "json":
        typer.echo(json.dumps(options, indent=2, sort_keys=True))
        return
    for name in sorted(options):
        typer.echo(f"{name}: {'true' if options[name] else 'false'}")


def main() -> None:
    app(prog_name="rust-macro-expand")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
