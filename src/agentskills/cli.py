"""CLI commands using Typer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from agentskills import __version__
from agentskills.config import CONFIG_FILE_NAME
from agentskills.console import Output
from agentskills.context import create_context
from agentskills.errors import AgentSkillsError, ConfigError, classify_error

if TYPE_CHECKING:
    from agentskills.context import AppContext
    from agentskills.types import BatchResult

app = typer.Typer(
    name="agentskills",
    help="Install agent skills from git, archives, registries and local folders",
    no_args_is_help=True,
)

console = Console()
output = Output(console)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"agentskills v{__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging")] = False,
) -> None:
    """Install agent skills declared in agentskills.json."""
    configure_logging(verbose)


def _load_context(cwd: Path | None, _context: AppContext | None) -> AppContext:
    if _context is not None:
        return _context
    try:
        return create_context(cwd)
    except ConfigError as e:
        output.show_error(str(e))
        raise typer.Exit(1) from e


def _run_batch(ctx: AppContext, specs: dict[str, str]) -> BatchResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Installing {len(specs)} skills...", total=None)
        return asyncio.run(ctx.installer.install_all(specs))


def _report_batch(ctx: AppContext, batch: BatchResult) -> None:
    """Show results, write the lock file and exit non-zero if nothing installed."""
    output.show_batch(batch)

    if not batch.installed:
        output.show_error("All skill installations failed")
        raise typer.Exit(1)

    asyncio.run(ctx.installer.generate_lock_file(batch.results))
    count = len(batch.installed)
    plural = "s" if count != 1 else ""
    output.show_success(f"Installed {count} skill{plural} to {ctx.installer.skills_dir}")
    if batch.failed:
        failed = len(batch.failed)
        output.show_warning(f"{failed} skill{'s' if failed != 1 else ''} failed")


@app.command()
def install(
    cwd: Annotated[Path | None, typer.Option("--cwd", help="Project directory")] = None,
    frozen: Annotated[
        bool, typer.Option("--frozen", help="Install the specs recorded in skills-lock.json")
    ] = False,
    _context=None,
) -> None:
    """Install every skill declared in agentskills.json."""
    ctx = _load_context(cwd, _context)

    if frozen:
        lock = asyncio.run(ctx.installer.read_lock_file())
        if lock is None:
            output.show_error("No usable skills-lock.json found")
            raise typer.Exit(1)
        specs = {name: entry.spec for name, entry in lock.skills.items()}
    else:
        if not ctx.config_manager.exists():
            output.show_error(f"{CONFIG_FILE_NAME} not found in {ctx.config_manager.project_root}")
            raise typer.Exit(1)
        specs = dict(ctx.config.skills)

    if not specs:
        output.show_warning(f"No skills to install. Add skills to {CONFIG_FILE_NAME}.")
        return

    _report_batch(ctx, _run_batch(ctx, specs))


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Skill name")],
    spec: Annotated[str, typer.Argument(help="Source spec, e.g. github:user/repo#v1.0.0")],
    skip_install: Annotated[
        bool, typer.Option("--skip-install", help="Only record the skill")
    ] = False,
    cwd: Annotated[Path | None, typer.Option("--cwd", help="Project directory")] = None,
    _context=None,
) -> None:
    """Add a skill to agentskills.json and install it."""
    ctx = _load_context(cwd, _context)

    try:
        ctx.config = ctx.config_manager.add_skill(name, spec)
    except (ValueError, ConfigError) as e:
        output.show_error(str(e))
        raise typer.Exit(1) from e
    output.show_success(f"Added {name} to {CONFIG_FILE_NAME}")

    if skip_install:
        return

    result = asyncio.run(ctx.installer.install(name, spec))
    if not result.success:
        message = result.error.message if result.error else "Installation failed"
        output.show_error(f"{name} failed: {message}")
        raise typer.Exit(1)

    output.show_success(f"{name} installed ({result.resolved_version})")


@app.command()
def remove(
    name: Annotated[str, typer.Argument(help="Skill name")],
    cwd: Annotated[Path | None, typer.Option("--cwd", help="Project directory")] = None,
    _context=None,
) -> None:
    """Remove a skill from agentskills.json and delete its files."""
    ctx = _load_context(cwd, _context)

    try:
        removed = ctx.config_manager.remove_skill(name)
    except ConfigError as e:
        output.show_error(str(e))
        raise typer.Exit(1) from e
    if not removed:
        output.show_error(f"{name} is not in {CONFIG_FILE_NAME}")
        raise typer.Exit(1)

    ctx.installer.fs.remove(ctx.installer.skills_dir / name)
    output.show_success(f"Removed {name}")


@app.command("list")
def list_skills(
    cwd: Annotated[Path | None, typer.Option("--cwd", help="Project directory")] = None,
    _context=None,
) -> None:
    """List installed skills."""
    ctx = _load_context(cwd, _context)
    skills = asyncio.run(ctx.installer.load_installed_skills())
    lock = asyncio.run(ctx.installer.read_lock_file())
    output.show_skills(skills, lock)


@app.command()
def info(
    spec: Annotated[str, typer.Argument(help="Source spec")],
    cwd: Annotated[Path | None, typer.Option("--cwd", help="Project directory")] = None,
    _context=None,
) -> None:
    """Show a skill's manifest without installing it."""
    ctx = _load_context(cwd, _context)
    try:
        manifest = asyncio.run(ctx.installer.get_manifest(spec))
    except AgentSkillsError as e:
        output.show_error(str(e))
        raise typer.Exit(1) from e
    except Exception as e:
        failure = classify_error(None, spec, e)
        output.show_error(failure.error.message if failure.error else str(e))
        raise typer.Exit(1) from e
    output.show_manifest(manifest)


if __name__ == "__main__":
    app()
