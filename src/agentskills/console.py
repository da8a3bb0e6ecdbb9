"""Console output for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from agentskills.lockfile import LockFile
    from agentskills.parser import Skill
    from agentskills.types import BatchResult, SkillManifest


class Output:
    """Non-interactive output for agentskills commands."""

    def __init__(self, console: Console | None = None) -> None:
        """Initialize output.

        Args:
            console: Rich console to print to. A new one is created if not provided.
        """
        self.console = console or Console()

    def show_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def show_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def show_warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def show_info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def show_batch(self, batch: BatchResult) -> None:
        """Display one line per skill of a batch install.

        Args:
            batch: Result of install_all.
        """
        for name in sorted(batch.results):
            result = batch.results[name]
            if result.success:
                self.show_success(f"{name} [dim]{result.resolved_version}[/dim]")
            elif result.error is not None:
                self.show_error(f"{name} failed: [{result.error.code.value}] {result.error.message}")

    def show_skills(self, skills: list[Skill], lock: LockFile | None) -> None:
        """Display installed skills table.

        Args:
            skills: Parsed installed skills.
            lock: Lock file, used for the version column.
        """
        if not skills:
            self.console.print("[yellow]No skills installed[/yellow]")
            return

        table = Table(title="Installed Skills")
        table.add_column("Name", style="cyan")
        table.add_column("Skill")
        table.add_column("Description")
        table.add_column("Version")

        for skill in skills:
            name = skill.path.parent.name if skill.path else skill.metadata.name
            locked = lock.skills.get(name) if lock else None
            table.add_row(
                name,
                skill.metadata.name,
                escape(skill.metadata.description),
                locked.resolved_version if locked else "-",
            )

        self.console.print(table)

    def show_manifest(self, manifest: SkillManifest) -> None:
        """Display a skill manifest.

        Args:
            manifest: Manifest returned by a dry run.
        """
        lines = [f"[bold]{escape(manifest.name)}[/bold]", escape(manifest.description)]
        if manifest.version:
            lines.append(f"Version: {manifest.version}")
        if manifest.license:
            lines.append(f"License: {manifest.license}")
        if manifest.compatibility:
            lines.append(f"Compatibility: {manifest.compatibility}")
        self.console.print(Panel("\n".join(lines), title="Skill", border_style="blue"))
