"""Command-line interface for review notes."""

from pathlib import Path
from typing import List, Optional

import git
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from reviewnotes.errors import ReviewNotesError
from reviewnotes.export import ExportProgress, WorkDistributor
from reviewnotes.listener import RefUpdateListener
from reviewnotes.log import configure_logging
from reviewnotes.metadata import JsonMetadataStore
from reviewnotes.models import RefUpdateEvent, Settings
from reviewnotes.repository import RepositoryManager

app = typer.Typer(
    name="reviewnotes",
    help="Attach code review metadata to git commits as notes",
    add_completion=False,
)
console = Console()


def _settings(
    repositories_dir: Optional[Path] = None,
    metadata_file: Optional[Path] = None,
    **overrides,
) -> Settings:
    """Load settings from the environment and apply command-line overrides."""
    try:
        settings = Settings()
    except ValidationError as e:
        console.print(f"[bold red]Invalid settings:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)
    update = {key: value for key, value in overrides.items() if value is not None}
    if repositories_dir is not None:
        update["repositories_dir"] = repositories_dir
    if metadata_file is not None:
        update["metadata_file"] = metadata_file
    if update:
        settings = settings.model_copy(update=update)
    configure_logging(settings.log_level, settings.log_json)
    return settings


def _store_factory(settings: Settings):
    return lambda: JsonMetadataStore(settings.metadata_file)


@app.command()
def export(
    repositories_dir: Optional[Path] = typer.Option(None, "--repos", "-r", help="Directory holding the repositories"),
    metadata_file: Optional[Path] = typer.Option(None, "--metadata", "-m", help="JSON file with review records"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Number of concurrent threads to run"),
) -> None:
    """Export review notes for all merged changes in all projects."""
    try:
        settings = _settings(repositories_dir, metadata_file, threads=threads)
        console.print(f"[bold green]Exporting review notes from:[/bold green] {settings.repositories_dir}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as bar:
            task = bar.add_task("Scanning changes...", total=None)

            def on_progress(completed: int, total: int) -> None:
                bar.update(task, completed=completed, total=total)

            distributor = WorkDistributor(
                RepositoryManager(settings.repositories_dir),
                _store_factory(settings),
                settings=settings,
                progress=ExportProgress(on_progress),
            )
            result = distributor.run()

        if result.error:
            console.print(f"[bold red]Error:[/bold red] {result.error}")
            raise typer.Exit(1)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Project", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Notes", justify="right", style="green")
        table.add_column("Status", style="yellow")
        for outcome in sorted(result.outcomes, key=lambda o: o.project):
            status = outcome.status.value if outcome.status else "-"
            if outcome.failed:
                status = f"[red]failed: {outcome.error}[/red]"
            table.add_row(outcome.project, str(outcome.records), str(outcome.notes), status)
        console.print(table)

        console.print(
            f"\n[bold green]✓[/bold green] {result.notes_written} notes in "
            f"{result.repositories} repositories ({len(result.failed)} failed)"
        )
        if result.without_records:
            console.print(
                f"[yellow]No merged changes for {len(result.without_records)} repositories:[/yellow] "
                + ", ".join(result.without_records)
            )
        if result.failed:
            raise typer.Exit(1)

    except ReviewNotesError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def update(
    project: str = typer.Argument(..., help="Project name"),
    ref_name: str = typer.Argument(..., help="Updated ref, e.g. refs/heads/master"),
    old_id: str = typer.Argument(..., help="Previous tip (40 zeros for a new ref)"),
    new_id: str = typer.Argument(..., help="New tip"),
    repositories_dir: Optional[Path] = typer.Option(None, "--repos", "-r", help="Directory holding the repositories"),
    metadata_file: Optional[Path] = typer.Option(None, "--metadata", "-m", help="JSON file with review records"),
) -> None:
    """Create review notes for a single ref update."""
    settings = _settings(repositories_dir, metadata_file, async_listener=False)
    listener = RefUpdateListener(RepositoryManager(settings.repositories_dir), _store_factory(settings), settings)

    event = RefUpdateEvent(project=project, ref_name=ref_name, old_id=old_id, new_id=new_id)
    result = listener.create_review_notes(event)
    if result is None or not result.success:
        console.print(f"[bold red]Error:[/bold red] no notes committed for {event}")
        raise typer.Exit(1)
    console.print(f"[bold green]✓[/bold green] {event}: {result.status.value} ({result.notes_count} notes)")


@app.command(name="post-receive")
def post_receive(
    project: str = typer.Argument(..., help="Project name"),
    repositories_dir: Optional[Path] = typer.Option(None, "--repos", "-r", help="Directory holding the repositories"),
    metadata_file: Optional[Path] = typer.Option(None, "--metadata", "-m", help="JSON file with review records"),
) -> None:
    """Read '<old> <new> <ref>' lines from stdin, as a git post-receive hook does."""
    settings = _settings(repositories_dir, metadata_file)
    events: List[RefUpdateEvent] = []
    for line in typer.get_text_stream("stdin"):
        fields = line.split()
        if len(fields) != 3:
            continue
        old_id, new_id, ref_name = fields
        events.append(RefUpdateEvent(project=project, ref_name=ref_name, old_id=old_id, new_id=new_id))

    with RefUpdateListener(RepositoryManager(settings.repositories_dir), _store_factory(settings), settings) as listener:
        for event in events:
            listener.on_ref_updated(event)
    console.print(f"[bold green]✓[/bold green] Processed {len(events)} ref updates")


@app.command()
def show(
    project: str = typer.Argument(..., help="Project name"),
    commit: str = typer.Argument(..., help="Commit to show the review note for"),
    repositories_dir: Optional[Path] = typer.Option(None, "--repos", "-r", help="Directory holding the repositories"),
) -> None:
    """Show the review note attached to a commit."""
    settings = _settings(repositories_dir)
    try:
        with RepositoryManager(settings.repositories_dir).open_repository(project) as repo:
            note = repo.git.notes("--ref", settings.notes_ref, "show", commit)
    except ReviewNotesError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except git.GitCommandError:
        console.print(f"[yellow]No review note for {commit}[/yellow]")
        raise typer.Exit(1)
    console.print(note, markup=False, highlight=False)


@app.command()
def version() -> None:
    """Show version information."""
    from reviewnotes import __version__

    console.print(f"[bold]reviewnotes[/bold] version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
