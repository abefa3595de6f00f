from typing import Optional
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from clipvault.infrastructure.event_bus import EventBus
from clipvault.domain.events import (
    ArtifactUploaded,
    ProgressUpdated,
    SessionCancelled,
    SessionCompleted,
    SessionFailed,
    TierSelected,
)
from clipvault.domain.models import Tier

MIB = 1024 * 1024

TIER_NOTES = {
    Tier.ORIGINAL: "original kept (compression made it larger)",
    Tier.STANDARD: "standard compression",
    Tier.AGGRESSIVE: "aggressive compression",
}


def format_mb(size_bytes: int) -> str:
    return f"{size_bytes / MIB:.1f}MB"


class ConsoleProgressView:
    """Renders pipeline events as a rich progress bar plus a few status lines."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console()
        self.progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.completed:>3.0f}%"),
            console=self.console,
            transient=False,
        )
        self._task: Optional[TaskID] = None
        self.last_percent = 0
        self.last_label = ""
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(ProgressUpdated, self.on_progress)
        self.bus.subscribe(TierSelected, self.on_tier_selected)
        self.bus.subscribe(ArtifactUploaded, self.on_artifact_uploaded)
        self.bus.subscribe(SessionCompleted, self.on_completed)
        self.bus.subscribe(SessionFailed, self.on_failed)
        self.bus.subscribe(SessionCancelled, self.on_cancelled)

    def start(self):
        self._task = self.progress.add_task("Starting...", total=100)
        self.progress.start()

    def stop(self):
        self.progress.stop()

    def __enter__(self) -> "ConsoleProgressView":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def on_progress(self, event: ProgressUpdated):
        self.last_percent = event.percent
        self.last_label = event.label
        if self._task is not None:
            self.progress.update(self._task, completed=event.percent, description=event.label or "...")

    def on_tier_selected(self, event: TierSelected):
        self.console.print(
            f"[cyan]{TIER_NOTES[event.tier]}[/cyan]: "
            f"{format_mb(event.original_size)} -> {format_mb(event.chosen_size)}"
        )

    def on_artifact_uploaded(self, event: ArtifactUploaded):
        self.console.print(f"[dim]stored {event.artifact.key} ({format_mb(event.artifact.size_bytes)})[/dim]")

    def on_completed(self, event: SessionCompleted):
        record = event.session.record
        token = record.share_token if record else "?"
        self.console.print(f"[green]Video uploaded successfully![/green] share token: [bold]{token}[/bold]")

    def on_failed(self, event: SessionFailed):
        self.console.print(f"[red]{event.error_message}[/red]")

    def on_cancelled(self, event: SessionCancelled):
        self.console.print("[yellow]Upload cancelled[/yellow]")
