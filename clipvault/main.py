import signal
import typer
from pathlib import Path
from typing import Optional

from clipvault.config.loader import DEFAULT_CONFIG_PATH, load_config
from clipvault.config.models import AppConfig
from clipvault.domain.errors import ClipVaultError, DatabaseError, StorageError
from clipvault.domain.events import CancelRequested
from clipvault.domain.models import SessionState, UserProfile
from clipvault.infrastructure.database import SupabaseVideoRepository
from clipvault.infrastructure.event_bus import EventBus
from clipvault.infrastructure.logging import setup_logging
from clipvault.infrastructure.storage import R2Storage
from clipvault.pipeline.orchestrator import UploadPipeline
from clipvault.ui.console import ConsoleProgressView
from clipvault.ui.keyboard import KeyboardListener

app = typer.Typer(help="clipvault - compress a clip for Discord, store it on R2 and share it by token")

EXIT_CANCELLED = 130


def build_storage(config: AppConfig) -> R2Storage:
    return R2Storage(config.storage)


def build_repository(config: AppConfig) -> SupabaseVideoRepository:
    return SupabaseVideoRepository(config.database)


def _load(config_path: Path, debug: bool, log_path: Optional[Path]) -> AppConfig:
    try:
        config = load_config(config_path)
    except FileNotFoundError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if debug:
        config.pipeline.debug = True
    if log_path is not None:
        config.pipeline.log_path = str(log_path)
    setup_logging(
        Path("logs"),
        debug=config.pipeline.debug,
        log_path=Path(config.pipeline.log_path) if config.pipeline.log_path else None,
    )
    return config


@app.command()
def upload(
    file: Path = typer.Argument(..., help="Video file to compress and upload"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Owner of the upload (storage namespace)"),
    name: Optional[str] = typer.Option(None, "--name", help="Uploader display name"),
    avatar_url: Optional[str] = typer.Option(None, "--avatar-url", help="Uploader avatar URL"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Compress FILE, upload video + thumbnail, and save the record. Press C to cancel."""
    config = _load(config_path, debug, log_path)

    try:
        store = build_storage(config)
        records = build_repository(config)
    except (StorageError, DatabaseError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    bus = EventBus()
    pipeline = UploadPipeline(config, bus, store, records)
    profile = UserProfile(user_id=user_id, display_name=name, avatar_url=avatar_url)

    try:
        pipeline.validate_input(file)
    except ClipVaultError as exc:
        typer.secho(exc.user_message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    keyboard = KeyboardListener(bus)
    previous_handler = signal.signal(signal.SIGINT, lambda *_: bus.publish(CancelRequested()))
    try:
        with ConsoleProgressView(bus):
            keyboard.start()
            session = pipeline.run(file, profile)
    except ClipVaultError as exc:
        typer.secho(exc.user_message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        keyboard.stop()
        signal.signal(signal.SIGINT, previous_handler)

    if session.state == SessionState.COMPLETE:
        typer.echo(session.record.share_token)
        return
    if session.state == SessionState.CANCELLED:
        raise typer.Exit(code=EXIT_CANCELLED)
    raise typer.Exit(code=1)


@app.command()
def sign(
    key: str = typer.Argument(..., help="Storage key, e.g. <user>/<ms>_<name>.mp4"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="URL lifetime in seconds (default from config)"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
):
    """Print a time-limited download URL for KEY."""
    config = _load(config_path, False, None)
    try:
        url = build_storage(config).sign(key, ttl)
    except StorageError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(url)


@app.command()
def remove(
    key: str = typer.Argument(..., help="Storage key to delete"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
):
    """Delete one stored object (e.g. an orphaned artifact)."""
    config = _load(config_path, False, None)
    try:
        build_storage(config).remove(key)
    except StorageError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Removed {key}")


if __name__ == "__main__":
    app()
