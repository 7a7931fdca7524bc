"""Command line interface for Prune."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from prune.config import ConfigError, ConfigManager, PruneConfig
from prune.config.models import LoggingSettings
from prune.decisions import (
    DecisionRepository,
    DecisionState,
    DecisionStore,
    DecisionStoreError,
    ReviewState,
)
from prune.imaging import ImageDeliveryFacade
from prune.library import (
    AlbumKind,
    AlbumRef,
    AuthorizationError,
    FolderPhotoLibrary,
    ImageResult,
    LibraryError,
    PhotoRef,
)
from prune.reconcile import ReconciliationController

console = Console()

_KIND_CHOICES = {
    "months": AlbumKind.TIME_BUCKET,
    "system": AlbumKind.SYSTEM_COLLECTION,
    "user": AlbumKind.USER_ALBUM,
}
_INSTALLED_HANDLERS: list[logging.Handler] = []
DECISIONS_FILENAME = "decisions.json"


@dataclass
class CLIState:
    """Options shared by every subcommand."""

    config_path: Optional[Path] = None
    library_root: Optional[Path] = None
    quiet: bool = False
    quiet_explicit: bool = False

    def manager(self) -> ConfigManager:
        return ConfigManager(self.config_path)

    def load(self) -> PruneConfig:
        overrides: dict[str, Any] = {}
        if self.library_root is not None:
            overrides["library.root"] = str(self.library_root)
        config = self.manager().load(cli_overrides=overrides)
        _configure_logging(config.logging)
        if not self.quiet_explicit:
            self.quiet = config.cli.quiet_default
        return config


def _configure_logging(settings: LoggingSettings) -> None:
    """Route library logging to stderr and, optionally, a rotating log file."""
    root = logging.getLogger()
    for handler in _INSTALLED_HANDLERS:
        root.removeHandler(handler)
        handler.close()
    _INSTALLED_HANDLERS.clear()

    _INSTALLED_HANDLERS.append(
        RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    )
    if settings.file:
        log_path = Path(settings.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        _INSTALLED_HANDLERS.append(file_handler)

    for handler in _INSTALLED_HANDLERS:
        root.addHandler(handler)
    root.setLevel(settings.level)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For text output.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    raise click.ClickException(message) from original


@contextmanager
def _cli_errors(*, json_output: bool = False) -> Iterator[None]:
    try:
        yield
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except DecisionStoreError as exc:
        _handle_cli_error(str(exc), code="decision_error", json_output=json_output, original=exc)
    except AuthorizationError as exc:
        _handle_cli_error(
            f"Photo library is not accessible: {exc}",
            code="authorization_error",
            json_output=json_output,
            original=exc,
        )
    except LibraryError as exc:
        _handle_cli_error(str(exc), code="library_error", json_output=json_output, original=exc)


def _emit(state: CLIState, message: Any) -> None:
    if not state.quiet:
        console.print(message)


def _library_root(config: PruneConfig) -> Path:
    return Path(config.library.root).expanduser() if config.library.root else Path.cwd()


def _decision_path(config: PruneConfig) -> Path:
    if config.decisions.path:
        return Path(config.decisions.path).expanduser()
    return _library_root(config) / config.library.state_dirname / DECISIONS_FILENAME


def _open_store(config: PruneConfig) -> DecisionStore:
    return DecisionStore(DecisionRepository(_decision_path(config)))


def _open_library(config: PruneConfig) -> FolderPhotoLibrary:
    return FolderPhotoLibrary(
        _library_root(config),
        state_dirname=config.library.state_dirname,
        use_file_times=config.library.use_file_times,
        recents_days=config.library.recents_days,
        debounce_seconds=config.library.watch_debounce_seconds,
        follow_symlinks=config.library.follow_symlinks,
    )


@contextmanager
def _open_controller(
    config: PruneConfig, *, prune_after_rebuild: Optional[bool] = None
) -> Iterator[ReconciliationController]:
    """Start a controller over the configured folder library and wait for its index."""
    library = _open_library(config)
    controller = ReconciliationController(
        library,
        _open_store(config),
        worker_threads=config.reconcile.worker_threads,
        prune_after_rebuild=(
            config.reconcile.prune_after_rebuild
            if prune_after_rebuild is None
            else prune_after_rebuild
        ),
    )
    try:
        controller.start()
        controller.wait_until_idle()
        yield controller
    finally:
        try:
            controller.stop()
        finally:
            library.close()


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _format_taken(photo: PhotoRef) -> str:
    if photo.creation_timestamp is None:
        return "unknown"
    return photo.creation_timestamp.strftime("%Y-%m-%d %H:%M")


def _album_payload(controller: ReconciliationController, album: AlbumRef) -> dict[str, Any]:
    photos = controller.photos_for(album.id)
    return {
        "id": album.id,
        "title": album.title,
        "kind": album.kind.value,
        "photos": len(photos),
        "unreviewed": controller.unreviewed_count(album.id),
    }


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="prune")
@click.option(
    "--library",
    "library_root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Photo library directory (overrides library.root).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file to use instead of ~/.prune/config.yaml.",
)
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def cli(
    ctx: click.Context,
    library_root: Optional[Path],
    config_path: Optional[Path],
    quiet: bool,
) -> None:
    """Prune helps you review your photo library one month at a time."""
    ctx.obj = CLIState(
        config_path=config_path,
        library_root=library_root,
        quiet=quiet,
        quiet_explicit=ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE,
    )


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(["all", *_KIND_CHOICES]),
    default="all",
    show_default=True,
    help="Which albums to list.",
)
@click.option("--hide-reviewed", is_flag=True, help="Skip albums with nothing left to review.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of a table.")
@click.pass_obj
def albums(state: CLIState, kind: str, hide_reviewed: bool, json_output: bool) -> None:
    """List month buckets, system collections, and user albums."""
    kinds = list(_KIND_CHOICES.values()) if kind == "all" else [_KIND_CHOICES[kind]]
    with _cli_errors(json_output=json_output):
        config = state.load()
        with _open_controller(config) as controller:
            rows = [
                _album_payload(controller, album)
                for album_kind in kinds
                for album in controller.albums(album_kind, hide_reviewed=hide_reviewed)
            ]

    if json_output:
        console.print_json(data={"albums": rows})
        return
    if not rows:
        _emit(state, "[yellow]No albums found.[/yellow]")
        return

    table = Table(title="Albums")
    table.add_column("Kind", style="magenta")
    table.add_column("ID", style="cyan", overflow="fold")
    table.add_column("Title")
    table.add_column("Photos", justify="right")
    table.add_column("Unreviewed", justify="right")
    for row in rows:
        table.add_row(
            row["kind"], row["id"], row["title"], str(row["photos"]), str(row["unreviewed"])
        )
    _emit(state, table)


@cli.command()
@click.argument("album_id")
@click.option("--unreviewed", is_flag=True, help="Only list photos without a decision.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of a table.")
@click.pass_obj
def photos(state: CLIState, album_id: str, unreviewed: bool, json_output: bool) -> None:
    """List the photos in ALBUM_ID, newest first."""
    with _cli_errors(json_output=json_output):
        config = state.load()
        with _open_controller(config) as controller:
            if controller.index.album(album_id) is None:
                raise click.ClickException(f"Unknown album: {album_id}")
            listed = (
                controller.unreviewed_photos(album_id)
                if unreviewed
                else controller.photos_for(album_id)
            )
            rows = [
                {
                    "id": photo.id,
                    "taken": (
                        photo.creation_timestamp.isoformat() if photo.creation_timestamp else None
                    ),
                    "state": controller.state_of(photo.id).value,
                    "favorite": photo.favorite,
                    "size": controller.file_size(photo.id),
                }
                for photo in listed
            ]
            taken = {photo.id: _format_taken(photo) for photo in listed}

    if json_output:
        console.print_json(data={"album": album_id, "photos": rows})
        return

    table = Table(title=f"Photos in {album_id}")
    table.add_column("ID", style="cyan", overflow="fold")
    table.add_column("Taken")
    table.add_column("State")
    table.add_column("Fav", justify="center")
    table.add_column("Size", justify="right")
    for row in rows:
        table.add_row(
            row["id"],
            taken[row["id"]],
            row["state"],
            "*" if row["favorite"] else "",
            _format_size(row["size"]),
        )
    _emit(state, table)


def _record_decisions(state: CLIState, photo_ids: tuple[str, ...], decision: DecisionState) -> None:
    with _cli_errors():
        store = _open_store(state.load())
        changed = sum(1 for photo_id in photo_ids if store.decide(photo_id, decision))
    verb = "Kept" if decision is DecisionState.ARCHIVED else "Trashed"
    _emit(state, f"[green]{verb} {changed} photo(s); {len(photo_ids) - changed} unchanged.[/green]")


@cli.command()
@click.argument("photo_ids", nargs=-1, required=True)
@click.pass_obj
def keep(state: CLIState, photo_ids: tuple[str, ...]) -> None:
    """Archive PHOTO_IDS so they drop out of the review queue."""
    _record_decisions(state, photo_ids, DecisionState.ARCHIVED)


@cli.command()
@click.argument("photo_ids", nargs=-1, required=True)
@click.pass_obj
def delete(state: CLIState, photo_ids: tuple[str, ...]) -> None:
    """Move PHOTO_IDS to the Prune trash (nothing is deleted until empty-trash)."""
    _record_decisions(state, photo_ids, DecisionState.TRASHED)


@cli.command()
@click.argument("photo_ids", nargs=-1, required=True)
@click.pass_obj
def clear(state: CLIState, photo_ids: tuple[str, ...]) -> None:
    """Forget the decisions for PHOTO_IDS."""
    with _cli_errors():
        store = _open_store(state.load())
        cleared = sum(1 for photo_id in photo_ids if store.clear(photo_id))
    _emit(state, f"[green]Cleared {cleared} decision(s).[/green]")


@cli.command()
@click.option(
    "--from",
    "from_state",
    type=click.Choice([state.value for state in DecisionState]),
    required=True,
    help="Restore every photo currently in this state.",
)
@click.pass_obj
def restore(state: CLIState, from_state: str) -> None:
    """Return every archived or trashed photo to the review queue."""
    with _cli_errors():
        store = _open_store(state.load())
        restored = store.restore_all(from_state)
    _emit(state, f"[green]Restored {restored} {from_state} photo(s).[/green]")


@cli.command()
@click.argument("album_id")
@click.pass_obj
def unarchive(state: CLIState, album_id: str) -> None:
    """Clear archived decisions for every photo in ALBUM_ID."""
    with _cli_errors():
        config = state.load()
        with _open_controller(config) as controller:
            if controller.index.album(album_id) is None:
                raise click.ClickException(f"Unknown album: {album_id}")
            restored = controller.unarchive_album(album_id)
    _emit(state, f"[green]Unarchived {restored} photo(s) in {album_id}.[/green]")


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of text.")
@click.pass_obj
def status(state: CLIState, json_output: bool) -> None:
    """Summarize library access, albums, and review progress."""
    with _cli_errors(json_output=json_output):
        config = state.load()
        with _open_controller(config) as controller:
            index = controller.index
            payload = {
                "library": str(_library_root(config)),
                "authorization": controller.authorization_status.value,
                "albums": {
                    "months": len(index.month_albums),
                    "system": len(index.system_albums),
                    "user": len(index.user_albums),
                },
                "decisions": controller.decisions.counts(),
                "decision_file": str(controller.decisions.repository.path),
            }

    if json_output:
        console.print_json(data=payload)
        return

    table = Table(title="Prune status", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Library", payload["library"])
    table.add_row("Access", payload["authorization"])
    albums_row = payload["albums"]
    table.add_row(
        "Albums",
        f"{albums_row['months']} months, {albums_row['system']} system, {albums_row['user']} user",
    )
    for name, count in payload["decisions"].items():
        table.add_row(name.capitalize(), str(count))
    table.add_row("Decision file", payload["decision_file"])
    _emit(state, table)


@cli.command()
@click.pass_obj
def reconcile(state: CLIState) -> None:
    """Drop decisions for photos that no longer exist in the library."""
    with _cli_errors():
        config = state.load()
        with _open_controller(config, prune_after_rebuild=False) as controller:
            pruned = controller.reconcile_decisions()
    _emit(state, f"[green]Pruned {pruned} orphaned decision(s).[/green]")


@cli.command("empty-trash")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def empty_trash(state: CLIState, yes: bool) -> None:
    """Delete every trashed photo from the library."""
    with _cli_errors():
        config = state.load()
        store = _open_store(config)
        pending = len(store.photo_ids(DecisionState.TRASHED))
        if pending == 0:
            _emit(state, "[yellow]Trash is empty.[/yellow]")
            return
        if not yes and not click.confirm(f"Delete {pending} trashed photo(s)?", default=False):
            _emit(state, "[yellow]Empty trash cancelled.[/yellow]")
            return
        with _open_controller(config) as controller:
            result = controller.empty_trash()

    if not result.success:
        raise click.ClickException(result.error or "Emptying the trash failed.")
    _emit(state, f"[green]Deleted {len(result.deleted)} photo(s).[/green]")


@cli.command()
@click.argument("photo_id")
@click.pass_obj
def favorite(state: CLIState, photo_id: str) -> None:
    """Toggle the favorite flag of PHOTO_ID."""
    with _cli_errors():
        config = state.load()
        with _open_controller(config) as controller:
            if not controller.toggle_favorite(photo_id):
                raise click.ClickException(f"Unable to toggle favorite for {photo_id}.")
            refreshed = controller.resolve([photo_id]).photos
    flag = refreshed[0].favorite if refreshed else False
    _emit(state, f"[green]{photo_id} is {'now' if flag else 'no longer'} a favorite.[/green]")


def _render_image(
    facade: ImageDeliveryFacade, photo_id: str, *, full: bool, timeout: float
) -> Optional[ImageResult]:
    """Block until the facade delivers a final result for ``photo_id``."""
    received: list[ImageResult] = []
    done = threading.Event()

    def handler(result: ImageResult) -> None:
        received.append(result)
        if result.is_final:
            done.set()

    if full:
        facade.request_high_quality(photo_id, handler)
    else:
        facade.request_thumbnail(photo_id, None, handler)
    if not done.wait(timeout):
        return None
    return received[-1]


@cli.command()
@click.argument("photo_id")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Image file to write; the format follows the file extension.",
)
@click.option(
    "--full", is_flag=True, help="Render at images.high_quality_size instead of a thumbnail."
)
@click.option(
    "--timeout", type=float, default=30.0, show_default=True, help="Seconds to wait for the image."
)
@click.pass_obj
def thumbnail(state: CLIState, photo_id: str, output: Path, full: bool, timeout: float) -> None:
    """Render PHOTO_ID to OUTPUT at the configured thumbnail or full-screen size."""
    with _cli_errors():
        config = state.load()
        library = _open_library(config)
        try:
            facade = ImageDeliveryFacade(
                library,
                thumbnail_size=config.images.thumbnail_box,
                high_quality_size=config.images.high_quality_box,
            )
            result = _render_image(facade, photo_id, full=full, timeout=timeout)
        finally:
            library.close()

    if result is None:
        raise click.ClickException(f"Timed out waiting for {photo_id}.")
    if result.error is not None or result.image is None:
        raise click.ClickException(result.error or f"No image data returned for {photo_id}.")
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        result.image.save(output)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Unable to write {output}: {exc}") from exc
    width, height = result.image.size
    _emit(state, f"[green]Wrote {width}x{height} image to {output}.[/green]")


@cli.command()
@click.option(
    "--interval",
    type=float,
    default=1.0,
    show_default=True,
    help="Seconds between checks for finished rebuilds; watchdog drives the rebuilds.",
)
@click.pass_obj
def watch(state: CLIState, interval: float) -> None:
    """Keep the index current while the library changes on disk."""
    if interval <= 0:
        raise click.ClickException("--interval must be greater than zero.")
    with _cli_errors():
        config = state.load()
        with _open_controller(config) as controller:
            _emit(
                state,
                f"[cyan]Watching {_library_root(config)}. Press Ctrl+C to stop.[/cyan]",
            )
            seen = controller.rebuild_count
            try:
                while True:
                    time.sleep(interval)
                    if controller.rebuild_count == seen or not controller.wait_until_idle(0):
                        continue
                    seen = controller.rebuild_count
                    index = controller.index
                    counts = controller.decisions.counts()
                    _emit(
                        state,
                        f"[green]Index rebuilt: {len(index.month_albums)} month(s), "
                        f"{len(index.system_albums) + len(index.user_albums)} collection(s); "
                        f"{counts[ReviewState.ARCHIVED.value]} kept, "
                        f"{counts[ReviewState.TRASHED.value]} trashed.[/green]",
                    )
            except KeyboardInterrupt:
                _emit(state, "[yellow]Watch stopped by user request.[/yellow]")


@cli.group()
def config() -> None:
    """Manage Prune configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
@click.pass_obj
def config_view(state: CLIState, no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    try:
        effective = state.manager().load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal to assign to KEY.")
@click.pass_obj
def config_set(state: CLIState, key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        state.manager().set_value(key, parsed_value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Updated {key}.[/green]")


@config.command("path")
@click.pass_obj
def config_path(state: CLIState) -> None:
    """Print the location of the configuration file."""
    click.echo(str(state.manager().config_path))


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
