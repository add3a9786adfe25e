"""Command line interface for the Kiroku note archive."""

from __future__ import annotations

import difflib
import logging
import time
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from kiroku.archive import (
    ArchiveError,
    ArchiveIOError,
    Entry,
    EntryNotFound,
    InvalidName,
    NameCollision,
    NoteEntry,
)
from kiroku.config import (
    ConfigError,
    ConfigManager,
    KirokuConfig,
    LoggingSettings,
)
from kiroku.index import IndexSnapshot, NoteIndex
from kiroku.search import SearchHit, SearchMode, preview
from kiroku.session import Session
from kiroku.sorting import SortMode
from kiroku.sync import GitRepository, SyncController, SyncOutcome, SyncReport

console = Console()
LOGGER = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_ERROR_CODES: list[tuple[type[ArchiveError], str]] = [
    (NameCollision, "name_collision"),
    (EntryNotFound, "not_found"),
    (InvalidName, "invalid_name"),
    (ArchiveIOError, "io_error"),
]


@dataclass
class _CliState:
    root: Optional[Path]
    verbose: bool


@dataclass
class _App:
    """Configuration and index resolved for a command."""

    manager: ConfigManager
    config: KirokuConfig
    root: Path
    index: NoteIndex


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> NoReturn:
    """Report a failed command and exit with status 1.

    In JSON mode the error is printed as ``{"error": {"code", "message"}}`` on
    stdout; otherwise it is raised as a :class:`click.ClickException` chained
    to ``original``.

    Args:
        message: Text shown to the user.
        code: Stable identifier for scripts, e.g. ``name_collision``.
        json_output: Whether the command was invoked with ``--json``.
        original: Exception that caused the failure.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    if isinstance(original, click.ClickException):
        raise original
    raise click.ClickException(message) from original


def _handle_archive_error(exc: ArchiveError, *, json_output: bool) -> NoReturn:
    code = "archive_error"
    for error_type, error_code in _ERROR_CODES:
        if isinstance(exc, error_type):
            code = error_code
            break
    _handle_cli_error(str(exc), code=code, json_output=json_output, original=exc)


def _emit_message(message: Any, *, json_output: bool = False) -> None:
    """Print a status line; JSON mode keeps stdout to the structured payloads."""
    if json_output:
        return
    console.print(message)


def _configure_logging(settings: LoggingSettings, *, verbose: bool) -> None:
    """Attach file (and, when verbose, console) handlers to the ``kiroku`` logger."""
    logger = logging.getLogger("kiroku")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if verbose else logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logger.setLevel(level)
    logger.propagate = False

    log_path = Path(settings.file).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
            backupCount=max(0, settings.backup_count),
            encoding="utf-8",
        )
    except OSError as exc:
        console.print(f"[yellow]Logging to {log_path} disabled: {exc}[/yellow]")
    else:
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(file_handler)

    if verbose:
        logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        )


def _load_app(ctx: click.Context, *, json_output: bool = False) -> _App:
    """Load configuration, set up logging, and build the index for a command."""
    state: _CliState = ctx.find_object(_CliState) or _CliState(root=None, verbose=False)
    manager = ConfigManager()
    try:
        config = manager.load()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    _configure_logging(config.logging, verbose=state.verbose)

    root = (state.root or Path(config.archive.root)).expanduser()
    try:
        if not root.exists():
            LOGGER.info("Creating archive root %s", root)
        root.mkdir(parents=True, exist_ok=True)
        index = NoteIndex.load(root, config)
    except OSError as exc:
        _handle_cli_error(
            f"Unable to open archive at {root}: {exc}",
            code="io_error",
            json_output=json_output,
            original=exc,
        )
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=json_output)
    for skipped in index.skipped:
        LOGGER.warning("Skipped %s: %s", skipped.path, skipped.reason)
    return _App(manager=manager, config=config, root=index.root, index=index)


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return ""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024 or unit == "MB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} MB"


def _render_snapshot(snapshot: IndexSnapshot, theme: dict[str, str]) -> Table:
    title = snapshot.folder if snapshot.folder != "." else snapshot.root
    caption = f"sort: {snapshot.sort_mode.value}"
    if snapshot.sync is not None:
        caption += f" | sync: {snapshot.sync.message or snapshot.sync.phase}"
    table = Table(title=title, caption=caption, header_style=f"bold {theme['header']}")
    table.add_column("Name")
    table.add_column("Modified", style=theme["dim"])
    table.add_column("Size", justify="right", style=theme["dim"])
    table.add_column("Tags", style=theme["accent"])
    for entry in snapshot.entries:
        if entry.kind == "folder":
            table.add_row(Text(f"{entry.title}/", style=f"bold {theme['accent']}"), "", "", "")
            continue
        modified = entry.modified.astimezone().strftime("%Y-%m-%d %H:%M") if entry.modified else ""
        table.add_row(entry.title, modified, _format_size(entry.size), ", ".join(entry.tags))
    return table


def _highlight_title(hit: SearchHit, theme: dict[str, str]) -> Text:
    text = Text(hit.note.title)
    for position in hit.matched:
        if isinstance(position, int):
            text.stylize(f"bold {theme['bold']}", position, position + 1)
    return text


def _hit_detail(index: NoteIndex, hit: SearchHit, mode: SearchMode) -> str:
    if mode is SearchMode.TITLE:
        return str(hit.score)
    if mode is SearchMode.TAG:
        tag = hit.matched[0] if hit.matched else ""
        return f"#{tag}" + (" (exact)" if hit.exact else "")
    if hit.position is None:
        return ""
    try:
        return preview(index.read_body(hit.note.path), hit.position, width=60)
    except ArchiveError as exc:
        LOGGER.debug("No preview for %s: %s", hit.note.path, exc)
        return ""


def _hit_payload(hit: SearchHit) -> dict[str, Any]:
    note = hit.note
    return {
        "title": note.title,
        "relative_path": note.relative_path,
        "modified": note.modified.isoformat(),
        "size": note.size,
        "tags": list(note.tags),
        "score": hit.score,
        "position": hit.position,
        "exact": hit.exact,
    }


def _note_payload(note: NoteEntry) -> dict[str, Any]:
    return {
        "title": note.title,
        "relative_path": note.relative_path,
        "path": str(note.path),
        "tags": list(note.tags),
    }


def _lookup(index: NoteIndex, name: str) -> Optional[Entry]:
    """Find an entry by relative path, also trying the note suffixes."""
    entry = index.get(name)
    if entry is not None:
        return entry
    for suffix in index.config.archive.extensions:
        entry = index.get(f"{name}{suffix}")
        if entry is not None:
            return entry
    return None


def _open_editor(path: Path, config: KirokuConfig) -> None:
    click.edit(filename=str(path), editor=config.editor_cmd)


def _emit_sync_report(report: SyncReport, *, json_output: bool) -> None:
    if json_output:
        console.print_json(data={"sync": report.to_dict()})
        return
    if report.failed:
        console.print(f"[red]Sync failed ({report.phase.value}): {report.message}[/red]")
    elif report.outcome is SyncOutcome.SKIPPED:
        console.print(f"[yellow]{report.message}[/yellow]")
    else:
        console.print(f"[green]{report.message}[/green]")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="kiroku")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Archive root (defaults to archive.root from the configuration).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, root: Optional[Path], verbose: bool) -> None:
    """Kiroku keeps a folder of markdown notes searchable and synced with git."""
    ctx.obj = _CliState(root=root, verbose=verbose)


@cli.command("ls")
@click.argument("folder", required=False)
@click.option(
    "--sort",
    "sort_mode",
    type=click.Choice([mode.value for mode in SortMode]),
    help="Order notes by date, name, or size.",
)
@click.option("--save-sort", is_flag=True, help="Remember the sort order in the configuration.")
@click.option("--json", "json_output", is_flag=True, help="Emit the listing as JSON.")
@click.pass_context
def list_notes(
    ctx: click.Context,
    folder: Optional[str],
    sort_mode: Optional[str],
    save_sort: bool,
    json_output: bool,
) -> None:
    """List the notes and folders in FOLDER (the archive root by default)."""
    app = _load_app(ctx, json_output=json_output)
    index = app.index
    try:
        if folder:
            index.enter(folder)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=json_output)
        return

    if sort_mode:
        index.set_sort_mode(SortMode(sort_mode))
    if save_sort:
        try:
            app.manager.update("sort_mode", index.sort_mode.value)
        except ConfigError as exc:
            _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        LOGGER.info("Saved sort mode %s", index.sort_mode.value)

    snapshot = index.snapshot()
    if json_output:
        console.print_json(data=snapshot.model_dump(mode="json"))
        return
    if not snapshot.entries:
        console.print("[yellow]No notes here yet.[/yellow]")
        return
    console.print(_render_snapshot(snapshot, app.config.theme))


@cli.command()
@click.argument("query")
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in SearchMode]),
    default=SearchMode.TITLE.value,
    show_default=True,
    help="Match against titles (fuzzy), note content, or tags.",
)
@click.option("--limit", type=click.IntRange(min=1), help="Show at most this many results.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def search(
    ctx: click.Context, query: str, mode: str, limit: Optional[int], json_output: bool
) -> None:
    """Search every note in the archive for QUERY."""
    app = _load_app(ctx, json_output=json_output)
    search_mode = SearchMode(mode)
    hits = app.index.search(search_mode, query)
    if limit is not None:
        hits = hits[:limit]

    if json_output:
        console.print_json(
            data={
                "query": query,
                "mode": search_mode.value,
                "results": [_hit_payload(hit) for hit in hits],
            }
        )
        return
    if not hits:
        console.print(f"[yellow]No notes match '{query}'.[/yellow]")
        return

    theme = app.config.theme
    table = Table(
        title=f"{len(hits)} result(s) for '{query}' ({search_mode.value})",
        header_style=f"bold {theme['header']}",
    )
    table.add_column("Title")
    table.add_column("Path", style=theme["dim"])
    table.add_column("Match", style=theme["accent"])
    for hit in hits:
        table.add_row(
            _highlight_title(hit, theme),
            hit.note.relative_path,
            _hit_detail(app.index, hit, search_mode),
        )
    console.print(table)


@cli.command()
@click.argument("note")
@click.option("--raw", is_flag=True, help="Print the body without markdown rendering.")
@click.pass_context
def show(ctx: click.Context, note: str, raw: bool) -> None:
    """Print the body of NOTE."""
    app = _load_app(ctx)
    entry = _lookup(app.index, note)
    if not isinstance(entry, NoteEntry):
        _handle_archive_error(EntryNotFound(f"No note at {note}"), json_output=False)
    try:
        body = app.index.read_body(entry.path)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=False)
    if raw:
        click.echo(body, nl=False)
        return
    theme = app.config.theme
    console.print(Rule(entry.title, style=theme["header"]))
    if entry.tags:
        console.print(Text(", ".join(f"#{tag}" for tag in entry.tags), style=theme["accent"]))
    console.print(Markdown(body))


@cli.command()
@click.argument("name")
@click.option("--folder", help="Folder to create the note in (relative to the archive root).")
@click.option("--edit/--no-edit", default=True, show_default=True, help="Open the note in the editor.")
@click.option("--json", "json_output", is_flag=True, help="Emit the created note as JSON.")
@click.pass_context
def new(ctx: click.Context, name: str, folder: Optional[str], edit: bool, json_output: bool) -> None:
    """Create a note called NAME; slashes in NAME create sub-folders."""
    app = _load_app(ctx, json_output=json_output)
    try:
        note = app.index.create_note(folder or ".", name)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=json_output)
        return
    if json_output:
        console.print_json(data={"created": _note_payload(note)})
    else:
        console.print(f"[green]Created {note.relative_path}.[/green]")
    if edit:
        _open_editor(note.path, app.config)


@cli.command()
@click.argument("name")
@click.option("--parent", help="Folder to create the new folder in.")
@click.pass_context
def mkdir(ctx: click.Context, name: str, parent: Optional[str]) -> None:
    """Create a folder called NAME."""
    app = _load_app(ctx)
    try:
        folder = app.index.create_folder(parent or ".", name)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=False)
        return
    console.print(f"[green]Created folder {folder.relative_path}/.[/green]")


@cli.command()
@click.argument("path")
@click.argument("new_name")
@click.pass_context
def mv(ctx: click.Context, path: str, new_name: str) -> None:
    """Rename PATH to NEW_NAME (relative to its folder; '..' moves up)."""
    app = _load_app(ctx)
    try:
        entry = _lookup(app.index, path)
        target = app.index.rename(entry.path if entry is not None else path, new_name)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=False)
        return
    console.print(f"[green]Renamed {path} to {target.relative_to(app.root).as_posix()}.[/green]")


@cli.command()
@click.argument("path")
@click.option("--yes", is_flag=True, help="Delete without asking for confirmation.")
@click.pass_context
def rm(ctx: click.Context, path: str, yes: bool) -> None:
    """Delete the note or folder at PATH."""
    app = _load_app(ctx)
    entry = _lookup(app.index, path)
    if entry is None:
        _handle_archive_error(EntryNotFound(f"Nothing tracked at {path}"), json_output=False)
        return
    kind = "note" if isinstance(entry, NoteEntry) else "folder and everything in it"
    if not yes and not click.confirm(f"Delete {kind} {entry.relative_path}?", default=False):
        console.print("[yellow]Nothing deleted.[/yellow]")
        return
    try:
        removed = app.index.delete(entry.path)
    except ArchiveError as exc:
        _handle_archive_error(exc, json_output=False)
        return
    console.print(f"[green]Deleted {entry.relative_path} ({len(removed)} note(s)).[/green]")


@cli.command()
@click.argument("note")
@click.pass_context
def edit(ctx: click.Context, note: str) -> None:
    """Open NOTE in the configured editor."""
    app = _load_app(ctx)
    entry = _lookup(app.index, note)
    if not isinstance(entry, NoteEntry):
        _handle_archive_error(EntryNotFound(f"No note at {note}"), json_output=False)
        return
    _open_editor(entry.path, app.config)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit the sync report as JSON.")
@click.pass_context
def sync(ctx: click.Context, json_output: bool) -> None:
    """Commit and push archive changes when there are any."""
    app = _load_app(ctx, json_output=json_output)
    controller = SyncController(GitRepository(app.root, app.config.sync), app.config.sync)
    report = controller.run()
    _emit_sync_report(report, json_output=json_output)
    if report.failed:
        raise SystemExit(1)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit refresh summaries as JSON lines.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    help="Stop after this many seconds instead of waiting for Ctrl+C.",
)
@click.pass_context
def watch(ctx: click.Context, json_output: bool, timeout: Optional[float]) -> None:
    """Keep the index in step with the archive until interrupted."""
    app = _load_app(ctx, json_output=json_output)
    git = GitRepository(app.root, app.config.sync)
    session = Session(app.index, git if git.is_repository() else None, config=app.config)
    deadline = time.monotonic() + timeout if timeout is not None else None

    _emit_message(
        f"[cyan]Watching {app.root}. Press Ctrl+C to stop.[/cyan]", json_output=json_output
    )
    session.start_watching()
    try:
        while deadline is None or time.monotonic() < deadline:
            processed = session.process_next(timeout=0.5)
            if processed is None or not processed.stats.changed:
                continue
            stats = processed.stats
            if json_output:
                console.print_json(
                    data={
                        "refresh": {
                            "added": stats.added,
                            "removed": stats.removed,
                            "updated": stats.updated,
                            "notes": len(app.index.tree),
                        }
                    }
                )
            else:
                _emit_message(
                    f"[green]Refreshed: {stats.added} added, {stats.removed} removed, "
                    f"{stats.updated} updated ({len(app.index.tree)} notes).[/green]"
                )
    except KeyboardInterrupt:
        _emit_message("[yellow]Watch stopped by user request.[/yellow]", json_output=json_output)
    finally:
        report = session.shutdown()
    if report is not None:
        _emit_sync_report(report, json_output=json_output)


@cli.group()
def config() -> None:
    """Manage Kiroku configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="json"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        manager.update(key, parsed_value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    # The timestamp line always changes; only report real edits.
    meaningful = [
        line
        for line in diff
        if line.startswith(("+", "-")) and not line[1:].startswith(("# Last updated", "++", "--"))
    ]
    if not meaningful:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {key.strip()}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session."""
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")
    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        manager.save_text(edited)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
