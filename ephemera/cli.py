"""
CLI interface for git-ephemera.

Usage:
    git ephemera add PRD.md PLAN.md .ai/
    git ephemera restore --dest /tmp/out
    git ephemera show --commit HEAD~1
    git ephemera record-rewrite < pairs.txt
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .api import Ephemera
from .config import EphemeraConfig, load_config, resolve_config, save_config
from .errors import EphemeraError
from .git import GitRepository
from .hooks import install_hooks as _install_hooks
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode


# Configure quiet mode by default; EPHEMERA_VERBOSE=1 enables debug output
if os.environ.get("EPHEMERA_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        print(f"git-ephemera {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_namespace_override: Optional[str] = None


def _get_namespace_override() -> Optional[str]:
    return _namespace_override


app = typer.Typer(
    name="git-ephemera",
    help="Attach files to commits with git notes, and get them back after rebase.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    namespace: Annotated[Optional[str], typer.Option(
        "--namespace", "-N",
        help="Notes namespace (refs/notes/<namespace>; default from config, then 'ephemera')",
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Attach files to commits with git notes, and get them back after rebase."""
    global _namespace_override
    _namespace_override = namespace


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

CommitOption = Annotated[
    str,
    typer.Option(
        "--commit", "-c",
        help="Commit (any revision git understands)",
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

@contextmanager
def _user_errors() -> Iterator[None]:
    """Turn expected failures into 'Error: ...' on stderr and exit code 1."""
    try:
        yield
    except (EphemeraError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _open_repo() -> GitRepository:
    with _user_errors():
        repo = GitRepository()
    try:
        configure_ops_log(repo.git_dir)
    except OSError:
        pass  # Read-only git dir: run without the ops log
    return repo


def _get_ephemera(repo: GitRepository) -> tuple[Ephemera, EphemeraConfig]:
    with _user_errors():
        config = resolve_config(repo.git_dir, _get_namespace_override())
        return Ephemera(repo, repo.toplevel, config.namespace), config


def _root_relative(pattern: str, root: Path) -> str:
    """Interpret a command-line path relative to the current directory."""
    if os.path.isabs(pattern):
        return pattern
    prefix = os.path.relpath(os.path.realpath(os.getcwd()), os.path.realpath(root))
    if prefix == ".":
        return pattern
    return os.path.join(prefix, pattern)


def _info(msg: str) -> None:
    """Progress to stderr, keeping stdout for data."""
    typer.echo(msg, err=True)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    paths: Annotated[Optional[list[str]], typer.Argument(
        help="Files, directories or glob patterns (quote globs)",
        show_default=False,
    )] = None,
    commit: CommitOption = "HEAD",
    message: Annotated[Optional[str], typer.Option(
        "--message", "-m",
        help="Annotation stored with the note",
    )] = None,
    strict: Annotated[Optional[bool], typer.Option(
        "--strict/--no-strict",
        help="Fail if any path matches nothing (default from config)",
        show_default=False,
    )] = None,
):
    """Archive files into the note for a commit (additive)."""
    if not paths:
        typer.echo("Error: Specify at least one path", err=True)
        raise typer.Exit(1)

    repo = _open_repo()
    eph, config = _get_ephemera(repo)
    patterns = [_root_relative(p, repo.toplevel) for p in paths]
    with _user_errors():
        doc = eph.add(
            patterns,
            rev=commit,
            message=message,
            strict=config.strict if strict is None else strict,
        )

    _info(f"Saved {len(doc.paths)} path(s) to {eph.namespace} note on {commit}")
    for path in doc.paths:
        typer.echo(path)


app.command("save", hidden=True, help="Alias for add.")(add)


@app.command()
def restore(
    commit: CommitOption = "HEAD",
    dest: Annotated[Optional[Path], typer.Option(
        "--dest", "-d",
        help="Directory to restore into (default: repository root)",
    )] = None,
    force: Annotated[bool, typer.Option(
        "--force", "-f",
        help="Overwrite existing files",
    )] = False,
    dry_run: Annotated[bool, typer.Option(
        "--dry-run", "-n",
        help="List files without writing anything",
    )] = False,
):
    """Restore the files archived in a commit's note."""
    repo = _open_repo()
    eph, _ = _get_ephemera(repo)
    with _user_errors():
        restored = eph.restore(commit, dest, overwrite=force, dry_run=dry_run)

    target = dest if dest is not None else repo.toplevel
    if dry_run:
        _info(f"Would restore {len(restored)} file(s) into {target}")
    else:
        _info(f"Restored {len(restored)} file(s) into {target}")
    for path in restored:
        typer.echo(path)


@app.command()
def show(
    commit: CommitOption = "HEAD",
    payload: Annotated[bool, typer.Option(
        "--payload",
        help="Print only the base64 payload",
    )] = False,
):
    """Print the note header (or only its payload)."""
    repo = _open_repo()
    eph, _ = _get_ephemera(repo)
    with _user_errors():
        text = eph.show_payload(commit) if payload else eph.show_header(commit)
    typer.echo(text, nl=False)


@app.command("list")
def list_paths(
    commit: CommitOption = "HEAD",
):
    """List the paths archived in a commit's note."""
    repo = _open_repo()
    eph, _ = _get_ephemera(repo)
    with _user_errors():
        paths = eph.list_paths(commit)
    for path in paths:
        typer.echo(path)


@app.command("record-rewrite")
def record_rewrite():
    """Read '<old> <new>' lines on stdin and record them in note history.

    Installed as git's post-rewrite hook by install-hooks.
    """
    repo = _open_repo()
    eph, _ = _get_ephemera(repo)
    stdin = typer.get_text_stream("stdin")
    with _user_errors():
        result = eph.record_rewrites(stdin)
    _info(
        f"Recorded {result.annotated} rewrite(s) "
        f"({result.unchanged} already recorded, {result.missing} without note"
        + (f", {result.skipped} malformed line(s)" if result.skipped else "")
        + ")"
    )


@app.command()
def push(
    remote: Annotated[Optional[str], typer.Argument(help="Remote (default from config)")] = None,
):
    """Push the notes ref to a remote."""
    repo = _open_repo()
    eph, config = _get_ephemera(repo)
    remote = remote or config.remote
    with _user_errors():
        repo.push_notes(remote, eph.namespace)
    _info(f"Pushed refs/notes/{eph.namespace} to {remote}")


@app.command()
def fetch(
    remote: Annotated[Optional[str], typer.Argument(help="Remote (default from config)")] = None,
):
    """Fetch the notes ref from a remote."""
    repo = _open_repo()
    eph, config = _get_ephemera(repo)
    remote = remote or config.remote
    with _user_errors():
        repo.fetch_notes(remote, eph.namespace)
    _info(f"Fetched refs/notes/{eph.namespace} from {remote}")


@app.command("setup-remote")
def setup_remote(
    remote: Annotated[Optional[str], typer.Argument(help="Remote (default from config)")] = None,
):
    """Make 'git fetch <remote>' also fetch the notes ref."""
    repo = _open_repo()
    eph, config = _get_ephemera(repo)
    remote = remote or config.remote
    with _user_errors():
        added = repo.setup_remote(remote, eph.namespace)
    if added:
        _info(f"Configured {remote} to fetch refs/notes/{eph.namespace}")
    else:
        _info(f"{remote} already fetches refs/notes/{eph.namespace}")


@app.command("install-hooks")
def install_hooks(
    force: Annotated[bool, typer.Option(
        "--force", "-f",
        help="Replace an existing post-rewrite hook",
    )] = False,
):
    """Install the post-rewrite hook and have git carry notes across rewrites."""
    repo = _open_repo()
    eph, _ = _get_ephemera(repo)
    with _user_errors():
        hook_path = _install_hooks(repo.hooks_dir, eph.namespace, force=force)
        repo.ensure_rewrite_ref(eph.namespace)
    _info(f"Installed {hook_path}")


@app.command()
def config(
    namespace: Annotated[Optional[str], typer.Option(
        "--namespace",
        help="Default notes namespace",
    )] = None,
    remote: Annotated[Optional[str], typer.Option(
        "--remote",
        help="Default remote for push/fetch/setup-remote",
    )] = None,
    strict: Annotated[Optional[bool], typer.Option(
        "--strict/--no-strict",
        help="Default for add --strict",
        show_default=False,
    )] = None,
):
    """Show or update the repository configuration (ephemera.toml)."""
    repo = _open_repo()
    with _user_errors():
        cfg = load_config(repo.git_dir)
        if namespace is not None or remote is not None or strict is not None:
            if namespace is not None:
                cfg.namespace = namespace
            if remote is not None:
                cfg.remote = remote
            if strict is not None:
                cfg.strict = strict
            save_config(cfg)
            _info(f"Updated {cfg.config_path}")

    typer.echo(f"namespace = {cfg.namespace}")
    typer.echo(f"remote = {cfg.remote}")
    typer.echo(f"strict = {str(cfg.strict).lower()}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="git-ephemera CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
