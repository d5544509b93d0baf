"""
Error types and error logging for git-ephemera.

Every failure the core can report is an EphemeraError subclass, so the CLI
can show a clean one-line message. Unexpected exceptions are logged with a
full traceback to a file instead.
"""

import os
import traceback
from pathlib import Path
from typing import Optional

from .types import utc_now


class EphemeraError(Exception):
    """Base class for all errors reported to the user."""


class InvalidSelection(EphemeraError):
    """No files matched, or a selection escapes the repository root."""


class MissingRequiredPath(InvalidSelection):
    """Strict mode: a named pattern matched nothing."""

    def __init__(self, pattern: str):
        super().__init__(f"Path not found: {pattern}")
        self.pattern = pattern


class MalformedDocument(EphemeraError):
    """A note or its payload could not be parsed."""


class SchemaMismatch(EphemeraError):
    """A note was written with an unsupported version or encoding."""


class DestinationConflict(EphemeraError):
    """Restore would overwrite an existing file."""

    def __init__(self, path: str):
        super().__init__(f"Refusing to overwrite existing file: {path} (use --force)")
        self.path = path


class UnsafeArchiveMember(EphemeraError):
    """An archive member would be written outside the destination."""

    def __init__(self, member: str, reason: str = "unsafe path"):
        super().__init__(f"Unsafe archive member {member!r}: {reason}")
        self.member = member


class NotFound(EphemeraError):
    """No note exists for the requested commit."""


class NoteExists(EphemeraError):
    """A note already exists and overwrite was not requested."""


class GitError(EphemeraError):
    """A git plumbing command failed."""

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class NotARepository(GitError):
    """The working directory is not inside a git repository."""


ERROR_LOG_NAME = "ephemera-errors.log"


def _error_log_path() -> Path:
    """$EPHEMERA_LOG_DIR/ephemera-errors.log, else ~/.ephemera/ephemera-errors.log."""
    log_dir = os.environ.get("EPHEMERA_LOG_DIR")
    base = Path(log_dir) if log_dir else Path.home() / ".ephemera"
    return base / ERROR_LOG_NAME


def log_exception(exc: BaseException, context: Optional[str] = None) -> Path:
    """
    Append an exception and its traceback to the error log.

    The log is created owner-only (0600). Failing to write it is not an
    error: the CLI has already decided to report exc on stderr.

    Returns:
        Path of the error log (whether or not the write succeeded)
    """
    log_path = _error_log_path()
    label = f"{context} " if context else ""
    record = (
        f"\n[{utc_now()}] {label}{type(exc).__name__}: {exc}\n"
        + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(record)
    except OSError:
        pass  # The caller prints the error either way
    return log_path
