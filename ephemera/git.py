"""
git plumbing: the note store and remote sync as single git calls.

GitRepository implements NoteStoreProtocol on top of ``git notes``:
notes for a namespace live under ``refs/notes/<namespace>``, one blob per
commit. Everything else (push, fetch, refspec and rewrite configuration)
is one git invocation each.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Union

from .errors import GitError, NoteExists, NotARepository
from .types import notes_ref

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 120


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Stable, untranslated messages so stderr can be matched
    env["LC_ALL"] = "C"
    return env


class GitRepository:
    """
    A working tree plus its git directory.

    All commands run from the top of the working tree, so paths printed by
    git are relative to it.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        start = Path(path) if path is not None else Path.cwd()
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=start,
                capture_output=True,
                text=True,
                env=_git_env(),
                timeout=GIT_TIMEOUT,
            )
        except FileNotFoundError:
            raise GitError("git executable not found on PATH")
        except NotADirectoryError:
            raise NotARepository(f"Not a directory: {start}")
        if result.returncode != 0 or not result.stdout.strip():
            raise NotARepository(f"Not a git repository: {start}")
        self.toplevel = Path(result.stdout.strip())

    # -------------------------------------------------------------------------
    # Low-level
    # -------------------------------------------------------------------------

    def run(
        self,
        *args: str,
        input: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command in the working tree."""
        cmd = ["git", *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=self.toplevel,
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                env=_git_env(),
                timeout=GIT_TIMEOUT,
            )
        except FileNotFoundError:
            raise GitError("git executable not found on PATH")
        except subprocess.TimeoutExpired:
            raise GitError(f"git {args[0]} timed out after {GIT_TIMEOUT}s")

        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise GitError(
                f"git {args[0]} failed (exit {result.returncode}): {stderr[:300]}",
                returncode=result.returncode,
                stderr=stderr,
            )
        return result

    def _path_from_git(self, output: str) -> Path:
        path = Path(output.strip())
        return path if path.is_absolute() else self.toplevel / path

    @property
    def git_dir(self) -> Path:
        """Absolute path of the git directory (.git, or the worktree's gitdir)."""
        return self._path_from_git(self.run("rev-parse", "--absolute-git-dir").stdout)

    @property
    def hooks_dir(self) -> Path:
        """Hooks directory, honouring core.hooksPath."""
        return self._path_from_git(self.run("rev-parse", "--git-path", "hooks").stdout)

    # -------------------------------------------------------------------------
    # Note store
    # -------------------------------------------------------------------------

    def resolve_commit(self, rev: str) -> str:
        """Full commit id for a revision expression."""
        result = self.run("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", check=False)
        commit = result.stdout.strip()
        if result.returncode != 0 or not commit:
            raise GitError(f"Unknown revision: {rev}", returncode=result.returncode)
        return commit

    def get(self, namespace: str, commit: str) -> Optional[str]:
        """Note text for commit, or None."""
        result = self.run("notes", "--ref", notes_ref(namespace), "show", commit, check=False)
        if result.returncode != 0:
            if "no note found" in (result.stderr or "").lower():
                return None
            raise GitError(
                f"git notes show failed (exit {result.returncode}): {result.stderr.strip()[:300]}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result.stdout

    def put(self, namespace: str, commit: str, text: str, overwrite: bool = False) -> None:
        """Write note text for commit (whole value, never a partial update)."""
        if not overwrite and self.get(namespace, commit) is not None:
            raise NoteExists(f"A note already exists for {commit}")
        args = ["notes", "--ref", notes_ref(namespace), "add"]
        if overwrite:
            args.append("-f")
        args.extend(["-F", "-", commit])
        self.run(*args, input=text)
        logger.debug("Wrote note for %s in %s", commit, namespace)

    # -------------------------------------------------------------------------
    # Remotes
    # -------------------------------------------------------------------------

    def push_notes(self, remote: str, namespace: str) -> None:
        """Push refs/notes/<namespace> to remote."""
        self.run("push", remote, notes_ref(namespace))
        logger.info("Pushed %s to %s", notes_ref(namespace), remote)

    def fetch_notes(self, remote: str, namespace: str) -> None:
        """Fetch refs/notes/<namespace> from remote into the local notes ref."""
        ref = notes_ref(namespace)
        self.run("fetch", remote, f"{ref}:{ref}")
        logger.info("Fetched %s from %s", ref, remote)

    def config_get_all(self, key: str) -> list[str]:
        """All values of a multi-valued config key (empty if unset)."""
        result = self.run("config", "--get-all", key, check=False)
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.splitlines() if line]

    def config_add(self, key: str, value: str) -> None:
        self.run("config", "--add", key, value)

    def setup_remote(self, remote: str, namespace: str) -> bool:
        """
        Make plain ``git fetch <remote>`` bring in the notes ref.

        Returns:
            True if the refspec was added, False if it was already there
        """
        self.run("remote", "get-url", remote)
        ref = notes_ref(namespace)
        refspec = f"+{ref}:{ref}"
        key = f"remote.{remote}.fetch"
        if refspec in self.config_get_all(key):
            return False
        self.config_add(key, refspec)
        logger.info("Added fetch refspec %s to %s", refspec, remote)
        return True

    def ensure_rewrite_ref(self, namespace: str) -> bool:
        """
        Have git carry notes over on amend and rebase (notes.rewriteRef).

        Returns:
            True if the setting was added, False if it was already present
        """
        ref = notes_ref(namespace)
        if ref in self.config_get_all("notes.rewriteRef"):
            return False
        self.config_add("notes.rewriteRef", ref)
        return True
