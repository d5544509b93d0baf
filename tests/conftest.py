"""
Shared pytest fixtures for git-ephemera tests.

Provides an in-memory note store so the core can be tested without a
repository, and a throwaway git repository for the plumbing and CLI tests.
"""

import shutil
import subprocess
from pathlib import Path
from typing import Optional

import pytest

from ephemera.api import Ephemera
from ephemera.errors import NoteExists


HEAD_ID = "a" * 40


class MemoryNoteStore:
    """
    Dict-backed note store.

    Revisions resolve through an alias table (HEAD → HEAD_ID by default);
    anything else is taken to be a commit id already.
    """

    def __init__(self, aliases: Optional[dict[str, str]] = None):
        self.notes: dict[tuple[str, str], str] = {}
        self.aliases = {"HEAD": HEAD_ID} if aliases is None else aliases
        self.put_calls = 0

    def resolve_commit(self, rev: str) -> str:
        return self.aliases.get(rev, rev)

    def get(self, namespace: str, commit: str) -> Optional[str]:
        return self.notes.get((namespace, commit))

    def put(self, namespace: str, commit: str, text: str, overwrite: bool = False) -> None:
        if not overwrite and (namespace, commit) in self.notes:
            raise NoteExists(f"A note already exists for {commit}")
        self.notes[(namespace, commit)] = text
        self.put_calls += 1


@pytest.fixture
def store():
    """Create a fresh MemoryNoteStore."""
    return MemoryNoteStore()


@pytest.fixture
def workdir(tmp_path):
    """A working tree with a few files."""
    root = tmp_path / "work"
    root.mkdir()
    (root / "PRD.md").write_text("# Test\n")
    (root / "PLAN.md").write_text("# Plan\n")
    (root / ".ai").mkdir()
    (root / ".ai" / "notes.md").write_text("context\n")
    return root


@pytest.fixture
def eph(store, workdir):
    """Ephemera over the in-memory store and the working tree."""
    return Ephemera(store, workdir)


# ---------------------------------------------------------------------------
# Real git repositories
# ---------------------------------------------------------------------------

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(repo: Path, *args: str, input: Optional[str] = None) -> str:
    """Run git in repo and return stdout (raises on failure)."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        input=input,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


def commit_file(repo: Path, name: str, content: str, message: str = "commit") -> str:
    """Write, add and commit a file; return the new HEAD id."""
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """An initialized repository with one commit, isolated from user config."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("EPHEMERA_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("EPHEMERA_NAMESPACE", raising=False)
    monkeypatch.delenv("EPHEMERA_REMOTE", raising=False)

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "--quiet")
    git(repo, "config", "user.email", "test@test.com")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "commit.gpgsign", "false")
    commit_file(repo, "README.md", "# Repo\n", "initial")
    return repo
