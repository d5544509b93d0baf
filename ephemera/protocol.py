"""
Protocol for the note store the core reads and writes.

The store is opaque: one text value per (namespace, commit id). The core
never patches fields in place; it reads a whole note, transforms it and
writes the whole note back.

Implemented by:
- GitRepository (git notes under refs/notes/<namespace>)
- in-memory stores in the test suite
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """Key-value access to notes, addressed by canonical commit id."""

    def resolve_commit(self, rev: str) -> str:
        """Canonical commit id for any revision expression (HEAD, a short id, ...)."""
        ...

    def get(self, namespace: str, commit: str) -> Optional[str]:
        """Note text for a commit, or None when there is no note."""
        ...

    def put(self, namespace: str, commit: str, text: str, overwrite: bool = False) -> None:
        """Store note text; raises NoteExists if a note exists and overwrite is False."""
        ...
