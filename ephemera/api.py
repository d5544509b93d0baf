"""
Core API for attaching file bundles to commits.

- add(): select → stage with the existing bundle → pack → merge → store
- restore(): load → unpack
- get() / show_header() / list_paths(): read-only views
- record_rewrite(s)(): provenance after amend and rebase
"""

import logging
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Union

from .archive import pack, unpack
from .document import NoteDocument, decode, encode, encode_header, merge, wrap_payload
from .errors import NotFound
from .history import RewriteResult, record_rewrite, record_rewrites
from .protocol import NoteStoreProtocol
from .selector import select_paths
from .types import DEFAULT_NAMESPACE, validate_namespace

logger = logging.getLogger(__name__)


def _clear_staged(staging: Path, rel: str, members: set[str]) -> None:
    """Remove staged entries that would block writing rel, and forget them.

    A staged file where rel needs a directory, a staged directory where rel
    is a file, or a staged file at rel itself (possibly read-only) all go.
    """
    parts = PurePosixPath(rel).parts
    for i in range(1, len(parts)):
        ancestor = staging.joinpath(*parts[:i])
        if ancestor.is_file():
            ancestor.unlink()
            members.discard("/".join(parts[:i]))
            break

    target = staging.joinpath(*parts)
    if target.is_dir():
        shutil.rmtree(target)
        prefix = rel + "/"
        members.difference_update([m for m in members if m.startswith(prefix)])
    elif target.exists():
        target.unlink()


class Ephemera:
    """
    Notes for one working tree and namespace.

    Every operation reads the whole note, transforms it and writes the
    whole note back. There is no locking: if two processes write the note
    for the same commit at the same time, the last write wins.
    """

    def __init__(
        self,
        store: NoteStoreProtocol,
        base_dir: Union[str, Path],
        namespace: str = DEFAULT_NAMESPACE,
    ):
        """
        Args:
            store: Note store (GitRepository, or an in-memory store in tests)
            base_dir: Working tree root; all selected paths lie within it
            namespace: Notes namespace (refs/notes/<namespace> in git)
        """
        validate_namespace(namespace)
        self._store = store
        self.base_dir = Path(base_dir)
        self.namespace = namespace

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def find(self, rev: str = "HEAD") -> Optional[NoteDocument]:
        """Decoded note for a revision, or None when there is none."""
        commit = self._store.resolve_commit(rev)
        text = self._store.get(self.namespace, commit)
        if text is None:
            return None
        return decode(text)

    def get(self, rev: str = "HEAD") -> NoteDocument:
        """
        Decoded note for a revision.

        Raises:
            NotFound: No note for the commit
        """
        doc = self.find(rev)
        if doc is None:
            raise NotFound(f"No {self.namespace} note for {rev}")
        return doc

    def show_header(self, rev: str = "HEAD") -> str:
        """Header lines of the note (everything before ``---``)."""
        return encode_header(self.get(rev))

    def show_payload(self, rev: str = "HEAD") -> str:
        """Payload lines of the note."""
        return wrap_payload(self.get(rev).payload)

    def list_paths(self, rev: str = "HEAD") -> list[str]:
        """Paths archived in the note."""
        return list(self.get(rev).paths)

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def add(
        self,
        patterns: Iterable[str],
        *,
        rev: str = "HEAD",
        message: Optional[str] = None,
        strict: bool = False,
    ) -> NoteDocument:
        """
        Archive files into the note for a commit.

        A second add to the same commit is additive: files from the existing
        bundle are kept, newly selected files are added or refreshed.

        Args:
            patterns: Paths, directories or globs relative to base_dir
            rev: Target revision
            message: Optional annotation (replaces an earlier one)
            strict: Fail if any pattern matches nothing

        Returns:
            The stored document
        """
        selected = select_paths(self.base_dir, patterns, strict=strict)
        commit = self._store.resolve_commit(rev)
        text = self._store.get(self.namespace, commit)
        existing = decode(text) if text is not None else None

        if existing is None:
            payload = pack(self.base_dir, selected)
        else:
            payload, members = self._repack(existing, selected)
            # Paths displaced by newly selected files leave the note
            existing = replace(existing, paths=[p for p in existing.paths if p in members])

        doc = merge(existing, selected, payload, message, commit=commit)
        self._store.put(self.namespace, commit, encode(doc), overwrite=existing is not None)
        logger.info(
            "%s note for %s: %d path(s)",
            "Updated" if existing else "Created", commit, len(doc.paths),
        )
        return doc

    def _repack(self, existing: NoteDocument, selected: list[str]) -> tuple[str, set[str]]:
        """Pack the union of the existing bundle and newly selected files.

        The existing payload is staged first so files that no longer exist
        in the working tree survive; selected files then replace whatever
        staged entries stand in their way.

        Returns:
            (payload, member names in the payload)
        """
        staging = Path(tempfile.mkdtemp(prefix="ephemera-stage-"))
        try:
            members = set(unpack(existing.payload, staging, overwrite=True))
            for rel in selected:
                _clear_staged(staging, rel, members)
                target = staging / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.base_dir / rel, target)
                members.add(rel)
            return pack(staging, members), members
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def restore(
        self,
        rev: str = "HEAD",
        dest: Optional[Union[str, Path]] = None,
        *,
        overwrite: bool = False,
        dry_run: bool = False,
    ) -> list[str]:
        """
        Extract the note's files.

        Args:
            rev: Revision whose note to restore
            dest: Destination directory (default: base_dir)
            overwrite: Replace existing files
            dry_run: Only list what would be restored

        Returns:
            Restored (or, for dry_run, restorable) relative paths
        """
        doc = self.get(rev)
        target = Path(dest) if dest is not None else self.base_dir
        return unpack(doc.payload, target, overwrite=overwrite, dry_run=dry_run)

    # -------------------------------------------------------------------------
    # Rewrites
    # -------------------------------------------------------------------------

    def record_rewrite(self, old_id: str, new_id: str) -> Optional[bool]:
        """Append old_id to the history of the note at new_id (idempotent)."""
        return record_rewrite(self._store, self.namespace, old_id, new_id)

    def record_rewrites(self, lines: Iterable[str]) -> RewriteResult:
        """Process ``old new`` lines from git's post-rewrite hook."""
        return record_rewrites(self._store, self.namespace, lines)
