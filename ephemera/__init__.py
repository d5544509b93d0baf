"""
git-ephemera — attach files to commits with git notes.

Quick start:
    from ephemera import Ephemera, GitRepository

    repo = GitRepository(".")
    eph = Ephemera(repo, repo.toplevel)
    eph.add(["PRD.md", ".ai/"])      # archive into the note on HEAD
    eph.restore(dest="/tmp/out")     # get the files back

Notes follow their commit through amend and rebase once the post-rewrite
hook is installed (``git ephemera install-hooks``).
"""

__version__ = "0.1.0"

from .api import Ephemera
from .archive import list_members, pack, unpack
from .document import ENCODING, SCHEMA_VERSION, NoteDocument, decode, encode, merge
from .errors import (
    DestinationConflict,
    EphemeraError,
    InvalidSelection,
    MalformedDocument,
    MissingRequiredPath,
    NotFound,
    SchemaMismatch,
    UnsafeArchiveMember,
)
from .git import GitRepository
from .history import RewriteResult, record_rewrite, record_rewrites
from .selector import select_paths

__all__ = [
    "__version__",
    "Ephemera",
    "GitRepository",
    "NoteDocument",
    "RewriteResult",
    "SCHEMA_VERSION",
    "ENCODING",
    "select_paths",
    "pack",
    "unpack",
    "list_members",
    "encode",
    "decode",
    "merge",
    "record_rewrite",
    "record_rewrites",
    "EphemeraError",
    "InvalidSelection",
    "MissingRequiredPath",
    "SchemaMismatch",
    "MalformedDocument",
    "DestinationConflict",
    "UnsafeArchiveMember",
    "NotFound",
]
