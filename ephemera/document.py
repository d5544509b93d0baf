"""
Note documents — the unit of persisted state, one per commit.

A note is a small header of ``key: value`` lines, a line containing exactly
``---``, and the base64 payload::

    schemaVersion: 1
    encoding: tar+gzip+base64
    createdAt: 2026-01-24T12:34:56Z
    updatedAt: 2026-01-24T13:00:00Z
    commit: 3f2a...
    message: 'optional text'
    commitHistory: [9c1e..., 07bd...]
    paths:
      - PLAN.md
      - PRD.md
    ---
    H4sIAAAAAAAA...

The header is a YAML subset. It is written by hand (so the layout stays
stable and diff-friendly) and read back with PyYAML's BaseLoader, which
keeps every scalar a string; types are applied explicitly here.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

import yaml

from .errors import InvalidSelection, MalformedDocument, SchemaMismatch
from .types import utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
ENCODING = "tar+gzip+base64"
HEADER_END = "---"
PAYLOAD_WIDTH = 76

# Version keys written by earlier releases of the tool
LEGACY_VERSION_KEYS = ("ephemeraVersion", "notestashVersion")


@dataclass
class NoteDocument:
    """
    Header fields plus payload of one note.

    ``commit`` records the commit the note was created against; after a
    rewrite the note lives under a new commit and the earlier ids are
    listed in ``commit_history``.
    """
    created_at: str
    commit: str
    paths: list[str]
    payload: str
    commit_history: list[str] = field(default_factory=list)
    message: Optional[str] = None
    updated_at: Optional[str] = None
    schema_version: int = SCHEMA_VERSION
    encoding: str = ENCODING


# ---------------------------------------------------------------------------
# Scalar quoting
# ---------------------------------------------------------------------------

# Characters that change meaning at the start of a plain YAML scalar
_INDICATORS = frozenset("-?:,[]{}#&*!|>'\"%@`")

# Characters that end a plain scalar inside an inline [list]
_FLOW_CHARS = frozenset(",[]{}:")


def _needs_quotes(value: str, flow: bool = False) -> bool:
    if not value or value != value.strip():
        return True
    if value[0] in _INDICATORS:
        return True
    if ": " in value or " #" in value or value.endswith(":"):
        return True
    if flow and any(c in _FLOW_CHARS for c in value):
        return True
    return False


def _double_quote(value: str) -> str:
    """Double-quoted scalar with escapes for everything non-printable."""
    out = []
    for ch in value:
        if ch == '"':
            out.append('\\"')
        elif ch == "\\":
            out.append("\\\\")
        elif ch.isprintable():
            out.append(ch)
        else:
            code = ord(ch)
            if code <= 0xFF:
                out.append(f"\\x{code:02x}")
            elif code <= 0xFFFF:
                out.append(f"\\u{code:04x}")
            else:
                out.append(f"\\U{code:08x}")
    return '"' + "".join(out) + '"'


def format_scalar(value: str, flow: bool = False) -> str:
    """
    Render a string so the header parser reads back exactly the same string.

    Plain when safe, single-quoted when the value is empty, padded with
    whitespace or contains YAML structure, double-quoted with escapes when
    it contains control or other non-printable characters.
    """
    if not value.isprintable():
        return _double_quote(value)
    if _needs_quotes(value, flow):
        return "'" + value.replace("'", "''") + "'"
    return value


def _inline_list(values: list[str]) -> str:
    return "[" + ", ".join(format_scalar(v, flow=True) for v in values) + "]"


def _block_list(key: str, values: list[str]) -> list[str]:
    if not values:
        return [f"{key}: []"]
    return [f"{key}:"] + [f"  - {format_scalar(v)}" for v in values]


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def encode_header(doc: NoteDocument) -> str:
    """Header lines only (no ``---`` and no payload), newline-terminated."""
    lines = [
        f"schemaVersion: {doc.schema_version}",
        f"encoding: {format_scalar(doc.encoding)}",
        f"createdAt: {format_scalar(doc.created_at)}",
    ]
    if doc.updated_at is not None:
        lines.append(f"updatedAt: {format_scalar(doc.updated_at)}")
    lines.append(f"commit: {format_scalar(doc.commit)}")
    if doc.message is not None:
        lines.append(f"message: {format_scalar(doc.message)}")
    lines.append(f"commitHistory: {_inline_list(doc.commit_history)}")
    lines.extend(_block_list("paths", doc.paths))
    return "\n".join(lines) + "\n"


def wrap_payload(payload: str, width: int = PAYLOAD_WIDTH) -> str:
    """Base64 text broken into fixed-width lines, newline-terminated."""
    compact = "".join(payload.split())
    return "".join(compact[i:i + width] + "\n" for i in range(0, len(compact), width))


def encode(doc: NoteDocument) -> str:
    """Full note text: header, ``---`` line, wrapped payload."""
    return encode_header(doc) + HEADER_END + "\n" + wrap_payload(doc.payload)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _unique(values: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping first occurrence order."""
    return list(dict.fromkeys(values))


def _get_scalar(data: dict[str, Any], key: str, required: bool = False) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise MalformedDocument(f"Note header is missing '{key}'")
        return None
    if not isinstance(value, str):
        raise MalformedDocument(f"Note header field '{key}' must be a single value")
    return value


def _get_list(data: dict[str, Any], key: str, required: bool = False) -> list[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise MalformedDocument(f"Note header is missing '{key}'")
        return []
    # "key:" with nothing after it
    if value == "":
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedDocument(f"Note header field '{key}' must be a list of values")
    return _unique(value)


def _check_schema(data: dict[str, Any]) -> None:
    """Reject unsupported versions and encodings (distinct from syntax errors)."""
    version = None
    for key in ("schemaVersion",) + LEGACY_VERSION_KEYS:
        if key in data:
            version = _get_scalar(data, key)
            break
    if version is None:
        raise MalformedDocument("Note header is missing 'schemaVersion'")
    try:
        version_num = int(version)
    except ValueError:
        raise MalformedDocument(f"Note schema version is not a number: {version!r}")
    if version_num != SCHEMA_VERSION:
        raise SchemaMismatch(
            f"Unsupported note schema version {version_num} (supported: {SCHEMA_VERSION})"
        )

    encoding = _get_scalar(data, "encoding", required=True)
    if encoding != ENCODING:
        raise SchemaMismatch(f"Unsupported note encoding {encoding!r} (supported: {ENCODING})")


def split_note(text: str) -> tuple[str, str]:
    """Split note text into (header, payload) at the first ``---`` line."""
    lines = text.splitlines()
    try:
        end = lines.index(HEADER_END)
    except ValueError:
        raise MalformedDocument("Note has no header terminator ('---')")
    header = "\n".join(lines[:end]) + "\n"
    payload = "".join("".join(lines[end + 1:]).split())
    return header, payload


def decode(text: str) -> NoteDocument:
    """
    Parse note text.

    Documents written before ``commitHistory`` existed decode with an
    empty history.

    Raises:
        MalformedDocument: Missing terminator, header syntax error, missing
            or wrongly shaped fields, empty payload
        SchemaMismatch: Unsupported schemaVersion or encoding
    """
    header, payload = split_note(text)
    try:
        data = yaml.load(header, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        raise MalformedDocument(f"Note header is not valid: {e}") from e
    if not isinstance(data, dict):
        raise MalformedDocument("Note header is not a list of 'key: value' lines")

    _check_schema(data)
    if not payload:
        raise MalformedDocument("Note has no payload")

    return NoteDocument(
        created_at=_get_scalar(data, "createdAt", required=True),
        updated_at=_get_scalar(data, "updatedAt"),
        commit=_get_scalar(data, "commit", required=True),
        message=_get_scalar(data, "message"),
        paths=_get_list(data, "paths", required=True),
        commit_history=_get_list(data, "commitHistory"),
        payload=payload,
    )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge(
    existing: Optional[NoteDocument],
    paths: Iterable[str],
    payload: str,
    message: Optional[str] = None,
    *,
    commit: Optional[str] = None,
    now: Optional[str] = None,
) -> NoteDocument:
    """
    Produce the document to store after a save.

    Without an existing document a new one is created (``createdAt`` set,
    no ``updatedAt``, empty history). With one, paths are the union of old
    and new, ``createdAt``, ``commit`` and ``commitHistory`` carry over,
    ``updatedAt`` is refreshed, and the message is replaced only when a new
    one is given.

    The payload must already contain every path of the result: callers
    re-pack the union rather than patching the old archive.

    Args:
        existing: Document currently stored for the commit, or None
        paths: Paths newly selected by this save
        payload: Payload packed from the full resulting path set
        message: Optional annotation
        commit: Commit id, required when creating a new document
        now: Timestamp override (defaults to utc_now())

    Raises:
        InvalidSelection: The resulting path set would be empty
    """
    now = now or utc_now()
    if existing is None:
        if commit is None:
            raise ValueError("commit is required when creating a note")
        new_paths = sorted(set(paths))
        if not new_paths:
            raise InvalidSelection("A note needs at least one path")
        return NoteDocument(
            created_at=now,
            commit=commit,
            paths=new_paths,
            payload=payload,
            message=message,
        )

    union = sorted(set(existing.paths) | set(paths))
    if not union:
        raise InvalidSelection("A note needs at least one path")
    return replace(
        existing,
        paths=union,
        payload=payload,
        updated_at=now,
        message=message if message is not None else existing.message,
        commit_history=list(existing.commit_history),
    )


def add_history(
    doc: NoteDocument,
    old_id: str,
    now: Optional[str] = None,
    *,
    current_id: Optional[str] = None,
) -> NoteDocument:
    """
    Copy of doc with old_id appended to commitHistory and updatedAt refreshed.

    current_id is the commit the note now lives on. It never appears in
    the history, so a rewrite back to an earlier commit drops that entry.
    """
    history = doc.commit_history + [old_id]
    if current_id is not None:
        history = [c for c in history if c != current_id]
    return replace(
        doc,
        commit_history=_unique(history),
        updated_at=now or utc_now(),
    )
