"""
Rewrite tracking: keep notes discoverable after amend and rebase.

git reports rewritten commits as ``<old-id> <new-id>`` lines (see
githooks(5), post-rewrite). For each pair, the note now stored under the
new id gets the old id appended to its ``commitHistory``. Replaying the
same pair again changes nothing.

There is no locking: two processes annotating the same note at once
resolve as last-writer-wins in the note store.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .document import add_history, decode, encode
from .protocol import NoteStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class RewriteResult:
    """Counts from processing a stream of rewrite pairs."""

    total_lines: int = 0
    annotated: int = 0
    unchanged: int = 0
    missing: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_lines": self.total_lines,
            "annotated": self.annotated,
            "unchanged": self.unchanged,
            "missing": self.missing,
            "skipped": self.skipped,
        }


def record_rewrite(
    store: NoteStoreProtocol,
    namespace: str,
    old_id: str,
    new_id: str,
    now: Optional[str] = None,
) -> Optional[bool]:
    """
    Record that old_id was rewritten into new_id.

    Returns:
        True if the note at new_id was annotated, False if its history
        was already up to date, None if there is no note at new_id (nothing to do)
    """
    text = store.get(namespace, new_id)
    if text is None:
        logger.debug("No note at %s, nothing to record", new_id)
        return None

    doc = decode(text)
    updated = add_history(doc, old_id, now=now, current_id=new_id)
    if updated.commit_history == doc.commit_history:
        logger.debug("Rewrite %s -> %s already recorded", old_id, new_id)
        return False

    store.put(namespace, new_id, encode(updated), overwrite=True)
    logger.info("Recorded rewrite %s -> %s", old_id, new_id)
    return True


def record_rewrites(
    store: NoteStoreProtocol,
    namespace: str,
    lines: Iterable[str],
    now: Optional[str] = None,
) -> RewriteResult:
    """
    Process ``old new`` lines as a stream.

    Blank lines are ignored. Tokens after the first two are ignored
    (git may append extra information). Lines with a single token are
    counted as skipped.
    """
    result = RewriteResult()
    for line in lines:
        fields = line.split()
        if not fields:
            continue
        result.total_lines += 1
        if len(fields) < 2:
            logger.warning("Ignoring malformed rewrite line: %r", line.rstrip("\n"))
            result.skipped += 1
            continue

        outcome = record_rewrite(store, namespace, fields[0], fields[1], now=now)
        if outcome is None:
            result.missing += 1
        elif outcome:
            result.annotated += 1
        else:
            result.unchanged += 1
    return result
