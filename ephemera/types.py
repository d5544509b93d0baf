"""
Shared value helpers: timestamps and namespace names.
"""

import re
from datetime import datetime, timezone


DEFAULT_NAMESPACE = "ephemera"


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SSZ.

    All note timestamps are RFC 3339 UTC with a 'Z' suffix and no
    fractional seconds. This is the single source of truth for formatting.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# Namespaces become ref names (refs/notes/<namespace>), so they follow a
# conservative subset of git's check-ref-format rules.
_NAMESPACE_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]*(/[A-Za-z0-9_][A-Za-z0-9_.-]*)*$')

MAX_NAMESPACE_LENGTH = 128


def validate_namespace(namespace: str) -> None:
    """Validate a notes namespace is usable as a ref name component."""
    if not namespace or len(namespace) > MAX_NAMESPACE_LENGTH:
        raise ValueError(f"Namespace must be 1-{MAX_NAMESPACE_LENGTH} characters")
    if not _NAMESPACE_RE.match(namespace) or ".." in namespace or namespace.endswith((".", ".lock")):
        raise ValueError(f"Namespace is not a valid ref name: {namespace!r}")


def notes_ref(namespace: str) -> str:
    """Full ref for a namespace: 'ephemera' -> 'refs/notes/ephemera'."""
    validate_namespace(namespace)
    return f"refs/notes/{namespace}"
