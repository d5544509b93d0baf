"""
Hook installation: run record-rewrite after amend and rebase.
"""

import logging
import os
import stat
from pathlib import Path

from .errors import EphemeraError

logger = logging.getLogger(__name__)

HOOK_NAME = "post-rewrite"
HOOK_MARKER = "# installed by git-ephemera"

POST_REWRITE_TEMPLATE = """\
#!/bin/sh
{marker}
# git passes "<old-id> <new-id>" lines on stdin after amend and rebase.
EPHEMERA_NAMESPACE={namespace} exec git ephemera record-rewrite
"""


def render_hook(namespace: str) -> str:
    """Hook script text for a namespace."""
    return POST_REWRITE_TEMPLATE.format(marker=HOOK_MARKER, namespace=namespace)


def install_hooks(hooks_dir: Path, namespace: str, force: bool = False) -> Path:
    """
    Write the post-rewrite hook.

    An existing hook is never replaced without force, including one
    written by an earlier install.

    Returns:
        Path of the installed hook

    Raises:
        EphemeraError: A hook already exists and force is False
    """
    hook_path = Path(hooks_dir) / HOOK_NAME
    if hook_path.exists() and not force:
        owner = "git-ephemera" if HOOK_MARKER in hook_path.read_text(errors="replace") else "another tool"
        raise EphemeraError(
            f"Hook already exists: {hook_path} (installed by {owner}; use --force to replace)"
        )

    hook_path.parent.mkdir(parents=True, exist_ok=True)
    hook_path.write_text(render_hook(namespace))
    mode = os.stat(hook_path).st_mode
    os.chmod(hook_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.info("Installed %s hook at %s", HOOK_NAME, hook_path)
    return hook_path
