"""
Logging configuration for git-ephemera.

Quiet by default: only warnings reach stderr, so command output stays
pipeable. --verbose (or EPHEMERA_VERBOSE=1) switches to debug output.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_NAME = "ephemera-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to show only warnings and errors.

    Args:
        quiet: If True, suppress Python warnings and info-level logging.
    """
    logger = logging.getLogger("ephemera")
    if quiet:
        warnings.filterwarnings("ignore")
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.INFO)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    ephemera_logger = logging.getLogger("ephemera")
    ephemera_logger.setLevel(logging.DEBUG)
    # Debug output goes through the root handler only
    for h in list(ephemera_logger.handlers):
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            ephemera_logger.removeHandler(h)


def configure_ops_log(git_dir):
    """Configure a persistent operations log for a repository.

    Writes to {git_dir}/ephemera-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed again.
    """
    log_path = Path(git_dir) / OPS_LOG_NAME

    ephemera_logger = logging.getLogger("ephemera")
    for h in ephemera_logger.handlers:
        if isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_path.resolve():
            return h

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    ephemera_logger.addHandler(handler)
    # Let INFO through to the file even in quiet mode; the stderr handler
    # keeps its own WARNING threshold.
    if ephemera_logger.level == logging.NOTSET or ephemera_logger.level > logging.INFO:
        ephemera_logger.setLevel(logging.INFO)

    return handler
