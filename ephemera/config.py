"""
Configuration for a repository.

The configuration is stored as a TOML file in the git directory, so it is
per-clone and never committed. Every value has a default; the file only
exists once something was changed with ``git ephemera config``.

Precedence: CLI flag > EPHEMERA_* environment variable > file > default.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import tomli_w

from .types import DEFAULT_NAMESPACE, validate_namespace


CONFIG_FILENAME = "ephemera.toml"
CONFIG_VERSION = 1

DEFAULT_REMOTE = "origin"


@dataclass
class EphemeraConfig:
    """Repository configuration."""
    path: Path
    version: int = CONFIG_VERSION
    namespace: str = DEFAULT_NAMESPACE
    strict: bool = False
    remote: str = DEFAULT_REMOTE

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def load_config(config_dir: Path) -> EphemeraConfig:
    """
    Load configuration from a directory (normally the git directory).

    Returns defaults when no config file exists.

    Raises:
        ValueError: If the config is invalid or newer than supported
    """
    config_dir = Path(config_dir)
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        return EphemeraConfig(path=config_dir)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    section = data.get("ephemera", {})
    version = section.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError(f"Config 'version' must be an integer, got {version!r}")
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    namespace = section.get("namespace", DEFAULT_NAMESPACE)
    validate_namespace(namespace)
    strict = section.get("strict", False)
    if not isinstance(strict, bool):
        raise ValueError(f"Config 'strict' must be true or false, got {strict!r}")

    return EphemeraConfig(
        path=config_dir,
        version=version,
        namespace=namespace,
        strict=strict,
        remote=str(section.get("remote", DEFAULT_REMOTE)),
    )


def save_config(config: EphemeraConfig) -> None:
    """
    Save configuration to its directory.

    Creates the directory if it doesn't exist.
    """
    validate_namespace(config.namespace)
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "ephemera": {
            "version": config.version,
            "namespace": config.namespace,
            "strict": config.strict,
            "remote": config.remote,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def apply_env(config: EphemeraConfig) -> EphemeraConfig:
    """Overlay EPHEMERA_NAMESPACE / EPHEMERA_REMOTE onto a loaded config."""
    namespace = os.environ.get("EPHEMERA_NAMESPACE")
    if namespace:
        validate_namespace(namespace)
        config.namespace = namespace
    remote = os.environ.get("EPHEMERA_REMOTE")
    if remote:
        config.remote = remote
    return config


def resolve_config(config_dir: Path, namespace: Optional[str] = None) -> EphemeraConfig:
    """Config with file, environment and an explicit namespace applied in order."""
    config = apply_env(load_config(config_dir))
    if namespace:
        validate_namespace(namespace)
        config.namespace = namespace
    return config
