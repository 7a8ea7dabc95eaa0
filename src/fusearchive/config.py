"""
Configuration — recognized options and where things live on disk.

Options come from keyword overrides, then an optional YAML file, then
defaults. A broken config file is logged and ignored rather than fatal.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import CONFIG_FILE

logger = logging.getLogger("fusearchive.config")

MOUNT_SUBPATH = "fuse-archive"
REGISTRY_FILE = "mount-state.json"
APP_DIR = "fusearchive"


class FuseArchiveOptions(BaseModel):
    """User-facing options."""

    smart_enter: bool = False
    mount_dir: Optional[Path] = None
    # Run the stale-mount reconciler once at setup.
    auto_cleanup: bool = False
    mount_command: str = "fuse-archive"
    registry_path: Optional[Path] = None
    workers: int = Field(default=2, ge=1)


def _env(environ: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    value = (os.environ if environ is None else environ).get(name)
    return value or None


def resolve_mount_dir(
    mount_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Resolve the base directory all mount points are created under.

    Order: explicit override, ``$XDG_STATE_HOME``, ``$HOME/.local/state``,
    ``/tmp``. The result is always suffixed with ``fuse-archive``.

    Args:
        mount_dir: Explicit override.
        environ: Environment to consult (defaults to ``os.environ``).

    Returns:
        Path: Absolute base mount directory.
    """
    if mount_dir is not None:
        state_dir = Path(mount_dir).expanduser()
    elif _env(environ, "XDG_STATE_HOME"):
        state_dir = Path(_env(environ, "XDG_STATE_HOME"))
    elif _env(environ, "HOME"):
        state_dir = Path(_env(environ, "HOME")) / ".local" / "state"
    else:
        state_dir = Path("/tmp")
    return state_dir / MOUNT_SUBPATH


def resolve_registry_path(
    registry_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Resolve the registry file location.

    Order: explicit override, ``$XDG_CONFIG_HOME/fusearchive``,
    ``$HOME/.config/fusearchive``, ``/tmp/fusearchive``.
    """
    if registry_path is not None:
        return Path(registry_path).expanduser()
    if _env(environ, "XDG_CONFIG_HOME"):
        base = Path(_env(environ, "XDG_CONFIG_HOME"))
    elif _env(environ, "HOME"):
        base = Path(_env(environ, "HOME")) / ".config"
    else:
        base = Path("/tmp")
    return base / APP_DIR / REGISTRY_FILE


def default_config_file(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Location of ``config.yaml`` when none is given explicitly."""
    if environ is None and CONFIG_FILE:
        return Path(CONFIG_FILE).expanduser()
    return resolve_registry_path(environ=environ).parent / "config.yaml"


def load_options(
    config_file: Optional[Path] = None,
    **overrides: Any,
) -> FuseArchiveOptions:
    """Load options from YAML, with keyword overrides on top.

    Args:
        config_file: YAML file to read. Defaults to ``default_config_file()``.
        **overrides: Option values that win over the file. ``None`` values
            are ignored.

    Returns:
        FuseArchiveOptions: Loaded options, or defaults plus overrides if
        the file is missing or invalid.
    """
    path = Path(config_file).expanduser() if config_file else default_config_file()
    data: dict[str, Any] = {}
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")
        except (yaml.YAMLError, OSError, ValueError) as exc:
            logger.warning("Failed to load config %s: %s — using defaults", path, exc)
            data = {}

    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return FuseArchiveOptions(**data)
    except ValidationError as exc:
        logger.warning("Invalid config %s: %s — using defaults", path, exc)
        return FuseArchiveOptions(**{k: v for k, v in overrides.items() if v is not None})
