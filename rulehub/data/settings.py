from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from rulehub.domain.models import HubSettings, LocalHubConfig

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "RULEHUB_DATA_DIR"
SETTINGS_FILE_NAME = "hub.json"

# Resolve repository root (project root, not the Python package root)
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable RULEHUB_DATA_DIR
    2. '<workspace root>/data'
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def default_local_config(data_dir: Path) -> LocalHubConfig:
    """Local hub layout rooted in the data directory."""
    hub_dir = data_dir / "hub"
    return LocalHubConfig(
        hub_dir=hub_dir,
        install_dir=data_dir / "config",
        install_data_dir=data_dir / "data",
        hub_index_file=hub_dir / ".index.json",
    )


def load_settings(path: Optional[Path] = None) -> HubSettings:
    """
    Load hub.json, merging with defaults for any missing fields,
    and write it back so any new fields are persisted.

    An explicit ``"local": null`` is kept as is: the hub refuses to start
    without a local configuration.
    """
    data_dir = get_data_dir()
    path = path or data_dir / SETTINGS_FILE_NAME

    raw = None
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            settings = HubSettings(**raw)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            # If parsing fails, fall back to defaults and overwrite file.
            logger.warning(f"Failed to load hub settings from {path}: {e}")
            raw = None
            settings = HubSettings()
    else:
        settings = HubSettings()

    if settings.local is None and not (isinstance(raw, dict) and "local" in raw):
        settings.local = default_local_config(data_dir)

    # Persist with all fields populated (including any new defaults).
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
    return settings
