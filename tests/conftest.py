"""Shared fixtures: a hub layout (index, hub dir, install dir) built under ``tmp_path``."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

import pytest

from rulehub.data.settings import default_local_config
from rulehub.domain.models import LocalHubConfig


def digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class HubLayout:
    """Builds an index document and the matching files on disk."""

    def __init__(self, root: Path):
        self.root = root
        self.local: LocalHubConfig = default_local_config(root)
        self.index: Dict[str, Dict[str, dict]] = {}
        self.contents: Dict[Tuple[str, str], str] = {}

    def add_item(
        self,
        item_type: str,
        name: str,
        content: Optional[str] = None,
        version: str = "0.1",
        stage: str = "",
        versions: Optional[Dict[str, str]] = None,
        **extra,
    ) -> dict:
        """
        Declare an item in the index. ``versions`` maps version -> file content;
        by default the only version is ``version`` with ``content``.
        """
        author, short_name = name.split("/", 1)
        content = content if content is not None else f"name: {name}\n"
        parts = [item_type] + ([stage] if stage else []) + [author, f"{short_name}.yaml"]
        if versions is None:
            versions = {version: content}
        entry = {
            "path": "/".join(parts),
            "version": version,
            "versions": {v: {"digest": digest(c)} for v, c in versions.items()},
        }
        if stage:
            entry["stage"] = stage
        entry.update(extra)
        self.index.setdefault(item_type, {})[name] = entry
        self.contents[(item_type, name)] = content
        return entry

    def write_index(self) -> bytes:
        data = json.dumps(self.index, sort_keys=True).encode("utf-8")
        self.local.hub_index_file.parent.mkdir(parents=True, exist_ok=True)
        self.local.hub_index_file.write_bytes(data)
        return data

    def hub_path(self, item_type: str, name: str) -> Path:
        return self.local.hub_dir / self.index[item_type][name]["path"]

    def install_path(self, item_type: str, name: str) -> Path:
        entry = self.index[item_type][name]
        path = self.local.install_dir / item_type
        if entry.get("stage"):
            path = path / entry["stage"]
        return path / entry["path"].rsplit("/", 1)[-1]

    def download(self, item_type: str, name: str, content: Optional[str] = None) -> Path:
        path = self.hub_path(item_type, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content if content is not None else self.contents[(item_type, name)], encoding="utf-8")
        return path

    def install_link(self, item_type: str, name: str, content: Optional[str] = None) -> Path:
        """Download the item and enable it with a symlink into the hub directory."""
        target = self.download(item_type, name, content)
        link = self.install_path(item_type, name)
        link.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, link)
        return link

    def install_copy(self, item_type: str, name: str, content: Optional[str] = None) -> Path:
        path = self.install_path(item_type, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content if content is not None else self.contents[(item_type, name)], encoding="utf-8")
        return path

    def install_local(self, item_type: str, file_name: str, content: str, stage: str = "") -> Path:
        """Write a user file in the install directory that the index knows nothing about."""
        path = self.local.install_dir / item_type
        if stage:
            path = path / stage
        path.mkdir(parents=True, exist_ok=True)
        path = path / file_name
        path.write_text(content, encoding="utf-8")
        return path


@pytest.fixture
def layout(tmp_path: Path) -> HubLayout:
    return HubLayout(tmp_path)
