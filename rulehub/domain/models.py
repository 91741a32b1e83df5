"""
Pydantic models for the hub catalog.

This module defines the data models used throughout the application:
- The ordered registry of item types
- Catalog entries (items) as they appear in the hub index, plus their local state
- Local and remote hub configuration

Wire fields are decoded by pydantic; derived fields (name, type, author,
file name) are filled in afterwards by the index parser.
"""

from __future__ import annotations

import posixpath
import weakref
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from rulehub.domain.errors import HubError
from rulehub.domain.hub_utils import version_key

if TYPE_CHECKING:
    from rulehub.domain.hub import Hub


# ---------------------------------------------------------------------------
# Item Type Registry
# ---------------------------------------------------------------------------

PARSERS = "parsers"
POSTOVERFLOWS = "postoverflows"
SCENARIOS = "scenarios"
CONTEXTS = "contexts"
APPSEC_CONFIGS = "appsec-configs"
APPSEC_RULES = "appsec-rules"
COLLECTIONS = "collections"

# Collections come last: their state is derived from the items they bundle.
ITEM_TYPES = (
    PARSERS,
    POSTOVERFLOWS,
    SCENARIOS,
    CONTEXTS,
    APPSEC_CONFIGS,
    APPSEC_RULES,
    COLLECTIONS,
)

# Types whose files live under a stage directory (e.g. parsers/s01-parse/...).
STAGED_TYPES = (PARSERS, POSTOVERFLOWS)


class VersionStatus(int, Enum):
    """Result of comparing the installed version of an item with the latest one."""

    UNKNOWN = 0
    UP_TO_DATE = 1
    UPDATE_AVAILABLE = 2
    FUTURE = 3


# ---------------------------------------------------------------------------
# Catalog Entry Models
# ---------------------------------------------------------------------------


class ItemVersion(BaseModel):
    """A single published version of an item."""

    digest: str = Field(default="", description="Hex sha256 of the file content for this version.")
    deprecated: bool = Field(default=False, description="True if this version should no longer be used.")


class ItemState(BaseModel):
    """
    Local state of an item, as observed on disk.

    Recomputed on every sync pass; never persisted.
    """

    local_path: str = Field(default="", description="Path of the installed file, if any.")
    local_version: str = Field(
        default="",
        description="Version matching the installed content, '?' when no known digest matches.",
    )
    local_hash: str = Field(default="", description="sha256 of the installed content.")
    installed: bool = False
    downloaded: bool = False
    up_to_date: bool = False
    tainted: bool = False
    belongs_to_collections: List[str] = Field(
        default_factory=list,
        description="Collections that include this item, directly or through other collections.",
    )


class Item(BaseModel):
    """
    A catalog entry: one parser, scenario, collection, ...

    Remote metadata comes from the hub index; ``state`` is filled in by the
    local state synchronizer. The owning hub is referenced through a weak
    reference so items never keep the hub alive.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    author: str = ""
    description: str = ""
    stage: str = ""
    remote_path: str = Field(default="", alias="path")
    version: str = ""
    versions: Dict[str, ItemVersion] = Field(default_factory=dict)
    references: List[str] = Field(default_factory=list)

    # Sub-item references, only meaningful for collections.
    parsers: List[str] = Field(default_factory=list)
    postoverflows: List[str] = Field(default_factory=list)
    scenarios: List[str] = Field(default_factory=list)
    contexts: List[str] = Field(default_factory=list)
    appsec_configs: List[str] = Field(default_factory=list, alias="appsec-configs")
    appsec_rules: List[str] = Field(default_factory=list, alias="appsec-rules")
    collections: List[str] = Field(default_factory=list)

    # Derived after decoding.
    type: str = ""
    file_name: str = ""

    state: ItemState = Field(default_factory=ItemState)

    _hub: Optional[weakref.ReferenceType] = PrivateAttr(default=None)

    def bind(self, hub: "Hub") -> None:
        """Attach the (non-owning) reference to the hub holding this item."""
        self._hub = weakref.ref(hub)

    def _get_hub(self) -> "Hub":
        hub = self._hub() if self._hub is not None else None
        if hub is None:
            raise HubError(f"item {self.fq_name()} is not attached to a hub")
        return hub

    def fq_name(self) -> str:
        return f"{self.type}:{self.name}"

    def has_sub_items(self) -> bool:
        return self.type == COLLECTIONS

    def is_local(self) -> bool:
        """True for installed items that are not part of the hub index."""
        return self.state.installed and not self.remote_path

    def sub_item_refs(self) -> List[tuple]:
        """Return the declared (type, name) references, in type order."""
        if not self.has_sub_items():
            return []
        refs = []
        for item_type, names in (
            (PARSERS, self.parsers),
            (POSTOVERFLOWS, self.postoverflows),
            (SCENARIOS, self.scenarios),
            (CONTEXTS, self.contexts),
            (APPSEC_CONFIGS, self.appsec_configs),
            (APPSEC_RULES, self.appsec_rules),
            (COLLECTIONS, self.collections),
        ):
            refs.extend((item_type, name) for name in names)
        return refs

    def sub_items(self) -> List["Item"]:
        """Return the referenced items that exist in the hub; missing ones are skipped."""
        hub = self._get_hub()
        result = []
        for item_type, name in self.sub_item_refs():
            sub = hub.get_item(item_type, name)
            if sub is not None:
                result.append(sub)
        return result

    def ancestors(self) -> List["Item"]:
        """Return the collections that directly reference this item."""
        hub = self._get_hub()
        return [
            parent
            for parent in hub.get_item_map(COLLECTIONS).values()
            if (self.type, self.name) in parent.sub_item_refs()
        ]

    def version_status(self) -> VersionStatus:
        local = self.state.local_version
        if not local or local == "?" or not self.version:
            return VersionStatus.UNKNOWN
        local_key = version_key(local)
        latest_key = version_key(self.version)
        if local_key == latest_key:
            return VersionStatus.UP_TO_DATE
        if local_key < latest_key:
            return VersionStatus.UPDATE_AVAILABLE
        return VersionStatus.FUTURE

    def status_text(self) -> str:
        """Short status such as 'enabled', 'enabled,tainted' or 'disabled'."""
        ret = "enabled" if self.state.installed else "disabled"
        if self.is_local():
            ret += ",local"
        if self.state.tainted:
            ret += ",tainted"
        elif self.state.installed and not self.state.up_to_date and not self.is_local():
            ret += ",update-available"
        return ret

    def download_path(self) -> Path:
        """Location of the item in the hub directory."""
        return self._get_hub().local.hub_dir / self.remote_path

    def install_path(self) -> Path:
        """Location of the item in the installation directory."""
        path = self._get_hub().local.install_dir / self.type
        if self.stage:
            path = path / self.stage
        return path / self.file_name

    def download_url(self) -> str:
        """Remote URL of the item; fails with NilRemoteHubError without a remote."""
        from rulehub.services.index_fetcher import url_to

        return url_to(self._get_hub().remote, self.remote_path)

    def backfill(self, item_type: str, name: str) -> None:
        """Fill in the fields that are derived from the index layout."""
        self.name = name
        if not self.author and "/" in name:
            # first non-empty segment, so "/foo" still gets an author
            self.author = next((part for part in name.split("/") if part), "")
        self.type = item_type
        self.file_name = posixpath.basename(self.remote_path)


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class LocalHubConfig(BaseModel):
    """
    Local directories used by the hub.

    All paths are expected to be resolved by the caller.
    """

    hub_dir: Path = Field(description="Directory holding downloaded items, one subdirectory per type.")
    install_dir: Path = Field(description="Directory holding enabled items (links or copies).")
    install_data_dir: Path = Field(description="Directory where data files needed by items are installed.")
    hub_index_file: Path = Field(description="Cached copy of the hub index.")


class RemoteHubConfig(BaseModel):
    """Where to fetch the hub index and items from."""

    url_template: str = Field(
        default="https://hub-cdn.crowdsec.net/{branch}/{path}",
        description="URL template; must contain the {branch} and {path} placeholders.",
    )
    branch: str = Field(default="master", description="Hub branch to download from.")
    index_path: str = Field(default=".index.json", description="Path of the index relative to the branch.")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds.")


class HubSettings(BaseModel):
    """
    Top-level settings file.

    Persisted at: <DATA_DIR>/hub.json
    """

    local: Optional[LocalHubConfig] = None
    remote: Optional[RemoteHubConfig] = Field(default_factory=RemoteHubConfig)
    update_index_on_start: bool = Field(
        default=False,
        description="Refresh the cached index from the remote hub when the service starts.",
    )
