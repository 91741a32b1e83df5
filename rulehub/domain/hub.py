"""
The hub: catalog of items from the index, merged with the local state.

A ``Hub`` is built once by the caller and passed down to whatever needs it;
there is no module-level instance.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from rulehub.domain.errors import (
    HubConfigurationError,
    HubError,
    IndexLoadError,
    NilRemoteHubError,
)
from rulehub.domain.models import ITEM_TYPES, Item, LocalHubConfig, RemoteHubConfig
from rulehub.services.index_fetcher import update_index
from rulehub.services.index_parser import Catalog, empty_catalog, parse_index
from rulehub.services.local_sync import LocalStateSynchronizer
from rulehub.storage.index_cache import IndexCache

logger = logging.getLogger(__name__)


class Hub:
    """
    Items read from the hub index and the local directories.

    Construction runs the whole pipeline: optionally update the cached index
    from the remote hub, parse it, then sync the local state. Any failure
    aborts construction with an error whose class tells the failed stage.
    """

    def __init__(
        self,
        local: Optional[LocalHubConfig],
        remote: Optional[RemoteHubConfig] = None,
        update_index: bool = False,
        client: Optional[httpx.Client] = None,
    ):
        if local is None:
            raise HubConfigurationError("no hub configuration found")

        self.local = local
        self.remote = remote
        self._client = client
        self.items: Catalog = empty_catalog()
        self.warnings: List[str] = []

        if update_index:
            self.update_index()

        logger.debug(f"loading hub idx {local.hub_index_file}")
        self.reload()

    def get_data_dir(self) -> str:
        """Directory where the data files of the items are installed."""
        return str(self.local.install_data_dir)

    def update_index(self) -> bool:
        """
        Download the latest index and write it to disk if it changed.

        The catalog is not reloaded; call ``reload()`` to see the new index.
        """
        if self.remote is None:
            raise NilRemoteHubError()
        return update_index(self.local, self.remote, self._client)

    def reload(self) -> None:
        """
        Parse the cached index and sync the local state into a new catalog.

        The new catalog replaces the current one only when both steps succeed.
        """
        try:
            data = IndexCache(self.local.hub_index_file).read()
        except OSError as e:
            raise IndexLoadError(f"failed to load index: unable to read index file: {e}") from e

        parsed = parse_index(data)
        report = LocalStateSynchronizer(self.local, parsed.items).run()

        for item_type in ITEM_TYPES:
            for item in parsed.items[item_type].values():
                item.bind(self)

        self.items = parsed.items
        self.warnings = parsed.warnings + report.warnings

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_item_map(self, item_type: str) -> Dict[str, Item]:
        return self.items.get(item_type, {})

    def get_item(self, item_type: str, name: str) -> Optional[Item]:
        return self.get_item_map(item_type).get(name)

    def get_item_fq(self, fq_name: str) -> Optional[Item]:
        """Look up an item by its fully qualified name, e.g. 'parsers:crowdsecurity/sshd-logs'."""
        item_type, sep, name = fq_name.partition(":")
        if not sep or not item_type or not name:
            raise HubError(f"invalid fully qualified name '{fq_name}'")
        return self.get_item(item_type, name)

    def get_item_names(self, item_type: str) -> List[str]:
        return list(self.get_item_map(item_type))

    def get_installed_items(self, item_type: str) -> List[Item]:
        return [item for item in self.get_item_map(item_type).values() if item.state.installed]

    def get_installed_item_names(self, item_type: str) -> List[str]:
        return [item.name for item in self.get_installed_items(item_type)]

    def item_stats(self) -> List[str]:
        """Total counts of the hub items, including local and tainted."""
        loaded = []
        local = 0
        tainted = 0

        for item_type in ITEM_TYPES:
            type_items = self.get_item_map(item_type)
            if not type_items:
                continue

            loaded.append(f"{len(type_items)} {item_type}")

            for item in type_items.values():
                if item.is_local():
                    local += 1
                if item.state.tainted:
                    tainted += 1

        ret = [f"Loaded: {', '.join(loaded) or '0 items'}"]

        if local > 0 or tainted > 0:
            ret.append(f"Unmanaged items: {local} local, {tainted} tainted")

        return ret
