"""
Read-only endpoints over the hub catalog.

Exposes the query surface of the hub (items, warnings, stats) plus one
endpoint to refresh the index from the remote hub.
"""

from __future__ import annotations

import logging
import threading
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from rulehub.core.dependencies import get_hub
from rulehub.domain.errors import HubError, IndexUpdateError, NilRemoteHubError
from rulehub.domain.hub import Hub
from rulehub.domain.models import ITEM_TYPES, Item

logger = logging.getLogger(__name__)
router = APIRouter()

# The hub core does no locking of its own; updates are serialized here.
_update_lock = threading.Lock()


class ItemSummary(BaseModel):
    """One line of an item listing."""

    name: str
    type: str
    status: str = Field(description="e.g. 'enabled', 'enabled,tainted', 'disabled'.")
    version: str = Field(default="", description="Latest version published in the index.")
    local_version: str = Field(default="", description="Version found on disk, '?' if unknown.")
    local_path: str = ""


class UpdateResult(BaseModel):
    updated: bool = Field(description="True if the cached index changed.")
    stats: List[str]


def _summary(item: Item) -> ItemSummary:
    return ItemSummary(
        name=item.name,
        type=item.type,
        status=item.status_text(),
        version=item.version,
        local_version=item.state.local_version,
        local_path=item.state.local_path,
    )


def _check_type(item_type: str) -> None:
    if item_type not in ITEM_TYPES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"unknown item type '{item_type}'",
        )


@router.get("/stats")
async def get_stats(hub: Hub = Depends(get_hub)) -> List[str]:
    return hub.item_stats()


@router.get("/warnings")
async def get_warnings(hub: Hub = Depends(get_hub)) -> List[str]:
    return list(hub.warnings)


@router.get("/items")
async def list_items(installed: bool = False, hub: Hub = Depends(get_hub)) -> List[ItemSummary]:
    """
    All items, in item type order. With ``installed=true`` only enabled items are listed.
    """
    result = []
    for item_type in ITEM_TYPES:
        items = hub.get_installed_items(item_type) if installed else hub.get_item_map(item_type).values()
        result.extend(_summary(item) for item in items)
    return result


@router.get("/items/{item_type}")
async def list_items_of_type(
    item_type: str,
    installed: bool = False,
    hub: Hub = Depends(get_hub),
) -> List[ItemSummary]:
    _check_type(item_type)
    items = hub.get_installed_items(item_type) if installed else hub.get_item_map(item_type).values()
    return [_summary(item) for item in items]


@router.get("/items/{item_type}/{name:path}")
async def get_item(item_type: str, name: str, hub: Hub = Depends(get_hub)) -> dict:
    """
    Full detail of one item: index metadata, local state and the collections it belongs to.
    """
    _check_type(item_type)
    item = hub.get_item(item_type, name)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{item_type}:{name} not found",
        )

    data = item.model_dump(mode="json")
    data["status"] = item.status_text()
    data["local"] = item.is_local()
    data["version_status"] = item.version_status().name.lower()
    return data


@router.post("/update")
def update_hub_index(hub: Hub = Depends(get_hub)) -> UpdateResult:
    """
    Refresh the cached index from the remote hub, then reload the catalog.
    """
    with _update_lock:
        try:
            updated = hub.update_index()
            hub.reload()
        except NilRemoteHubError as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
        except IndexUpdateError as e:
            logger.error(f"Failed to update hub index: {e}")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
        except HubError as e:
            logger.error(f"Failed to reload hub: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return UpdateResult(updated=updated, stats=hub.item_stats())
