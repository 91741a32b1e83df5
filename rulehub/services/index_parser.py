"""
Decode the hub index into a typed catalog.

Decoding is done in two passes: pydantic turns the JSON document into
``Item`` models, then a second pass fills in the fields derived from the
index layout and checks sub-item references.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from pydantic import TypeAdapter, ValidationError

from rulehub.domain.errors import IndexDecodeError
from rulehub.domain.models import ITEM_TYPES, Item

logger = logging.getLogger(__name__)

Catalog = Dict[str, Dict[str, Item]]

_index_adapter = TypeAdapter(Dict[str, Dict[str, Item]])


@dataclass
class IndexParseResult:
    items: Catalog
    warnings: List[str] = field(default_factory=list)


def empty_catalog() -> Catalog:
    return {item_type: {} for item_type in ITEM_TYPES}


def _missing_sub_items(item: Item, items: Catalog) -> List[str]:
    warnings = []
    for sub_type, sub_name in item.sub_item_refs():
        if sub_name not in items.get(sub_type, {}):
            msg = f"can't find {sub_name} in {sub_type}, required by {item.name}"
            logger.error(msg)
            warnings.append(msg)
    return warnings


def parse_index(data: bytes) -> IndexParseResult:
    """
    Parse the content of an index file.

    Raises:
        IndexDecodeError: the document is not valid JSON or does not match the index schema
    """
    try:
        decoded = _index_adapter.validate_json(data)
    except ValidationError as e:
        raise IndexDecodeError(f"failed to unmarshal index: {e}") from e

    items = empty_catalog()

    for item_type in decoded:
        if item_type not in items:
            logger.debug(f"ignoring unknown item type '{item_type}' in hub index")

    logger.debug(f"{len(ITEM_TYPES)} item types in hub index")

    for item_type in ITEM_TYPES:
        type_items = decoded.get(item_type, {})
        logger.debug(f"{item_type}: {len(type_items)} items")
        for name, item in type_items.items():
            item.backfill(item_type, name)
            items[item_type][name] = item

    warnings: List[str] = []
    for item_type in ITEM_TYPES:
        for item in items[item_type].values():
            warnings.extend(_missing_sub_items(item, items))

    return IndexParseResult(items=items, warnings=warnings)
