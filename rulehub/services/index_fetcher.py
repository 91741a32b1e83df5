"""
Download the hub index and refresh the cached copy when it changed.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from rulehub.domain.errors import (
    HubError,
    IndexFetchError,
    IndexNotFoundError,
    IndexUpdateError,
    NilRemoteHubError,
)
from rulehub.domain.models import LocalHubConfig, RemoteHubConfig
from rulehub.storage.index_cache import IndexCache

logger = logging.getLogger(__name__)


def url_to(remote: Optional[RemoteHubConfig], remote_path: str) -> str:
    """
    Build the URL of a file on the remote hub.

    Raises NilRemoteHubError if there is no remote configuration.
    """
    if remote is None:
        raise NilRemoteHubError()

    template = remote.url_template
    if "{branch}" not in template or "{path}" not in template:
        raise HubError(f"invalid URL template '{template}'")

    try:
        return template.format(branch=remote.branch, path=remote_path)
    except (KeyError, IndexError, ValueError) as e:
        raise HubError(f"invalid URL template '{template}': {e}") from e


def _get_index(client: httpx.Client, url: str, branch: str) -> bytes:
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        raise IndexFetchError(f"failed http request for hub index: {e}") from e

    if response.status_code == httpx.codes.NOT_FOUND:
        raise IndexNotFoundError(url, branch)
    if response.status_code != httpx.codes.OK:
        raise IndexFetchError(f"bad http code {response.status_code} for {url}")

    return response.content


def fetch_index(remote: Optional[RemoteHubConfig], client: Optional[httpx.Client] = None) -> bytes:
    """
    Retrieve the current index from the remote hub.

    Args:
        remote: Remote hub configuration; None means no remote is configured
        client: Optional httpx client to use instead of a short-lived one

    Returns:
        The raw index document
    """
    if remote is None:
        raise NilRemoteHubError()

    try:
        url = url_to(remote, remote.index_path)
    except HubError as e:
        raise IndexFetchError(f"failed to build hub index request: {e}") from e

    logger.debug(f"Fetching hub index from {url}")

    if client is not None:
        return _get_index(client, url, remote.branch)

    with httpx.Client(follow_redirects=True, timeout=remote.timeout) as client:
        return _get_index(client, url, remote.branch)


def update_index(
    local: LocalHubConfig,
    remote: Optional[RemoteHubConfig],
    client: Optional[httpx.Client] = None,
) -> bool:
    """
    Download the latest index and write it to disk if it changed.

    Returns:
        True if the cached index was (re)written, False if it was up to date
    """
    body = fetch_index(remote, client)
    cache = IndexCache(local.hub_index_file)

    try:
        old_content = cache.read()
    except FileNotFoundError:
        old_content = None
    except OSError as e:
        logger.warning(f"failed to read hub index: {e}")
        old_content = None

    if old_content is not None and old_content == body:
        logger.info("hub index is up to date")
        return False

    try:
        written = cache.write(body)
    except OSError as e:
        raise IndexUpdateError(f"failed to write hub index: {e}") from e

    logger.info(f"Wrote index to {cache.path}, {written} bytes")
    return True
