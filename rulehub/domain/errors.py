"""
Exception hierarchy for the hub core.

Fatal conditions are grouped by the construction stage they belong to
(``update``, ``load``, ``sync``) so callers can tell where a hub failed to
build. Everything that is not fatal ends up in ``Hub.warnings`` instead.
"""

from __future__ import annotations

from typing import Optional


class HubError(Exception):
    """Base class for every error raised by the hub core."""

    stage: Optional[str] = None


class HubConfigurationError(HubError):
    """No local hub configuration was provided."""


class NilRemoteHubError(HubError):
    """A remote operation was requested but no remote hub is configured."""

    def __init__(self, message: str = "remote hub configuration is not provided") -> None:
        super().__init__(message)


class CircularDependencyError(HubError):
    """A collection includes itself through its sub-items."""


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------


class IndexUpdateError(HubError):
    """Updating the cached index from the remote hub failed."""

    stage = "update"


class IndexFetchError(IndexUpdateError):
    """The remote index could not be retrieved."""


class IndexNotFoundError(IndexFetchError):
    """The remote answered 404 for the index URL."""

    def __init__(self, url: str, branch: str) -> None:
        self.url = url
        self.branch = branch
        super().__init__(
            f"index not found at {url}, branch '{branch}'. "
            "Check the configured hub branch, or use 'master' if not sure"
        )


class IndexLoadError(HubError):
    """The cached index could not be read."""

    stage = "load"


class IndexDecodeError(IndexLoadError):
    """The cached index is not a valid index document."""


class SyncError(HubError):
    """The local state could not be evaluated at all."""

    stage = "sync"
