"""
On-disk copy of the hub index.

The cache is a single JSON document, written verbatim from the fetch result
and read verbatim by the index parser.
"""
from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class IndexCache:
    """Reads and replaces the cached index file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> bytes:
        return self.path.read_bytes()

    def write(self, content: bytes) -> int:
        """
        Replace the cached index with ``content``.

        The data goes to a temp file first, then is moved into place, so a
        reader never sees a partially written index.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp_path.write_bytes(content)
            tmp_path.replace(self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Replaced {self.path} ({len(content)} bytes)")
        return len(content)
