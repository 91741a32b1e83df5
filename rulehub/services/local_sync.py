"""
Reconcile the parsed catalog with what is present on disk.

Two directories are scanned, both with one subdirectory per item type:

* the install directory holds enabled items, as symlinks into the hub
  directory or as regular files:
  ``<install_dir>/parsers/s01-parse/sshd-logs.yaml``,
  ``<install_dir>/scenarios/ssh-bf.yaml``
* the hub directory holds downloaded items, grouped by author:
  ``<hub_dir>/parsers/s01-parse/crowdsecurity/sshd-logs.yaml``,
  ``<hub_dir>/scenarios/crowdsecurity/ssh-bf.yaml``

Each file is hashed and compared with the digests published in the index
to find out which version it is, or to mark the item as tainted. Installed
files that match no index entry become local items.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set, Tuple

import yaml

from rulehub.domain.errors import CircularDependencyError, SyncError
from rulehub.domain.hub_utils import (
    has_path_suffix,
    insert_in_order_no_case,
    is_yaml_file_name,
    sha256_file,
    version_key,
)
from rulehub.domain.models import (
    COLLECTIONS,
    ITEM_TYPES,
    STAGED_TYPES,
    Item,
    ItemState,
    LocalHubConfig,
    VersionStatus,
)
from rulehub.services.index_parser import Catalog

logger = logging.getLogger(__name__)


@dataclass
class ItemFileInfo:
    """What the location of a file tells about the item it holds."""

    ftype: str
    stage: str
    fauthor: str
    fname: str
    inhub: bool


@dataclass
class SyncFailure:
    path: str
    error: Exception

    def __str__(self) -> str:
        return f"failed to sync {self.path}: {self.error}"


@dataclass
class SyncReport:
    """Outcome of a sync pass: non-fatal warnings and per-file failures."""

    warnings: List[str] = field(default_factory=list)
    failures: List[SyncFailure] = field(default_factory=list)
    evaluated: int = 0

    def add_failure(self, path, error: Exception) -> None:
        failure = SyncFailure(path=str(path), error=error)
        logger.warning(str(failure))
        self.failures.append(failure)
        self.warnings.append(str(failure))


class LocalStateSynchronizer:
    """
    Annotates the items of a catalog with their local state.

    The catalog is modified in place: item states are reset, then recomputed,
    and local items are added for installed files unknown to the index.
    """

    def __init__(self, local: LocalHubConfig, items: Catalog):
        self.local = local
        self.items = items
        self.hub_dir = Path(os.path.abspath(local.hub_dir))
        self.install_dir = Path(os.path.abspath(local.install_dir))

    def run(self) -> SyncReport:
        report = SyncReport()
        self._reset()

        self._sync_dir(self.install_dir, False, report)
        self._sync_dir(self.hub_dir, True, report)
        self._check_collections(report)

        if report.failures and report.evaluated == 0:
            raise SyncError(
                f"failed to sync items: none of the files could be evaluated "
                f"({len(report.failures)} failures, first: {report.failures[0]})"
            )

        return report

    def _reset(self) -> None:
        for item_type in ITEM_TYPES:
            type_items = self.items.setdefault(item_type, {})
            for name in [n for n, item in type_items.items() if item.is_local()]:
                del type_items[name]
            for item in type_items.values():
                item.state = ItemState()

    # ------------------------------------------------------------------
    # Directory scanning
    # ------------------------------------------------------------------

    def _sync_dir(self, root: Path, inhub: bool, report: SyncReport) -> None:
        for item_type in ITEM_TYPES:
            type_dir = root / item_type
            if not type_dir.is_dir():
                logger.debug(f"directory {type_dir} doesn't exist, skipping")
                continue

            def on_error(e: OSError) -> None:
                if not isinstance(e, FileNotFoundError):
                    report.add_failure(e.filename or type_dir, e)

            seen = {os.path.realpath(type_dir)}
            for dirpath, dirnames, filenames in os.walk(type_dir, onerror=on_error, followlinks=True):
                kept = []
                # hidden directories are never scanned
                for d in sorted(d for d in dirnames if not d.startswith(".")):
                    real = os.path.realpath(os.path.join(dirpath, d))
                    if real in seen:
                        logger.debug(f"{os.path.join(dirpath, d)} loops back to {real}, skipping")
                        continue
                    seen.add(real)
                    kept.append(d)
                dirnames[:] = kept
                for fname in sorted(filenames):
                    if not is_yaml_file_name(fname):
                        continue
                    path = Path(dirpath) / fname
                    info = self._file_info(type_dir, path, item_type, inhub)
                    if info is None:
                        logger.debug(f"{path} does not follow the hub layout, ignoring")
                        continue
                    try:
                        self._visit(path, info, report)
                    except FileNotFoundError:
                        logger.debug(f"{path} disappeared during the scan")
                    except (OSError, yaml.YAMLError) as e:
                        report.add_failure(path, e)
                    else:
                        report.evaluated += 1

    def _file_info(self, type_dir: Path, path: Path, item_type: str, inhub: bool) -> Optional[ItemFileInfo]:
        parts = path.relative_to(type_dir).parts
        staged = item_type in STAGED_TYPES
        expected = 1 + int(staged) + int(inhub)
        if len(parts) != expected:
            return None
        return ItemFileInfo(
            ftype=item_type,
            stage=parts[0] if staged else "",
            fauthor=parts[-2] if inhub else "",
            fname=parts[-1],
            inhub=inhub,
        )

    def _candidates(self, info: ItemFileInfo):
        for item in self.items[info.ftype].values():
            if not item.remote_path:
                continue
            if item.file_name != info.fname or item.stage != info.stage:
                continue
            yield item

    def _visit(self, path: Path, info: ItemFileInfo, report: SyncReport) -> None:
        if info.inhub:
            for item in self._candidates(info):
                if item.author != info.fauthor:
                    continue
                if self.hub_dir / item.remote_path != path:
                    continue
                logger.debug(f"marking {item.name} as downloaded")
                self._set_version_state(item, path, inhub=True)
                return
            logger.debug(f"Ignoring file {path} of type {info.ftype}")
            return

        if path.is_symlink():
            target = Path(os.readlink(path))
            if not target.is_absolute():
                target = path.parent / target
            if not path.exists():
                logger.info(f"{path} is a symlink to {target} that doesn't exist, ignoring")
                return
            for item in self._candidates(info):
                if has_path_suffix(str(target), item.remote_path):
                    self._set_version_state(item, path, inhub=False)
                    return
            logger.info(f"Ignoring file {path} of type {info.ftype}")
            return

        candidates = list(self._candidates(info))
        if not candidates:
            logger.debug(f"{path} is a local file")
            self._add_local_item(path, info, report)
            return

        # several authors can publish the same file name: the content decides
        digest = sha256_file(path)
        matching = [item for item in candidates if self._match_version(item, digest) is not None]
        if len(matching) > 1:
            names = ", ".join(item.fq_name() for item in matching)
            report.warnings.append(f"{path} matches several items ({names}), using {matching[0].fq_name()}")
        item = matching[0] if matching else candidates[0]
        self._set_version_state(item, path, inhub=False, digest=digest)

    # ------------------------------------------------------------------
    # Item state
    # ------------------------------------------------------------------

    @staticmethod
    def _match_version(item: Item, digest: str) -> Optional[str]:
        # reverse order, so the most recent version wins on a digest collision
        for version in sorted(item.versions, key=version_key, reverse=True):
            if item.versions[version].digest == digest:
                return version
        return None

    def _set_version_state(self, item: Item, path: Path, inhub: bool, digest: Optional[str] = None) -> None:
        if digest is None:
            digest = sha256_file(path)
        version = self._match_version(item, digest)
        state = item.state

        if inhub:
            if version is not None:
                state.downloaded = True
            # once installed, the installed file decides the state
            if state.installed:
                return
        else:
            state.local_path = str(path)
            state.installed = True

        state.local_hash = digest
        if version is None:
            logger.debug(f"got tainted match for {item.name}: {path}")
            state.local_version = "?"
            state.up_to_date = False
            state.tainted = True
            return

        state.local_version = version
        state.tainted = False
        state.up_to_date = version == item.version
        if state.up_to_date:
            logger.debug(f"{item.name} is up-to-date")
        else:
            logger.debug(f"found {item.name} version {version}, latest is {item.version}")

    def _add_local_item(self, path: Path, info: ItemFileInfo, report: SyncReport) -> None:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
        name = path.stem
        if isinstance(content, dict) and isinstance(content.get("name"), str) and content["name"]:
            name = content["name"]

        type_items = self.items[info.ftype]
        if name in type_items:
            report.warnings.append(
                f"local {info.ftype} {path} has the same name as {type_items[name].fq_name()}, ignoring"
            )
            return

        item = Item(
            stage=info.stage,
            state=ItemState(local_path=str(path), installed=True, up_to_date=True),
        )
        item.backfill(info.ftype, name)
        # no remote path to derive it from
        item.file_name = info.fname
        type_items[name] = item

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _sub_items(self, item: Item) -> List[Item]:
        subs = []
        for sub_type, sub_name in item.sub_item_refs():
            sub = self.items.get(sub_type, {}).get(sub_name)
            if sub is not None:
                subs.append(sub)
        return subs

    def _descendants(self, root: Item) -> List[Item]:
        result: List[Item] = []
        found: Set[Tuple[str, str]] = set()
        visited: Set[Tuple[str, str]] = set()

        def collect(item: Item) -> None:
            key = (item.type, item.name)
            if key in visited:
                return
            visited.add(key)
            for sub in self._sub_items(item):
                if sub is root:
                    raise CircularDependencyError(
                        f"circular dependency detected: {item.name} depends on {root.name}"
                    )
                sub_key = (sub.type, sub.name)
                if sub_key not in found:
                    found.add(sub_key)
                    result.append(sub)
                collect(sub)

        collect(root)
        return result

    def _check_sub_item_versions(self, item: Item, seen: Set[Tuple[str, str]]) -> List[str]:
        """Taint or outdate a collection according to the state of its sub-items."""
        warn: List[str] = []
        key = (item.type, item.name)
        if not item.has_sub_items() or key in seen:
            return warn
        seen.add(key)

        if item.version_status() != VersionStatus.UP_TO_DATE:
            logger.debug(f"{item.name} dependencies not checked: not up-to-date")
            return warn

        for sub in self._sub_items(item):
            if not item.state.installed:
                continue
            sub_warn = self._check_sub_item_versions(sub, seen)
            if sub_warn:
                warn.extend(sub_warn)
                continue
            if sub.state.tainted:
                item.state.tainted = True
                warn.append(f"{item.name} is tainted by {sub.fq_name()}")
                continue
            if not sub.state.installed:
                item.state.tainted = True
                warn.append(f"{item.name} is tainted by missing {sub.fq_name()}")
                continue
            if not sub.state.up_to_date:
                item.state.up_to_date = False
                warn.append(f"{item.name} is tainted by outdated {sub.fq_name()}")

        return warn

    def _check_collections(self, report: SyncReport) -> None:
        for item in self.items[COLLECTIONS].values():
            try:
                subs = self._descendants(item)
            except CircularDependencyError as e:
                logger.warning(str(e))
                report.warnings.append(str(e))
                continue

            for sub in subs:
                insert_in_order_no_case(sub.state.belongs_to_collections, item.name)

            if not item.state.installed:
                continue

            status = item.version_status()
            if status == VersionStatus.UP_TO_DATE:
                report.warnings.extend(self._check_sub_item_versions(item, set()))
            elif status == VersionStatus.UPDATE_AVAILABLE:
                report.warnings.append(
                    f"update for collection {item.name} available "
                    f"(currently:{item.state.local_version}, latest:{item.version})"
                )
            elif status == VersionStatus.FUTURE:
                report.warnings.append(
                    f"collection {item.name} is in the future "
                    f"(currently:{item.state.local_version}, latest:{item.version})"
                )
            elif not item.is_local():
                report.warnings.append(f"collection {item.name} is tainted (latest:{item.version})")

            logger.debug(
                f"installed ({item.name}) - status: {status.name} | "
                f"installed: {item.state.local_version} | latest: {item.version}"
            )
