"""Atomic promotion of a finished working directory to the final archive.

The final directory is only ever touched by single ``rename`` calls, so at
any point it is either absent or a complete archive from the current or the
previous run. A leftover ``<final>.bak`` indicates an interrupted promotion
and is resolved by :meth:`ArchivePublisher.recover` before anything else.
"""

from __future__ import annotations

import enum
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import HarvestError

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class PublishState(enum.Enum):
    CLEAN = "clean"
    BACKED_UP = "backed_up"
    PROMOTED = "promoted"
    CLEANED = "cleaned"
    ROLLED_BACK = "rolled_back"


def backup_path_for(final_dir: PathLike) -> Path:
    final = Path(final_dir)
    return final.with_name(final.name + ".bak")


def working_prefix_for(final_dir: PathLike) -> str:
    """Name prefix of the hidden working directories next to an archive."""
    return f".{Path(final_dir).name}.tmp-"


def _stale_prefix_for(final_dir: PathLike) -> str:
    return f".{Path(final_dir).name}.stale-"


class ArchivePublisher:
    """Backup, promote, rollback and recovery steps for one archive."""

    def __init__(
        self,
        final_dir: PathLike,
        working_dir: Optional[PathLike],
        backup_dir: Optional[PathLike] = None,
        *,
        rename: Callable[[PathLike, PathLike], None] = os.rename,
        remove_tree: Callable[[PathLike], None] = shutil.rmtree,
    ):
        self.final_dir = Path(final_dir)
        self.working_dir = Path(working_dir) if working_dir is not None else None
        self.backup_dir = (
            Path(backup_dir) if backup_dir is not None else backup_path_for(final_dir)
        )
        self._rename = rename
        self._remove_tree = remove_tree
        self.state = PublishState.CLEAN

    def recover(self) -> None:
        """Resolve a backup left behind by an interrupted promotion.

        Working directories and set-aside backups of runs that died without
        cleaning up are removed as well. Never raises; failures are logged and
        the run continues.
        """
        self._discard_leftovers()
        if not self.backup_dir.exists():
            return

        if not self.final_dir.exists():
            LOGGER.warning(
                "Recovering from incomplete finalization: restoring %s",
                self.backup_dir,
            )
            try:
                self._rename(self.backup_dir, self.final_dir)
            except OSError as exc:
                LOGGER.error(
                    "Failed to restore %s to %s: %s",
                    self.backup_dir,
                    self.final_dir,
                    exc,
                )
            return

        LOGGER.warning(
            "Recovering from incomplete finalization: discarding stale backup %s",
            self.backup_dir,
        )
        try:
            self._remove_tree(self.backup_dir)
        except OSError as exc:
            LOGGER.error("Failed to remove stale backup %s: %s", self.backup_dir, exc)

    def _discard_leftovers(self) -> None:
        parent = self.final_dir.parent
        if not parent.is_dir():
            return
        prefixes = (working_prefix_for(self.final_dir), _stale_prefix_for(self.final_dir))
        for path in sorted(parent.iterdir()):
            if not path.name.startswith(prefixes) or path == self.working_dir:
                continue
            LOGGER.warning("Removing leftover directory %s", path)
            try:
                self._remove_tree(path)
            except OSError as exc:
                LOGGER.error("Failed to remove leftover directory %s: %s", path, exc)

    def _clear_backup_slot(self) -> None:
        if not self.backup_dir.exists():
            return
        try:
            self._remove_tree(self.backup_dir)
            return
        except OSError as exc:
            stale = self.final_dir.with_name(
                f"{_stale_prefix_for(self.final_dir)}{uuid.uuid4().hex[:8]}"
            )
            LOGGER.warning(
                "Could not remove stale backup %s (%s); moving it to %s",
                self.backup_dir,
                exc,
                stale,
            )
        self._rename(self.backup_dir, stale)

    def back_up(self) -> None:
        if self.final_dir.exists():
            self._clear_backup_slot()
            self._rename(self.final_dir, self.backup_dir)
            self.state = PublishState.BACKED_UP
            LOGGER.debug("Moved %s to %s", self.final_dir, self.backup_dir)

    def promote(self) -> None:
        """Rename the working directory to the final location.

        On failure the backup is restored (when there is one) and the original
        exception is re-raised.
        """
        if self.working_dir is None:
            raise HarvestError("No working directory to promote", "PUBLISH_ERROR")
        try:
            self._rename(self.working_dir, self.final_dir)
        except Exception:
            if self.state is PublishState.BACKED_UP:
                self._roll_back()
            raise
        self.state = PublishState.PROMOTED
        LOGGER.debug("Promoted %s to %s", self.working_dir, self.final_dir)

    def _roll_back(self) -> None:
        try:
            self._rename(self.backup_dir, self.final_dir)
        except Exception as exc:
            LOGGER.error(
                "Rollback failed; previous archive remains at %s: %s",
                self.backup_dir,
                exc,
            )
            return
        self.state = PublishState.ROLLED_BACK
        LOGGER.warning("Rollback succeeded; restored previous archive at %s", self.final_dir)

    def discard_backup(self) -> None:
        if self.state is not PublishState.PROMOTED:
            return
        if self.backup_dir.exists():
            try:
                self._remove_tree(self.backup_dir)
            except OSError as exc:
                LOGGER.warning("Failed to remove backup %s: %s", self.backup_dir, exc)
                return
        self.state = PublishState.CLEANED

    def publish(self) -> Path:
        """Run recovery, backup, promotion and backup removal in order."""
        self.recover()
        self.back_up()
        self.promote()
        self.discard_backup()
        return self.final_dir
