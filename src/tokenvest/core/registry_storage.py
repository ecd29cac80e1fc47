"""
tokenvest - Persistent Snapshot Storage

Stores the registry and custody state as one JSON snapshot with:
- Atomic writes (temp file + fsync + rename)
- SHA-256 checksum verification on load
- Timestamped backups with a retention limit
- Recovery from the newest valid backup when the main file is corrupted
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

from .exceptions import CorruptedDataError, StorageError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


class RegistryStorage:
    """
    Snapshot storage with data integrity and recovery.

    Usage:
        storage = RegistryStorage("/var/lib/tokenvest/state.json")
        storage.save_to_disk({"registry": ..., "custody": ...})
        state = storage.load_from_disk()
    """

    MAX_BACKUPS = 10

    def __init__(self, state_file: str, max_backups: int = MAX_BACKUPS):
        """
        Initialize snapshot storage

        Args:
            state_file: Path of the snapshot file
            max_backups: Number of timestamped backups to keep
        """
        self.state_file = os.path.abspath(state_file)
        self.data_dir = os.path.dirname(self.state_file)
        self.backup_dir = os.path.join(self.data_dir, "backups")
        self.max_backups = max_backups
        self.lock = Lock()

    @staticmethod
    def _calculate_checksum(data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    @staticmethod
    def _canonical_json(state: Dict[str, Any]) -> str:
        return json.dumps(state, indent=2, sort_keys=True)

    def exists(self) -> bool:
        return os.path.exists(self.state_file)

    def save_to_disk(self, state: Dict[str, Any], create_backup: bool = True) -> str:
        """
        Save a snapshot with an atomic write.

        Args:
            state: JSON-serializable snapshot
            create_backup: Copy the previous snapshot to the backup directory first

        Returns:
            Checksum of the saved state

        Raises:
            StorageError: If the snapshot cannot be written
        """
        with self.lock:
            try:
                state_json = self._canonical_json(state)
                checksum = self._calculate_checksum(state_json)
                package = {
                    "metadata": {
                        "timestamp": time.time(),
                        "checksum": checksum,
                        "version": SNAPSHOT_VERSION,
                    },
                    "state": state,
                }

                os.makedirs(self.data_dir, exist_ok=True)
                if create_backup and os.path.exists(self.state_file):
                    self._create_backup()

                temp_file = self.state_file + ".tmp"
                with open(temp_file, "w", encoding="utf-8") as f:
                    f.write(json.dumps(package, indent=2, sort_keys=True))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_file, self.state_file)
            except (OSError, TypeError, ValueError) as e:
                logger.error(
                    "Failed to save snapshot",
                    extra={
                        "event": "storage.save_failed",
                        "path": self.state_file,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise StorageError(f"Failed to save snapshot: {e}") from e

        logger.info(
            "Snapshot saved",
            extra={"event": "storage.saved", "path": self.state_file, "checksum": checksum[:8]},
        )
        return checksum

    def load_from_disk(self) -> Optional[Dict[str, Any]]:
        """
        Load the snapshot, recovering from backups if it is corrupted.

        Returns:
            The stored state, or None when no snapshot exists yet

        Raises:
            CorruptedDataError: If neither the snapshot nor any backup is valid
        """
        with self.lock:
            if not os.path.exists(self.state_file):
                return None
            try:
                return self._read_verified(self.state_file)
            except CorruptedDataError as e:
                logger.warning(
                    "Snapshot corrupted, attempting recovery",
                    extra={"event": "storage.corrupted", "path": self.state_file, "error": str(e)},
                )
                return self._attempt_recovery()

    def _read_verified(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                package = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptedDataError(f"Invalid JSON in {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

        if not isinstance(package, dict) or "state" not in package:
            raise CorruptedDataError(f"Snapshot {path} has no state section")

        state = package["state"]
        expected = package.get("metadata", {}).get("checksum")
        if expected and self._calculate_checksum(self._canonical_json(state)) != expected:
            raise CorruptedDataError(f"Checksum mismatch in {path}")
        return state

    def _create_backup(self) -> str:
        os.makedirs(self.backup_dir, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        backup_path = os.path.join(self.backup_dir, f"state_{stamp}.json")
        with open(self.state_file, "r", encoding="utf-8") as src, open(
            backup_path, "w", encoding="utf-8"
        ) as dst:
            dst.write(src.read())
        self._prune_backups()
        return backup_path

    def list_backups(self) -> List[str]:
        """Backup paths, newest first."""
        if not os.path.isdir(self.backup_dir):
            return []
        names = sorted(
            (n for n in os.listdir(self.backup_dir) if n.startswith("state_") and n.endswith(".json")),
            reverse=True,
        )
        return [os.path.join(self.backup_dir, n) for n in names]

    def _prune_backups(self) -> None:
        for stale in self.list_backups()[self.max_backups:]:
            os.remove(stale)

    def _attempt_recovery(self) -> Dict[str, Any]:
        for backup_path in self.list_backups():
            try:
                state = self._read_verified(backup_path)
            except (CorruptedDataError, StorageError):
                continue
            logger.warning(
                "Snapshot recovered from backup",
                extra={"event": "storage.recovered", "backup": backup_path},
            )
            return state
        raise CorruptedDataError(
            f"Snapshot {self.state_file} is corrupted and no valid backup exists"
        )
