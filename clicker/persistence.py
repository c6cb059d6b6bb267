"""
persistence.py - Durable per-device snapshot

One JSON document per device, replaced atomically: the new content is written
to a temporary file in the same directory, flushed to disk, then moved over
the old file with os.replace(). A crash mid-write leaves the previous good
snapshot in place.

Layout (format 1):
    {
      "format": 1,
      "ledger": {...Ledger.to_state_dict()...},
      "motion": {"last_processed_end": iso | null, "sample_progress": {id: iso}},
      "outbox": [...PendingDelta.to_dict()...],
      "seen_deltas": [...delta ids already applied...],
      "clock": {"last_accrued_at": iso | null},
      "achievements": {name: progress}
    }
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json
import os
import tempfile

from .core import PersistenceFailure


SNAPSHOT_FORMAT = 1


class SnapshotStore:
    """
    Reads and writes the durable snapshot at `path`.

    Example:
        store = SnapshotStore("phone.json")
        store.save({"ledger": ledger.to_state_dict()})
        data = store.load()     # None on first run
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Read the snapshot.

        Returns:
            The stored document, or None if no snapshot exists yet

        Raises:
            PersistenceFailure: If the file cannot be read or is not a valid snapshot
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Cannot read snapshot {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceFailure(f"Snapshot {self.path} is not a JSON object")
        fmt = data.get("format")
        if fmt != SNAPSHOT_FORMAT:
            raise PersistenceFailure(f"Unsupported snapshot format {fmt!r} in {self.path}")
        return data

    def save(self, document: Dict[str, Any]) -> None:
        """
        Atomically replace the snapshot with `document`.

        Raises:
            PersistenceFailure: If the write or rename fails (old snapshot intact)
        """
        payload = dict(document)
        payload["format"] = SNAPSHOT_FORMAT
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Cannot write snapshot {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
