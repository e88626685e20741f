"""
User activity tracking.

Keeps the time of the user's last meaningful interaction in a storage
slot and answers "is anyone still here". Idle detection only saves
refresh calls for abandoned clients; it never ends a session by itself.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

LAST_ACTIVITY_KEY = "last_activity"


class StorageSlot(Protocol):
    """A single persisted float value."""

    def read(self) -> Optional[float]: ...

    def write(self, value: float) -> None: ...


class MemoryStorageSlot:
    """Slot that lives as long as the process."""

    def __init__(self, value: Optional[float] = None):
        self._value = value

    def read(self) -> Optional[float]:
        return self._value

    def write(self, value: float) -> None:
        self._value = value


class FileStorageSlot:
    """
    Slot persisted as a small JSON document, so activity survives a
    client restart. Writes go to a temp file and are moved into place.
    """

    def __init__(self, path: str | Path, key: str = LAST_ACTIVITY_KEY):
        self.path = Path(path)
        self.key = key

    def read(self) -> Optional[float]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable activity file %s: %s", self.path, e)
            return None

        value = data.get(self.key) if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def write(self, value: float) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".activity-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({self.key: value}, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise


class ActivityTracker:
    """Records the last interaction time and checks it against an idle threshold."""

    def __init__(self, slot: Optional[StorageSlot] = None):
        self._slot = slot or MemoryStorageSlot()

    def record_activity(self, now: float) -> None:
        """Overwrite the stored last-activity time with `now`."""
        self._slot.write(now)

    def last_activity_at(self) -> Optional[float]:
        return self._slot.read()

    def is_active(self, now: float, idle_threshold_seconds: float) -> bool:
        """
        True iff the last activity is within the idle threshold.

        Nothing recorded yet counts as active.
        """
        last = self._slot.read()
        if last is None:
            return True
        return now - last <= idle_threshold_seconds
