# SPDX-License-Identifier: Apache-2.0

"""
JSON file persistence for the local snapshot, so data entered while
offline survives a restart.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from models.entities import Snapshot

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Snapshot stored as a single JSON document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        """Read the cached snapshot, or None if absent or unreadable."""
        if not self.path.exists():
            return None

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return Snapshot.from_dict(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "Ignoring unreadable snapshot cache",
                extra={"extra_fields": {"path": str(self.path), "error": str(e)}}
            )
            return None

    def save(self, snapshot: Snapshot) -> None:
        """Write the snapshot atomically (temp file, then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


def create_snapshot_cache() -> Optional[SnapshotCache]:
    """Factory function reading SSVP_CACHE_PATH from the environment."""
    path = os.getenv('SSVP_CACHE_PATH')
    return SnapshotCache(path) if path else None
