"""Persisted snapshots: one JSON document per run date under the output directory."""

import json
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Optional

from semanticast.core.errors import NoPriorSnapshot, SnapshotFormatError
from semanticast.core.logger import logger
from semanticast.models.datatypes import AggregateSnapshot

SNAPSHOT_PREFIX = "aggregate-summary-"


class SnapshotStore:
    """Reads and writes ``aggregate-summary-YYYY-MM-DD.json`` files.

    Args:
        output_dir: Directory holding the snapshot files.
    """

    def __init__(self, output_dir: str = "output") -> None:
        self.output_dir = Path(output_dir)

    def path_for(self, run_date: date) -> Path:
        return self.output_dir / f"{SNAPSHOT_PREFIX}{run_date.isoformat()}.json"

    def save(self, snapshot: AggregateSnapshot, run_date: Optional[date] = None) -> Path:
        """Write ``snapshot`` atomically; a crash never leaves a half-written file behind.

        Returns:
            Path: The snapshot file written.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(run_date or date.today())

        fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".tmp", dir=self.output_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"SnapshotStore: saved snapshot → {target}")
        return target

    def latest_path(self) -> Path:
        """Return the most recently modified snapshot file.

        Raises:
            NoPriorSnapshot: If the directory holds no snapshot.
        """
        candidates = list(self.output_dir.glob(f"{SNAPSHOT_PREFIX}*.json")) if self.output_dir.is_dir() else []
        if not candidates:
            raise NoPriorSnapshot(f"no {SNAPSHOT_PREFIX}*.json found in {self.output_dir}")
        return max(candidates, key=lambda p: p.stat().st_mtime)

    def load_latest(self) -> AggregateSnapshot:
        """Load the most recently modified snapshot verbatim.

        Raises:
            NoPriorSnapshot: If no snapshot exists.
            SnapshotFormatError: If the newest snapshot cannot be parsed.
        """
        path = self.latest_path()
        return load_snapshot(path)


def load_snapshot(path: Path) -> AggregateSnapshot:
    """Parse one snapshot file.

    Raises:
        SnapshotFormatError: If the file is unreadable, not JSON, or misses required fields.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        snapshot = AggregateSnapshot.from_dict(data)
    except (OSError, json.JSONDecodeError) as exc:
        raise SnapshotFormatError(f"cannot read snapshot {path}: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotFormatError(f"invalid snapshot {path}: {exc!r}") from exc

    logger.info(f"SnapshotStore: loaded snapshot ← {path}")
    return snapshot
