"""Tests for snapshot persistence and replay loading."""
import json
import os
from datetime import date

import pytest

from semanticast.core.errors import NoPriorSnapshot, SnapshotFormatError
from semanticast.pipeline.forecast import ForecastEngine
from semanticast.pipeline.store import SnapshotStore


class TestSnapshotStore:
    """Tests for SnapshotStore."""

    def test_save_then_load_is_verbatim(self, tmp_path, worked_example_snapshot):
        snapshot = worked_example_snapshot.with_forecast(ForecastEngine().predict(worked_example_snapshot))
        store = SnapshotStore(str(tmp_path))

        path = store.save(snapshot, date(2026, 10, 18))

        assert path.name == "aggregate-summary-2026-10-18.json"
        assert store.load_latest() == snapshot

    def test_no_temp_files_left_behind(self, tmp_path, worked_example_snapshot):
        store = SnapshotStore(str(tmp_path))
        store.save(worked_example_snapshot, date(2026, 10, 18))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["aggregate-summary-2026-10-18.json"]

    def test_persisted_document_is_self_describing(self, tmp_path, worked_example_snapshot):
        path = SnapshotStore(str(tmp_path)).save(worked_example_snapshot, date(2026, 10, 18))
        data = json.loads(path.read_text(encoding="utf-8"))

        assert data["price_impact_distribution"] == {"up": 6, "down": 1, "uncertain": 1}
        assert data["price_prediction"] is None

    def test_latest_by_modification_time(self, tmp_path, worked_example_snapshot, empty_snapshot):
        store = SnapshotStore(str(tmp_path))
        newer = store.save(empty_snapshot, date(2026, 10, 1))
        older = store.save(worked_example_snapshot, date(2026, 10, 17))
        os.utime(older, (1_000_000, 1_000_000))
        os.utime(newer, (2_000_000, 2_000_000))

        assert store.load_latest() == empty_snapshot

    def test_missing_directory_raises_no_prior(self, tmp_path):
        with pytest.raises(NoPriorSnapshot):
            SnapshotStore(str(tmp_path / "nothing")).load_latest()

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"total_articles": 3}'])
    def test_unparseable_snapshot_raises_format_error(self, tmp_path, content):
        (tmp_path / "aggregate-summary-2026-10-18.json").write_text(content, encoding="utf-8")
        with pytest.raises(SnapshotFormatError):
            SnapshotStore(str(tmp_path)).load_latest()
