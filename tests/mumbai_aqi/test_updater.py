"""Tests for the batched AQI update job."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from src.mumbai_aqi.errors import PersistenceFailure, ReferenceDataError
from src.mumbai_aqi.updater import run_aqi_update, summarize_snapshot

PRIMARY_HOST = "api.api-ninjas.com"


def _failing_for(lat_fail: str, aqi_by_lat: dict[str, int] | None = None):
    """Primary answers every zone except lat_fail; secondary always fails."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host != PRIMARY_HOST:
            return httpx.Response(503)
        lat = request.url.params["lat"]
        if lat == lat_fail:
            return httpx.Response(500)
        aqi = (aqi_by_lat or {}).get(lat, 88)
        return httpx.Response(200, json={"overall_aqi": aqi})

    return handler


def _run(config, handler, api_key="k"):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await run_aqi_update(config, client=client, api_key=api_key)

    return asyncio.run(_go())


class TestAqiUpdate:
    """End-to-end behaviour of run_aqi_update."""

    def test_failed_zone_without_history_uses_baseline(self, pipeline_config, write_zones):
        """Zone 1 fails with no prior snapshot; zones 2 and 3 succeed via primary."""
        write_zones()

        summary = _run(pipeline_config, _failing_for("19.1", {"19.05": 61, "19.12": 77}))

        assert summary["updated"] == 2
        assert summary["failed"] == 1

        snapshot = json.loads(pipeline_config.aqi_snapshot_path().read_text())
        by_zone = {z["zone_id"]: z for z in snapshot["zones"]}
        assert len(snapshot["zones"]) == 3
        assert by_zone[1]["current_aqi"] == 140
        assert by_zone[1]["data_source"] == "unknown"
        assert by_zone[2]["current_aqi"] == 61
        assert by_zone[3]["data_source"] == "primary"
        assert snapshot["version"] == "1.0.0"
        assert "lastUpdated" in snapshot and "nextUpdate" in snapshot

    def test_failed_zone_keeps_previous_entry(self, pipeline_config, write_zones):
        """A failed zone carries its previous snapshot entry forward unchanged."""
        write_zones()
        previous_entry = {
            "zone_id": 1,
            "current_aqi": 97,
            "pm25": 33.0,
            "pm10": None,
            "no2": None,
            "o3": None,
            "co": None,
            "data_source": "secondary",
            "last_updated": "2026-01-01T00:00:00+00:00",
        }
        path = pipeline_config.aqi_snapshot_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"zones": [previous_entry], "version": "1.0.0"}))

        _run(pipeline_config, _failing_for("19.1"))

        snapshot = json.loads(path.read_text())
        by_zone = {z["zone_id"]: z for z in snapshot["zones"]}
        assert by_zone[1] == previous_entry

    def test_publish_copy_matches_canonical(self, pipeline_config, write_zones):
        write_zones()
        summary = _run(pipeline_config, _failing_for("none"))

        canonical = pipeline_config.aqi_snapshot_path().read_text()
        published = pipeline_config.aqi_publish_path().read_text()
        assert canonical == published
        assert len(summary["outputs"]) == 2
        assert pipeline_config.run_log_path("aqi").exists()

    def test_zone_order_preserved(self, pipeline_config, write_zones):
        write_zones()
        _run(pipeline_config, _failing_for("none"))
        snapshot = json.loads(pipeline_config.aqi_snapshot_path().read_text())
        assert [z["zone_id"] for z in snapshot["zones"]] == [1, 2, 3]

    def test_batches_bound_concurrency(self, pipeline_config, write_zones, zone_records):
        """At most batch_size fetches are in flight, and a batch runs together."""
        records = [dict(zone_records[0], id=i, latitude=10 + i) for i in range(1, 6)]
        write_zones(records)
        config = replace(pipeline_config, batch_size=2)
        state = {"in_flight": 0, "max": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            state["in_flight"] += 1
            state["max"] = max(state["max"], state["in_flight"])
            await asyncio.sleep(0.01)
            state["in_flight"] -= 1
            return httpx.Response(200, json={"overall_aqi": 50})

        summary = _run(config, handler)

        assert summary["updated"] == 5
        assert state["max"] == 2

    def test_malformed_payload_fails_only_that_zone(self, pipeline_config, write_zones):
        """Zone 1 gets an infinite index and scalar measurements; the batch still completes."""
        write_zones()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host != PRIMARY_HOST:
                return httpx.Response(200, json={"results": [{"measurements": 5}]})
            if request.url.params["lat"] == "19.1":
                return httpx.Response(200, content=b'{"overall_aqi": 1e400}')
            return httpx.Response(200, json={"overall_aqi": 50})

        summary = _run(pipeline_config, handler)

        assert summary["updated"] == 2
        assert summary["failed"] == 1
        snapshot = json.loads(pipeline_config.aqi_snapshot_path().read_text())
        by_zone = {z["zone_id"]: z for z in snapshot["zones"]}
        assert by_zone[1]["current_aqi"] == 140
        assert by_zone[1]["data_source"] == "unknown"
        assert by_zone[2]["current_aqi"] == 50

    def test_previous_snapshot_without_zone_list(self, pipeline_config, write_zones):
        """A previous snapshot whose zones field is not a list is ignored, not fatal."""
        write_zones()
        path = pipeline_config.aqi_snapshot_path()
        path.write_text(json.dumps({"zones": 5, "version": "1.0.0"}))

        summary = _run(pipeline_config, _failing_for("19.1"))

        assert summary["failed"] == 1
        snapshot = json.loads(path.read_text())
        assert snapshot["zones"][0]["current_aqi"] == 140

    def test_missing_zones_is_fatal(self, pipeline_config):
        with pytest.raises(ReferenceDataError):
            _run(pipeline_config, _failing_for("none"))

    def test_unwritable_publish_location_is_fatal(self, pipeline_config, write_zones, tmp_path):
        write_zones()
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = replace(pipeline_config, publish_dir=str(blocker / "nested"))

        with pytest.raises(PersistenceFailure):
            _run(config, _failing_for("none"))


class TestSummarizeSnapshot:
    def test_counts_and_mean(self):
        records = [
            {"zone_id": 1, "current_aqi": 40, "data_source": "primary"},
            {"zone_id": 2, "current_aqi": 60, "data_source": "primary"},
            {"zone_id": 3, "current_aqi": 200, "data_source": "unknown"},
        ]
        summary = summarize_snapshot(records)
        assert summary["zones"] == 3
        assert summary["by_source"] == {"primary": 2, "unknown": 1}
        assert summary["mean_aqi"] == 100
        assert summary["mean_category"] == "Moderate"

    def test_empty(self):
        assert summarize_snapshot([])["mean_aqi"] is None
