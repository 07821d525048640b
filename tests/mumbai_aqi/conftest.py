"""Shared fixtures for the Mumbai AQI pipeline tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.mumbai_aqi.config import PipelineConfig


@pytest.fixture(autouse=True)
def _no_credentials(monkeypatch):
    """Tests pass credentials explicitly; never pick them up from the shell."""
    monkeypatch.delenv("AQI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_MODEL", raising=False)


@pytest.fixture
def zone_records() -> list[dict]:
    return [
        {
            "id": 1,
            "name": "Juhu",
            "latitude": 19.1,
            "longitude": 72.8,
            "baseline_aqi": 140,
            "major_roads": "Juhu Tara Road, Gulmohar Road",
            "parks_and_open_spaces": "Juhu Garden",
            "proximity_to_sea": "Coastal",
        },
        {
            "id": 2,
            "name": "Chembur",
            "latitude": 19.05,
            "longitude": 72.9,
            "baseline_aqi": 180,
            "major_roads": "Sion-Trombay Road",
            "industrial_areas": "Trombay refineries",
        },
        {
            "id": 3,
            "name": "Powai",
            "latitude": 19.12,
            "longitude": 72.91,
            "baseline_aqi": 120,
        },
    ]


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        data_dir=str(tmp_path / "data"),
        publish_dir=str(tmp_path / "public"),
        batch_pause_seconds=0,
        zone_pause_seconds=0,
        generation_pause_seconds=0,
    )


@pytest.fixture
def write_zones(pipeline_config: PipelineConfig, zone_records: list[dict]):
    def _write(records: list[dict] | None = None) -> Path:
        path = pipeline_config.zones_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"zones": zone_records if records is None else records}))
        return path

    return _write
