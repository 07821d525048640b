"""Batch AQI update: fetch every zone in batches and publish one snapshot."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import pandas as pd

from .aqi import aqi_category
from .config import PipelineConfig
from .io_utils import publish_snapshot, read_previous_json, write_run_log
from .models import SOURCE_UNKNOWN, Measurement, Zone, aqi_envelope
from .providers import MeasurementFetcher, client_scope
from .zones import load_zones

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def load_previous_measurements(path: Path) -> Dict[int, Dict[str, Any]]:
    """zone_id -> record from the last published AQI snapshot (empty if none)."""
    payload = read_previous_json(path)
    if payload is None:
        return {}

    records = payload.get("zones")
    if not isinstance(records, list):
        logger.warning("[snapshot] previous AQI snapshot has no 'zones' list, ignoring: %s", path)
        return {}

    lookup: Dict[int, Dict[str, Any]] = {}
    for record in records:
        if isinstance(record, dict) and record.get("zone_id") is not None:
            try:
                lookup[int(record["zone_id"])] = record
            except (TypeError, ValueError):
                continue
    return lookup


def fallback_record(zone: Zone, previous: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    """Previous entry unchanged, else a baseline measurement tagged unknown."""
    existing = previous.get(zone.id)
    if existing is not None:
        return existing
    return Measurement(
        zone_id=zone.id,
        current_aqi=zone.baseline_aqi,
        data_source=SOURCE_UNKNOWN,
        last_updated=_utc_now().isoformat(),
    ).to_record()


async def _update_zone(
    fetcher: MeasurementFetcher,
    zone: Zone,
    previous: Dict[int, Dict[str, Any]],
) -> tuple[Dict[str, Any], bool]:
    measurement = await fetcher.fetch(zone.latitude, zone.longitude, zone.id)
    if measurement is not None:
        logger.info(
            "[aqi-update] updated %s: AQI %s (%s, source=%s)",
            zone.name,
            measurement.current_aqi,
            aqi_category(measurement.current_aqi),
            measurement.data_source,
        )
        return measurement.to_record(), True

    record = fallback_record(zone, previous)
    logger.warning(
        "[aqi-update] no AQI data for %s, keeping %s value %s",
        zone.name,
        "previous" if zone.id in previous else "baseline",
        record.get("current_aqi"),
    )
    return record, False


async def collect_measurements(
    zones: list[Zone],
    fetcher: MeasurementFetcher,
    previous: Dict[int, Dict[str, Any]],
    config: PipelineConfig,
) -> tuple[list[Dict[str, Any]], int, int]:
    """
    Fetch zones in sequential batches of config.batch_size, concurrently within a batch.

    Returns (records in zone order, updated count, failed count).
    """
    records: list[Dict[str, Any]] = []
    updated = 0
    failed = 0
    size = max(1, config.batch_size)

    for start in range(0, len(zones), size):
        batch = zones[start:start + size]
        results = await asyncio.gather(*(_update_zone(fetcher, z, previous) for z in batch))
        for record, ok in results:
            records.append(record)
            if ok:
                updated += 1
            else:
                failed += 1

        if start + size < len(zones) and config.batch_pause_seconds > 0:
            await asyncio.sleep(config.batch_pause_seconds)

    return records, updated, failed


def summarize_snapshot(records: list[Dict[str, Any]]) -> Dict[str, Any]:
    if not records:
        return {"zones": 0, "by_source": {}, "mean_aqi": None, "mean_category": None}

    df = pd.DataFrame.from_records(records)
    aqi = pd.to_numeric(df["current_aqi"], errors="coerce")
    mean_aqi = int(round(float(aqi.mean()))) if aqi.notna().any() else None
    return {
        "zones": int(len(df)),
        "by_source": {str(k): int(v) for k, v in df["data_source"].value_counts().items()},
        "mean_aqi": mean_aqi,
        "mean_category": aqi_category(mean_aqi) if mean_aqi is not None else None,
    }


async def run_aqi_update(
    config: PipelineConfig,
    *,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Update every zone and publish the AQI snapshot.

    Raises ReferenceDataError if zones cannot be read and PersistenceFailure
    if the snapshot cannot be written; per-zone failures are absorbed.
    """
    run_id = config.run_id()
    zones = load_zones(config.zones_path())
    previous = load_previous_measurements(config.aqi_snapshot_path())
    logger.info("[aqi-update] updating AQI for %d zones (run_id=%s)", len(zones), run_id)

    async with client_scope(config, client) as http:
        fetcher = MeasurementFetcher(http, config, api_key=api_key)
        records, updated, failed = await collect_measurements(zones, fetcher, previous, config)

    now = _utc_now()
    envelope = aqi_envelope(
        records,
        last_updated=now.isoformat(),
        next_update=(now + timedelta(hours=config.next_update_hours)).isoformat(),
        version=config.snapshot_version,
    )
    written = publish_snapshot(envelope, [config.aqi_snapshot_path(), config.aqi_publish_path()])
    logger.info("[aqi-update] complete: %d updated, %d failed", updated, failed)

    summary = {
        "run_id": run_id,
        "job": "aqi",
        "finished_at": now.isoformat(),
        "updated": updated,
        "failed": failed,
        "outputs": written,
        **{f"snapshot_{k}": v for k, v in summarize_snapshot(records).items()},
    }
    write_run_log(summary, config.run_log_path("aqi"))
    return summary
