"""Batch recommendation generation: prompt -> serialized call -> sanitize -> publish."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .config import PipelineConfig
from .errors import GenerationError
from .io_utils import publish_snapshot, read_previous_json, write_run_log
from .llm_client import SerializedGenerationClient
from .models import Recommendation, Zone, ZoneRecommendations, recommendations_envelope
from .prompts import build_constraints, build_prompt
from .providers import client_scope
from .sanitize import sanitize_and_validate
from .zones import get_zone, load_zones

logger = logging.getLogger(__name__)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_current_index(path: Path) -> Dict[int, int]:
    """zone_id -> current_aqi from the latest AQI snapshot (empty if none)."""
    payload = read_previous_json(path)
    if payload is None:
        return {}

    records = payload.get("zones")
    if not isinstance(records, list):
        logger.warning("[snapshot] AQI snapshot has no 'zones' list, using baselines: %s", path)
        return {}

    index_map: Dict[int, int] = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        try:
            index_map[int(record["zone_id"])] = int(record["current_aqi"])
        except (KeyError, TypeError, ValueError):
            continue
    return index_map


def resolve_current_aqi(zone: Zone, index_map: Dict[int, int]) -> int:
    current = index_map.get(zone.id)
    return zone.baseline_aqi if current is None else current


async def generate_for_zone(
    zone: Zone,
    current_aqi: int,
    generator: SerializedGenerationClient,
    *,
    created_at: str,
    target_aqi: int = 30,
) -> list[Recommendation]:
    """
    Generate validated recommendations for one zone.

    Raises ServiceUnavailable, MalformedOutput or NoValidRecommendations.
    """
    constraints = build_constraints(zone)
    prompt = build_prompt(zone, current_aqi, constraints, target_aqi=target_aqi)
    raw = await generator.submit(prompt)
    candidates = sanitize_and_validate(raw, constraints.blocked_locations)
    return [
        Recommendation.from_candidate(c, zone_id=zone.id, ordinal=i, created_at=created_at)
        for i, c in enumerate(candidates, start=1)
    ]


async def generate_all(
    zones: list[Zone],
    index_map: Dict[int, int],
    generator: SerializedGenerationClient,
    config: PipelineConfig,
    *,
    created_at: str,
) -> tuple[list[ZoneRecommendations], list[Dict[str, Any]]]:
    """
    Attempt every zone in order; returns (generated entries, skipped zones).

    A GenerationError skips the zone and the run moves on.
    """
    entries: list[ZoneRecommendations] = []
    skipped: list[Dict[str, Any]] = []

    for position, zone in enumerate(zones):
        current_aqi = resolve_current_aqi(zone, index_map)
        logger.info("[generate] %s (AQI: %s)", zone.name, current_aqi)
        try:
            recs = await generate_for_zone(
                zone,
                current_aqi,
                generator,
                created_at=created_at,
                target_aqi=config.target_aqi,
            )
        except GenerationError as exc:
            logger.warning(
                "[generate] failed for %s: %s: %s", zone.name, type(exc).__name__, exc
            )
            skipped.append({"zone_id": zone.id, "error": type(exc).__name__, "message": str(exc)})
        else:
            entries.append(ZoneRecommendations(zone_id=zone.id, recommendations=recs))
            logger.info("[generate] %d recommendations for %s", len(recs), zone.name)

        if position < len(zones) - 1 and config.zone_pause_seconds > 0:
            await asyncio.sleep(config.zone_pause_seconds)

    return entries, skipped


def _summary(
    run_id: str,
    entries: list[ZoneRecommendations],
    skipped: list[Dict[str, Any]],
    written: list[str],
    finished_at: str,
    zones_attempted: int,
) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "job": "recommendations",
        "finished_at": finished_at,
        "zones_attempted": zones_attempted,
        "zones_generated": len(entries),
        "zones_skipped": len(skipped),
        "recommendations": sum(len(e.recommendations) for e in entries),
        "skipped": skipped,
        "outputs": written,
    }


async def run_recommendation_generation(
    config: PipelineConfig,
    *,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generate recommendations for every zone and publish one snapshot.

    Raises ReferenceDataError or PersistenceFailure; per-zone failures are
    logged and skipped, and the snapshot is written regardless.
    """
    run_id = config.run_id()
    zones = load_zones(config.zones_path())
    index_map = load_current_index(config.aqi_snapshot_path())
    created_at = _utc_iso()
    logger.info("[generate] generating recommendations for %d zones (run_id=%s)", len(zones), run_id)

    async with client_scope(config, client) as http:
        generator = SerializedGenerationClient(http, config, api_key=api_key)
        entries, skipped = await generate_all(zones, index_map, generator, config, created_at=created_at)

    envelope = recommendations_envelope(entries, last_updated=_utc_iso(), version=config.snapshot_version)
    written = publish_snapshot(
        envelope,
        [config.recommendations_path(), config.recommendations_publish_path()],
    )

    summary = _summary(run_id, entries, skipped, written, envelope["lastUpdated"], len(zones))
    logger.info(
        "[generate] complete: %d recommendations across %d zones (%d skipped)",
        summary["recommendations"],
        summary["zones_generated"],
        summary["zones_skipped"],
    )
    write_run_log(summary, config.run_log_path("recommendations"))
    return summary


def _merge_zone_entry(previous: Optional[Dict[str, Any]], entry: ZoneRecommendations) -> list[Dict[str, Any]]:
    merged: list[Dict[str, Any]] = []
    replaced = False
    existing_zones = (previous or {}).get("zones")
    if not isinstance(existing_zones, list):
        existing_zones = []
    for existing in existing_zones:
        if isinstance(existing, dict) and existing.get("zone_id") == entry.zone_id:
            merged.append(entry.to_record())
            replaced = True
        elif isinstance(existing, dict):
            merged.append(existing)
    if not replaced:
        merged.append(entry.to_record())
    return merged


async def run_single_zone(
    config: PipelineConfig,
    zone_id: int,
    *,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Regenerate one zone and splice it into the published snapshot.

    Unlike the batch run, a GenerationError propagates to the caller.
    """
    run_id = config.run_id()
    zones = load_zones(config.zones_path())
    zone = get_zone(zones, zone_id)
    current_aqi = resolve_current_aqi(zone, load_current_index(config.aqi_snapshot_path()))

    async with client_scope(config, client) as http:
        generator = SerializedGenerationClient(http, config, api_key=api_key)
        recs = await generate_for_zone(
            zone,
            current_aqi,
            generator,
            created_at=_utc_iso(),
            target_aqi=config.target_aqi,
        )

    entry = ZoneRecommendations(zone_id=zone.id, recommendations=recs)
    previous = read_previous_json(config.recommendations_path())
    envelope = {
        "zones": _merge_zone_entry(previous, entry),
        "lastUpdated": _utc_iso(),
        "version": config.snapshot_version,
    }
    written = publish_snapshot(
        envelope,
        [config.recommendations_path(), config.recommendations_publish_path()],
    )
    logger.info("[generate] %d recommendations for %s", len(recs), zone.name)
    return _summary(run_id, [entry], [], written, envelope["lastUpdated"], 1)
