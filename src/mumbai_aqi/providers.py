from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .aqi import AQI_MAX, AQI_MIN, compute_index
from .config import PipelineConfig, load_env_once
from .errors import ProviderFailure
from .models import POLLUTANTS, SOURCE_PRIMARY, SOURCE_SECONDARY, Measurement

logger = logging.getLogger(__name__)

# Primary provider reports each pollutant as {"<KEY>": {"concentration": x}}.
_PRIMARY_POLLUTANT_KEYS = {
    "pm25": "PM2.5",
    "pm10": "PM10",
    "no2": "NO2",
    "o3": "O3",
    "co": "CO",
}

# Shape errors from an unexpected payload; any of these fails only that provider.
_DECODE_ERRORS = (TypeError, ValueError, KeyError, AttributeError, OverflowError)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_client(config: PipelineConfig) -> httpx.AsyncClient:
    """AsyncClient with connection retries and the provider timeout."""
    transport = httpx.AsyncHTTPTransport(retries=config.provider_retries)
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.provider_timeout_seconds),
    )


@asynccontextmanager
async def client_scope(
    config: PipelineConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a fresh one closed on exit."""
    if client is not None:
        yield client
        return
    async with create_client(config) as owned:
        yield owned


def _as_concentration(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) and value >= 0 else None


class MeasurementFetcher:
    """
    Fetch a current Measurement for one coordinate.

    The primary provider (precomputed index, needs AQI_API_KEY) is tried first;
    the secondary provider (raw concentrations, no key) is the fallback.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: Optional[PipelineConfig] = None,
        api_key: Optional[str] = None,
        *,
        debug_env: bool = False,
    ):
        load_env_once(debug=debug_env)
        self.client = client
        self.config = config or PipelineConfig()
        self.api_key = api_key or os.getenv("AQI_API_KEY", "")

    async def _get_json(
        self,
        provider: str,
        url: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            resp = await self.client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.config.provider_timeout_seconds,
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderFailure(f"{provider}: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ProviderFailure(f"{provider}: {type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise ProviderFailure(f"{provider}: invalid JSON payload") from exc

    async def fetch_primary(self, latitude: float, longitude: float, zone_id: int) -> Measurement:
        payload = await self._get_json(
            SOURCE_PRIMARY,
            self.config.primary_base_url,
            params={"lat": latitude, "lon": longitude},
            headers={"X-Api-Key": self.api_key},
        )
        if not isinstance(payload, dict) or payload.get("overall_aqi") is None:
            raise ProviderFailure("primary: response has no overall_aqi")

        try:
            raw_index = float(payload["overall_aqi"])
        except (TypeError, ValueError) as exc:
            raise ProviderFailure(f"primary: non-numeric overall_aqi {payload['overall_aqi']!r}") from exc
        if not math.isfinite(raw_index):
            raise ProviderFailure(f"primary: non-finite overall_aqi {payload['overall_aqi']!r}")
        index = int(round(raw_index))

        pollutants = {}
        for field_name, key in _PRIMARY_POLLUTANT_KEYS.items():
            entry = payload.get(key)
            value = entry.get("concentration") if isinstance(entry, dict) else None
            pollutants[field_name] = _as_concentration(value)

        return Measurement(
            zone_id=zone_id,
            current_aqi=min(max(index, AQI_MIN), AQI_MAX),
            data_source=SOURCE_PRIMARY,
            last_updated=_utc_iso(),
            **pollutants,
        )

    async def fetch_secondary(self, latitude: float, longitude: float, zone_id: int) -> Measurement:
        payload = await self._get_json(
            SOURCE_SECONDARY,
            self.config.secondary_base_url,
            params={
                "coordinates": f"{latitude},{longitude}",
                "radius": self.config.secondary_radius_m,
                "limit": 1,
            },
        )
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise ProviderFailure("secondary: no location within radius")

        measurements = results[0].get("measurements")
        if not isinstance(measurements, list):
            raise ProviderFailure(f"secondary: measurements is not a list: {type(measurements).__name__}")

        pollutants: Dict[str, Optional[float]] = {name: None for name in POLLUTANTS}
        for item in measurements:
            if not isinstance(item, dict):
                continue
            parameter = str(item.get("parameter", "")).lower()
            if parameter in pollutants and pollutants[parameter] is None:
                pollutants[parameter] = _as_concentration(item.get("value"))

        if all(v is None for v in pollutants.values()):
            raise ProviderFailure("secondary: location has no pollutant measurements")

        return Measurement(
            zone_id=zone_id,
            current_aqi=compute_index(pollutants["pm25"], pollutants["pm10"]),
            data_source=SOURCE_SECONDARY,
            last_updated=_utc_iso(),
            **pollutants,
        )

    async def _attempt(self, fetch_one, latitude: float, longitude: float, zone_id: int) -> Measurement:
        """Run one provider; payload decoding errors become ProviderFailure."""
        try:
            return await fetch_one(latitude, longitude, zone_id)
        except _DECODE_ERRORS as exc:
            raise ProviderFailure(f"malformed payload: {type(exc).__name__}: {exc}") from exc

    async def fetch(self, latitude: float, longitude: float, zone_id: int) -> Optional[Measurement]:
        """Return a Measurement, or None when neither provider has usable data."""
        if self.api_key:
            try:
                return await self._attempt(self.fetch_primary, latitude, longitude, zone_id)
            except ProviderFailure as exc:
                logger.warning("[fetch] zone=%s primary failed, trying secondary: %s", zone_id, exc)
        else:
            logger.debug("[fetch] zone=%s no AQI_API_KEY, skipping primary", zone_id)

        try:
            return await self._attempt(self.fetch_secondary, latitude, longitude, zone_id)
        except ProviderFailure as exc:
            logger.warning("[fetch] zone=%s secondary failed: %s", zone_id, exc)
        return None
