from __future__ import annotations

import logging
from pathlib import Path

from .errors import ReferenceDataError
from .io_utils import read_json
from .models import Zone

logger = logging.getLogger(__name__)

# Well-known Mumbai areas and landmarks. A zone's prompt forbids every entry
# that is not part of its own name, roads or parks.
KNOWN_AREAS: tuple[str, ...] = (
    "Juhu",
    "Bandra",
    "Colaba",
    "Andheri",
    "Dadar",
    "Worli",
    "Marine Lines",
    "SV Road",
    "Linking Road",
    "Hill Road",
    "Juhu Beach Road",
    "ISKCON Temple",
    "Carter Road",
)


def load_zones(path: Path) -> list[Zone]:
    """
    Load the zones document ({"zones": [...]}).

    Raises ReferenceDataError when the file is missing, unparsable, or holds
    an invalid/duplicate zone record.
    """
    try:
        payload = read_json(path)
    except (OSError, ValueError) as exc:
        raise ReferenceDataError(f"Cannot read zones document {path}: {exc}") from exc

    raw_zones = payload.get("zones") if isinstance(payload, dict) else None
    if not isinstance(raw_zones, list):
        raise ReferenceDataError(f"Zones document {path} has no 'zones' list")

    zones: list[Zone] = []
    seen: set[int] = set()
    for raw in raw_zones:
        if not isinstance(raw, dict):
            raise ReferenceDataError(f"Zone entry is not an object: {raw!r}")
        try:
            zone = Zone.from_dict(raw)
        except (TypeError, ValueError) as exc:
            raise ReferenceDataError(str(exc)) from exc
        if zone.id in seen:
            raise ReferenceDataError(f"Duplicate zone id {zone.id} in {path}")
        seen.add(zone.id)
        zones.append(zone)

    logger.info("[zones] loaded %d zones from %s", len(zones), path)
    return zones


def get_zone(zones: list[Zone], zone_id: int) -> Zone:
    for zone in zones:
        if zone.id == zone_id:
            return zone
    raise KeyError(f"Unknown zone id: {zone_id}")
