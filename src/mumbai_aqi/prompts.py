"""
Prompt construction for zone recommendations.

Each prompt pins the model to the zone's own roads and parks (allow-lists)
and forbids well-known areas that belong elsewhere (block-list).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, Optional

from .models import Zone
from .zones import KNOWN_AREAS

SYSTEM_PROMPT = (
    "You are a senior environmental consultant and air quality expert. "
    "Always return STRICTLY valid JSON as requested by the user, with no extra text."
)

REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "aqi_reduction",
    "impact_level",
    "timeframe",
    "cost",
    "stakeholders",
)

MIN_RECOMMENDATIONS = 7
MAX_RECOMMENDATIONS = 10


@dataclass(frozen=True)
class PromptConstraints:
    allowed_roads: tuple[str, ...]
    allowed_parks: tuple[str, ...]
    blocked_locations: tuple[str, ...]


def split_places(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def build_block_list(
    zone_name: str,
    roads: Iterable[str],
    parks: Iterable[str],
    catalogue: Iterable[str] = KNOWN_AREAS,
) -> tuple[str, ...]:
    """Catalogue entries that are not a substring of the zone's name, roads or parks."""
    own_text = [zone_name.lower()]
    own_text.extend(r.lower() for r in roads)
    own_text.extend(p.lower() for p in parks)

    blocked = []
    for location in catalogue:
        needle = location.lower()
        if not any(needle in text for text in own_text):
            blocked.append(location)
    return tuple(blocked)


def build_constraints(zone: Zone, catalogue: Iterable[str] = KNOWN_AREAS) -> PromptConstraints:
    roads = split_places(zone.major_roads)
    parks = split_places(zone.parks_and_open_spaces)
    return PromptConstraints(
        allowed_roads=roads,
        allowed_parks=parks,
        blocked_locations=build_block_list(zone.name, roads, parks, catalogue),
    )


def _zone_context(zone: Zone) -> list[str]:
    lines = []
    if zone.proximity_to_sea:
        lines.append(f"Proximity to sea: {zone.proximity_to_sea}")
    if zone.green_space_percentage is not None:
        lines.append(f"Current green space coverage: {zone.green_space_percentage:g}%")
    if zone.major_roads:
        lines.append(f"Major roads in area: {zone.major_roads}")
    if zone.parks_and_open_spaces:
        lines.append(f"Existing parks and open spaces: {zone.parks_and_open_spaces}")
    if zone.industrial_areas:
        lines.append(f"Industrial areas: {zone.industrial_areas}")
    if zone.pollution_sources:
        lines.append(f"Known pollution sources: {zone.pollution_sources}")
    if zone.land_use_type:
        lines.append(f"Land use type: {zone.land_use_type}")
    if zone.population_density:
        lines.append(f"Population density: {zone.population_density}")
    return lines


def _example_object(zone_name: str) -> str:
    example = {
        "title": "Implement Comprehensive Traffic Management - High Impact",
        "description": (
            "Establish congestion pricing during peak hours on a road from the allowed list "
            "and restrict entry of older diesel vehicles. Create dedicated bus corridors and "
            f"add electric vehicle charging points at sites inside {zone_name}. "
            f"Traffic is a major pollution source in {zone_name}, which makes this intervention critical."
        ),
        "aqi_reduction": 35,
        "impact_level": "High Impact",
        "timeframe": "Medium term",
        "cost": "High",
        "stakeholders": "Municipal Corporation, Traffic Police, Transport Department",
    }
    return json.dumps([example], indent=2)


def build_prompt(
    zone: Zone,
    current_aqi: int,
    constraints: Optional[PromptConstraints] = None,
    *,
    target_aqi: int = 30,
) -> str:
    """Render the user prompt for one zone. Pure function of its inputs."""
    if constraints is None:
        constraints = build_constraints(zone)

    name = zone.name
    roads = (
        ", ".join(constraints.allowed_roads)
        if constraints.allowed_roads
        else 'None specified - use generic references like "main roads" or "residential streets"'
    )
    parks = (
        ", ".join(constraints.allowed_parks)
        if constraints.allowed_parks
        else 'None specified - use generic references like "local parks" or "open spaces"'
    )
    blocked = ", ".join(constraints.blocked_locations) if constraints.blocked_locations else "None"
    context = "\n".join(_zone_context(zone)) or "No additional location data available."

    sections = [
        "You are a senior environmental consultant with long experience in urban air pollution "
        "mitigation in Mumbai. Write detailed, technically specific recommendations for THIS "
        "LOCATION ONLY.",
        "",
        f"TARGET LOCATION: {name}",
        f"Current AQI: {current_aqi}",
        f"Target AQI: {target_aqi}",
        f"AQI Reduction Needed: {current_aqi - target_aqi} points",
        "",
        "LOCATION DATA (USE ONLY THESE DETAILS):",
        context,
        "",
        f"ONLY ALLOWED ROADS IN THIS AREA: {roads}",
        f"ONLY ALLOWED PARKS/OPEN SPACES: {parks}",
        f"DO NOT MENTION THESE LOCATIONS (they are NOT in {name}): {blocked}",
        "",
        "RULES:",
        f"1. Every recommendation must be specific to {name}; do not mention other Mumbai locations.",
        "2. Mention roads only from the allowed roads list.",
        "3. Mention parks or open spaces only from the allowed parks list.",
        "4. Never mention any location from the DO NOT MENTION list.",
        f'5. Without specific roads or parks, use generic terms such as "main roads in {name}" '
        f'or "local parks in {name}".',
        "",
        f"Provide {MIN_RECOMMENDATIONS}-{MAX_RECOMMENDATIONS} unique recommendations. Each one has:",
        "- title: 15-20 words, descriptive, ending with the impact level",
        f"- description: 5-8 sentences with technical implementation details, exact allowed "
        f"locations, and why it matters for {name}",
        "- aqi_reduction: integer between 5 and 40",
        "- impact_level: High Impact / Medium Impact / Low Impact",
        "- timeframe: Short term (0-6 months) / Medium term (6-18 months) / Long term (18+ months)",
        "- cost: Low (<10L) / Medium (10L-50L) / High (>50L)",
        "- stakeholders: who must be involved",
        "",
        "JSON FORMAT REQUIREMENTS:",
        "- Return ONLY a valid JSON array",
        "- Use double quotes for ALL strings",
        "- NO markdown code blocks",
        "- NO text before or after the JSON",
        f"- Each object has exactly these {len(REQUIRED_FIELDS)} fields: {', '.join(REQUIRED_FIELDS)}",
        "",
        f"Example (create {MIN_RECOMMENDATIONS}-{MAX_RECOMMENDATIONS} objects like this):",
        _example_object(name),
        "",
        "Return the JSON array now:",
    ]
    return "\n".join(sections)
