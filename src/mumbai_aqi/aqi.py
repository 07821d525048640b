"""
Concentration -> AQI transfer function (US EPA piecewise-linear breakpoints).
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

AQI_MIN = 0
AQI_MAX = 500
DEFAULT_AQI = 150

# Concentration breakpoints (ug/m3) and the index value at each one. The last
# segment's slope is carried on until the index reaches AQI_MAX.
PM25_BREAKPOINTS = np.array([0.0, 12.0, 35.4, 55.4, 150.4, 250.4, 350.4, 450.4])
PM10_BREAKPOINTS = np.array([0.0, 54.0, 154.0, 254.0, 354.0, 424.0, 504.0, 584.0])
INDEX_BREAKPOINTS = np.array([0.0, 50.0, 100.0, 150.0, 200.0, 300.0, 400.0, 500.0])

_CATEGORIES = (
    (50, "Good"),
    (100, "Moderate"),
    (150, "Unhealthy for Sensitive Groups"),
    (200, "Unhealthy"),
    (300, "Very Unhealthy"),
)


def _usable(value: Optional[float]) -> bool:
    if value is None:
        return False
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(value) and value >= 0


def _interpolate(concentration: float, breakpoints: np.ndarray) -> int:
    index = float(np.interp(concentration, breakpoints, INDEX_BREAKPOINTS))
    return int(min(max(round(index), AQI_MIN), AQI_MAX))


def compute_index(pm25: Optional[float] = None, pm10: Optional[float] = None) -> int:
    """
    Convert pollutant concentrations to an index in [0, 500].

    PM2.5 wins when present, PM10 is the fallback, and DEFAULT_AQI is returned
    when neither is usable (absent, NaN or negative).
    """
    if _usable(pm25):
        return _interpolate(float(pm25), PM25_BREAKPOINTS)
    if _usable(pm10):
        return _interpolate(float(pm10), PM10_BREAKPOINTS)
    return DEFAULT_AQI


def aqi_category(index: float) -> str:
    for upper, label in _CATEGORIES:
        if index <= upper:
            return label
    return "Hazardous"
