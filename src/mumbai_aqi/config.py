from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

PLACEHOLDER_OPENAI_KEY = "YOUR_OPENAI_API_KEY_HERE"


def load_env_once(*, debug: bool = False) -> Optional[str]:
    """
    Load .env if present.
    - Primary: find_dotenv(usecwd=True) (walk up from CWD)
    - Fallback: repo_root/.env based on this file location
    Returns the path loaded (or None).
    """
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)
        if debug:
            logger.info("Loaded .env via find_dotenv: %s", dotenv_path)
        return dotenv_path

    repo_root = Path(__file__).resolve().parents[2]
    fallback = repo_root / ".env"
    if fallback.exists():
        load_dotenv(fallback, override=False)
        if debug:
            logger.info("Loaded .env via fallback: %s", str(fallback))
        return str(fallback)

    if debug:
        logger.info("No .env found to load.")
    return None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class PipelineConfig:
    # IO
    data_dir: str = "data"
    publish_dir: str = "client/public/data"
    snapshot_version: str = "1.0.0"

    # Measurement ingestion
    primary_base_url: str = "https://api.api-ninjas.com/v1/airquality"
    secondary_base_url: str = "https://api.openaq.org/v2/latest"
    secondary_radius_m: int = 10000
    provider_timeout_seconds: float = 10.0
    provider_retries: int = 2
    batch_size: int = 5
    batch_pause_seconds: float = 2.0
    next_update_hours: int = 24

    # Recommendation generation
    generation_base_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4.1-mini"
    temperature: float = 0.7
    generation_timeout_seconds: float = 120.0
    generation_pause_seconds: float = 0.1
    zone_pause_seconds: float = 2.0
    target_aqi: int = 30

    # Scheduling / metadata
    schedule: str = "0 6 * * *"

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        defaults = cls()
        return cls(
            data_dir=os.getenv("MUMBAI_AQI_DATA_DIR", defaults.data_dir),
            publish_dir=os.getenv("MUMBAI_AQI_PUBLISH_DIR", defaults.publish_dir),
            batch_size=_env_int("MUMBAI_AQI_BATCH_SIZE", defaults.batch_size),
            batch_pause_seconds=_env_float("MUMBAI_AQI_BATCH_PAUSE", defaults.batch_pause_seconds),
            zone_pause_seconds=_env_float("MUMBAI_AQI_ZONE_PAUSE", defaults.zone_pause_seconds),
            model=os.getenv("OPENAI_MODEL") or defaults.model,
        )

    def run_id(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    def data_path(self) -> Path:
        return Path(self.data_dir)

    def publish_path(self) -> Path:
        return Path(self.publish_dir)

    def zones_path(self) -> Path:
        return self.data_path() / "zones.json"

    def aqi_snapshot_path(self) -> Path:
        return self.data_path() / "aqi-data.json"

    def aqi_publish_path(self) -> Path:
        return self.publish_path() / "aqi-data.json"

    def recommendations_path(self) -> Path:
        return self.data_path() / "recommendations.json"

    def recommendations_publish_path(self) -> Path:
        return self.publish_path() / "recommendations.json"

    def run_log_path(self, job: str) -> Path:
        return self.data_path() / f"run_log_{job}.json"
