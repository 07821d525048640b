from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import PipelineConfig
from .errors import GenerationError, PersistenceFailure, ReferenceDataError
from .recommendations import run_recommendation_generation, run_single_zone
from .updater import run_aqi_update

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger(__name__)
app = typer.Typer(add_completion=False)
console = Console()


def _build_config(
    data_dir: Optional[str],
    publish_dir: Optional[str],
    batch_size: Optional[int] = None,
) -> PipelineConfig:
    cfg = PipelineConfig.from_env()
    overrides: Dict[str, Any] = {}
    if data_dir:
        overrides["data_dir"] = data_dir
    if publish_dir:
        overrides["publish_dir"] = publish_dir
    if batch_size:
        overrides["batch_size"] = batch_size
    return replace(cfg, **overrides) if overrides else cfg


def _print_results(title: str, results: Dict[str, Any]) -> None:
    table = Table(title=title)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    for k, v in results.items():
        table.add_row(str(k), str(v))

    console.print(table)


@app.command("update-aqi")
def update_aqi(
    data_dir: Optional[str] = typer.Option(None, help="Canonical store directory (zones.json, aqi-data.json)."),
    publish_dir: Optional[str] = typer.Option(None, help="Directory for the published copy."),
    batch_size: Optional[int] = typer.Option(None, help="Zones fetched concurrently per batch."),
):
    """Fetch current AQI for every zone and publish the snapshot."""
    cfg = _build_config(data_dir, publish_dir, batch_size)
    try:
        results = asyncio.run(run_aqi_update(cfg))
    except (ReferenceDataError, PersistenceFailure) as exc:
        logger.error("[aqi-update] fatal: %s", exc)
        raise typer.Exit(code=1)

    _print_results("AQI Update Results", results)


@app.command("generate-recommendations")
def generate_recommendations(
    data_dir: Optional[str] = typer.Option(None, help="Canonical store directory."),
    publish_dir: Optional[str] = typer.Option(None, help="Directory for the published copy."),
    zone_id: Optional[int] = typer.Option(None, help="Regenerate a single zone; failures are fatal."),
):
    """Generate mitigation recommendations and publish the snapshot."""
    cfg = _build_config(data_dir, publish_dir)
    try:
        if zone_id is None:
            results = asyncio.run(run_recommendation_generation(cfg))
        else:
            results = asyncio.run(run_single_zone(cfg, zone_id))
    except (ReferenceDataError, PersistenceFailure, GenerationError, KeyError) as exc:
        logger.error("[generate] fatal: %s: %s", type(exc).__name__, exc)
        raise typer.Exit(code=1)

    _print_results("Recommendation Results", results)


if __name__ == "__main__":
    app()
