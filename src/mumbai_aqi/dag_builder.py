from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .config import PipelineConfig

try:
    from airflow import DAG
    from airflow.operators.python import PythonOperator
    AIRFLOW_AVAILABLE = True
except Exception:
    AIRFLOW_AVAILABLE = False
    DAG = None
    PythonOperator = None


DEFAULT_ARGS = {
    "owner": "data-team",
    "depends_on_past": False,
    "email_on_failure": False,
    "email_on_retry": False,
    "retries": 1,
    "retry_delay": timedelta(minutes=10),
}


def build_daily_dag(
    dag_id: str = "mumbai_aqi_daily",
    schedule: Optional[str] = None,
    start_date: Optional[datetime] = None,
    default_args: Optional[Dict[str, Any]] = None,
    config: Optional[PipelineConfig] = None,
    include_recommendations: bool = False,
) -> "DAG":
    if not AIRFLOW_AVAILABLE:
        raise ImportError("Airflow is not installed. Install apache-airflow to use build_daily_dag().")

    from .recommendations import run_recommendation_generation
    from .updater import run_aqi_update

    if config is None:
        config = PipelineConfig.from_env()
    if schedule is None:
        schedule = config.schedule
    if start_date is None:
        start_date = datetime.now(timezone.utc) - timedelta(days=1)
    if default_args is None:
        default_args = DEFAULT_ARGS.copy()

    with DAG(
        dag_id=dag_id,
        default_args=default_args,
        description="Mumbai AQI ingestion and recommendation generation",
        schedule_interval=schedule,
        start_date=start_date,
        catchup=False,
        tags=["aqi", "ingestion"],
    ) as dag:

        t_update = PythonOperator(
            task_id="update_aqi",
            python_callable=lambda: asyncio.run(run_aqi_update(config)),
        )

        if include_recommendations:
            t_generate = PythonOperator(
                task_id="generate_recommendations",
                python_callable=lambda: asyncio.run(run_recommendation_generation(config)),
            )
            t_update >> t_generate

    return dag


def build_dag_dot(include_recommendations: bool = False) -> str:
    edges = "  update_aqi;\n"
    if include_recommendations:
        edges = "  update_aqi -> generate_recommendations;\n"
    return (
        "digraph MUMBAI_AQI {\n"
        "  rankdir=LR;\n"
        '  node [shape=box, style="rounded,filled", fillcolor="#e8f5e9"];\n'
        "\n"
        f"{edges}"
        "}"
    )
