"""
Mumbai AQI pipeline (live AQI ingestion + generated mitigation recommendations).

Modules:
- config: pipeline configuration, paths and .env loading
- aqi: concentration -> AQI transfer function
- providers: primary/secondary measurement fetcher
- updater: batched AQI snapshot job
- prompts: allow-list / block-list prompt construction
- llm_client: single-flight generation client
- sanitize: repair + validation of generated JSON
- recommendations: recommendation snapshot job
- cli: Typer entry points
"""
