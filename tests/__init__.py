"""
Mumbai AQI Pipeline Test Suite

Tests organized by component (tests/mumbai_aqi/):
- test_aqi.py — concentration -> index transfer function
- test_providers.py — primary/secondary measurement fallback
- test_updater.py — batched AQI snapshot job
- test_prompts.py — allow-list / block-list prompt construction
- test_llm_client.py — single-flight generation client
- test_sanitize.py — response repair and candidate validation
- test_recommendations.py — recommendation snapshot job
- test_zones_io.py — zones document, config and snapshot IO
- test_cli.py — Typer entry points and exit codes
"""
