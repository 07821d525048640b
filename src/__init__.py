"""
Mumbai air-quality batch pipelines.

Packages:
- mumbai_aqi: AQI ingestion (multi-provider fallback) and recommendation generation
"""
