"""Error taxonomy for the ingestion and generation jobs.

Per-zone conditions (ProviderFailure, GenerationError and its subclasses) are
caught at the zone boundary by the batch drivers. ReferenceDataError and
PersistenceFailure end the job.
"""

from __future__ import annotations


class PipelineError(Exception):
    pass


class ProviderFailure(PipelineError):
    """Transport error, timeout, or malformed/empty payload from a measurement provider."""


class GenerationError(PipelineError):
    """Any failure that ends generation for a single zone."""


class ServiceUnavailable(GenerationError):
    """Missing credential, failed call, or empty payload from the generation service."""


class MalformedOutput(GenerationError):
    """No bracketed array in the response, or unparsable after repair."""


class NoValidRecommendations(GenerationError):
    """Every parsed candidate was rejected by validation."""


class ReferenceDataError(PipelineError):
    """The zones document is missing, unreadable, or invalid."""


class PersistenceFailure(PipelineError):
    """A snapshot could not be written."""
