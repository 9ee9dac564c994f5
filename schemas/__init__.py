"""
Pydantic schemas for data validation and serialization.

Schemas:
    weather: Upstream API response (WeatherReading), target locations and
             the extract file row layout (EXTRACT_COLUMNS)
    staging: Typed staging records with defensive coercion and hash keys
    reports: Extraction outcome and per-stage load reports

Usage:
    from schemas.weather import WeatherReading, Location
    from schemas.staging import LocationRecord, compute_hash_key
    from schemas.reports import ExtractionOutcome, FailurePolicy

Validation:
    Upstream payloads are validated strictly; a missing required field
    fails that location only. Staging records coerce bad numerics to None
    and bad timestamps to UNKNOWN_OBSERVED_AT, and reject only rows with
    no natural key.
"""

__all__ = [
    "EXTRACT_COLUMNS",
    "Location",
    "WeatherReading",
    "LocationRecord",
    "ConditionRecord",
    "ObservationRecord",
    "AirQualityRecord",
    "UNKNOWN_OBSERVED_AT",
    "FailurePolicy",
    "OutcomeKind",
    "EntityFailure",
    "ExtractionOutcome",
    "StagingLoadReport",
    "TransformReport",
    "WarehouseLoadReport",
    "StageResult",
]
