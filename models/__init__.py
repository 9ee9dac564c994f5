"""
SQLAlchemy ORM models for the control, raw, staging and warehouse tiers.

Models:
    base: Base declarative class and shared enums (ExecutionStatus, RecordStatus, ProcessName)
    process_config: Per-day process/source configuration (get-or-create)
    execution_log: One row per attempt of a tracked process
    raw_data: Untyped raw tables, one per upstream entity, tagged with batch_id
    staging_data: Typed, deduplicated, hash-tagged staging tables
    warehouse: Star schema (dim_date, dim_location, dim_weather_condition,
               fact_weather_daily, fact_air_quality_daily)

Database Schema:
    All models share one declarative Base. JSON payloads use JSONB on
    PostgreSQL and plain JSON on other dialects.

Usage:
    from models.execution_log import ExecutionLog
    from models.raw_data import RawWeatherLocation
    from models.base import ExecutionStatus, ProcessName

Relationships:
    - ProcessConfig → ExecutionLog (one-to-many)
    - ExecutionLog.execution_id → raw/staging batch_id (by value, across stores)
    - DimLocation / DimWeatherCondition / DimDate → facts (surrogate keys)
"""

from models.base import Base, ExecutionStatus, RecordStatus, ProcessName
from models.process_config import ProcessConfig
from models.execution_log import ExecutionLog
from models.raw_data import (
    RawWeatherLocation,
    RawWeatherCondition,
    RawAirQuality,
    RawWeatherObservation,
)
from models.staging_data import (
    StgLocation,
    StgWeatherCondition,
    StgWeatherObservation,
    StgAirQuality,
)
from models.warehouse import (
    DimDate,
    DimLocation,
    DimWeatherCondition,
    FactWeatherDaily,
    FactAirQualityDaily,
)

__all__ = [
    "Base",
    "ExecutionStatus",
    "RecordStatus",
    "ProcessName",
    "ProcessConfig",
    "ExecutionLog",
    "RawWeatherLocation",
    "RawWeatherCondition",
    "RawAirQuality",
    "RawWeatherObservation",
    "StgLocation",
    "StgWeatherCondition",
    "StgWeatherObservation",
    "StgAirQuality",
    "DimDate",
    "DimLocation",
    "DimWeatherCondition",
    "FactWeatherDaily",
    "FactAirQualityDaily",
]
