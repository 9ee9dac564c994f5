"""
Transform raw rows into typed, deduplicated staging records.

Raw values go through the staging schemas, which coerce bad numerics to
NULL and bad timestamps to a sentinel. Only a missing natural key rejects
a row. When several raw rows share a natural key, the one from the latest
batch wins.
"""

from typing import Any, Dict, List, Sequence, Tuple, Type
import logging

import pandas as pd
from pydantic import ValidationError as RecordValidationError
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ETLException, TransformationError
from models.raw_data import (
    RawAirQuality,
    RawWeatherCondition,
    RawWeatherLocation,
    RawWeatherObservation,
)
from models.staging_data import (
    STAGING_TABLES,
    StgAirQuality,
    StgLocation,
    StgWeatherCondition,
    StgWeatherObservation,
)
from schemas.reports import TransformReport
from schemas.staging import (
    AirQualityRecord,
    ConditionRecord,
    LocationRecord,
    ObservationRecord,
    StagingRecord,
    location_key_for,
)

logger = logging.getLogger(__name__)

Candidate = Tuple[int, StagingRecord]

OBSERVATION_FIELDS = (
    "is_day", "temp_c", "temp_f", "feelslike_c", "feelslike_f", "humidity",
    "cloud", "vis_km", "vis_miles", "uv", "gust_mph", "gust_kph", "wind_mph",
    "wind_kph", "wind_degree", "wind_dir", "pressure_mb", "pressure_in",
    "precip_mm", "precip_in", "condition_code",
)

AIR_QUALITY_FIELDS = (
    "co", "no2", "o3", "so2", "pm2_5", "pm10", "us_epa_index", "gb_defra_index",
)


def dedupe_latest(candidates: List[Candidate], key_fields: Sequence[str]) -> Tuple[List[StagingRecord], int]:
    """
    Keep one record per natural key: highest batch_id, then highest raw id.

    Returns:
        (kept records in input order, number dropped)
    """
    if not candidates:
        return [], 0

    frame = pd.DataFrame({
        "position": range(len(candidates)),
        "batch_id": [record.batch_id or "" for _, record in candidates],
        "raw_id": [raw_id for raw_id, _ in candidates],
    })
    for field in key_fields:
        frame[field] = [str(getattr(record, field)) for _, record in candidates]

    deduped = (
        frame.sort_values(["batch_id", "raw_id"], ascending=False)
        .drop_duplicates(subset=list(key_fields), keep="first")
    )
    kept = sorted(deduped["position"].tolist())
    return [candidates[i][1] for i in kept], len(candidates) - len(kept)


class TransformEngine:
    """
    Rebuild the staging tables from the raw tables.

    The staging tables are emptied first and refilled in the same
    transaction, so a run can be repeated at will.

    Attributes:
        session: Session bound to the staging store (raw and staging tables)
        batch_id: Optional filter; when set only raw rows of that batch are read
    """

    def __init__(self, session: AsyncSession, batch_id: str = None):
        self.session = session
        self.batch_id = batch_id

    async def _raw_rows(self, model: Type) -> List[Any]:
        statement = select(model).order_by(model.id)
        if self.batch_id:
            statement = statement.where(model.batch_id == self.batch_id)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    @staticmethod
    def _lineage(raw) -> Dict[str, Any]:
        return {"source_system": raw.source_system, "batch_id": raw.batch_id}

    def _build(self, raw_rows, build, table_name: str, report: TransformReport) -> List[Candidate]:
        candidates = []
        rejected = 0
        for raw in raw_rows:
            try:
                candidates.append((raw.id, build(raw)))
            except (RecordValidationError, ValueError) as e:
                rejected += 1
                logger.warning(
                    f"Rejected {table_name} raw row id={raw.id}: {e}",
                    extra={"error_context": {"table_name": table_name, "raw_id": raw.id}}
                )
        report.records_rejected[table_name] = rejected
        return candidates

    # ------------------------------------------------------------------
    # Per-entity builders
    # ------------------------------------------------------------------

    def _location(self, raw: RawWeatherLocation) -> LocationRecord:
        return LocationRecord(
            name=raw.name,
            region=raw.region,
            country=raw.country,
            lat=raw.lat,
            lon=raw.lon,
            tz_id=raw.tz_id,
            localtime_epoch=raw.localtime_epoch,
            **self._lineage(raw),
        )

    def _condition(self, raw: RawWeatherCondition) -> ConditionRecord:
        return ConditionRecord(
            condition_code=raw.code,
            condition_text=raw.text,
            icon=raw.icon,
            **self._lineage(raw),
        )

    @staticmethod
    def _location_key(raw) -> str:
        name = " ".join((raw.location_name or "").split())
        if not name:
            raise ValueError("Missing location_name")
        return location_key_for(name)

    def _observation(self, raw: RawWeatherObservation) -> ObservationRecord:
        return ObservationRecord(
            location_key=self._location_key(raw),
            observed_at=raw.last_updated,
            **{field: getattr(raw, field) for field in OBSERVATION_FIELDS},
            **self._lineage(raw),
        )

    def _air_quality(self, raw: RawAirQuality) -> AirQualityRecord:
        return AirQualityRecord(
            location_key=self._location_key(raw),
            observed_at=raw.last_updated,
            **{field: getattr(raw, field) for field in AIR_QUALITY_FIELDS},
            **self._lineage(raw),
        )

    # ------------------------------------------------------------------

    async def _write(self, model: Type, records: List[StagingRecord]) -> int:
        if not records:
            return 0
        await self.session.execute(insert(model), [record.to_row() for record in records])
        return len(records)

    async def run(self) -> TransformReport:
        report = TransformReport()

        plan = [
            (RawWeatherLocation, StgLocation, self._location, ("location_key",)),
            (RawWeatherCondition, StgWeatherCondition, self._condition, ("condition_code",)),
            (RawWeatherObservation, StgWeatherObservation, self._observation, ("location_key", "observed_at")),
            (RawAirQuality, StgAirQuality, self._air_quality, ("location_key", "observed_at")),
        ]

        try:
            for model in STAGING_TABLES:
                await self.session.execute(delete(model))

            for raw_model, staging_model, build, key_fields in plan:
                table_name = staging_model.__tablename__
                raw_rows = await self._raw_rows(raw_model)

                candidates = self._build(raw_rows, build, table_name, report)
                records, dropped = dedupe_latest(candidates, key_fields)

                report.records_written[table_name] = await self._write(staging_model, records)
                report.duplicates_dropped[table_name] = dropped

                logger.info(
                    f"{table_name}: {len(raw_rows)} raw -> {len(records)} staged "
                    f"({report.records_rejected[table_name]} rejected, {dropped} duplicates)"
                )

            await self.session.commit()

        except ETLException:
            await self.session.rollback()
            raise

        except Exception as e:
            await self.session.rollback()
            raise TransformationError(
                "Failed to transform raw rows into staging",
                context={"batch_id": self.batch_id},
                original_exception=e
            )

        return report
