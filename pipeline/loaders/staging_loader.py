"""
Load the daily extract file into the raw tables.

Every parsed row becomes one raw record per entity (location, condition,
air quality, observation), each tagged with the extract execution id as
batch_id and a copy of the full source row as JSON payload.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type
import csv
import io
import logging

import pandas as pd
from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ETLException, InputFileMissingError, StagingLoadError
from models.raw_data import (
    RAW_TABLES,
    RawAirQuality,
    RawWeatherCondition,
    RawWeatherLocation,
    RawWeatherObservation,
)
from schemas.reports import StagingLoadReport

logger = logging.getLogger(__name__)

# raw column -> extract file column
LOCATION_COLUMNS = {
    "name": "location_name",
    "region": "region",
    "country": "country",
    "lat": "lat",
    "lon": "lon",
    "tz_id": "tz_id",
    "localtime": "localtime",
    "localtime_epoch": "localtime_epoch",
}

CONDITION_COLUMNS = {
    "code": "condition_code",
    "text": "condition_text",
    "icon": "condition_icon",
}

AIR_QUALITY_COLUMNS = {
    "location_name": "location_name",
    "last_updated": "last_updated",
    "co": "co",
    "no2": "no2",
    "o3": "o3",
    "so2": "so2",
    "pm2_5": "pm2_5",
    "pm10": "pm10",
    "us_epa_index": "aqi_us",
    "gb_defra_index": "aqi_gb",
}

OBSERVATION_COLUMNS = {
    "location_name": "location_name",
    "last_updated": "last_updated",
    "is_day": "is_day",
    "temp_c": "temp_c",
    "temp_f": "temp_f",
    "feelslike_c": "feels_like_c",
    "feelslike_f": "feels_like_f",
    "humidity": "humidity",
    "cloud": "cloud",
    "vis_km": "vis_km",
    "vis_miles": "vis_miles",
    "uv": "uv",
    "gust_mph": "gust_mph",
    "gust_kph": "gust_kph",
    "wind_mph": "wind_mph",
    "wind_kph": "wind_kph",
    "wind_degree": "wind_degree",
    "wind_dir": "wind_dir",
    "pressure_mb": "pressure_mb",
    "pressure_in": "pressure_in",
    "precip_mm": "precip_mm",
    "precip_in": "precip_in",
    "condition_code": "condition_code",
}

ENTITY_COLUMNS = {
    RawWeatherLocation: LOCATION_COLUMNS,
    RawWeatherCondition: CONDITION_COLUMNS,
    RawAirQuality: AIR_QUALITY_COLUMNS,
    RawWeatherObservation: OBSERVATION_COLUMNS,
}


def _split_line(line: str) -> List[str]:
    frame = pd.read_csv(
        io.StringIO(line),
        header=None,
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_MINIMAL,
    )
    return [str(value) for value in frame.iloc[0].tolist()]


def read_extract_file(path: Path) -> Tuple[List[Dict[str, str]], int]:
    """
    Parse the extract file into header-keyed string rows.

    Each physical line is parsed on its own: a leading byte-order mark is
    dropped and quoted fields may contain the delimiter. Field text is kept
    as written, surrounding spaces included. A line that cannot be parsed
    (an unterminated quote, more fields than the header) is skipped and
    counted without affecting the lines after it. Short lines are padded
    with empty values.

    Returns:
        (rows, skipped_line_count)
    """
    columns = None
    rows = []
    skipped = 0

    with open(path, encoding="utf-8-sig") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue

            if columns is None:
                columns = [c.strip() for c in _split_line(line)]
                continue

            try:
                fields = _split_line(line)
            except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                skipped += 1
                logger.warning(f"Skipping unparseable line {line_number}: {e}")
                continue

            if len(fields) > len(columns):
                skipped += 1
                logger.warning(
                    f"Skipping line {line_number}: {len(fields)} fields, header has {len(columns)}"
                )
                continue

            fields += [""] * (len(columns) - len(fields))
            rows.append(dict(zip(columns, fields)))

    if columns is None:
        raise pd.errors.EmptyDataError(f"Extract file has no header row: {path}")

    return rows, skipped


def _value(row: Dict[str, str], column: str) -> Optional[str]:
    value = row.get(column)
    if value is None:
        return None
    return value.strip() or None


class StagingLoader:
    """
    Bulk-insert extract file rows into the raw tables.

    The raw tables are emptied first and everything is written in the
    caller's session as one transaction: either the whole file lands or
    nothing does.

    Attributes:
        session: Session bound to the staging store
        source_system: Value for the source_system column
        default_country: Used when a row carries no country
        batch_size: Rows buffered per entity before an executemany insert
    """

    def __init__(
        self,
        session: AsyncSession,
        source_system: str,
        default_country: Optional[str] = None,
        batch_size: int = 100
    ):
        self.session = session
        self.source_system = source_system
        self.default_country = default_country
        self.batch_size = batch_size

    async def truncate_raw_tables(self) -> None:
        for model in RAW_TABLES:
            await self.session.execute(delete(model))
        logger.info(f"Emptied {len(RAW_TABLES)} raw tables")

    def build_raw_rows(
        self,
        row: Dict[str, str],
        load_execution_id: str
    ) -> Dict[Type, Dict[str, Any]]:
        """One insert dict per raw table for a single file row"""
        if not _value(row, "location_name"):
            raise ValueError("Row has no location_name")

        batch_id = _value(row, "execution_id") or load_execution_id
        payload = dict(row)
        payload["load_execution_id"] = load_execution_id

        raw_rows = {}
        for model, columns in ENTITY_COLUMNS.items():
            values = {raw: _value(row, source) for raw, source in columns.items()}
            values.update(
                source_system=self.source_system,
                batch_id=batch_id,
                raw_payload=payload,
            )
            raw_rows[model] = values

        location = raw_rows[RawWeatherLocation]
        if not location["country"] and self.default_country:
            location["country"] = self.default_country

        return raw_rows

    async def _flush(self, buffers: Dict[Type, List[Dict[str, Any]]]) -> None:
        for model, rows in buffers.items():
            if rows:
                await self.session.execute(insert(model), rows)
                rows.clear()

    async def load(self, file_path: Path, load_execution_id: str) -> StagingLoadReport:
        """
        Replace the raw tables' contents with the rows of `file_path`.

        Raises:
            InputFileMissingError: The file does not exist
            StagingLoadError: Anything else; the transaction is rolled back
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise InputFileMissingError(
                f"Extract file not found: {file_path}",
                context={"file_path": str(file_path), "execution_id": load_execution_id}
            )

        report = StagingLoadReport(file_path=str(file_path))
        inserted = {model.__tablename__: 0 for model in RAW_TABLES}
        buffers: Dict[Type, List[Dict[str, Any]]] = {model: [] for model in RAW_TABLES}
        batch_ids = []

        try:
            rows, skipped = read_extract_file(file_path)
            report.rows_read = len(rows) + skipped
            report.rows_skipped = skipped

            await self.truncate_raw_tables()

            for line_number, row in enumerate(rows, start=2):
                try:
                    raw_rows = self.build_raw_rows(row, load_execution_id)
                except ValueError as e:
                    report.rows_skipped += 1
                    logger.warning(f"Skipping line {line_number}: {e}")
                    continue

                for model, values in raw_rows.items():
                    buffers[model].append(values)
                    inserted[model.__tablename__] += 1

                batch_id = raw_rows[RawWeatherLocation]["batch_id"]
                if batch_id not in batch_ids:
                    batch_ids.append(batch_id)

                if len(buffers[RawWeatherLocation]) >= self.batch_size:
                    await self._flush(buffers)

            await self._flush(buffers)
            await self.session.commit()

        except ETLException:
            await self.session.rollback()
            raise

        except Exception as e:
            await self.session.rollback()
            raise StagingLoadError(
                "Failed to load extract file into raw tables",
                context={"file_path": str(file_path), "execution_id": load_execution_id},
                original_exception=e
            )

        report.records_inserted = inserted
        report.batch_ids = batch_ids
        logger.info(
            f"Loaded {report.rows_loaded} rows from {file_path.name} "
            f"({report.rows_skipped} skipped)"
        )
        return report
