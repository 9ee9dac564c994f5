"""
Load staging records into the warehouse star schema.

Dimensions (location, weather condition) are SCD Type 1: new natural keys
are inserted, existing ones are overwritten only when their hash_key
changed. Facts are loaded per partition (the load date): today's partition
is deleted and rebuilt, and candidates whose natural key already lives in
another partition are skipped.

Insert column lists come from the live table schema, read once per table
and cached for the lifetime of the loader.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging

from sqlalchemy import Table, bindparam, delete, inspect, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DatabaseError, ETLException, LoadError
from models.base import RecordStatus
from models.staging_data import (
    STAGING_TABLES,
    StgAirQuality,
    StgLocation,
    StgWeatherCondition,
    StgWeatherObservation,
)
from models.warehouse import (
    DimDate,
    DimLocation,
    DimWeatherCondition,
    FactAirQualityDaily,
    FactWeatherDaily,
)
from schemas.reports import WarehouseLoadReport
from schemas.staging import UNKNOWN_OBSERVED_AT

logger = logging.getLogger(__name__)

LOCATION_ATTRIBUTES = ("location_key", "name", "region", "country", "lat", "lon", "tz_id", "hash_key")
CONDITION_ATTRIBUTES = ("condition_code", "condition_text", "icon", "hash_key")

# Never overwritten by an SCD-1 update
IMMUTABLE_COLUMNS = {"created_at"}


def partition_key_for(day: date) -> int:
    return int(day.strftime("%Y%m%d"))


def date_dimension_row(day: date) -> Dict[str, Any]:
    return {
        "date_key": partition_key_for(day),
        "full_date": day,
        "year": day.year,
        "quarter": (day.month - 1) // 3 + 1,
        "month": day.month,
        "day": day.day,
        "day_of_week": day.isoweekday(),
        "day_name": day.strftime("%A"),
        "is_weekend": 1 if day.isoweekday() >= 6 else 0,
    }


def _columns_of(record, names: Iterable[str]) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in names}


class WarehouseLoader:
    """
    Move the current staging contents into dimensions and facts.

    Everything is written through `warehouse` and committed once at the end
    of run(); any error rolls the whole load back.

    Attributes:
        staging: Session bound to the staging store (read side)
        warehouse: Session bound to the warehouse store (write side)
        load_execution_id: Stamped on every fact row
        partition_date: Date whose partition is rebuilt (defaults to today)
        batch_size: Rows per executemany insert
    """

    def __init__(
        self,
        staging: AsyncSession,
        warehouse: AsyncSession,
        load_execution_id: str,
        partition_date: Optional[date] = None,
        batch_size: int = 5000
    ):
        self.staging = staging
        self.warehouse = warehouse
        self.load_execution_id = load_execution_id
        self.partition_date = partition_date or date.today()
        self.batch_size = batch_size
        self._column_cache: Dict[str, List[str]] = {}

    @property
    def partition_key(self) -> int:
        return partition_key_for(self.partition_date)

    # ------------------------------------------------------------------
    # Schema introspection
    # ------------------------------------------------------------------

    async def table_columns(self, table_name: str) -> List[str]:
        """Column names of a warehouse table, as the database reports them"""
        if table_name not in self._column_cache:
            connection = await self.warehouse.connection()
            columns = await connection.run_sync(
                lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns(table_name)]
            )
            if not columns:
                raise DatabaseError(
                    f"Table {table_name} not found in warehouse",
                    context={"operation": "INSPECT", "table_name": table_name}
                )
            self._column_cache[table_name] = columns
            logger.debug(f"Cached {len(columns)} columns for {table_name}")
        return self._column_cache[table_name]

    async def _project(self, table: Table, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Restrict each row to the columns the table actually has"""
        columns = await self.table_columns(table.name)
        return [{c: row[c] for c in columns if c in row} for row in rows]

    async def _insert_batches(self, table: Table, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        rows = await self._project(table, rows)
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            await self.warehouse.execute(insert(table), batch)
            logger.debug(f"{table.name}: inserted batch of {len(batch)}")
        return len(rows)

    # ------------------------------------------------------------------
    # Dimensions
    # ------------------------------------------------------------------

    async def ensure_date(self, day: date) -> int:
        """Insert the dim_date row for `day` if missing; returns rows inserted"""
        key = partition_key_for(day)
        exists = await self.warehouse.get(DimDate, key)
        if exists is not None:
            return 0
        return await self._insert_batches(DimDate.__table__, [date_dimension_row(day)])

    async def upsert_dimension(
        self,
        model,
        natural_key: str,
        surrogate_key: str,
        rows: List[Dict[str, Any]]
    ) -> int:
        """
        SCD Type 1 upsert.

        Returns:
            Rows inserted plus rows whose hash_key changed; unchanged rows
            are not touched and not counted.
        """
        table = model.__table__
        result = await self.warehouse.execute(
            select(table.c[natural_key], table.c[surrogate_key], table.c.hash_key)
        )
        existing = {key: (sk, hash_key) for key, sk, hash_key in result.all()}

        now = datetime.now()
        to_insert, to_update = [], []
        for row in rows:
            current = existing.get(row[natural_key])
            if current is None:
                to_insert.append({**row, "created_at": now, "updated_at": now})
            elif current[1] != row["hash_key"]:
                to_update.append({**row, "updated_at": now, "_sk": current[0]})

        inserted = await self._insert_batches(table, to_insert)

        if to_update:
            columns = [
                c for c in await self.table_columns(table.name)
                if c in to_update[0] and c not in IMMUTABLE_COLUMNS
                and c not in (natural_key, surrogate_key)
            ]
            statement = (
                update(table)
                .where(table.c[surrogate_key] == bindparam("b_sk"))
                .values({c: bindparam(f"b_{c}") for c in columns})
            )
            params = [
                {"b_sk": row["_sk"], **{f"b_{c}": row[c] for c in columns}}
                for row in to_update
            ]
            await self.warehouse.execute(statement, params)

        logger.info(
            f"{table.name}: {inserted} inserted, {len(to_update)} updated, "
            f"{len(rows) - inserted - len(to_update)} unchanged"
        )
        return inserted + len(to_update)

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    async def _keys_outside_partition(self, table: Table) -> Set[Tuple[int, datetime]]:
        result = await self.warehouse.execute(
            select(table.c.location_sk, table.c.observed_at)
            .where(table.c.date_key != self.partition_key)
        )
        return {(sk, observed_at) for sk, observed_at in result.all()}

    async def load_facts(
        self,
        model,
        staged: Sequence[Any],
        location_sks: Dict[str, int],
        extra_keys=None
    ) -> Tuple[int, int]:
        """
        Rebuild today's partition of one fact table.

        Returns:
            (rows inserted, candidates skipped)
        """
        table = model.__table__
        await self.warehouse.execute(delete(table).where(table.c.date_key == self.partition_key))

        taken = await self._keys_outside_partition(table)
        loaded_at = datetime.now()
        rows, skipped = [], 0

        for record in staged:
            location_sk = location_sks.get(record.location_key)
            if location_sk is None:
                skipped += 1
                logger.warning(
                    f"{table.name}: no dimension row for location_key={record.location_key}, "
                    f"row excluded"
                )
                continue

            if record.observed_at == UNKNOWN_OBSERVED_AT:
                skipped += 1
                logger.warning(
                    f"{table.name}: unknown observation time for location_key={record.location_key}, "
                    f"row excluded"
                )
                continue

            natural_key = (location_sk, record.observed_at)
            if natural_key in taken:
                skipped += 1
                continue
            taken.add(natural_key)

            row = {c.name: getattr(record, c.name) for c in record.__table__.columns}
            row.update(
                location_sk=location_sk,
                date_key=self.partition_key,
                load_execution_id=self.load_execution_id,
                loaded_at=loaded_at,
            )
            if extra_keys:
                row.update(extra_keys(record))
            rows.append(row)

        inserted = await self._insert_batches(table, rows)
        logger.info(f"{table.name}: {inserted} rows loaded into partition {self.partition_key}, {skipped} skipped")
        return inserted, skipped

    # ------------------------------------------------------------------

    async def _staged(self, model) -> List[Any]:
        result = await self.staging.execute(select(model).order_by(model.id))
        return list(result.scalars().all())

    async def _surrogate_map(self, model, natural_key: str, surrogate_key: str) -> Dict[Any, int]:
        table = model.__table__
        result = await self.warehouse.execute(select(table.c[natural_key], table.c[surrogate_key]))
        return {key: sk for key, sk in result.all()}

    async def run(self) -> WarehouseLoadReport:
        report = WarehouseLoadReport(partition_key=self.partition_key)

        try:
            locations = await self._staged(StgLocation)
            conditions = await self._staged(StgWeatherCondition)
            observations = await self._staged(StgWeatherObservation)
            air_quality = await self._staged(StgAirQuality)
            logger.info(
                f"Staged: {len(locations)} locations, {len(conditions)} conditions, "
                f"{len(observations)} observations, {len(air_quality)} air quality rows"
            )

            report.rows_affected["dim_date"] = await self.ensure_date(self.partition_date)

            report.rows_affected["dim_location"] = await self.upsert_dimension(
                DimLocation,
                "location_key",
                "location_sk",
                [_columns_of(r, LOCATION_ATTRIBUTES) for r in locations],
            )
            report.rows_affected["dim_weather_condition"] = await self.upsert_dimension(
                DimWeatherCondition,
                "condition_code",
                "condition_sk",
                [_columns_of(r, CONDITION_ATTRIBUTES) for r in conditions],
            )

            location_sks = await self._surrogate_map(DimLocation, "location_key", "location_sk")
            condition_sks = await self._surrogate_map(DimWeatherCondition, "condition_code", "condition_sk")

            inserted, skipped = await self.load_facts(
                FactWeatherDaily,
                observations,
                location_sks,
                extra_keys=lambda r: {"condition_sk": condition_sks.get(r.condition_code)},
            )
            report.rows_affected["fact_weather_daily"] = inserted
            report.rows_skipped["fact_weather_daily"] = skipped

            inserted, skipped = await self.load_facts(FactAirQualityDaily, air_quality, location_sks)
            report.rows_affected["fact_air_quality_daily"] = inserted
            report.rows_skipped["fact_air_quality_daily"] = skipped

            await self.warehouse.commit()

        except ETLException:
            await self.warehouse.rollback()
            raise

        except Exception as e:
            await self.warehouse.rollback()
            raise LoadError(
                "Failed to load staging into warehouse",
                context={
                    "execution_id": self.load_execution_id,
                    "partition_key": self.partition_key,
                },
                original_exception=e
            )

        logger.info(f"Warehouse load complete: {report.total_affected} rows affected")
        return report

    async def mark_staging_loaded(self) -> int:
        """Flag every pending staging row as loaded; returns rows flagged"""
        flagged = 0
        try:
            for model in STAGING_TABLES:
                result = await self.staging.execute(
                    update(model)
                    .where(model.record_status == RecordStatus.PENDING)
                    .values(record_status=RecordStatus.LOADED)
                )
                flagged += result.rowcount or 0
            await self.staging.commit()
        except Exception as e:
            await self.staging.rollback()
            raise DatabaseError(
                "Failed to flag staging rows as loaded",
                context={"operation": "UPDATE", "table_name": "stg_*"},
                original_exception=e
            )
        logger.info(f"Flagged {flagged} staging rows as loaded")
        return flagged
