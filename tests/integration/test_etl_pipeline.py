"""
Integration tests for the complete daily pipeline
"""

import pytest
from pathlib import Path
from sqlalchemy import select, func

from core.notifications import MemoryNotifier
from models.base import ExecutionStatus, RecordStatus
from models.execution_log import ExecutionLog
from models.process_config import ProcessConfig
from models.raw_data import RAW_TABLES, RawWeatherLocation
from models.staging_data import StgAirQuality, StgLocation, StgWeatherCondition, StgWeatherObservation
from models.warehouse import DimDate, DimLocation, DimWeatherCondition, FactAirQualityDaily, FactWeatherDaily
from pipeline.runner import STAGES, run_stages
from schemas.reports import StageStatus


async def count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_full_etl_pipeline_integration(db_session, test_settings, fetch_factory):
    """
    Integration test: Extract → Load staging → Transform → Load warehouse → Verify
    """
    notifier = MemoryNotifier()

    results = await run_stages(STAGES, config=test_settings, notifier=notifier, fetch=fetch_factory())

    assert [r.stage for r in results] == list(STAGES)
    assert all(r.status == StageStatus.SUCCESS for r in results)
    assert results[0].records_inserted == 3

    # Raw: one row per entity per file row
    for model in RAW_TABLES:
        assert await count(db_session, model) == 3

    # Staging: the three rows share one condition
    assert await count(db_session, StgLocation) == 3
    assert await count(db_session, StgWeatherCondition) == 1
    assert await count(db_session, StgWeatherObservation) == 3
    assert await count(db_session, StgAirQuality) == 3

    # Warehouse
    assert await count(db_session, DimDate) == 1
    assert await count(db_session, DimLocation) == 3
    assert await count(db_session, DimWeatherCondition) == 1
    assert await count(db_session, FactWeatherDaily) == 3
    assert await count(db_session, FactAirQualityDaily) == 3

    names = (await db_session.execute(select(DimLocation.name).order_by(DimLocation.name))).scalars().all()
    assert names == ["Da Nang", "Ha Noi", "Ho Chi Minh"]

    statuses = (await db_session.execute(select(StgWeatherObservation.record_status))).scalars().all()
    assert set(statuses) == {RecordStatus.LOADED}

    # Extract file was archived after the staging load
    archived = list(Path(test_settings.ARCHIVE_DIR).glob("weatherapi_*.csv"))
    assert len(archived) == 1
    assert not list(Path(test_settings.EXTRACT_OUTPUT_DIR).glob("weatherapi_*.csv"))

    # One successful execution per process, all linked to today's config row
    logs = (await db_session.execute(select(ExecutionLog))).scalars().all()
    assert sorted(log.process_name for log in logs) == ["EXT", "LOD_DW", "LOD_STG", "TRF_STG"]
    assert {log.status for log in logs} == {ExecutionStatus.SUCCESS}
    assert all(log.end_time is not None for log in logs)
    assert await count(db_session, ProcessConfig) == 1
    assert len({log.config_id for log in logs}) == 1

    # Batch lineage runs from the extract execution to the facts
    extract_id = results[0].execution_id
    batch_ids = (await db_session.execute(select(FactWeatherDaily.batch_id))).scalars().all()
    assert set(batch_ids) == {extract_id}
    load_ids = (await db_session.execute(select(FactWeatherDaily.load_execution_id))).scalars().all()
    assert set(load_ids) == {results[3].execution_id}

    assert len(notifier.messages) == 4
    assert not any(is_error for _, _, is_error in notifier.messages)


@pytest.mark.asyncio
async def test_second_run_same_day_skips_every_stage(db_session, test_settings, fetch_factory):
    calls = []
    await run_stages(STAGES, config=test_settings, notifier=MemoryNotifier(), fetch=fetch_factory())

    notifier = MemoryNotifier()
    results = await run_stages(STAGES, config=test_settings, notifier=notifier, fetch=fetch_factory(calls=calls))

    assert all(r.status == StageStatus.SKIPPED for r in results)
    assert all(r.execution_id is None for r in results)
    assert calls == []
    assert all("already done today" in subject for subject in notifier.subjects)

    assert await count(db_session, ExecutionLog) == 4
    assert await count(db_session, RawWeatherLocation) == 3
    assert await count(db_session, FactWeatherDaily) == 3


@pytest.mark.asyncio
async def test_stages_can_run_one_at_a_time(db_session, test_settings, fetch_factory):
    notifier = MemoryNotifier()

    for stage in STAGES:
        results = await run_stages([stage], config=test_settings, notifier=notifier, fetch=fetch_factory())
        assert results[0].status == StageStatus.SUCCESS

    assert await count(db_session, FactWeatherDaily) == 3
    assert await count(db_session, FactAirQualityDaily) == 3
