from sqlalchemy import Column, String, Integer, Float, DateTime, Enum, Index
from datetime import datetime
from models.base import Base, RecordStatus


class StagingRecordMixin:
    """
    Columns shared by every staging table.

    hash_key is a digest over the business columns of the row and drives the
    change detection of the warehouse dimension load.
    """
    id = Column(Integer, primary_key=True, autoincrement=True)
    hash_key = Column(String(32), nullable=False)
    record_status = Column(
        Enum(
            RecordStatus,
            name="record_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=RecordStatus.PENDING,
    )
    source_system = Column(String(50), nullable=True)
    batch_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class StgLocation(StagingRecordMixin, Base):
    """
    Typed, deduplicated locations.

    Natural key: location_key (digest of the normalised location name)
    """
    __tablename__ = "stg_location"

    location_key = Column(String(32), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    region = Column(String(255))
    country = Column(String(255))
    lat = Column(Float)
    lon = Column(Float)
    tz_id = Column(String(100))
    localtime_epoch = Column(Integer)


class StgWeatherCondition(StagingRecordMixin, Base):
    """Natural key: condition_code"""
    __tablename__ = "stg_weather_condition"

    condition_code = Column(Integer, nullable=False, unique=True)
    condition_text = Column(String(255))
    icon = Column(String(500))


class StgWeatherObservation(StagingRecordMixin, Base):
    """Natural key: (location_key, observed_at)"""
    __tablename__ = "stg_weather_observation"

    location_key = Column(String(32), nullable=False)
    observed_at = Column(DateTime, nullable=False)
    condition_code = Column(Integer)
    is_day = Column(Integer)
    temp_c = Column(Float)
    temp_f = Column(Float)
    feelslike_c = Column(Float)
    feelslike_f = Column(Float)
    humidity = Column(Integer)
    cloud = Column(Integer)
    vis_km = Column(Float)
    vis_miles = Column(Float)
    uv = Column(Float)
    gust_mph = Column(Float)
    gust_kph = Column(Float)
    wind_mph = Column(Float)
    wind_kph = Column(Float)
    wind_degree = Column(Integer)
    wind_dir = Column(String(20))
    pressure_mb = Column(Float)
    pressure_in = Column(Float)
    precip_mm = Column(Float)
    precip_in = Column(Float)

    __table_args__ = (
        Index("idx_stg_observation_key", "location_key", "observed_at", unique=True),
    )


class StgAirQuality(StagingRecordMixin, Base):
    """Natural key: (location_key, observed_at)"""
    __tablename__ = "stg_air_quality"

    location_key = Column(String(32), nullable=False)
    observed_at = Column(DateTime, nullable=False)
    co = Column(Float)
    no2 = Column(Float)
    o3 = Column(Float)
    so2 = Column(Float)
    pm2_5 = Column(Float)
    pm10 = Column(Float)
    us_epa_index = Column(Integer)
    gb_defra_index = Column(Integer)

    __table_args__ = (
        Index("idx_stg_air_quality_key", "location_key", "observed_at", unique=True),
    )


STAGING_TABLES = [
    StgLocation,
    StgWeatherCondition,
    StgWeatherObservation,
    StgAirQuality,
]
