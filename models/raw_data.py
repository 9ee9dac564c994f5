from sqlalchemy import Column, String, BigInteger, DateTime, Integer
from datetime import datetime
from models.base import Base, JSONPayload


class RawRecordMixin:
    """
    Columns shared by every raw table.

    Purpose:
    - batch_id ties the row to the extract execution that produced it
    - raw_payload keeps the full source row for forensic replay

    Raw tables are emptied at the start of each staging load; there is no
    uniqueness constraint.
    """
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    source_system = Column(String(50), nullable=True)
    batch_id = Column(String(64), nullable=True, index=True)
    raw_payload = Column(JSONPayload, nullable=True)
    ingested_at = Column(DateTime, nullable=False, default=datetime.now)


class RawWeatherLocation(RawRecordMixin, Base):
    __tablename__ = "raw_weather_location"

    name = Column(String(255))
    region = Column(String(255))
    country = Column(String(255))
    lat = Column(String(50))
    lon = Column(String(50))
    tz_id = Column(String(100))
    localtime = Column("localtime", String(50))
    localtime_epoch = Column(String(50))


class RawWeatherCondition(RawRecordMixin, Base):
    __tablename__ = "raw_weather_condition"

    code = Column(String(50))
    text = Column(String(255))
    icon = Column(String(500))


class RawAirQuality(RawRecordMixin, Base):
    __tablename__ = "raw_air_quality"

    location_name = Column(String(255))
    last_updated = Column(String(50))
    co = Column(String(50))
    no2 = Column(String(50))
    o3 = Column(String(50))
    so2 = Column(String(50))
    pm2_5 = Column(String(50))
    pm10 = Column(String(50))
    us_epa_index = Column(String(50))
    gb_defra_index = Column(String(50))


class RawWeatherObservation(RawRecordMixin, Base):
    __tablename__ = "raw_weather_observation"

    location_name = Column(String(255))
    last_updated = Column(String(50))
    is_day = Column(String(10))
    temp_c = Column(String(50))
    temp_f = Column(String(50))
    feelslike_c = Column(String(50))
    feelslike_f = Column(String(50))
    humidity = Column(String(50))
    cloud = Column(String(50))
    vis_km = Column(String(50))
    vis_miles = Column(String(50))
    uv = Column(String(50))
    gust_mph = Column(String(50))
    gust_kph = Column(String(50))
    wind_mph = Column(String(50))
    wind_kph = Column(String(50))
    wind_degree = Column(String(50))
    wind_dir = Column(String(20))
    pressure_mb = Column(String(50))
    pressure_in = Column(String(50))
    precip_mm = Column(String(50))
    precip_in = Column(String(50))
    condition_code = Column(String(50))


RAW_TABLES = [
    RawWeatherLocation,
    RawWeatherCondition,
    RawAirQuality,
    RawWeatherObservation,
]
