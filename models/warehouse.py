from sqlalchemy import Column, String, Integer, Float, DateTime, Date, ForeignKey, Index
from datetime import datetime
from models.base import Base


class DimDate(Base):
    """Calendar dimension keyed by YYYYMMDD"""
    __tablename__ = "dim_date"

    date_key = Column(Integer, primary_key=True, autoincrement=False)
    full_date = Column(Date, nullable=False, unique=True)
    year = Column(Integer, nullable=False)
    quarter = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # Monday = 1
    day_name = Column(String(10), nullable=False)
    is_weekend = Column(Integer, nullable=False, default=0)


class DimLocation(Base):
    """
    Location dimension, SCD Type 1.

    Attributes are overwritten in place when the incoming hash_key differs;
    an unchanged hash leaves the row (and updated_at) untouched.
    """
    __tablename__ = "dim_location"

    location_sk = Column(Integer, primary_key=True, autoincrement=True)
    location_key = Column(String(32), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    region = Column(String(255))
    country = Column(String(255))
    lat = Column(Float)
    lon = Column(Float)
    tz_id = Column(String(100))
    hash_key = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)


class DimWeatherCondition(Base):
    """Weather condition dimension, SCD Type 1"""
    __tablename__ = "dim_weather_condition"

    condition_sk = Column(Integer, primary_key=True, autoincrement=True)
    condition_code = Column(Integer, nullable=False, unique=True)
    condition_text = Column(String(255))
    icon = Column(String(500))
    hash_key = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)


class FactWeatherDaily(Base):
    """
    Daily weather observations.

    Partitioned by date_key (the load date); natural key is
    (location_sk, observed_at).
    """
    __tablename__ = "fact_weather_daily"

    weather_id = Column(Integer, primary_key=True, autoincrement=True)
    location_sk = Column(Integer, ForeignKey("dim_location.location_sk"), nullable=False)
    date_key = Column(Integer, ForeignKey("dim_date.date_key"), nullable=False, index=True)
    condition_sk = Column(Integer, ForeignKey("dim_weather_condition.condition_sk"), nullable=True)
    observed_at = Column(DateTime, nullable=False)
    is_day = Column(Integer)
    temp_c = Column(Float)
    temp_f = Column(Float)
    feelslike_c = Column(Float)
    feelslike_f = Column(Float)
    humidity = Column(Integer)
    cloud = Column(Integer)
    vis_km = Column(Float)
    uv = Column(Float)
    gust_kph = Column(Float)
    wind_kph = Column(Float)
    wind_degree = Column(Integer)
    wind_dir = Column(String(20))
    pressure_mb = Column(Float)
    precip_mm = Column(Float)
    batch_id = Column(String(64))
    load_execution_id = Column(String(64))
    loaded_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        Index("uq_fact_weather_location_time", "location_sk", "observed_at", unique=True),
    )


class FactAirQualityDaily(Base):
    """Daily air quality readings; same partitioning as FactWeatherDaily"""
    __tablename__ = "fact_air_quality_daily"

    air_quality_id = Column(Integer, primary_key=True, autoincrement=True)
    location_sk = Column(Integer, ForeignKey("dim_location.location_sk"), nullable=False)
    date_key = Column(Integer, ForeignKey("dim_date.date_key"), nullable=False, index=True)
    observed_at = Column(DateTime, nullable=False)
    co = Column(Float)
    no2 = Column(Float)
    o3 = Column(Float)
    so2 = Column(Float)
    pm2_5 = Column(Float)
    pm10 = Column(Float)
    us_epa_index = Column(Integer)
    gb_defra_index = Column(Integer)
    batch_id = Column(String(64))
    load_execution_id = Column(String(64))
    loaded_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        Index("uq_fact_air_quality_location_time", "location_sk", "observed_at", unique=True),
    )
