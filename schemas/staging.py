"""
Pydantic schemas for typed staging records with defensive coercion.

Raw values arrive as loosely-typed strings. Numeric fields that fail to
parse become None (NULL) instead of rejecting the row; a timestamp that
fails to parse becomes UNKNOWN_OBSERVED_AT. Only a missing natural key
rejects a record.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Any, Iterable
from datetime import datetime
import hashlib
import math

# Sentinel for observation timestamps that cannot be parsed
UNKNOWN_OBSERVED_AT = datetime(1900, 1, 1)

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d/%m/%Y %H:%M",
    "%Y-%m-%d",
)


def parse_float(value: Any) -> Optional[float]:
    """Safely parse float value"""
    if value is None or value == "":
        return None
    try:
        parsed = float(str(value).strip())
    except (ValueError, TypeError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def parse_int(value: Any) -> Optional[int]:
    """Safely parse int value"""
    parsed = parse_float(value)
    if parsed is None:
        return None
    return int(parsed)  # Handle "10.0" strings


def parse_datetime(value: Any) -> Optional[datetime]:
    """Safely parse datetime value"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def location_key_for(name: str) -> str:
    """Stable natural key for a location: md5 of the normalised name"""
    normalised = " ".join(name.split()).lower()
    return hashlib.md5(normalised.encode("utf-8")).hexdigest()


def compute_hash_key(values: Iterable[Any]) -> str:
    """Digest over business columns; None and "" hash the same"""
    parts = ["" if v is None else str(v) for v in values]
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


class StagingRecord(BaseModel):
    """Base for staging records: hashing and lineage columns"""

    source_system: Optional[str] = None
    batch_id: Optional[str] = None

    # Business columns that feed hash_key, in order
    hash_fields: tuple = ()

    @property
    def hash_key(self) -> str:
        return compute_hash_key(getattr(self, f) for f in self.hash_fields)

    def to_row(self) -> dict:
        row = self.dict(exclude={"hash_fields"})
        row["hash_key"] = self.hash_key
        return row


class LocationRecord(StagingRecord):
    name: str = Field(..., min_length=1)
    region: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    tz_id: Optional[str] = None
    localtime_epoch: Optional[int] = None

    hash_fields: tuple = ("name", "region", "country", "lat", "lon", "tz_id")

    @validator("name", pre=True)
    def clean_name(cls, v):
        """Collapse whitespace; an empty name cannot produce a natural key"""
        v = " ".join(str(v or "").split())
        if not v:
            raise ValueError("Location name cannot be empty")
        return v

    @validator("region", "country", "tz_id", pre=True)
    def clean_optional_text(cls, v):
        return clean_text(v)

    @validator("lat", "lon", pre=True)
    def coerce_float(cls, v):
        return parse_float(v)

    @validator("localtime_epoch", pre=True)
    def coerce_int(cls, v):
        return parse_int(v)

    @property
    def location_key(self) -> str:
        return location_key_for(self.name)

    def to_row(self) -> dict:
        row = super().to_row()
        row["location_key"] = self.location_key
        return row


class ConditionRecord(StagingRecord):
    condition_code: int
    condition_text: Optional[str] = None
    icon: Optional[str] = None

    hash_fields: tuple = ("condition_text", "icon")

    @validator("condition_code", pre=True)
    def require_code(cls, v):
        parsed = parse_int(v)
        if parsed is None:
            raise ValueError(f"Invalid condition code: {v!r}")
        return parsed

    @validator("condition_text", "icon", pre=True)
    def clean_optional_text(cls, v):
        return clean_text(v)


class ObservationRecord(StagingRecord):
    location_key: str
    observed_at: datetime = UNKNOWN_OBSERVED_AT
    condition_code: Optional[int] = None
    is_day: Optional[int] = None
    temp_c: Optional[float] = None
    temp_f: Optional[float] = None
    feelslike_c: Optional[float] = None
    feelslike_f: Optional[float] = None
    humidity: Optional[int] = None
    cloud: Optional[int] = None
    vis_km: Optional[float] = None
    vis_miles: Optional[float] = None
    uv: Optional[float] = None
    gust_mph: Optional[float] = None
    gust_kph: Optional[float] = None
    wind_mph: Optional[float] = None
    wind_kph: Optional[float] = None
    wind_degree: Optional[int] = None
    wind_dir: Optional[str] = None
    pressure_mb: Optional[float] = None
    pressure_in: Optional[float] = None
    precip_mm: Optional[float] = None
    precip_in: Optional[float] = None

    hash_fields: tuple = (
        "observed_at", "condition_code", "is_day", "temp_c", "feelslike_c",
        "humidity", "cloud", "vis_km", "uv", "gust_kph", "wind_kph",
        "wind_degree", "wind_dir", "pressure_mb", "precip_mm",
    )

    @validator("observed_at", pre=True)
    def coerce_timestamp(cls, v):
        return parse_datetime(v) or UNKNOWN_OBSERVED_AT

    @validator(
        "temp_c", "temp_f", "feelslike_c", "feelslike_f", "vis_km", "vis_miles",
        "uv", "gust_mph", "gust_kph", "wind_mph", "wind_kph", "pressure_mb",
        "pressure_in", "precip_mm", "precip_in", pre=True,
    )
    def coerce_float(cls, v):
        return parse_float(v)

    @validator("condition_code", "is_day", "humidity", "cloud", "wind_degree", pre=True)
    def coerce_int(cls, v):
        return parse_int(v)

    @validator("wind_dir", pre=True)
    def clean_optional_text(cls, v):
        return clean_text(v)


class AirQualityRecord(StagingRecord):
    location_key: str
    observed_at: datetime = UNKNOWN_OBSERVED_AT
    co: Optional[float] = None
    no2: Optional[float] = None
    o3: Optional[float] = None
    so2: Optional[float] = None
    pm2_5: Optional[float] = None
    pm10: Optional[float] = None
    us_epa_index: Optional[int] = None
    gb_defra_index: Optional[int] = None

    hash_fields: tuple = (
        "observed_at", "co", "no2", "o3", "so2", "pm2_5", "pm10",
        "us_epa_index", "gb_defra_index",
    )

    @validator("observed_at", pre=True)
    def coerce_timestamp(cls, v):
        return parse_datetime(v) or UNKNOWN_OBSERVED_AT

    @validator("co", "no2", "o3", "so2", "pm2_5", "pm10", pre=True)
    def coerce_float(cls, v):
        return parse_float(v)

    @validator("us_epa_index", "gb_defra_index", pre=True)
    def coerce_int(cls, v):
        return parse_int(v)
