"""
Pydantic schemas for the upstream weather API response and the daily
extract file row.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from datetime import datetime


# Column order of the extract file; the staging loader reads by header name
EXTRACT_COLUMNS = [
    "execution_id",
    "location_name", "location_code", "region",
    "country", "lat", "lon", "tz_id", "localtime", "localtime_epoch",
    "is_day", "temp_c", "temp_f", "feels_like_c", "feels_like_f",
    "humidity", "wind_kph", "wind_mph", "wind_degree", "wind_dir",
    "gust_kph", "gust_mph",
    "pressure_mb", "pressure_in", "precip_mm", "precip_in",
    "cloud", "uv", "vis_km", "vis_miles",
    "condition_text", "condition_code", "condition_icon",
    "aqi_us", "aqi_gb", "pm2_5", "pm10", "co", "no2", "o3", "so2",
    "last_updated", "extract_time",
]


class Location(BaseModel):
    """A target entity of the extract: display name plus upstream query key"""

    name: str = Field(..., min_length=1)
    api_name: str = Field(..., min_length=1)
    code: str = ""
    region: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.name} ({self.code})" if self.code else self.name


class WeatherReading(BaseModel):
    """
    Typed view of one current-conditions response.

    Required fields raise a pydantic validation error when missing, which
    the extractor records as a failure for that location only.
    """

    # location block
    country: str
    lat: float
    lon: float
    tz_id: str
    localtime: str
    localtime_epoch: Optional[int] = None

    # current block
    last_updated: str
    is_day: Optional[int] = None
    temp_c: float
    temp_f: float
    feelslike_c: float
    feelslike_f: float
    humidity: int
    wind_kph: float
    wind_mph: float
    wind_degree: int
    wind_dir: str
    gust_kph: Optional[float] = None
    gust_mph: Optional[float] = None
    pressure_mb: float
    pressure_in: float
    precip_mm: float
    precip_in: float
    cloud: int
    uv: Optional[float] = None
    vis_km: Optional[float] = None
    vis_miles: Optional[float] = None

    condition_text: str
    condition_code: int
    condition_icon: Optional[str] = None

    # air_quality block (only present when requested with aqi=yes)
    aqi_us: Optional[int] = None
    aqi_gb: Optional[int] = None
    pm2_5: Optional[float] = None
    pm10: Optional[float] = None
    co: Optional[float] = None
    no2: Optional[float] = None
    o3: Optional[float] = None
    so2: Optional[float] = None

    @validator("condition_text", "wind_dir", "tz_id", "country")
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @classmethod
    def from_api_payload(cls, payload: Dict[str, Any]) -> "WeatherReading":
        """Flatten the location/current/condition/air_quality blocks"""
        location = payload.get("location") or {}
        current = payload.get("current") or {}
        condition = current.get("condition") or {}
        air_quality = current.get("air_quality") or {}

        fields = {
            k: v for k, v in current.items()
            if k not in ("condition", "air_quality")
        }
        fields.update(
            country=location.get("country"),
            lat=location.get("lat"),
            lon=location.get("lon"),
            tz_id=location.get("tz_id"),
            localtime=location.get("localtime"),
            localtime_epoch=location.get("localtime_epoch"),
            condition_text=condition.get("text"),
            condition_code=condition.get("code"),
            condition_icon=condition.get("icon"),
            aqi_us=air_quality.get("us-epa-index"),
            aqi_gb=air_quality.get("gb-defra-index"),
            pm2_5=air_quality.get("pm2_5"),
            pm10=air_quality.get("pm10"),
            co=air_quality.get("co"),
            no2=air_quality.get("no2"),
            o3=air_quality.get("o3"),
            so2=air_quality.get("so2"),
        )
        return cls(**fields)

    def to_extract_row(
        self,
        location: Location,
        execution_id: str,
        extract_time: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Build one extract file row keyed by EXTRACT_COLUMNS"""
        extract_time = extract_time or datetime.now()
        row = {
            "execution_id": execution_id,
            "location_name": location.name,
            "location_code": location.code,
            "region": location.region,
            "country": self.country,
            "lat": self.lat,
            "lon": self.lon,
            "tz_id": self.tz_id,
            "localtime": self.localtime,
            "localtime_epoch": self.localtime_epoch,
            "is_day": self.is_day,
            "temp_c": self.temp_c,
            "temp_f": self.temp_f,
            "feels_like_c": self.feelslike_c,
            "feels_like_f": self.feelslike_f,
            "humidity": self.humidity,
            "wind_kph": self.wind_kph,
            "wind_mph": self.wind_mph,
            "wind_degree": self.wind_degree,
            "wind_dir": self.wind_dir,
            "gust_kph": self.gust_kph,
            "gust_mph": self.gust_mph,
            "pressure_mb": self.pressure_mb,
            "pressure_in": self.pressure_in,
            "precip_mm": self.precip_mm,
            "precip_in": self.precip_in,
            "cloud": self.cloud,
            "uv": self.uv,
            "vis_km": self.vis_km,
            "vis_miles": self.vis_miles,
            "condition_text": self.condition_text,
            "condition_code": self.condition_code,
            "condition_icon": self.condition_icon,
            "aqi_us": self.aqi_us,
            "aqi_gb": self.aqi_gb,
            "pm2_5": self.pm2_5,
            "pm10": self.pm10,
            "co": self.co,
            "no2": self.no2,
            "o3": self.o3,
            "so2": self.so2,
            "last_updated": self.last_updated,
            "extract_time": extract_time.strftime("%Y-%m-%d %H:%M:%S"),
        }
        return {column: row[column] for column in EXTRACT_COLUMNS}
