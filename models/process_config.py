from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from datetime import datetime
from models.base import Base


class ProcessConfig(Base):
    """
    One configuration row per logical source/process and day.

    Purpose:
    - Records where a run reads from and writes to
    - Parent row for every execution log entry

    Design:
    - config_name is "<base name>_<YYYYMMDD>", so every run on the same day
      resolves to the same row (get-or-create)
    """
    __tablename__ = "config_process"

    config_id = Column(Integer, primary_key=True, autoincrement=True)
    config_name = Column(String(150), nullable=False, unique=True, index=True)

    source_type = Column(String(50), nullable=False)
    source_url = Column(Text, nullable=True)
    output_path = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)
