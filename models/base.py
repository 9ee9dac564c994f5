from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class ExecutionStatus(str, enum.Enum):
    """Execution log status"""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class RecordStatus(str, enum.Enum):
    """Staging record status"""
    PENDING = "pending"
    LOADED = "loaded"


class ProcessName(str, enum.Enum):
    """Logical processes tracked in the control store"""
    EXTRACT = "EXT"
    LOAD_STAGING = "LOD_STG"
    TRANSFORM = "TRF_STG"
    LOAD_WAREHOUSE = "LOD_DW"
