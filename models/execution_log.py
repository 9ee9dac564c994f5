from sqlalchemy import Column, String, Enum, DateTime, Integer, Text, Index, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ExecutionStatus


class ExecutionLog(Base):
    """
    One attempt of one logical process (extract, staging load, transform,
    warehouse load).

    Purpose:
    - Daily idempotency gate: at most one success per process per day
    - Audit trail of attempts, record counts and failure reasons
    - batch_id of every raw row points back at an extract execution
    """
    __tablename__ = "log_process"

    execution_id = Column(String(64), primary_key=True)
    config_id = Column(Integer, ForeignKey("config_process.config_id"), nullable=True, index=True)
    process_name = Column(String(32), nullable=False, index=True)

    status = Column(
        Enum(
            ExecutionStatus,
            name="process_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=ExecutionStatus.RUNNING,
        nullable=False,
        index=True,
    )

    start_time = Column(DateTime, nullable=False, default=datetime.now, index=True)
    end_time = Column(DateTime, nullable=True)

    records_inserted = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)

    config = relationship("ProcessConfig")

    __table_args__ = (
        Index("idx_log_process_name_start", "process_name", "status", "start_time"),
    )
