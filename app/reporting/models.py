# app/reporting/models.py

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Float
from datetime import datetime
from app.core.database import Base


class ReportExecutionLog(Base):
    """Platform audit of report executions across all agencies.

    Not a tenant table: rows are written and read through the gateway's
    system path so staff can audit usage across agencies.
    """

    __tablename__ = "report_execution_logs"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    report_type = Column(String, nullable=False, index=True)
    executed_by = Column(String, nullable=True)
    user_role = Column(String, nullable=True)
    execution_time_ms = Column(Float, nullable=True)
    row_count = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    success = Column(Boolean, nullable=False)
    error_kind = Column(String, nullable=True)
    error_message = Column(String, nullable=True)
    executed_at = Column(DateTime, default=datetime.now)
