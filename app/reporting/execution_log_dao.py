# app/reporting/execution_log_dao.py
"""Data Access Object for report execution logs.

The log spans every agency, so all access goes through the gateway's system
path with a fixed audit reason.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from app.query.gateway import ExecutionGateway

AUDIT_REASON = "report-execution-audit"

_COLUMNS = (
    "agency_id",
    "report_type",
    "executed_by",
    "user_role",
    "execution_time_ms",
    "row_count",
    "attempts",
    "success",
    "error_kind",
    "error_message",
    "executed_at",
)


class ReportExecutionLogDAO:
    """DAO for report execution log operations."""

    def __init__(self, gateway: ExecutionGateway):
        self.gateway = gateway

    def create(self, entry: Dict[str, Any]) -> None:
        """Insert one execution record. ``executed_at`` defaults to now."""
        values = dict(entry)
        values.setdefault("executed_at", datetime.now().isoformat(sep=" ", timespec="seconds"))
        values.setdefault("attempts", 1)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        sql = f"INSERT INTO report_execution_logs ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        self.gateway.system_query(
            sql, [values.get(column) for column in _COLUMNS], reason=AUDIT_REASON, routine=True
        )

    def _select(self, limit: int):
        return (
            self.gateway.builder()
            .select(["rel.id"] + [f"rel.{column}" for column in _COLUMNS])
            .from_("report_execution_logs", "rel")
            .order_by("rel.executed_at", "DESC")
            .order_by("rel.id", "DESC")
            .limit(limit)
        )

    def get_recent_executions(self, limit: int = 100, agency_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Most recent executions, optionally for one agency."""
        qb = self._select(limit)
        if agency_id is not None:
            qb = qb.where("rel.agency_id = ?", agency_id)
        return self.gateway.system_query(*qb.build(), reason=AUDIT_REASON, routine=True)

    def get_failed_executions(self, limit: int = 50) -> List[Dict[str, Any]]:
        qb = self._select(limit).where("rel.success = ?", False)
        return self.gateway.system_query(*qb.build(), reason=AUDIT_REASON, routine=True)
