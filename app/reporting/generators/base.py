"""Base class for report generators."""

from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List

from app.query.builder import ReportQueryBuilder
from app.query.factory import QueryBuilderFactory
from app.query.gateway import ExecutionGateway
from app.reporting.schemas import ReportRequest, ReportType


class ReportGenerator:
    """Builds queries for one report type and shapes the rows into its payload.

    Generators hold no per-request state. ``clock`` returns today's date and
    exists so date-relative reports can be generated for a fixed day.
    """

    report_type: ReportType

    def __init__(self, gateway: ExecutionGateway, clock: Callable[[], date] = date.today):
        self.gateway = gateway
        self.factory = QueryBuilderFactory(gateway.dialect)
        self.clock = clock

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def row_count(self, payload: Dict[str, Any]) -> int:
        """Number of detail rows in ``payload``, recorded in the execution log."""
        return 0

    def _run(self, qb: ReportQueryBuilder, agency_id: int) -> List[Dict[str, Any]]:
        return self.gateway.run(qb.build(), agency_id)

    @staticmethod
    def _generated_at() -> str:
        return datetime.now(timezone.utc).isoformat()
