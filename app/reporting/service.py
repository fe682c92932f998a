# app/reporting/service.py
"""Report service: validation, dispatch to generators, bounded retry and execution audit."""

import time
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from app.core.config import REPORT_POOL_RETRY_ATTEMPTS
from app.core.exceptions import ConnectionPoolExhausted, GatewayError
from app.query.gateway import ExecutionGateway
from app.reporting.csv_export import get_export_formats
from app.reporting.execution_log_dao import ReportExecutionLogDAO
from app.reporting.generators import ReportGenerator, build_generators
from app.reporting.registry import REPORT_CONFIGS, create_report_request
from app.reporting.schemas import ReportContext, ReportRequest, ReportSummary, ReportType

logger = logging.getLogger(__name__)


class ReportService:
    """Runs validated report requests against the execution gateway.

    Only ConnectionPoolExhausted is retried, at most ``max_attempts`` times in
    total, sleeping for the error's ``retry_after`` between attempts. Every
    other error propagates unchanged after being logged and audited.
    """

    def __init__(
        self,
        gateway: ExecutionGateway,
        generators: Optional[Dict[ReportType, ReportGenerator]] = None,
        execution_log_dao: Optional[ReportExecutionLogDAO] = None,
        max_attempts: int = REPORT_POOL_RETRY_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], date] = date.today,
    ):
        self.gateway = gateway
        self.generators = generators if generators is not None else build_generators(gateway, clock)
        self.execution_log_dao = execution_log_dao if execution_log_dao is not None else ReportExecutionLogDAO(gateway)
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep

    def get_available_reports(self, role: str) -> List[ReportSummary]:
        return [
            ReportSummary(
                type=report_type,
                name=config.name,
                description=config.description,
                export_formats=get_export_formats(report_type.value),
            )
            for report_type, config in REPORT_CONFIGS.items()
            if role in config.allowed_roles
        ]

    def generate(
        self,
        report_type: Union[ReportType, str],
        context: Union[ReportContext, Mapping[str, Any]],
        filters: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[ReportRequest, Dict[str, Any]]:
        """Validate and run a report. Returns the resolved request with the payload."""
        request = create_report_request(report_type, context, filters, options)
        return request, self.run(request)

    def run(self, request: ReportRequest) -> Dict[str, Any]:
        generator = self.generators[request.report_type]
        agency_id = request.context.agency_id
        start_time = time.perf_counter()
        attempts = 0

        try:
            while True:
                attempts += 1
                try:
                    payload = generator.generate(request, agency_id)
                    break
                except ConnectionPoolExhausted as e:
                    if attempts >= self.max_attempts:
                        raise
                    logger.warning(
                        f"{request.report_type.value} report for agency {agency_id}: pool exhausted, "
                        f"retrying in {e.retry_after}s (attempt {attempts}/{self.max_attempts})"
                    )
                    self.sleep(e.retry_after)
        except Exception as e:
            execution_time = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.report_type.value} report failed for agency {agency_id} "
                f"after {attempts} attempt(s): {type(e).__name__}: {e}"
            )
            self._record_execution(request, execution_time, attempts, success=False, error=e)
            raise

        execution_time = (time.perf_counter() - start_time) * 1000
        row_count = generator.row_count(payload)
        logger.info(
            f"{request.report_type.value} report for agency {agency_id} generated in "
            f"{execution_time:.1f}ms ({row_count} rows)"
        )
        self._record_execution(request, execution_time, attempts, success=True, row_count=row_count)
        return payload

    def _record_execution(
        self,
        request: ReportRequest,
        execution_time: float,
        attempts: int,
        success: bool,
        row_count: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        entry = {
            "agency_id": request.context.agency_id,
            "report_type": request.report_type.value,
            "executed_by": str(request.context.user_id) if request.context.user_id is not None else None,
            "user_role": request.context.user_role,
            "execution_time_ms": round(execution_time, 2),
            "row_count": row_count,
            "attempts": attempts,
            "success": success,
            "error_kind": type(error).__name__ if error else None,
            "error_message": str(error)[:1000] if error else None,
        }
        try:
            self.execution_log_dao.create(entry)
        except GatewayError as log_error:
            logger.error(f"Error recording report execution: {log_error}")
