"""Report generators keyed by report type."""

from datetime import date
from typing import Callable, Dict

from app.query.gateway import ExecutionGateway
from app.reporting.schemas import ReportType

from .arrears import ArrearsReportGenerator
from .base import ReportGenerator
from .financial import FinancialReportGenerator
from .occupancy import OccupancyReportGenerator
from .portfolio import PortfolioReportGenerator
from .upcoming_endings import UpcomingEndingsReportGenerator

GENERATOR_CLASSES = (
    PortfolioReportGenerator,
    OccupancyReportGenerator,
    FinancialReportGenerator,
    ArrearsReportGenerator,
    UpcomingEndingsReportGenerator,
)


def build_generators(
    gateway: ExecutionGateway, clock: Callable[[], date] = date.today
) -> Dict[ReportType, ReportGenerator]:
    return {cls.report_type: cls(gateway, clock) for cls in GENERATOR_CLASSES}


__all__ = [
    "ReportGenerator",
    "PortfolioReportGenerator",
    "OccupancyReportGenerator",
    "FinancialReportGenerator",
    "ArrearsReportGenerator",
    "UpcomingEndingsReportGenerator",
    "build_generators",
]
