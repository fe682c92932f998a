"""Arrears report: tenants with overdue or part paid schedules past their due date."""

from decimal import Decimal
from typing import Any, Dict, List

from app.query.factory import ACTIVE_STATUS, PAYMENT_TOTALS_CTE
from app.reporting.formatting import days_between, iso_date, parse_date, round_money, to_decimal, to_int
from app.reporting.generators.base import ReportGenerator
from app.reporting.schemas import ReportRequest, ReportType

ARREARS_STATUSES = ("overdue", "partial")
_OUTSTANDING = f"SUM(ps.amount_due - COALESCE({PAYMENT_TOTALS_CTE}.amount_paid, 0))"


class ArrearsReportGenerator(ReportGenerator):
    report_type = ReportType.ARREARS

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        filters, options = request.filters, request.options
        today = self.clock()

        qb = self.factory.create_arrears_query(options.include_landlord_info).select(
            [
                "tm.id AS member_id",
                "tm.first_name || ' ' || tm.surname AS tenant_name",
                "u.email AS tenant_email",
                "u.phone AS tenant_phone",
                "p.address_line1 AS property_address",
                "b.bedroom_name",
                "t.id AS tenancy_id",
                "COUNT(ps.id) AS overdue_payments",
                f"{_OUTSTANDING} AS total_arrears",
                "MIN(ps.due_date) AS oldest_due_date",
            ]
        )
        group_by: List[str] = [
            "tm.id",
            "tm.first_name",
            "tm.surname",
            "u.email",
            "u.phone",
            "p.address_line1",
            "b.bedroom_name",
            "t.id",
        ]
        if options.include_landlord_info:
            qb = qb.select(["l.id AS landlord_id", "l.name AS landlord_name"])
            group_by += ["l.id", "l.name"]

        qb = (
            qb.where("t.status = ?", ACTIVE_STATUS)
            .where("ps.status IN (?, ?)", *ARREARS_STATUSES)
            .where("ps.due_date < ?", today.isoformat())
            .where_landlord(filters.landlord_id)
            .where_property(filters.property_id)
            .group_by(group_by)
            .having(f"{_OUTSTANDING} > ?", 0)
            .order_by("total_arrears", "DESC")
            .order_by("tm.id")
        )

        tenants = []
        for row in self._run(qb, agency_id):
            tenant = dict(row)
            oldest = parse_date(row["oldest_due_date"])
            tenant.update(
                total_arrears=round_money(row["total_arrears"]),
                overdue_payments=to_int(row["overdue_payments"]),
                oldest_due_date=iso_date(oldest),
                days_overdue=days_between(oldest, today) if oldest else 0,
            )
            tenants.append(tenant)

        total = sum((to_decimal(t["total_arrears"]) for t in tenants), Decimal("0"))
        return {
            "tenants": tenants,
            "summary": {
                "tenantsInArrears": len(tenants),
                "totalArrears": round_money(total),
                "totalOverduePayments": sum(t["overdue_payments"] for t in tenants),
            },
            "generatedAt": self._generated_at(),
        }

    def row_count(self, payload: Dict[str, Any]) -> int:
        return len(payload["tenants"])
