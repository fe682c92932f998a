"""Upcoming endings: tenancies ending within the next N days and the weekly rent at risk."""

from decimal import Decimal
from typing import Any, Dict, List

from app.query.factory import tenant_full_name
from app.reporting.formatting import days_between, iso_date, parse_date, round_money, to_decimal, to_int
from app.reporting.generators.base import ReportGenerator
from app.reporting.schemas import ReportRequest, ReportType

DEFAULT_DAYS_AHEAD = 90


class UpcomingEndingsReportGenerator(ReportGenerator):
    report_type = ReportType.UPCOMING_ENDINGS

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        filters, options = request.filters, request.options
        today = self.clock()
        days_ahead = filters.days_ahead if filters.days_ahead is not None else DEFAULT_DAYS_AHEAD

        qb = self.factory.create_tenancy_query(options.include_landlord_info).select(
            [
                "t.id AS tenancy_id",
                "t.end_date",
                "t.status",
                "t.is_rolling_monthly",
                "p.address_line1 AS property_address",
                "p.id AS property_id",
                f"{self.gateway.dialect.string_agg(tenant_full_name())} AS tenants",
                "COUNT(tm.id) AS tenant_count",
                "SUM(tm.rent_pppw) AS total_weekly_rent",
            ]
        )
        group_by: List[str] = ["t.id", "t.end_date", "t.status", "t.is_rolling_monthly", "p.address_line1", "p.id"]
        if options.include_landlord_info:
            qb = qb.select(["l.id AS landlord_id", "l.name AS landlord_name"])
            group_by += ["l.id", "l.name"]

        qb = (
            qb.where_tenancy_status(filters.tenancy_status)
            .where_landlord(filters.landlord_id)
            .where_property(filters.property_id)
            .where_days_ahead("t.end_date", days_ahead, today)
            .group_by(group_by)
            .order_by("t.end_date", "ASC")
            .order_by("t.id")
        )

        tenancies = []
        for row in self._run(qb, agency_id):
            end_date = parse_date(row["end_date"])
            tenancy = dict(row)
            tenancy.update(
                end_date=iso_date(end_date),
                is_rolling_monthly=bool(row["is_rolling_monthly"]),
                tenant_count=to_int(row["tenant_count"]),
                total_weekly_rent=round_money(row["total_weekly_rent"]),
                days_until_end=days_between(today, end_date),
            )
            tenancies.append(tenancy)

        rent_at_risk = sum((to_decimal(t["total_weekly_rent"]) for t in tenancies), Decimal("0"))
        return {
            "tenancies": tenancies,
            "summary": {
                "endingCount": len(tenancies),
                "potentialRentLoss": round_money(rent_at_risk),
                "daysAhead": days_ahead,
            },
            "generatedAt": self._generated_at(),
        }

    def row_count(self, payload: Dict[str, Any]) -> int:
        return len(payload["tenancies"])
