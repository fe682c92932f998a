"""Financial report: monthly collection figures with annual totals and a per property breakdown.

Annual totals are always the sum of the twelve monthly results, never a
separate annual query, so the breakdown and the totals agree to the penny.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.query.factory import PAYMENT_TOTALS_CTE, with_payment_totals
from app.reporting.formatting import percentage, round_money, to_decimal, to_int
from app.reporting.generators.base import ReportGenerator
from app.reporting.schemas import ReportRequest, ReportType
from app.tenancy.context import ScopedConnection

_COUNT_FIELDS = ("paymentCount", "paidCount", "overdueCount")


class FinancialReportGenerator(ReportGenerator):
    report_type = ReportType.FINANCIAL

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        filters, options = request.filters, request.options
        today = self.clock()
        year = filters.year or today.year

        with self.gateway.scoped_connection(agency_id) as conn:
            if filters.month:
                return {
                    "year": year,
                    "month": filters.month,
                    "data": self._month(conn, filters.landlord_id, filters.property_id, year, filters.month, today),
                    "generatedAt": self._generated_at(),
                }

            monthly = [
                self._month(conn, filters.landlord_id, filters.property_id, year, month, today)
                for month in range(1, 13)
            ]
            result: Dict[str, Any] = {
                "year": year,
                "monthly": monthly,
                "annual": self.annual_totals(monthly),
                "generatedAt": self._generated_at(),
            }
            if options.group_by_property:
                result["byProperty"] = self._by_property(
                    conn, filters.landlord_id, filters.property_id, year, options.include_landlord_info
                )
        return result

    def row_count(self, payload: Dict[str, Any]) -> int:
        if "monthly" in payload:
            return len(payload["monthly"]) + len(payload.get("byProperty", []))
        return 1

    @staticmethod
    def annual_totals(monthly: List[Dict[str, Any]]) -> Dict[str, Any]:
        total_due = sum((to_decimal(m["totalDue"]) for m in monthly), Decimal("0"))
        total_paid = sum((to_decimal(m["totalPaid"]) for m in monthly), Decimal("0"))
        annual: Dict[str, Any] = {
            "totalDue": round_money(total_due),
            "totalPaid": round_money(total_paid),
            "outstanding": round_money(total_due - total_paid),
            "collectionRate": percentage(total_paid, total_due),
        }
        for key in _COUNT_FIELDS:
            annual[key] = sum(m[key] for m in monthly)
        return annual

    def _month(
        self,
        conn: ScopedConnection,
        landlord_id: Optional[int],
        property_id: Optional[int],
        year: int,
        month: int,
        today: date,
    ) -> Dict[str, Any]:
        qb = (
            self.factory.create_payment_query()
            .select(
                [
                    "COALESCE(SUM(ps.amount_due), 0) AS total_due",
                    f"COALESCE(SUM(COALESCE({PAYMENT_TOTALS_CTE}.amount_paid, 0)), 0) AS total_paid",
                    "COUNT(ps.id) AS payment_count",
                    "SUM(CASE WHEN ps.status = 'paid' THEN 1 ELSE 0 END) AS paid_count",
                    "SUM(CASE WHEN ps.status = 'overdue' OR (ps.status <> 'paid' AND ps.due_date < ?) "
                    "THEN 1 ELSE 0 END) AS overdue_count",
                ],
                today.isoformat(),
            )
            .where_landlord(landlord_id)
            .where_property(property_id)
            .where_year_month("ps.due_date", year, month)
        )
        rows = conn.execute(*qb.build())
        data = rows[0] if rows else {}

        total_due = to_decimal(data.get("total_due"))
        total_paid = to_decimal(data.get("total_paid"))
        return {
            "month": month,
            "monthName": calendar.month_abbr[month],
            "totalDue": round_money(total_due),
            "totalPaid": round_money(total_paid),
            "outstanding": round_money(total_due - total_paid),
            "paymentCount": to_int(data.get("payment_count")),
            "paidCount": to_int(data.get("paid_count")),
            "overdueCount": to_int(data.get("overdue_count")),
            "collectionRate": percentage(total_paid, total_due),
        }

    def _by_property(
        self,
        conn: ScopedConnection,
        landlord_id: Optional[int],
        property_id: Optional[int],
        year: int,
        include_landlord_info: bool,
    ) -> List[Dict[str, Any]]:
        year_of_due = self.gateway.dialect.year_of("ps.due_date")
        qb = (
            with_payment_totals(self.factory.builder())
            .select(
                [
                    "p.id",
                    "p.address_line1 AS address",
                    "COALESCE(SUM(ps.amount_due), 0) AS total_due",
                    f"COALESCE(SUM(COALESCE({PAYMENT_TOTALS_CTE}.amount_paid, 0)), 0) AS total_paid",
                    "COUNT(DISTINCT tm.id) AS tenant_count",
                ]
            )
            .from_("properties", "p")
            .left_join("tenancies", "t", "t.property_id = p.id")
            .left_join("tenancy_members", "tm", "tm.tenancy_id = t.id")
            .left_join("payment_schedules", "ps", f"ps.tenancy_member_id = tm.id AND {year_of_due} = ?", year)
            .left_join(PAYMENT_TOTALS_CTE, PAYMENT_TOTALS_CTE, f"ps.id = {PAYMENT_TOTALS_CTE}.payment_schedule_id")
            .where_landlord(landlord_id)
            .where_property(property_id)
            .group_by(["p.id", "p.address_line1"])
        )
        if include_landlord_info:
            qb = (
                qb.left_join("landlords", "l", "p.landlord_id = l.id")
                .select(["l.id AS landlord_id", "l.name AS landlord_name"])
                .group_by(["l.id", "l.name"])
            )
        qb = qb.order_by("total_due", "DESC").order_by("p.id")

        breakdown = []
        for row in conn.execute(*qb.build()):
            total_due = to_decimal(row["total_due"])
            total_paid = to_decimal(row["total_paid"])
            entry = dict(row)
            entry.update(
                total_due=round_money(total_due),
                total_paid=round_money(total_paid),
                outstanding=round_money(total_due - total_paid),
                tenant_count=to_int(row["tenant_count"]),
            )
            breakdown.append(entry)
        return breakdown
