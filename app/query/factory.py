"""
Pre-configured builders and the window-function CTEs shared by the reports.

Current vs next occupant per bedroom
------------------------------------
Both CTEs rank tenancy members per bedroom with ``ROW_NUMBER()`` and callers
join on ``rn = 1`` with a LEFT JOIN so empty bedrooms are kept with NULLs.

- current: active tenancies that have started (``start_date <= today``),
  ordered by start date DESC so the most recently started tenancy wins.
- next: upcoming tenancies (``start_date > today``), ordered by start date
  ASC so the soonest one wins.

Ties on start date fall back to tenancy id in the same direction.
"""

from datetime import date
from typing import Tuple

from .builder import ReportQueryBuilder
from .dialects import POSTGRESQL, SqlDialect

CURRENT_OCCUPANT_CTE = "current_tenant"
NEXT_OCCUPANT_CTE = "next_tenant"
PAYMENT_TOTALS_CTE = "pay_sum"

ACTIVE_STATUS = "active"
UPCOMING_STATUSES: Tuple[str, ...] = ("active", "signed", "awaiting_signatures", "pending")

_CURRENT_OCCUPANT_SQL = """
    SELECT
        tm.id AS member_id,
        tm.bedroom_id,
        tm.first_name,
        tm.surname,
        tm.rent_pppw,
        t.id AS tenancy_id,
        t.start_date,
        t.end_date,
        t.status AS tenancy_status,
        ROW_NUMBER() OVER (PARTITION BY tm.bedroom_id ORDER BY t.start_date DESC, t.id DESC) AS rn
    FROM tenancy_members tm
    INNER JOIN tenancies t ON tm.tenancy_id = t.id
    WHERE t.status = 'active' AND t.start_date <= ? AND tm.bedroom_id IS NOT NULL
"""

_NEXT_OCCUPANT_SQL = """
    SELECT
        tm.id AS next_member_id,
        tm.bedroom_id,
        tm.first_name AS next_first_name,
        tm.surname AS next_surname,
        tm.rent_pppw AS next_rent_pppw,
        t.id AS next_tenancy_id,
        t.start_date AS next_start_date,
        t.end_date AS next_end_date,
        ROW_NUMBER() OVER (PARTITION BY tm.bedroom_id ORDER BY t.start_date ASC, t.id ASC) AS rn
    FROM tenancy_members tm
    INNER JOIN tenancies t ON tm.tenancy_id = t.id
    WHERE t.status IN ('active', 'signed', 'awaiting_signatures', 'pending')
      AND t.start_date > ? AND tm.bedroom_id IS NOT NULL
"""

_PAYMENT_TOTALS_SQL = """
    SELECT payment_schedule_id, SUM(amount) AS amount_paid
    FROM payments
    GROUP BY payment_schedule_id
"""


def with_current_occupants(qb: ReportQueryBuilder, today: date) -> ReportQueryBuilder:
    return qb.with_cte(CURRENT_OCCUPANT_CTE, _CURRENT_OCCUPANT_SQL, [today.isoformat()])


def with_next_occupants(qb: ReportQueryBuilder, today: date) -> ReportQueryBuilder:
    return qb.with_cte(NEXT_OCCUPANT_CTE, _NEXT_OCCUPANT_SQL, [today.isoformat()])


def with_payment_totals(qb: ReportQueryBuilder) -> ReportQueryBuilder:
    """Amount paid per schedule, so multiple payments never multiply schedule rows."""
    return qb.with_cte(PAYMENT_TOTALS_CTE, _PAYMENT_TOTALS_SQL)


def tenant_full_name(alias: str = "tm") -> str:
    return f"{alias}.first_name || ' ' || {alias}.surname"


class QueryBuilderFactory:
    """Starting points for the common report query shapes."""

    def __init__(self, dialect: SqlDialect = POSTGRESQL):
        self.dialect = dialect

    def builder(self) -> ReportQueryBuilder:
        return ReportQueryBuilder(dialect=self.dialect)

    @staticmethod
    def _with_landlord(qb: ReportQueryBuilder, include_landlord_info: bool) -> ReportQueryBuilder:
        if include_landlord_info:
            qb = qb.left_join("landlords", "l", "p.landlord_id = l.id")
        return qb

    def create_property_query(self, include_landlord_info: bool = False) -> ReportQueryBuilder:
        qb = self.builder().from_("properties", "p")
        if include_landlord_info:
            qb = self._with_landlord(qb, True).select(["l.id AS landlord_id", "l.name AS landlord_name"])
        return qb

    def create_room_occupancy_query(
        self, today: date, include_next_tenant: bool = False, include_landlord_info: bool = False
    ) -> ReportQueryBuilder:
        """Bedrooms with their current (``ct``) and optionally next (``nt``) occupant."""
        qb = with_current_occupants(self.builder(), today)
        if include_next_tenant:
            qb = with_next_occupants(qb, today)

        qb = (
            qb.from_("bedrooms", "b")
            .join("properties", "p", "b.property_id = p.id")
            .left_join(CURRENT_OCCUPANT_CTE, "ct", "b.id = ct.bedroom_id AND ct.rn = 1")
        )
        if include_next_tenant:
            qb = qb.left_join(NEXT_OCCUPANT_CTE, "nt", "b.id = nt.bedroom_id AND nt.rn = 1")
        return self._with_landlord(qb, include_landlord_info)

    def create_payment_query(self, include_landlord_info: bool = False) -> ReportQueryBuilder:
        """Payment schedules with member, tenancy, property and amount paid (``pay_sum``)."""
        qb = (
            with_payment_totals(self.builder())
            .from_("payment_schedules", "ps")
            .join("tenancy_members", "tm", "ps.tenancy_member_id = tm.id")
            .join("tenancies", "t", "ps.tenancy_id = t.id")
            .join("properties", "p", "t.property_id = p.id")
            .left_join(PAYMENT_TOTALS_CTE, PAYMENT_TOTALS_CTE, f"ps.id = {PAYMENT_TOTALS_CTE}.payment_schedule_id")
            .left_join("bedrooms", "b", "tm.bedroom_id = b.id")
        )
        return self._with_landlord(qb, include_landlord_info)

    def create_arrears_query(self, include_landlord_info: bool = False) -> ReportQueryBuilder:
        """Payment query plus the member's user record for contact details."""
        return self.create_payment_query(include_landlord_info).join("users", "u", "tm.user_id = u.id")

    def create_tenancy_query(self, include_landlord_info: bool = False) -> ReportQueryBuilder:
        qb = (
            self.builder()
            .from_("tenancies", "t")
            .join("properties", "p", "t.property_id = p.id")
            .join("tenancy_members", "tm", "t.id = tm.tenancy_id")
        )
        return self._with_landlord(qb, include_landlord_info)
