"""Occupancy report: per property bedrooms with current and next tenant, plus whole house lets."""

from datetime import date
from typing import Any, Dict, List, Optional

from app.query.factory import ACTIVE_STATUS, UPCOMING_STATUSES, tenant_full_name
from app.reporting.formatting import iso_date, percentage, round_money, to_int
from app.reporting.generators.base import ReportGenerator
from app.reporting.schemas import ReportRequest, ReportType
from app.tenancy.context import ScopedConnection

WHOLE_HOUSE = "whole_house"


def _money_or_none(value: Any) -> Optional[float]:
    return None if value is None else round_money(value)


class OccupancyReportGenerator(ReportGenerator):
    """All queries for one report run on a single scoped connection."""

    report_type = ReportType.OCCUPANCY

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        filters, options = request.filters, request.options
        today = self.clock()

        with self.gateway.scoped_connection(agency_id) as conn:
            properties = self._properties(conn, filters.landlord_id, filters.property_id, options.include_landlord_info)
            details = [
                self._property_detail(conn, prop, today, options.include_next_tenant, options.include_landlord_info)
                for prop in properties
            ]

        bedrooms = sum(d["occupancy"]["total"] for d in details)
        occupied = sum(d["occupancy"]["occupied"] for d in details)
        return {
            "properties": details,
            "summary": {
                "properties": len(details),
                "bedrooms": bedrooms,
                "occupied": occupied,
                "vacant": bedrooms - occupied,
                "occupancyRate": percentage(occupied, bedrooms),
            },
            "generatedAt": self._generated_at(),
        }

    def row_count(self, payload: Dict[str, Any]) -> int:
        return payload["summary"]["bedrooms"]

    def _properties(
        self,
        conn: ScopedConnection,
        landlord_id: Optional[int],
        property_id: Optional[int],
        include_landlord_info: bool,
    ) -> List[Dict[str, Any]]:
        qb = (
            self.factory.create_property_query(include_landlord_info)
            .select(["p.id", "p.address_line1", "p.address_line2", "p.city", "p.postcode", "p.location"])
            .where_landlord(landlord_id)
            .where_property(property_id)
        )
        if include_landlord_info:
            qb = qb.order_by("l.name")
        qb = qb.order_by("p.address_line1").order_by("p.id")
        return conn.execute(*qb.build())

    def _rooms(self, conn: ScopedConnection, property_id: int, today: date, include_next: bool) -> List[Dict[str, Any]]:
        qb = self.factory.create_room_occupancy_query(today, include_next_tenant=include_next).select(
            [
                "b.id",
                "b.bedroom_name",
                "b.price_pppw",
                "b.display_order",
                "ct.member_id",
                "ct.first_name",
                "ct.surname",
                "ct.rent_pppw",
                "ct.tenancy_id",
                "ct.start_date",
                "ct.end_date",
                "ct.tenancy_status",
            ]
        )
        if include_next:
            qb = qb.select(
                [
                    "nt.next_member_id",
                    "nt.next_first_name",
                    "nt.next_surname",
                    "nt.next_rent_pppw",
                    "nt.next_tenancy_id",
                    "nt.next_start_date",
                    "nt.next_end_date",
                ]
            )
        qb = qb.where("b.property_id = ?", property_id).order_by("b.display_order").order_by("b.id")
        return conn.execute(*qb.build())

    def _whole_house(
        self, conn: ScopedConnection, property_id: int, today: date, upcoming: bool
    ) -> Optional[Dict[str, Any]]:
        qb = (
            self.factory.builder()
            .select(
                [
                    "t.id",
                    "t.start_date",
                    "t.end_date",
                    "t.status",
                    f"{self.gateway.dialect.string_agg(tenant_full_name())} AS tenants",
                    "COUNT(tm.id) AS tenant_count",
                    "SUM(tm.rent_pppw) AS total_rent_pppw",
                ]
            )
            .from_("tenancies", "t")
            .join("tenancy_members", "tm", "t.id = tm.tenancy_id")
            .where("t.property_id = ?", property_id)
            .where("t.tenancy_type = ?", WHOLE_HOUSE)
            .group_by(["t.id", "t.start_date", "t.end_date", "t.status"])
        )
        if upcoming:
            placeholders = ", ".join("?" for _ in UPCOMING_STATUSES)
            qb = (
                qb.where(f"t.status IN ({placeholders})", *UPCOMING_STATUSES)
                .where("t.start_date > ?", today.isoformat())
                .order_by("t.start_date", "ASC")
            )
        else:
            qb = (
                qb.where("t.status = ?", ACTIVE_STATUS)
                .where("t.start_date <= ?", today.isoformat())
                .order_by("t.start_date", "DESC")
            )
        rows = conn.execute(*qb.order_by("t.id").limit(1).build())
        if not rows:
            return None
        row = rows[0]
        return {
            "id": row["id"],
            "tenants": row["tenants"],
            "tenantCount": to_int(row["tenant_count"]),
            "totalRent": round_money(row["total_rent_pppw"]),
            "startDate": iso_date(row["start_date"]),
            "endDate": iso_date(row["end_date"]),
        }

    def _property_detail(
        self,
        conn: ScopedConnection,
        prop: Dict[str, Any],
        today: date,
        include_next: bool,
        include_landlord_info: bool,
    ) -> Dict[str, Any]:
        rooms = [self._shape_room(row, include_next) for row in self._rooms(conn, prop["id"], today, include_next)]
        whole_house = self._whole_house(conn, prop["id"], today, upcoming=False)
        next_whole_house = self._whole_house(conn, prop["id"], today, upcoming=True) if include_next else None

        total = len(rooms)
        occupied = total if whole_house else sum(1 for room in rooms if room["isOccupied"])
        address = prop["address_line1"]
        if prop.get("address_line2"):
            address = f"{address}, {prop['address_line2']}"

        detail: Dict[str, Any] = {
            "id": prop["id"],
            "address": address,
            "city": prop.get("city"),
            "postcode": prop.get("postcode"),
            "location": prop.get("location"),
            "bedrooms": rooms,
            "wholeHouseTenancy": whole_house,
            "nextWholeHouseTenancy": next_whole_house,
            "occupancy": {"occupied": occupied, "total": total, "rate": percentage(occupied, total)},
        }
        if include_landlord_info:
            detail["landlord_id"] = prop.get("landlord_id")
            detail["landlord_name"] = prop.get("landlord_name") or "Unassigned"
        return detail

    @staticmethod
    def _shape_room(row: Dict[str, Any], include_next: bool) -> Dict[str, Any]:
        tenant = None
        if row["member_id"] is not None:
            tenant = {
                "name": f"{row['first_name']} {row['surname']}",
                "rentPPPW": _money_or_none(row["rent_pppw"]),
                "tenancyStart": iso_date(row["start_date"]),
                "tenancyEnd": iso_date(row["end_date"]),
            }
        next_tenant = None
        if include_next and row.get("next_member_id") is not None:
            next_tenant = {
                "name": f"{row['next_first_name']} {row['next_surname']}",
                "rentPPPW": _money_or_none(row["next_rent_pppw"]),
                "tenancyStart": iso_date(row["next_start_date"]),
                "tenancyEnd": iso_date(row["next_end_date"]),
            }
        return {
            "id": row["id"],
            "name": row["bedroom_name"],
            "baseRent": _money_or_none(row["price_pppw"]),
            "isOccupied": tenant is not None,
            "tenant": tenant,
            "nextTenant": next_tenant,
        }
