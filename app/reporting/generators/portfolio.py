"""Portfolio overview: property counts, bedroom occupancy and tenancy statistics."""

from datetime import date
from typing import Any, Dict, List, Optional

from app.query.factory import ACTIVE_STATUS
from app.reporting.formatting import iso_date, percentage, to_int
from app.reporting.generators.base import ReportGenerator
from app.reporting.schemas import ReportRequest, ReportType, UserRole


class PortfolioReportGenerator(ReportGenerator):
    report_type = ReportType.PORTFOLIO

    def generate(self, request: ReportRequest, agency_id: int) -> Dict[str, Any]:
        landlord_id = request.filters.landlord_id
        include_landlord_info = request.options.include_landlord_info
        today = self.clock()

        summary = self._property_summary(landlord_id, agency_id)
        stats = self._tenancy_stats(landlord_id, agency_id)
        rooms = self._room_occupancy(landlord_id, include_landlord_info, today, agency_id)

        occupied = sum(1 for room in rooms if room["is_occupied"])
        total = len(rooms) or to_int(summary.get("total_rooms"))

        result: Dict[str, Any] = {
            "properties": to_int(summary.get("total_properties")),
            "bedrooms": total,
            "occupiedBedrooms": occupied,
            "vacantBedrooms": total - occupied,
            "occupancyRate": percentage(occupied, total),
            "activeTenancies": to_int(stats.get("active_tenancies")),
            "totalTenants": to_int(stats.get("total_tenants")),
            "generatedAt": self._generated_at(),
        }

        if landlord_id is None and request.context.user_role == UserRole.ADMIN.value:
            result["landlordCount"] = to_int(summary.get("total_landlords"))

        if request.options.include_room_details:
            result["bedroomDetails"] = rooms

        return result

    def row_count(self, payload: Dict[str, Any]) -> int:
        return payload.get("bedrooms", 0)

    def _property_summary(self, landlord_id: Optional[int], agency_id: int) -> Dict[str, Any]:
        qb = (
            self.factory.builder()
            .select(["COUNT(DISTINCT p.id) AS total_properties", "COUNT(DISTINCT p.landlord_id) AS total_landlords"])
            .from_("properties", "p")
        )
        if landlord_id is None:
            qb = qb.select("(SELECT COUNT(*) FROM bedrooms) AS total_rooms")
        else:
            qb = qb.select(
                "(SELECT COUNT(*) FROM bedrooms sb INNER JOIN properties sp ON sb.property_id = sp.id "
                "WHERE sp.landlord_id = ?) AS total_rooms",
                landlord_id,
            )
        qb = qb.where_landlord(landlord_id)
        return self.gateway.run_one(qb.build(), agency_id) or {}

    def _tenancy_stats(self, landlord_id: Optional[int], agency_id: int) -> Dict[str, Any]:
        qb = (
            self.factory.builder()
            .select(["COUNT(DISTINCT t.id) AS active_tenancies", "COUNT(DISTINCT tm.id) AS total_tenants"])
            .from_("tenancies", "t")
            .left_join("tenancy_members", "tm", "t.id = tm.tenancy_id")
            .where("t.status = ?", ACTIVE_STATUS)
        )
        if landlord_id is not None:
            qb = qb.join("properties", "p", "t.property_id = p.id").where_landlord(landlord_id)
        return self.gateway.run_one(qb.build(), agency_id) or {}

    def _room_occupancy(
        self, landlord_id: Optional[int], include_landlord_info: bool, today: date, agency_id: int
    ) -> List[Dict[str, Any]]:
        qb = self.factory.create_room_occupancy_query(today, include_landlord_info=include_landlord_info).select(
            [
                "b.id",
                "b.bedroom_name",
                "p.address_line1",
                "CASE WHEN ct.tenancy_id IS NOT NULL THEN 1 ELSE 0 END AS is_occupied",
                "ct.first_name || ' ' || ct.surname AS tenant_name",
                "ct.end_date AS tenancy_end_date",
            ]
        )
        if include_landlord_info:
            qb = qb.select("l.name AS landlord_name").order_by("l.name")
        qb = qb.where_landlord(landlord_id).order_by("p.address_line1").order_by("b.id")

        rooms = []
        for row in self._run(qb, agency_id):
            room = dict(row)
            room["is_occupied"] = bool(row["is_occupied"])
            room["tenancy_end_date"] = iso_date(row["tenancy_end_date"])
            rooms.append(room)
        return rooms
