"""
CSV export for generated reports.

Each export type flattens its report payload into rows and a column list;
pandas writes the file. A UTF-8 byte order mark is prepended so spreadsheet
tools read the pound sign correctly.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from app.core.exceptions import ReportError
from app.reporting.formatting import currency, short_date
from app.reporting.registry import UNSUPPORTED_EXPORT

UTF8_BOM = "\ufeff"


Row = Dict[str, Any]


@dataclass(frozen=True)
class ExportColumn:
    header: str
    accessor: Union[str, Callable[[Row], Any]]

    def value(self, row: Row) -> str:
        value = self.accessor(row) if callable(self.accessor) else row.get(self.accessor)
        return "" if value is None else str(value)


Transform = Callable[[Row, bool], Tuple[List[Row], List[ExportColumn]]]


@dataclass(frozen=True)
class ExportConfig:
    filename: str
    transform: Transform


def _with_landlord(columns: List[ExportColumn], rows: Sequence[Row], include_landlord_info: bool) -> List[ExportColumn]:
    if include_landlord_info and rows and "landlord_name" in rows[0]:
        return [ExportColumn("Landlord", "landlord_name")] + columns
    return columns


def _portfolio(report: Row, include_landlord_info: bool):
    rows = report.get("bedroomDetails") or []
    columns = [
        ExportColumn("Property", "address_line1"),
        ExportColumn("Bedroom", "bedroom_name"),
        ExportColumn("Status", lambda r: "Occupied" if r.get("is_occupied") else "Vacant"),
        ExportColumn("Tenant", "tenant_name"),
        ExportColumn("Tenancy End", lambda r: short_date(r.get("tenancy_end_date"))),
    ]
    return rows, _with_landlord(columns, rows, include_landlord_info)


def _occupant_fields(prefix: str, occupant: Optional[Row], rent_key: str = "rentPPPW") -> Row:
    if not occupant:
        return {f"{prefix}_name": "", f"{prefix}_rent": "", f"{prefix}_start": "", f"{prefix}_end": ""}
    return {
        f"{prefix}_name": occupant.get("name") or occupant.get("tenants") or "",
        f"{prefix}_rent": currency(occupant.get(rent_key)),
        f"{prefix}_start": short_date(occupant.get("tenancyStart") or occupant.get("startDate")),
        f"{prefix}_end": short_date(occupant.get("tenancyEnd") or occupant.get("endDate")),
    }


def _occupancy(report: Row, include_landlord_info: bool):
    rows: List[Row] = []
    for prop in report.get("properties") or []:
        base = {"property_address": prop.get("address")}
        if "landlord_name" in prop:
            base["landlord_name"] = prop["landlord_name"]
        whole_house = prop.get("wholeHouseTenancy")
        if whole_house:
            row = dict(base, bedroom_name="Whole House", base_rent="", status="Occupied")
            row.update(_occupant_fields("tenant", whole_house, rent_key="totalRent"))
            row.update(_occupant_fields("next", prop.get("nextWholeHouseTenancy"), rent_key="totalRent"))
            rows.append(row)
            continue
        for room in prop.get("bedrooms") or []:
            row = dict(
                base,
                bedroom_name=room.get("name"),
                base_rent=currency(room.get("baseRent")),
                status="Occupied" if room.get("isOccupied") else "Vacant",
            )
            row.update(_occupant_fields("tenant", room.get("tenant")))
            row.update(_occupant_fields("next", room.get("nextTenant")))
            rows.append(row)

    columns = [
        ExportColumn("Property", "property_address"),
        ExportColumn("Room", "bedroom_name"),
        ExportColumn("Base Rent (PPPW)", "base_rent"),
        ExportColumn("Status", "status"),
        ExportColumn("Current Tenant", "tenant_name"),
        ExportColumn("Current Rent (PPPW)", "tenant_rent"),
        ExportColumn("Start Date", "tenant_start"),
        ExportColumn("End Date", "tenant_end"),
        ExportColumn("Next Tenant", "next_name"),
        ExportColumn("Next Start", "next_start"),
        ExportColumn("Next End", "next_end"),
    ]
    return rows, _with_landlord(columns, rows, include_landlord_info)


def _financial(report: Row, include_landlord_info: bool):
    rows = list(report.get("monthly") or [])
    if not rows and report.get("data"):
        rows = [report["data"]]
    annual = report.get("annual")
    if annual:
        rows.append(dict(annual, monthName="ANNUAL TOTAL"))
    columns = [
        ExportColumn("Month", "monthName"),
        ExportColumn("Total Due", lambda r: currency(r.get("totalDue"))),
        ExportColumn("Total Paid", lambda r: currency(r.get("totalPaid"))),
        ExportColumn("Outstanding", lambda r: currency(r.get("outstanding"))),
        ExportColumn("Payment Count", "paymentCount"),
        ExportColumn("Paid Count", "paidCount"),
        ExportColumn("Overdue Count", "overdueCount"),
        ExportColumn("Collection Rate", lambda r: f"{r.get('collectionRate', 0)}%"),
    ]
    return rows, columns


def _financial_by_property(report: Row, include_landlord_info: bool):
    rows = report.get("byProperty") or []
    columns = [
        ExportColumn("Property", "address"),
        ExportColumn("Total Due", lambda r: currency(r.get("total_due"))),
        ExportColumn("Total Paid", lambda r: currency(r.get("total_paid"))),
        ExportColumn("Outstanding", lambda r: currency(r.get("outstanding"))),
        ExportColumn("Tenant Count", "tenant_count"),
    ]
    return rows, _with_landlord(columns, rows, include_landlord_info)


def _arrears(report: Row, include_landlord_info: bool):
    rows = report.get("tenants") or []
    columns = [
        ExportColumn("Tenant", "tenant_name"),
        ExportColumn("Email", "tenant_email"),
        ExportColumn("Phone", "tenant_phone"),
        ExportColumn("Property", "property_address"),
        ExportColumn("Room", "bedroom_name"),
        ExportColumn("Overdue Payments", "overdue_payments"),
        ExportColumn("Total Arrears", lambda r: currency(r.get("total_arrears"))),
        ExportColumn("Days Overdue", "days_overdue"),
    ]
    return rows, _with_landlord(columns, rows, include_landlord_info)


def _upcoming_endings(report: Row, include_landlord_info: bool):
    rows = report.get("tenancies") or []
    columns = [
        ExportColumn("Property", "property_address"),
        ExportColumn("Tenants", "tenants"),
        ExportColumn("Tenant Count", "tenant_count"),
        ExportColumn("Weekly Rent", lambda r: currency(r.get("total_weekly_rent"))),
        ExportColumn("End Date", lambda r: short_date(r.get("end_date"))),
        ExportColumn("Days Until End", "days_until_end"),
        ExportColumn("Rolling Monthly", lambda r: "Yes" if r.get("is_rolling_monthly") else "No"),
    ]
    return rows, _with_landlord(columns, rows, include_landlord_info)


EXPORT_CONFIGS: Dict[str, ExportConfig] = {
    "portfolio": ExportConfig("portfolio-overview", _portfolio),
    "occupancy": ExportConfig("occupancy-report", _occupancy),
    "financial": ExportConfig("financial-report", _financial),
    "financial_by_property": ExportConfig("financial-by-property", _financial_by_property),
    "arrears": ExportConfig("arrears-report", _arrears),
    "upcoming_endings": ExportConfig("upcoming-endings", _upcoming_endings),
}

# format query value -> export type suffix
EXPORT_FORMATS = {"csv": "", "csv_by_property": "_by_property"}


def get_export_formats(report_type: str) -> List[str]:
    formats = ["csv"]
    if report_type == "financial":
        formats.append("csv_by_property")
    return formats


def export_type_for(report_type: str, export_format: str) -> str:
    if export_format not in get_export_formats(report_type):
        raise ReportError(f"Unsupported export format '{export_format}' for {report_type}", UNSUPPORTED_EXPORT)
    return f"{report_type}{EXPORT_FORMATS[export_format]}"


def export_to_csv(
    export_type: str, report: Row, include_landlord_info: bool = False, today: Optional[date] = None
) -> Tuple[str, str]:
    """Return ``(csv_text, filename)`` for a generated report payload."""
    config = EXPORT_CONFIGS.get(export_type)
    if config is None:
        raise ReportError(f"No export configuration for report type: {export_type}", UNSUPPORTED_EXPORT)

    rows, columns = config.transform(report, include_landlord_info)
    frame = pd.DataFrame(
        [[column.value(row) for column in columns] for row in rows],
        columns=[column.header for column in columns],
    )
    csv_text = frame.to_csv(index=False, lineterminator="\n")
    filename = f"{config.filename}-{(today or date.today()).isoformat()}.csv"
    return UTF8_BOM + csv_text, filename
