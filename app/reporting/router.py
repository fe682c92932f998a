"""API router for the reporting module."""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response

from app.core.dependencies import AuthContextDep, ReportServiceDep
from app.reporting.csv_export import export_to_csv, export_type_for

router = APIRouter(prefix="/reports", tags=["reporting"])


def _filters(
    landlord_id: Optional[int],
    property_id: Optional[int],
    days_ahead: Optional[int],
    year: Optional[int],
    month: Optional[int],
    tenancy_status: Optional[str],
) -> Dict[str, Any]:
    return {
        "landlord_id": landlord_id,
        "property_id": property_id,
        "days_ahead": days_ahead,
        "year": year,
        "month": month,
        "tenancy_status": tenancy_status,
    }


def _options(
    include_landlord_info: Optional[bool],
    include_next_tenant: Optional[bool],
    include_room_details: Optional[bool],
    group_by_property: Optional[bool],
) -> Dict[str, Any]:
    return {
        "include_landlord_info": include_landlord_info,
        "include_next_tenant": include_next_tenant,
        "include_room_details": include_room_details,
        "group_by_property": group_by_property,
    }


@router.get("")
def get_available_reports(context: AuthContextDep, service: ReportServiceDep) -> Dict[str, Any]:
    """Reports the caller's role may run, with their export formats."""
    return {"reports": service.get_available_reports(context.user_role)}


@router.get("/{report_type}")
def get_report(
    report_type: str,
    context: AuthContextDep,
    service: ReportServiceDep,
    landlord_id: Optional[int] = None,
    property_id: Optional[int] = None,
    days_ahead: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    tenancy_status: Optional[str] = None,
    include_landlord_info: Optional[bool] = None,
    include_next_tenant: Optional[bool] = None,
    include_room_details: Optional[bool] = None,
    group_by_property: Optional[bool] = None,
) -> Dict[str, Any]:
    """Generate one report. Unset query parameters fall back to the report's defaults."""
    _, report = service.generate(
        report_type,
        context,
        _filters(landlord_id, property_id, days_ahead, year, month, tenancy_status),
        _options(include_landlord_info, include_next_tenant, include_room_details, group_by_property),
    )
    return {"report": report}


@router.get("/{report_type}/export")
def export_report(
    report_type: str,
    context: AuthContextDep,
    service: ReportServiceDep,
    format: str = Query("csv"),
    landlord_id: Optional[int] = None,
    property_id: Optional[int] = None,
    days_ahead: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    tenancy_status: Optional[str] = None,
    include_landlord_info: Optional[bool] = None,
    include_next_tenant: Optional[bool] = None,
    include_room_details: Optional[bool] = None,
    group_by_property: Optional[bool] = None,
) -> Response:
    """Generate a report and return it as a CSV attachment."""
    export_type = export_type_for(report_type, format)
    request, report = service.generate(
        report_type,
        context,
        _filters(landlord_id, property_id, days_ahead, year, month, tenancy_status),
        _options(include_landlord_info, include_next_tenant, include_room_details, group_by_property),
    )
    csv_text, filename = export_to_csv(
        export_type, report, request.options.include_landlord_info, today=date.today()
    )
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
