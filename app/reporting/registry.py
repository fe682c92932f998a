# app/reporting/registry.py
"""
Report registry and request validation.

Landlord users are always restricted to their own landlord id, taken from the
authenticated context; any landlord filter they send is overwritten. Admins
may view every landlord in their agency or filter to one.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from app.core.exceptions import ReportError
from app.reporting.schemas import (
    ReportContext,
    ReportFilters,
    ReportOptions,
    ReportRequest,
    ReportType,
    UserRole,
)

INVALID_REPORT_TYPE = "INVALID_REPORT_TYPE"
ACCESS_DENIED = "ACCESS_DENIED"
MISSING_LANDLORD_ID = "MISSING_LANDLORD_ID"
MISSING_AGENCY_ID = "MISSING_AGENCY_ID"
UNSUPPORTED_EXPORT = "UNSUPPORTED_EXPORT"

_BOTH_ROLES = (UserRole.ADMIN.value, UserRole.LANDLORD.value)


@dataclass(frozen=True)
class ReportConfig:
    name: str
    description: str
    default_filters: Dict[str, Any] = field(default_factory=dict)
    default_options: Dict[str, Any] = field(default_factory=dict)
    allowed_roles: Tuple[str, ...] = _BOTH_ROLES


REPORT_CONFIGS: Dict[ReportType, ReportConfig] = {
    ReportType.PORTFOLIO: ReportConfig(
        name="Portfolio Overview",
        description="Summary of properties, rooms, and occupancy statistics",
        default_options={"include_room_details": True, "include_landlord_info": False},
    ),
    ReportType.OCCUPANCY: ReportConfig(
        name="Occupancy Report",
        description="Detailed occupancy by property with current and next tenant information",
        default_filters={"tenancy_status": "active"},
        default_options={
            "include_next_tenant": True,
            "include_room_details": True,
            "include_landlord_info": False,
        },
    ),
    ReportType.FINANCIAL: ReportConfig(
        name="Financial Report",
        description="Payment collection and financial summary with monthly breakdown",
        default_options={
            "include_financial_breakdown": True,
            "include_payment_details": True,
            "group_by_property": True,
            "include_landlord_info": False,
        },
    ),
    ReportType.ARREARS: ReportConfig(
        name="Arrears Report",
        description="Tenants with overdue payments and outstanding amounts",
        default_filters={"payment_status": "overdue"},
        default_options={"include_payment_details": True, "include_landlord_info": False},
    ),
    ReportType.UPCOMING_ENDINGS: ReportConfig(
        name="Upcoming Tenancy Endings",
        description="Tenancies ending within a specified time period",
        default_filters={"days_ahead": 90, "tenancy_status": "active"},
        default_options={"include_landlord_info": False},
    ),
}


def _report_type(report_type: Union[ReportType, str]) -> Optional[ReportType]:
    try:
        return ReportType(report_type)
    except ValueError:
        return None


def get_report_config(report_type: Union[ReportType, str]) -> Optional[ReportConfig]:
    key = _report_type(report_type)
    return REPORT_CONFIGS.get(key) if key else None


def is_role_allowed(report_type: Union[ReportType, str], role: str) -> bool:
    config = get_report_config(report_type)
    return config is not None and role in config.allowed_roles


def get_available_reports(role: str) -> List[str]:
    return [key.value for key, config in REPORT_CONFIGS.items() if role in config.allowed_roles]


def _without_none(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (values or {}).items() if v is not None}


def create_report_request(
    report_type: Union[ReportType, str],
    context: Union[ReportContext, Mapping[str, Any]],
    filters: Optional[Mapping[str, Any]] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> ReportRequest:
    """Validate a report call and resolve its effective filters and options.

    Raises ReportError with one of the module level codes. Unknown filter or
    option names raise pydantic's ValidationError.
    """
    if not isinstance(context, ReportContext):
        context = ReportContext.model_validate(dict(context))

    config = get_report_config(report_type)
    if config is None:
        raise ReportError(f"Unknown report type: {report_type}", INVALID_REPORT_TYPE)

    if not is_role_allowed(report_type, context.user_role):
        raise ReportError(
            f"Role '{context.user_role}' is not allowed to access '{ReportType(report_type).value}' reports",
            ACCESS_DENIED,
        )

    effective_filters = {**config.default_filters, **_without_none(filters)}
    if context.user_role == UserRole.LANDLORD.value:
        if not context.landlord_id:
            raise ReportError("Landlord users must have a landlord id in context", MISSING_LANDLORD_ID)
        effective_filters["landlord_id"] = context.landlord_id

    effective_options = {**config.default_options, **_without_none(options)}
    if context.user_role == UserRole.ADMIN.value and not effective_filters.get("landlord_id"):
        effective_options["include_landlord_info"] = True

    if not context.agency_id:
        raise ReportError("Agency id is required in context", MISSING_AGENCY_ID)

    return ReportRequest(
        report_type=ReportType(report_type),
        context=context,
        filters=ReportFilters(**effective_filters),
        options=ReportOptions(**effective_options),
    )
