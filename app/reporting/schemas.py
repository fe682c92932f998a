"""Pydantic schemas for report requests."""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    """Roles the authentication layer can supply."""

    ADMIN = "admin"
    LANDLORD = "landlord"


class ReportType(str, Enum):
    """Available report generators."""

    PORTFOLIO = "portfolio"
    OCCUPANCY = "occupancy"
    FINANCIAL = "financial"
    ARREARS = "arrears"
    UPCOMING_ENDINGS = "upcoming_endings"


class ReportContext(BaseModel):
    """Caller identity from the authenticated session, never from request filters."""

    user_role: str
    user_id: Optional[int] = None
    landlord_id: Optional[int] = None
    agency_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class ReportFilters(BaseModel):
    landlord_id: Optional[int] = None
    property_id: Optional[int] = None
    days_ahead: Optional[int] = Field(default=None, ge=0, le=3650)
    year: Optional[int] = Field(default=None, ge=1900, le=9999)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    tenancy_status: Optional[str] = None
    # Accepted for request compatibility and defaulted by the registry; no generator reads it.
    payment_status: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ReportOptions(BaseModel):
    include_landlord_info: bool = False
    include_next_tenant: bool = True
    include_room_details: bool = True
    group_by_property: bool = True
    # The next two are accepted and defaulted but ignored by every generator.
    include_payment_details: bool = False
    include_financial_breakdown: bool = False

    model_config = ConfigDict(extra="forbid")


class ReportRequest(BaseModel):
    """A validated request, built per call by ``create_report_request`` and never persisted."""

    report_type: ReportType
    context: ReportContext
    filters: ReportFilters = Field(default_factory=ReportFilters)
    options: ReportOptions = Field(default_factory=ReportOptions)

    @property
    def agency_id(self) -> Optional[int]:
        return self.context.agency_id


class ReportSummary(BaseModel):
    """Entry in the list of reports available to a role."""

    type: ReportType
    name: str
    description: str
    export_formats: List[str]
