# app/core/dependencies.py
"""Request dependencies: the shared gateway, the report service and the caller's auth context."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from app.core.database import get_gateway
from app.query.gateway import ExecutionGateway
from app.reporting.schemas import ReportContext
from app.reporting.service import ReportService


def get_execution_gateway() -> ExecutionGateway:
    return get_gateway()


GatewayDep = Annotated[ExecutionGateway, Depends(get_execution_gateway)]


def get_report_service(gateway: GatewayDep) -> ReportService:
    return ReportService(gateway)


ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]


def get_auth_context(request: Request) -> ReportContext:
    """Identity placed on ``request.state.auth_context`` by the authentication layer.

    Report filters never supply identity. A request without an auth context is
    rejected before any report code runs.
    """
    context = getattr(request.state, "auth_context", None)
    if context is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    if isinstance(context, ReportContext):
        return context
    return ReportContext.model_validate(dict(context))


AuthContextDep = Annotated[ReportContext, Depends(get_auth_context)]
