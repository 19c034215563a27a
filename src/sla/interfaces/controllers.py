"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA configuration and instance lifecycle endpoints.

Controllers are thin - they delegate to application services. Errors raised
by the services are mapped to HTTP responses by the shared exception
handlers, so no route catches them itself.

Every route is scoped to the organization named by the `X-Organization-ID`
header.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import SLAStatus
from src.infrastructure.database import get_session
from src.shared.infrastructure.clock import Clock, utc_now
from src.sla.application import (
    ICalendarProvider,
    SLAConfigCreateDTO,
    SLAConfigQueryDTO,
    SLAConfigResponse,
    SLAConfigService,
    SLAConfigUpdateDTO,
    SLAInstanceResponse,
    SLAService,
    StartSLARequest,
)
from src.sla.application.dto import SLAStatusStr
from src.sla.infrastructure import (
    SQLAlchemySLAConfigRepository,
    SQLAlchemySLAInstanceRepository,
)

router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

SLA_CONFIG_CREATE_EXAMPLE = {
    "name": "P1 first response",
    "metric": "time_to_first_response",
    "target_duration": 240,
    "start_condition": {"type": "issue_created"},
    "stop_condition": {"type": "first_public_comment"},
    "pause_conditions": [{"type": "status", "value": "waiting_on_customer"}],
    "escalation_rules": [],
    "calendar": {
        "working_hours": {"start": 9, "end": 17},
        "holidays": ["2026-12-25"]
    }
}

SLA_INSTANCE_RESPONSE_EXAMPLE = {
    "id": "3f0c6f1e-6a52-4a1e-9d43-0f1f4d3c2b10",
    "sla_config_id": "8b5d2f0a-7c1e-4f7b-a2a9-5e6d4c3b2a19",
    "issue_id": "ISSUE-42",
    "status": "active",
    "started_at": "2026-02-16T09:00:00Z",
    "paused_at": None,
    "completed_at": None,
    "elapsed_ms": 0,
    "remaining_ms": 14400000,
    "breach_time": "2026-02-16T13:00:00Z"
}


# ========== Dependencies ==========

async def get_organization_id(
    x_organization_id: str = Header(..., min_length=1, description="Tenant the request acts for")
) -> str:
    return x_organization_id


def get_calendar_provider(request: Request) -> ICalendarProvider:
    """Default calendar loaded at startup."""
    return request.app.state.calendar_provider


def get_clock() -> Clock:
    return utc_now


async def get_config_service(
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock)
) -> SLAConfigService:
    """Get SLA config service instance."""
    return SLAConfigService(SQLAlchemySLAConfigRepository(session), clock)


async def get_sla_service(
    session: AsyncSession = Depends(get_session),
    calendar_provider: ICalendarProvider = Depends(get_calendar_provider),
    clock: Clock = Depends(get_clock)
) -> SLAService:
    """Get SLA lifecycle service instance."""
    return SLAService(
        SQLAlchemySLAConfigRepository(session),
        SQLAlchemySLAInstanceRepository(session),
        calendar_provider,
        clock
    )


# ========== Config Routes ==========

@router.post(
    "/configs",
    response_model=SLAConfigResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA configuration",
    description="""
    Create a reusable SLA definition for the calling organization.

    **Metrics**: `time_to_first_response`, `time_to_resolution`, `time_to_close`

    `target_duration` is business minutes. `calendar` is optional; when omitted
    the service-wide default calendar applies.
    """
)
async def create_config(
    request: SLAConfigCreateDTO = Body(..., examples=[SLA_CONFIG_CREATE_EXAMPLE]),
    organization_id: str = Depends(get_organization_id),
    service: SLAConfigService = Depends(get_config_service)
):
    config = await service.create_config(organization_id, request)
    return SLAConfigResponse.from_domain(config)


@router.get(
    "/configs",
    response_model=List[SLAConfigResponse],
    summary="List SLA configurations"
)
async def list_configs(
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    project_id: Optional[str] = Query(None, description="Filter by project"),
    organization_id: str = Depends(get_organization_id),
    service: SLAConfigService = Depends(get_config_service)
):
    configs = await service.list_configs(
        organization_id,
        SLAConfigQueryDTO(is_active=is_active, project_id=project_id)
    )
    return [SLAConfigResponse.from_domain(config) for config in configs]


@router.get(
    "/configs/{config_id}",
    response_model=SLAConfigResponse,
    summary="Get an SLA configuration",
    responses={404: {"description": "Config not found"}}
)
async def get_config(
    config_id: str,
    organization_id: str = Depends(get_organization_id),
    service: SLAConfigService = Depends(get_config_service)
):
    config = await service.get_config(organization_id, config_id)
    return SLAConfigResponse.from_domain(config)


@router.patch(
    "/configs/{config_id}",
    response_model=SLAConfigResponse,
    summary="Update an SLA configuration",
    description="Only fields present in the body are changed. Running instances keep their original target.",
    responses={404: {"description": "Config not found"}}
)
async def update_config(
    config_id: str,
    request: SLAConfigUpdateDTO,
    organization_id: str = Depends(get_organization_id),
    service: SLAConfigService = Depends(get_config_service)
):
    config = await service.update_config(organization_id, config_id, request)
    return SLAConfigResponse.from_domain(config)


@router.delete(
    "/configs/{config_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an SLA configuration",
    description="Instances created from the config are kept with `sla_config_id` cleared.",
    responses={404: {"description": "Config not found"}}
)
async def delete_config(
    config_id: str,
    organization_id: str = Depends(get_organization_id),
    service: SLAConfigService = Depends(get_config_service)
):
    await service.delete_config(organization_id, config_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Instance Routes ==========

@router.post(
    "/instances",
    response_model=SLAInstanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start SLA tracking for an issue",
    responses={
        201: {"content": {"application/json": {"example": SLA_INSTANCE_RESPONSE_EXAMPLE}}},
        404: {"description": "Config not found"},
        409: {"description": "Config is inactive"}
    }
)
async def start_sla(
    request: StartSLARequest,
    organization_id: str = Depends(get_organization_id),
    service: SLAService = Depends(get_sla_service)
):
    instance = await service.start_sla(organization_id, request.sla_config_id, request.issue_id)
    return SLAInstanceResponse.from_domain(instance)


@router.post(
    "/instances/{instance_id}/pause",
    response_model=SLAInstanceResponse,
    summary="Pause an active SLA instance",
    responses={404: {"description": "Instance not found"}, 409: {"description": "Instance is not active"}}
)
async def pause_sla(
    instance_id: str,
    organization_id: str = Depends(get_organization_id),
    service: SLAService = Depends(get_sla_service)
):
    instance = await service.pause_sla(organization_id, instance_id)
    return SLAInstanceResponse.from_domain(instance)


@router.post(
    "/instances/{instance_id}/resume",
    response_model=SLAInstanceResponse,
    summary="Resume a paused SLA instance",
    responses={404: {"description": "Instance not found"}, 409: {"description": "Instance is not paused"}}
)
async def resume_sla(
    instance_id: str,
    organization_id: str = Depends(get_organization_id),
    service: SLAService = Depends(get_sla_service)
):
    instance = await service.resume_sla(organization_id, instance_id)
    return SLAInstanceResponse.from_domain(instance)


@router.post(
    "/instances/{instance_id}/complete",
    response_model=SLAInstanceResponse,
    summary="Complete an SLA instance",
    description="Marks the instance `met` when completed at or before its breach time, `breached` otherwise.",
    responses={404: {"description": "Instance not found"}, 409: {"description": "Instance is already finished"}}
)
async def complete_sla(
    instance_id: str,
    organization_id: str = Depends(get_organization_id),
    service: SLAService = Depends(get_sla_service)
):
    instance = await service.complete_sla(organization_id, instance_id)
    return SLAInstanceResponse.from_domain(instance)


@router.get(
    "/issues/{issue_id}/instances",
    response_model=List[SLAInstanceResponse],
    summary="List an issue's SLA instances"
)
async def get_sla_instances(
    issue_id: str,
    instance_status: Optional[SLAStatusStr] = Query(None, alias="status", description="Filter by status"),
    organization_id: str = Depends(get_organization_id),
    service: SLAService = Depends(get_sla_service)
):
    instances = await service.get_sla_instances(
        organization_id,
        issue_id,
        SLAStatus(instance_status) if instance_status else None
    )
    return [SLAInstanceResponse.from_domain(instance) for instance in instances]


# Export router for inclusion in main app
sla_router = router
