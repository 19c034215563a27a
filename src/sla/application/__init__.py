"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.sla.application.dto import (
    BreachScanResponse,
    SLAConfigCreateDTO,
    SLAConfigQueryDTO,
    SLAConfigResponse,
    SLAConfigUpdateDTO,
    SLAInstanceResponse,
    StartSLARequest,
)
from src.sla.application.services import (
    ICalendarProvider,
    ISLAConfigRepository,
    ISLAInstanceRepository,
    SLABreachScanService,
    SLAConfigService,
    SLAService,
)

__all__ = [
    # DTOs
    "SLAConfigCreateDTO",
    "SLAConfigUpdateDTO",
    "SLAConfigQueryDTO",
    "SLAConfigResponse",
    "StartSLARequest",
    "SLAInstanceResponse",
    "BreachScanResponse",
    # Services
    "SLAConfigService",
    "SLAService",
    "SLABreachScanService",
    # Repository Interfaces
    "ISLAConfigRepository",
    "ISLAInstanceRepository",
    "ICalendarProvider",
]
