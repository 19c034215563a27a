"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: Core business objects with identity (SLAConfig, SLAInstance)
- Value Objects: Immutable objects defined by attributes (BusinessCalendar, WorkingHours)
- Domain Services: Stateless business logic (BusinessHoursCalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.sla.domain.entities import SLAConfig, SLAInstance
from src.sla.domain.value_objects import (
    DEFAULT_CALENDAR,
    MS_PER_HOUR,
    MS_PER_MINUTE,
    BusinessCalendar,
    BusinessHoursCalculator,
    WorkingHours,
)

__all__ = [
    # Entities
    "SLAConfig",
    "SLAInstance",
    # Value Objects & Services
    "BusinessCalendar",
    "WorkingHours",
    "BusinessHoursCalculator",
    "DEFAULT_CALENDAR",
    "MS_PER_MINUTE",
    "MS_PER_HOUR",
]
