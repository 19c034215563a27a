"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: default calendar file watcher, breach-scan scheduler
"""

from src.sla.infrastructure.external import CalendarConfigManager, SLAScheduler
from src.sla.infrastructure.models import SLAConfigModel, SLAInstanceModel
from src.sla.infrastructure.repositories import (
    SQLAlchemySLAConfigRepository,
    SQLAlchemySLAInstanceRepository,
)

__all__ = [
    "SLAConfigModel",
    "SLAInstanceModel",
    "SQLAlchemySLAConfigRepository",
    "SQLAlchemySLAInstanceRepository",
    "CalendarConfigManager",
    "SLAScheduler",
]
