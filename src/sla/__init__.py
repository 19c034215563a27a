"""
SLA Tracking Module
===================

Bounded Context for Service Level Agreement tracking.

Responsibilities:
- Compute elapsed and remaining business time against a target, honoring
  working hours, weekends and holidays
- Drive SLA instances through start / pause / resume / complete
- Manage tenant SLA configurations
- Complete overdue instances from a background breach scan

Alert delivery and trigger evaluation live outside this module.
"""

__version__ = "1.0.0"
