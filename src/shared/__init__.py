"""
Shared Kernel Module
====================

Generic infrastructure used by every module: structured logging, the
injectable clock, and HTTP middleware/exception handlers.

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
