# Services package initialization
# This file makes the services directory a Python package
# and allows importing service modules

from . import access_control
from . import appointment_service
from . import business_key
from . import business_service
from . import license_evaluator
from . import license_scheduler
from . import license_service
from . import notification_service
from . import realtime_license_service
from . import record_service
from . import session_service

__all__ = [
    "access_control",
    "appointment_service",
    "business_key",
    "business_service",
    "license_evaluator",
    "license_scheduler",
    "license_service",
    "notification_service",
    "realtime_license_service",
    "record_service",
    "session_service",
]
