# Controllers package initialization
# This file makes the controllers directory a Python package
# and allows importing controller modules

from . import (
    appointment_controller,
    auth_controller,
    business_controller,
    health_controller,
    license_controller,
    notification_controller,
    record_controller,
)

__all__ = [
    "appointment_controller",
    "auth_controller",
    "business_controller",
    "health_controller",
    "license_controller",
    "notification_controller",
    "record_controller",
]
