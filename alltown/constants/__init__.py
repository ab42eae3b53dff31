"""Constants package for AllTown Dispatch."""

from .roles import DEFAULT_ROLE, DRIVER_ROLES, STAFF_ROLES, RoleName, is_driver, is_staff

__all__ = [
    "RoleName",
    "DEFAULT_ROLE",
    "DRIVER_ROLES",
    "STAFF_ROLES",
    "is_driver",
    "is_staff",
]
