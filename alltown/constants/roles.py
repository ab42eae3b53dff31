"""
Role Constants

Roles a user profile can hold within its tenant. Identity itself lives with
the external identity provider; the role is stored on the profile.
"""

from enum import Enum


class RoleName(str, Enum):
    """Enumeration of role names in the system."""

    CUSTOMER = "customer"
    DRIVER = "driver"
    DISPATCHER = "dispatcher"
    ADMIN = "admin"


# Default role for newly provisioned profiles
DEFAULT_ROLE = RoleName.CUSTOMER

# Roles that may supervise every delivery of their tenant
STAFF_ROLES = frozenset({RoleName.DISPATCHER, RoleName.ADMIN})

# Roles that may claim and carry deliveries
DRIVER_ROLES = frozenset({RoleName.DRIVER})


def is_staff(role: str) -> bool:
    """Return True for dispatcher and admin roles."""
    return role in {r.value for r in STAFF_ROLES}


def is_driver(role: str) -> bool:
    return role in {r.value for r in DRIVER_ROLES}
