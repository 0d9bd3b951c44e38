# Overview: Permission system package.
# Re-exports all public APIs for short imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    SALES_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
    REPORTING_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import (
    ROLE_PERMISSIONS,
    DEFAULT_PERMISSIONS,
    DEPARTMENT_SCOPED_PERMISSIONS,
    ROLE_DEPARTMENTS,
    ROLE_REDIRECTS,
    LOGIN_PATH,
    DEPARTMENTS,
    KNOWN_ROLES,
    ROLE_ADMIN,
)
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "SALES_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "REPORTING_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "ROLE_PERMISSIONS",
    "DEFAULT_PERMISSIONS",
    "DEPARTMENT_SCOPED_PERMISSIONS",
    "ROLE_DEPARTMENTS",
    "ROLE_REDIRECTS",
    "LOGIN_PATH",
    "DEPARTMENTS",
    "KNOWN_ROLES",
    "ROLE_ADMIN",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
]
