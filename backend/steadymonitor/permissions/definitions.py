# Overview: All permission tags organized by category.
# Each permission is defined as: (tag, name, description, category)

from .categories import PermissionCategory


# -- SALES --

SALES_PERMISSIONS = [
    (
        "pos",
        "Point of Sale",
        "Browse the department catalog and complete checkouts",
        PermissionCategory.SALES,
    ),
    (
        "payments",
        "Record Payments",
        "Record learner payments against outstanding balances",
        PermissionCategory.SALES,
    ),
    (
        "refunds",
        "Process Refunds",
        "Refund items from completed sales",
        PermissionCategory.SALES,
    ),
    (
        "void",
        "Void Sale",
        "Void completed sales and reverse their stock and balance effects",
        PermissionCategory.SALES,
    ),
    (
        "pocket_money",
        "Pocket Money",
        "Spend from a learner's pocket money wallet",
        PermissionCategory.SALES,
    ),
    (
        "allocations",
        "Program Allocations",
        "Issue program-funded item allocations",
        PermissionCategory.SALES,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "inventory",
        "Manage Inventory",
        "Create and edit products and stock levels",
        PermissionCategory.INVENTORY,
    ),
    (
        "suppliers",
        "Manage Suppliers",
        "Maintain suppliers and purchase records",
        PermissionCategory.INVENTORY,
    ),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    (
        "customers",
        "Learner Records",
        "View and maintain learner (customer) records",
        PermissionCategory.CUSTOMERS,
    ),
]


# -- REPORTING --

REPORTING_PERMISSIONS = [
    (
        "reports",
        "Reports",
        "Access sales and stock reports",
        PermissionCategory.REPORTING,
    ),
    (
        "overview",
        "Overview Dashboard",
        "Access the cross-department overview dashboard",
        PermissionCategory.REPORTING,
    ),
    (
        "department",
        "Department Dashboard",
        "Access the department landing page",
        PermissionCategory.REPORTING,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "admin",
        "Administration",
        "User administration and system-wide settings",
        PermissionCategory.SYSTEM,
    ),
]


# Combined list of all permissions (preserves original ordering)
PERMISSION_DEFINITIONS = (
    SALES_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + REPORTING_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
