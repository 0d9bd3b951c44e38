# Overview: Permission category constants for grouping related permission tags.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    CUSTOMERS = "CUSTOMERS"
    REPORTING = "REPORTING"
    SYSTEM = "SYSTEM"
