# Overview: The authoritative role -> permission matrix and role metadata.
#
# Only auth_service reads these tables directly; routes, decorators and the
# permission guard go through auth_service.get_user_permissions().

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"
ROLE_DEPARTMENT_UNIFORM = "department_uniform"
ROLE_DEPARTMENT_STATIONERY = "department_stationery"

DEPARTMENT_UNIFORM = "Uniform"
DEPARTMENT_STATIONERY = "Stationery"

DEPARTMENTS = (DEPARTMENT_UNIFORM, DEPARTMENT_STATIONERY)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset({
        "pos", "inventory", "reports", "overview", "refunds", "allocations",
        "admin", "customers", "suppliers", "payments", "void",
    }),
    ROLE_MANAGER: frozenset({
        "pos", "inventory", "reports", "refunds", "customers", "payments", "void",
    }),
    ROLE_CASHIER: frozenset({
        "pos", "payments", "customers",
    }),
    ROLE_DEPARTMENT_UNIFORM: frozenset({
        "pos", "department", "payments", "refunds", "pocket_money",
        "allocations", "customers",
    }),
    ROLE_DEPARTMENT_STATIONERY: frozenset({
        "pos", "department", "payments", "refunds", "pocket_money",
        "allocations", "customers",
    }),
}

# Unrecognized roles get nothing
DEFAULT_PERMISSIONS: frozenset[str] = frozenset()

# Tags whose use is bound to the caller's department (admin bypasses)
DEPARTMENT_SCOPED_PERMISSIONS = frozenset({"pos", "refunds", "void"})

# Department implied by a department_* role
ROLE_DEPARTMENTS = {
    ROLE_DEPARTMENT_UNIFORM: DEPARTMENT_UNIFORM,
    ROLE_DEPARTMENT_STATIONERY: DEPARTMENT_STATIONERY,
}

LOGIN_PATH = "/login"

ROLE_REDIRECTS = {
    ROLE_ADMIN: "/admin",
    ROLE_DEPARTMENT_UNIFORM: "/department",
    ROLE_DEPARTMENT_STATIONERY: "/department",
    ROLE_MANAGER: "/pos",
    ROLE_CASHIER: "/pos",
}

KNOWN_ROLES = tuple(ROLE_PERMISSIONS)
