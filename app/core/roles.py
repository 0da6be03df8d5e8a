"""Role and permission definitions."""

from enum import StrEnum


class UserRole(StrEnum):
    """Roles a user can hold inside a business."""

    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    SALES_USER = "sales_user"
    DELIVERY_CHALLAN = "delivery_challan"
    VIEWER = "viewer"


class Permission(StrEnum):
    """Permissions granted to roles."""

    # User management
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"
    CHANGE_ROLES = "change_roles"
    VIEW_ALL_USERS = "view_all_users"

    # Data management
    MANAGE_ALL_DATA = "manage_all_data"
    MANAGE_CUSTOMERS = "manage_customers"
    MANAGE_SUPPLIERS = "manage_suppliers"
    MANAGE_SALES = "manage_sales"
    MANAGE_PURCHASES = "manage_purchases"
    MANAGE_EXPENSES = "manage_expenses"
    MANAGE_INCOME = "manage_income"
    MANAGE_DELIVERY_CHALLANS = "manage_delivery_challans"

    # Reporting & exports
    VIEW_REPORTS = "view_reports"
    EXPORT_DATA = "export_data"
    VIEW_BANK_ACCOUNTS = "view_bank_accounts"

    # Settings
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_COMPANY_PROFILE = "manage_company_profile"

    ACCESS_DASHBOARD = "access_dashboard"


_DATA_PERMISSIONS = frozenset(
    {
        Permission.MANAGE_ALL_DATA,
        Permission.MANAGE_CUSTOMERS,
        Permission.MANAGE_SUPPLIERS,
        Permission.MANAGE_SALES,
        Permission.MANAGE_PURCHASES,
        Permission.MANAGE_EXPENSES,
        Permission.MANAGE_INCOME,
        Permission.MANAGE_DELIVERY_CHALLANS,
        Permission.VIEW_REPORTS,
        Permission.EXPORT_DATA,
        Permission.VIEW_BANK_ACCOUNTS,
        Permission.ACCESS_DASHBOARD,
    }
)

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(Permission),
    UserRole.ACCOUNTANT: _DATA_PERMISSIONS | {Permission.MANAGE_COMPANY_PROFILE},
    UserRole.SALES_USER: frozenset(
        {
            Permission.MANAGE_CUSTOMERS,
            Permission.MANAGE_SALES,
            Permission.MANAGE_DELIVERY_CHALLANS,
            Permission.VIEW_REPORTS,
            Permission.ACCESS_DASHBOARD,
        }
    ),
    UserRole.DELIVERY_CHALLAN: frozenset({Permission.MANAGE_DELIVERY_CHALLANS}),
    UserRole.VIEWER: frozenset({Permission.VIEW_REPORTS, Permission.ACCESS_DASHBOARD}),
}

# Self-registered accounts found their own business
DEFAULT_ROLE = UserRole.ADMIN

# Used for accounts whose role cannot be recovered from anywhere
FALLBACK_ROLE = UserRole.DELIVERY_CHALLAN


def parse_role(value: str | None) -> UserRole | None:
    """Return the matching role, or None for unknown values."""
    if not value:
        return None
    try:
        return UserRole(value)
    except ValueError:
        return None


def has_permission(role: str | None, permission: Permission) -> bool:
    """Check if a role grants a permission."""
    parsed = parse_role(role)
    if parsed is None:
        return False
    return permission in ROLE_PERMISSIONS[parsed]


def can_manage_users(role: str | None) -> bool:
    """Check if a role may create users or change roles."""
    return has_permission(role, Permission.CHANGE_ROLES) or has_permission(
        role, Permission.CREATE_USERS
    )
