# common/roles.py
from django.db import models


class UserRole(models.TextChoices):
    CUSTOMER    = "customer",    "Customer"
    EMPLOYEE    = "employee",    "Employee"
    KITCHEN     = "kitchen",     "Kitchen"
    MANAGER     = "manager",     "Manager"
    ADMIN       = "admin",       "Admin"
    SUPER_ADMIN = "super_admin", "Super admin"


STAFF_ROLES = frozenset({
    UserRole.EMPLOYEE,
    UserRole.KITCHEN,
    UserRole.MANAGER,
    UserRole.ADMIN,
    UserRole.SUPER_ADMIN,
})
ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


def is_staff_role(role) -> bool:
    return role in STAFF_ROLES


def is_admin_role(role) -> bool:
    return role in ADMIN_ROLES
