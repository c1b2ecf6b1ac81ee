# common/permissions.py
from rest_framework import permissions

from common.roles import is_admin_role, is_staff_role


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsStaffRole(permissions.BasePermission):
    """
    Employees, kitchen, managers and admins.
    """
    message = "Staff access required"

    def has_permission(self, request, view):
        return is_staff_role(_role(request))


class IsAdminRole(permissions.BasePermission):
    """
    Admin and super admin only.
    """
    message = "Admin access required"

    def has_permission(self, request, view):
        return is_admin_role(_role(request))
