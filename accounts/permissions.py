"""Role-based DRF permissions shared across apps."""

from rest_framework import permissions


def is_admin(user):
    return bool(user and user.is_authenticated and getattr(user, 'is_admin_user', False))


def can_manage_catalog(user):
    if is_admin(user):
        return True
    return bool(user and user.is_authenticated and getattr(user, 'role', None) == 'product_manager')


class IsAdmin(permissions.BasePermission):
    """Allow only admin-role users (or superusers)."""

    message = 'Admin access required.'

    def has_permission(self, request, view):
        return is_admin(request.user)


class IsAdminOrReadOnly(permissions.BasePermission):
    """Public reads; writes for admins and product managers."""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return can_manage_catalog(request.user)
