from rest_framework.permissions import BasePermission

from .models import User


class HasRole(BasePermission):
    """
    Allows access only to authenticated users with ``role``.
    Keeps role check logic centralized.
    """
    role = None

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == self.role


class IsRider(HasRole):
    role = User.ROLE_RIDER
    message = "Only riders can perform this action."


class IsDriver(HasRole):
    role = User.ROLE_DRIVER
    message = "Only drivers can perform this action."
