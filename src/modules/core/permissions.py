from rest_framework.permissions import BasePermission

from modules.core.identity import is_admin


class IsAdmin(BasePermission):
    """Staff users and Clerk users whose public metadata role is ``admin``."""

    message = "Admin access required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and is_admin(user))
