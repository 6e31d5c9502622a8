import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

# Capabilities granted to each role. Higher roles extend the ones below them.
CASHIER_CAPABILITIES = frozenset(
    {
        "inventory.view",
        "stock.movement.create",
    }
)
SUPERVISOR_CAPABILITIES = CASHIER_CAPABILITIES | {
    "stock.receive",
    "stock.adjust",
    "stock.transfer",
    "inventory.audit.view",
}
ADMIN_CAPABILITIES = SUPERVISOR_CAPABILITIES | {
    "admin.records.manage",
}

ROLE_CAPABILITIES = {
    User.Role.CASHIER: CASHIER_CAPABILITIES,
    User.Role.SUPERVISOR: SUPERVISOR_CAPABILITIES,
    User.Role.ADMIN: ADMIN_CAPABILITIES,
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    role = getattr(user, "role", None)
    if role in ROLE_CAPABILITIES:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.CASHIER


def capabilities_for(user):
    role = get_user_role(user)
    if role is None:
        return frozenset()
    return ROLE_CAPABILITIES[role]


def user_has_capability(user, capability):
    return capability in capabilities_for(user)


class RoleCapabilityPermission(BasePermission):
    """Checks ``view.permission_action_map[<method or action>]`` against the caller's role.

    Methods missing from the map are allowed; denials are logged to
    ``security.authorization``.
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        if user_has_capability(request.user, capability):
            return True

        self.message = f"Your role cannot perform '{capability}'."
        logger.warning(
            "permission_denied capability=%s role=%s view=%s",
            capability,
            get_user_role(request.user),
            view.__class__.__name__,
            extra={
                "user_id": str(getattr(request.user, "id", "") or "") or None,
                "method": request.method,
                "path": request.path,
                "location_id": request.headers.get("X-Location-Id"),
            },
        )
        return False
