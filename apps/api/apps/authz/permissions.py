"""
Role -> permission mapping and the DRF permission class built on it.

Views declare `required_permissions = {action: permission}`. A tuple value
means any one of the listed permissions is enough.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices


ALL_PERMISSIONS = frozenset({
    'patients:read', 'patients:write', 'patients:delete',
    'visits:read', 'visits:write', 'visits:delete', 'visits:override',
    'medical_records:read', 'medical_records:write',
    'medical_records:lock', 'medical_records:unlock',
    'prescriptions:read', 'prescriptions:write', 'prescriptions:fulfill',
    'billing:read', 'billing:write', 'billing:process_payment',
    'inpatient:read', 'inpatient:write', 'inpatient:manage_beds',
    'discharge:read', 'discharge:write',
    'system:admin', 'system:reports',
})


ROLE_PERMISSIONS = {
    RoleChoices.SUPER_ADMIN: ALL_PERMISSIONS,
    RoleChoices.ADMIN: frozenset({
        'patients:read', 'patients:write', 'patients:delete',
        'visits:read', 'visits:write', 'visits:delete', 'visits:override',
        'medical_records:read',
        'prescriptions:read',
        'billing:read',
        'inpatient:read',
        'discharge:read',
        'system:admin', 'system:reports',
    }),
    RoleChoices.DOCTOR: frozenset({
        'patients:read',
        'visits:read', 'visits:write',
        'medical_records:read', 'medical_records:write', 'medical_records:lock',
        'prescriptions:read', 'prescriptions:write',
        'inpatient:read', 'inpatient:write',
        'discharge:read', 'discharge:write',
    }),
    # Nurses write CPPT entries and vitals, hence medical_records:write
    RoleChoices.NURSE: frozenset({
        'patients:read',
        'visits:read',
        'medical_records:read', 'medical_records:write',
        'prescriptions:read',
        'inpatient:read', 'inpatient:write', 'inpatient:manage_beds',
    }),
    RoleChoices.PHARMACIST: frozenset({
        'patients:read',
        'prescriptions:read', 'prescriptions:fulfill',
    }),
    RoleChoices.CASHIER: frozenset({
        'patients:read',
        'visits:read',
        'billing:read', 'billing:write', 'billing:process_payment',
    }),
    RoleChoices.RECEPTIONIST: frozenset({
        'patients:read', 'patients:write',
        'visits:read', 'visits:write',
    }),
}


def permissions_for_roles(roles) -> frozenset:
    granted = set()
    for role in roles:
        granted |= ROLE_PERMISSIONS.get(role, frozenset())
    return frozenset(granted)


class HasPermission(permissions.BasePermission):
    """
    Grants access when the actor holds the permission the view requires for
    the current action. Resolves the actor once and leaves it on
    request.actor for the view.
    """
    message = 'You do not have permission to perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        from apps.authz.actor import get_request_actor
        actor = get_request_actor(request)

        required = getattr(view, 'required_permissions', {}).get(getattr(view, 'action', None))
        if required is None:
            # Undeclared actions are closed
            return False
        if isinstance(required, str):
            required = (required,)
        return actor.has_any(required)

    def has_object_permission(self, request, view, obj):
        return self.has_permission(request, view)
