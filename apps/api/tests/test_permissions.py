"""
Role -> permission mapping and the per-action permission class.
"""
import pytest
from rest_framework import status

from apps.authz.models import RoleChoices
from apps.authz.permissions import ALL_PERMISSIONS, ROLE_PERMISSIONS, permissions_for_roles


class TestRolePermissions:

    def test_every_role_is_mapped(self):
        assert set(ROLE_PERMISSIONS) == set(RoleChoices)

    def test_mapped_permissions_are_known(self):
        for granted in ROLE_PERMISSIONS.values():
            assert granted <= ALL_PERMISSIONS

    def test_only_super_admin_unlocks(self):
        holders = {role for role, granted in ROLE_PERMISSIONS.items() if 'medical_records:unlock' in granted}
        assert holders == {RoleChoices.SUPER_ADMIN}

    def test_permissions_are_unioned(self):
        granted = permissions_for_roles({'nurse', 'cashier'})

        assert 'inpatient:manage_beds' in granted
        assert 'billing:process_payment' in granted

    def test_unknown_role_grants_nothing(self):
        assert permissions_for_roles({'janitor'}) == frozenset()


@pytest.mark.django_db
class TestCurrentUser:

    def test_profile_lists_roles_and_author_role(self, nurse_client):
        response = nurse_client.get('/api/auth/me/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['roles'] == ['nurse']
        assert response.data['author_role'] == 'nurse'
        assert 'medical_records:write' in response.data['permissions']

    def test_user_without_roles_is_denied_everywhere(self, make_user, make_visit):
        from rest_framework.test import APIClient

        client = APIClient()
        client.force_authenticate(user=make_user())
        visit = make_visit()

        assert client.get('/api/v1/visits/').status_code == status.HTTP_403_FORBIDDEN
        assert client.get(f'/api/v1/billing/{visit.pk}/').status_code == status.HTTP_403_FORBIDDEN
        assert client.get('/api/v1/rooms/').status_code == status.HTTP_403_FORBIDDEN
