"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Users and authenticated API clients by role
- Visits in a given status, and their billable line items
"""
from decimal import Decimal

import pytest
from django.core.cache import caches
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User, UserRole
from apps.billing.models import Payment, PaymentMethodChoices, ServiceCharge
from apps.visits.models import Visit
from apps.visits.workflow import VisitStatus, VisitType


@pytest.fixture(autouse=True)
def clear_caches():
    """Cached role sets must not leak between tests."""
    for alias in ('default', 'roles'):
        caches[alias].clear()


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def make_user(db):
    """
    Factory: make_user('doctor') -> User holding that role.

    Roles are created on demand because tests run without migrations (the
    bootstrap data migration never runs).
    """
    counter = {'n': 0}

    def _make_user(*role_names, **extra):
        counter['n'] += 1
        label = '-'.join(role_names) or 'norole'
        user = User.objects.create_user(
            email=extra.pop('email', f'{label}{counter["n"]}@clinic.test'),
            password='testpass123',
            **extra
        )
        for role_name in role_names:
            role, _ = Role.objects.get_or_create(name=role_name)
            UserRole.objects.create(user=user, role=role)
        return user

    return _make_user


@pytest.fixture
def doctor_user(make_user):
    return make_user(RoleChoices.DOCTOR, first_name='Dewi', last_name='Santoso')


@pytest.fixture
def nurse_user(make_user):
    return make_user(RoleChoices.NURSE)


@pytest.fixture
def cashier_user(make_user):
    return make_user(RoleChoices.CASHIER)


@pytest.fixture
def receptionist_user(make_user):
    return make_user(RoleChoices.RECEPTIONIST)


@pytest.fixture
def admin_user(make_user):
    return make_user(RoleChoices.ADMIN)


@pytest.fixture
def super_admin_user(make_user):
    return make_user(RoleChoices.SUPER_ADMIN)


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def doctor_client(doctor_user):
    return _client_for(doctor_user)


@pytest.fixture
def nurse_client(nurse_user):
    return _client_for(nurse_user)


@pytest.fixture
def cashier_client(cashier_user):
    return _client_for(cashier_user)


@pytest.fixture
def receptionist_client(receptionist_user):
    return _client_for(receptionist_user)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def super_admin_client(super_admin_user):
    return _client_for(super_admin_user)


# ============================================================================
# Visits
# ============================================================================

@pytest.fixture
def make_visit(db):
    """
    Factory: make_visit(status=VisitStatus.EXAMINED, visit_type=...) -> Visit

    Writes the status straight to the row; use it to set up a scenario, not
    to exercise transitions.
    """

    def _make_visit(status=VisitStatus.REGISTERED, visit_type=VisitType.OUTPATIENT, **fields):
        fields.setdefault('patient_name', 'Budi Hartono')
        fields.setdefault('patient_reference', 'MRN-000123')
        return Visit.objects.create(status=status, visit_type=visit_type, **fields)

    return _make_visit


@pytest.fixture
def outpatient_visit(make_visit):
    return make_visit()


@pytest.fixture
def add_service_charge(cashier_user):
    """Factory: add_service_charge(visit, Decimal('100000.00'))"""

    def _add(visit, unit_price, name='Consultation', quantity=1):
        return ServiceCharge.objects.create(
            visit=visit,
            name=name,
            quantity=quantity,
            unit_price=Decimal(unit_price),
            created_by=cashier_user,
        )

    return _add


@pytest.fixture
def add_payment(cashier_user):
    """Factory: add_payment(visit, Decimal('60000.00')), bypassing the payment service"""

    def _add(visit, amount, method=PaymentMethodChoices.TRANSFER):
        return Payment.objects.create(
            visit=visit,
            amount=Decimal(amount),
            method=method,
            reference='TRX-TEST',
            received_by=cashier_user,
        )

    return _add
