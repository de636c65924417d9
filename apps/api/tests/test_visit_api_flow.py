"""
End-to-end visit workflow through the API.

Outpatient visit from registration to completion, with each role doing its
own part, plus the refusals the workflow must produce along the way.
"""
from decimal import Decimal

import pytest
from rest_framework import status

from apps.billing.models import Billing, Payment
from apps.clinical.models import AuditActionChoices, ClinicalAuditLog
from apps.visits.models import Visit
from apps.visits.signals import visit_status_changed
from apps.visits.workflow import VisitStatus, VisitType

VISITS_URL = '/api/v1/visits/'


def visit_url(visit_id, action=''):
    url = f'{VISITS_URL}{visit_id}/'
    return f'{url}{action}/' if action else url


def billing_url(visit_id, action=''):
    url = f'/api/v1/billing/{visit_id}/'
    return f'{url}{action}/' if action else url


@pytest.mark.django_db
class TestOutpatientFlow:

    def test_registration_to_completion(
        self, receptionist_client, doctor_client, cashier_client
    ):
        # Front desk registers the visit and sends the patient to the queue
        response = receptionist_client.post(VISITS_URL, {
            'patient_name': '  Rina Wijaya ',
            'patient_reference': 'MRN-004512',
            'visit_type': VisitType.OUTPATIENT,
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == VisitStatus.REGISTERED
        assert response.data['patient_name'] == 'Rina Wijaya'
        assert response.data['allowed_next_statuses'] == ['waiting', 'cancelled']
        visit_id = response.data['id']

        response = receptionist_client.post(visit_url(visit_id, 'transition'), {'status': 'waiting'}, format='json')
        assert response.status_code == status.HTTP_200_OK

        # Doctor examines and writes the SOAP record
        response = doctor_client.post(visit_url(visit_id, 'transition'), {'status': 'in_examination'}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['start_time'] is not None

        response = doctor_client.post('/api/v1/records/', {
            'visit_id': visit_id,
            'record_type': 'initial_consultation',
            'soap_subjective': 'Sore throat, two days',
            'soap_assessment': 'Acute pharyngitis',
            'soap_plan': 'Symptomatic treatment',
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        record_id = response.data['id']

        response = doctor_client.post(visit_url(visit_id, 'transition'), {'status': 'examined'}, format='json')
        assert response.status_code == status.HTTP_200_OK

        # Finalizing the record locks the visit and hands it to the cashier
        response = doctor_client.post(f'/api/v1/records/{record_id}/lock/', {}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_locked'] is True

        visit = Visit.objects.get(pk=visit_id)
        assert visit.status == VisitStatus.READY_FOR_BILLING
        assert visit.is_locked
        assert visit.lock_source == 'finalized_record'

        # Locked: the record is read-only now
        response = doctor_client.patch(f'/api/v1/records/{record_id}/', {'soap_plan': 'Changed'}, format='json')
        assert response.status_code == status.HTTP_423_LOCKED
        assert response.data['error'] == 'visit_locked'

        # Cashier bills and takes a cash payment
        response = cashier_client.post(billing_url(visit_id, 'services'), {
            'name': 'General practitioner consultation',
            'quantity': 1,
            'unit_price': '100000.00',
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED

        response = cashier_client.post(billing_url(visit_id, 'bill'), {}, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['visit_status'] == VisitStatus.BILLED
        assert response.data['billing']['total_due'] == '100000.00'
        assert response.data['eligibility']['can_discharge'] is False

        response = cashier_client.post(billing_url(visit_id, 'payments'), {
            'amount': '100000.00',
            'method': 'cash',
            'amount_received': '150000.00',
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['visit_status'] == VisitStatus.PAID
        assert response.data['payment_status'] == 'paid'
        assert response.data['payment']['change_given'] == '50000.00'

        response = cashier_client.post(visit_url(visit_id, 'complete'), {}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VisitStatus.COMPLETED
        assert response.data['is_terminal'] is True
        assert response.data['end_time'] is not None

        # Terminal: nothing moves any more
        response = receptionist_client.post(visit_url(visit_id, 'transition'), {'status': 'waiting'}, format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'terminal_state'
        assert response.data['details']['allowed_statuses'] == []

        transitions = ClinicalAuditLog.objects.filter(
            visit_id=visit_id, action=AuditActionChoices.TRANSITION
        ).values_list('metadata__to_status', flat=True)
        assert list(transitions.order_by('created_at')) == [
            'waiting', 'in_examination', 'examined', 'ready_for_billing', 'billed', 'paid', 'completed',
        ]


@pytest.mark.django_db
class TestTransitionRefusals:

    def test_illegal_edge_lists_allowed_targets(self, receptionist_client, make_visit):
        visit = make_visit(status=VisitStatus.REGISTERED)

        response = receptionist_client.post(visit_url(visit.pk, 'transition'), {'status': 'paid'}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'invalid_transition'
        assert response.data['details']['allowed_statuses'] == ['waiting', 'cancelled']
        visit.refresh_from_db()
        assert visit.status == VisitStatus.REGISTERED

    def test_unknown_status_is_a_validation_error(self, receptionist_client, make_visit):
        visit = make_visit()

        response = receptionist_client.post(visit_url(visit.pk, 'transition'), {'status': 'teleported'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'status' in response.data

    def test_backward_edge_requires_override(self, doctor_client, make_visit):
        visit = make_visit(status=VisitStatus.IN_EXAMINATION)

        response = doctor_client.post(visit_url(visit.pk, 'transition'), {'status': 'waiting'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error'] == 'override_required'
        assert response.data['details']['permission'] == 'visits:override'

    def test_admin_may_move_back(self, admin_client, make_visit):
        visit = make_visit(status=VisitStatus.EXAMINED)

        response = admin_client.post(visit_url(visit.pk, 'transition'), {'status': 'in_examination'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VisitStatus.IN_EXAMINATION

    def test_paid_requires_settled_bill(self, cashier_client, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')

        response = cashier_client.post(visit_url(visit.pk, 'complete'), {}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'invalid_transition'

    def test_unknown_visit(self, receptionist_client):
        response = receptionist_client.post(
            visit_url('00000000-0000-0000-0000-000000000000', 'transition'), {'status': 'waiting'}, format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_pharmacist_cannot_move_visits(self, make_user, make_visit):
        from rest_framework.test import APIClient

        client = APIClient()
        client.force_authenticate(user=make_user('pharmacist'))
        visit = make_visit()

        response = client.post(visit_url(visit.pk, 'transition'), {'status': 'waiting'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unauthenticated(self, api_client, make_visit):
        visit = make_visit()

        response = api_client.get(visit_url(visit.pk))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestCancellation:

    def test_cancel_stores_reason_and_ends_visit(self, receptionist_client, make_visit):
        visit = make_visit(status=VisitStatus.WAITING)

        response = receptionist_client.post(
            visit_url(visit.pk, 'cancel'), {'reason': 'Patient left before examination'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VisitStatus.CANCELLED
        assert response.data['cancellation_reason'] == 'Patient left before examination'
        assert response.data['end_time'] is not None

    def test_cancel_after_payment_requires_reversal(
        self, receptionist_client, cashier_client, make_visit, add_service_charge
    ):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        response = cashier_client.post(billing_url(visit.pk, 'payments'), {
            'amount': '60000.00',
            'method': 'transfer',
            'reference': 'TRX-88231',
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['visit_status'] == VisitStatus.BILLED
        assert response.data['remaining'] == '40000.00'

        response = receptionist_client.post(visit_url(visit.pk, 'cancel'), {'reason': 'Changed mind'}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'cancellation_requires_reversal'
        assert response.data['message'].startswith('Payments of Rp 60,000 were recorded')
        visit.refresh_from_db()
        assert visit.status == VisitStatus.BILLED

    def test_cancel_billed_visit_voids_the_bill(self, receptionist_client, cashier_user, make_visit):
        visit = make_visit(status=VisitStatus.BILLED)
        Billing.objects.create(visit=visit, total_due=Decimal('50000'), created_by=cashier_user)

        response = receptionist_client.post(visit_url(visit.pk, 'cancel'), {}, format='json')

        assert response.status_code == status.HTTP_200_OK
        billing = Billing.objects.get(visit=visit)
        assert billing.is_void is True
        assert billing.voided_at is not None

    def test_paid_visit_cannot_be_cancelled(self, receptionist_client, make_visit):
        visit = make_visit(status=VisitStatus.PAID)

        response = receptionist_client.post(visit_url(visit.pk, 'cancel'), {}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['details']['allowed_statuses'] == ['completed']


@pytest.mark.django_db
class TestPayments:

    def test_payment_above_outstanding_is_rejected(self, cashier_client, make_visit, add_service_charge):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')

        response = cashier_client.post(billing_url(visit.pk, 'payments'), {
            'amount': '120000.00',
            'method': 'transfer',
            'reference': 'TRX-1',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'payment_rejected'
        assert response.data['message'] == 'Payment of Rp 120,000 exceeds outstanding balance Rp 100,000'
        assert not Payment.objects.filter(visit=visit).exists()

    def test_cash_must_cover_amount(self, cashier_client, make_visit, add_service_charge):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')

        response = cashier_client.post(billing_url(visit.pk, 'payments'), {
            'amount': '100000.00',
            'method': 'cash',
            'amount_received': '50000.00',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_transfer_needs_reference(self, cashier_client, make_visit):
        visit = make_visit(status=VisitStatus.BILLED)

        response = cashier_client.post(billing_url(visit.pk, 'payments'), {
            'amount': '10000.00',
            'method': 'transfer',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'reference' in response.data

    def test_payment_needs_billed_visit(self, cashier_client, make_visit):
        visit = make_visit(status=VisitStatus.READY_FOR_BILLING)

        response = cashier_client.post(billing_url(visit.pk, 'payments'), {
            'amount': '10000.00',
            'method': 'card',
            'reference': 'EDC-7781',
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'status_required'


@pytest.mark.django_db
class TestQueueAndReadEndpoints:

    def test_allowed_transitions_with_indonesian_labels(self, receptionist_client, make_visit):
        visit = make_visit(status=VisitStatus.IN_EXAMINATION)

        response = receptionist_client.get(visit_url(visit.pk, 'allowed-transitions') + '?lang=id')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_terminal'] is False
        assert response.data['allowed_next_statuses'] == [
            {'status': 'examined', 'label': 'Selesai Diperiksa'},
            {'status': 'waiting', 'label': 'Menunggu'},
            {'status': 'cancelled', 'label': 'Dibatalkan'},
        ]

    def test_queue_filter_by_status(self, receptionist_client, make_visit):
        waiting = make_visit(status=VisitStatus.WAITING)
        make_visit(status=VisitStatus.COMPLETED)

        response = receptionist_client.get(VISITS_URL + '?status=waiting,registered')

        assert response.status_code == status.HTTP_200_OK
        ids = [row['id'] for row in response.data['results']]
        assert ids == [str(waiting.pk)]

    def test_discharge_eligibility_endpoint(self, cashier_client, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')

        response = cashier_client.get(visit_url(visit.pk, 'discharge-eligibility'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {
            'can_discharge': False,
            'reason': 'Outstanding balance Rp 40,000',
            'remaining_amount': '40000.00',
        }

    def test_status_change_signal_after_commit(
        self, receptionist_client, make_visit, django_capture_on_commit_callbacks
    ):
        visit = make_visit(status=VisitStatus.REGISTERED)
        received = []

        def receiver(sender, **kwargs):
            received.append(kwargs)

        visit_status_changed.connect(receiver)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                response = receptionist_client.post(
                    visit_url(visit.pk, 'transition'), {'status': 'waiting'}, format='json'
                )
        finally:
            visit_status_changed.disconnect(receiver)

        assert response.status_code == status.HTTP_200_OK
        assert len(received) == 1
        assert received[0]['visit_id'] == str(visit.pk)
        assert received[0]['from_status'] == 'registered'
        assert received[0]['to_status'] == 'waiting'
