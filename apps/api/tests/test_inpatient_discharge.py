"""
Inpatient discharge end to end: bed stay, discharge summary, bill, payment
and completion, driven through the services with explicit instants.

Room charges accrue per started day while a bed is held; taking the bill
releases the bed, so a paid visit can always be completed.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

from apps.billing import services as billing
from apps.billing.gate import compute_billing_breakdown
from apps.billing.models import BedAssignment, PaymentMethodChoices, Room
from apps.clinical import services as clinical
from apps.clinical.models import Prescription
from apps.core.policy import PolicyViolationError
from apps.visits.services import cancel_visit, complete_visit
from apps.visits.workflow import VisitStatus, VisitType

ADMITTED_AT = datetime(2025, 3, 1, 8, 0, tzinfo=dt_timezone.utc)


def hours(n):
    return ADMITTED_AT + timedelta(hours=n)


@pytest.fixture
def ward(db):
    return Room.objects.create(
        room_number='301', room_type='class_2', daily_rate=Decimal('100000'), bed_count=2,
    )


@pytest.fixture
def admitted_visit(make_visit, nurse_user, ward):
    visit = make_visit(status=VisitStatus.IN_EXAMINATION, visit_type=VisitType.INPATIENT)
    billing.assign_bed(visit.pk, nurse_user, ward.pk, 1, now=ADMITTED_AT)
    return visit


def _discharge_and_bill(visit, doctor_user, cashier_user, billed_at):
    clinical.create_discharge_summary(visit.pk, doctor_user, {
        'admission_diagnosis': 'Dengue haemorrhagic fever grade I',
        'discharge_diagnosis': 'Dengue fever, recovered',
    }, now=billed_at - timedelta(hours=1))
    return billing.create_bill(visit.pk, cashier_user, now=billed_at)


def _pay(visit, cashier_user, amount, at):
    return billing.record_payment(
        visit.pk, cashier_user,
        amount=Decimal(amount),
        method=PaymentMethodChoices.TRANSFER,
        reference='TRX-88120',
        now=at,
    )


@pytest.mark.django_db
class TestInpatientDischarge:

    def test_paid_inpatient_can_be_completed_later(self, admitted_visit, doctor_user, cashier_user):
        _discharge_and_bill(admitted_visit, doctor_user, cashier_user, billed_at=hours(23))
        _, breakdown = _pay(admitted_visit, cashier_user, '100000.00', at=hours(23))
        assert breakdown.remaining == 0

        # Two hours later the room would be into its second day
        visit = complete_visit(admitted_visit.pk, user=cashier_user, now=hours(25))

        assert visit.status == VisitStatus.COMPLETED

    def test_billing_releases_the_bed(self, admitted_visit, doctor_user, cashier_user, make_visit, nurse_user, ward):
        _discharge_and_bill(admitted_visit, doctor_user, cashier_user, billed_at=hours(23))

        assignment = BedAssignment.objects.get(visit=admitted_visit)
        assert assignment.discharged_at == hours(23)
        assert compute_billing_breakdown(admitted_visit, hours(72)).totals_by_category() == {
            'room': Decimal('100000'),
        }

        next_patient = make_visit(status=VisitStatus.IN_EXAMINATION, visit_type=VisitType.INPATIENT)
        billing.assign_bed(next_patient.pk, nurse_user, ward.pk, 1, now=hours(24))

    def test_no_new_charges_after_billing(self, admitted_visit, doctor_user, cashier_user):
        _discharge_and_bill(admitted_visit, doctor_user, cashier_user, billed_at=hours(23))
        _pay(admitted_visit, cashier_user, '100000.00', at=hours(23))

        with pytest.raises(PolicyViolationError) as exc_info:
            billing.add_service_charge(admitted_visit.pk, cashier_user, {
                'name': 'Late nursing care', 'quantity': 1, 'unit_price': Decimal('15000'),
            })

        assert exc_info.value.violation.code == 'status_required'
        assert complete_visit(admitted_visit.pk, now=hours(30)).status == VisitStatus.COMPLETED

    def test_balance_reappearing_after_payment_can_be_settled(
        self, admitted_visit, doctor_user, cashier_user, make_user,
    ):
        prescription = Prescription.objects.create(
            visit=admitted_visit, drug_name='Paracetamol 500 mg', dosage='500 mg', frequency='3x1',
            quantity=10, unit_price=Decimal('1500'), created_by=doctor_user,
        )
        _discharge_and_bill(admitted_visit, doctor_user, cashier_user, billed_at=hours(23))
        _pay(admitted_visit, cashier_user, '100000.00', at=hours(23))

        # Take-home medication dispensed after the bill was settled
        pharmacist = make_user('pharmacist')
        clinical.fulfill_prescription(prescription.pk, pharmacist, now=hours(24))

        with pytest.raises(PolicyViolationError) as exc_info:
            complete_visit(admitted_visit.pk, now=hours(24))
        assert exc_info.value.violation.message == 'Outstanding balance Rp 15,000'

        _, breakdown = _pay(admitted_visit, cashier_user, '15000.00', at=hours(24))
        assert breakdown.remaining == 0

        assert complete_visit(admitted_visit.pk, now=hours(25)).status == VisitStatus.COMPLETED

    def test_payment_still_capped_while_paid(self, admitted_visit, doctor_user, cashier_user):
        _discharge_and_bill(admitted_visit, doctor_user, cashier_user, billed_at=hours(23))
        _pay(admitted_visit, cashier_user, '100000.00', at=hours(23))

        with pytest.raises(PolicyViolationError) as exc_info:
            _pay(admitted_visit, cashier_user, '5000.00', at=hours(24))

        assert exc_info.value.violation.code == 'payment_rejected'

    def test_cancellation_releases_the_bed(self, admitted_visit, nurse_user):
        cancel_visit(admitted_visit.pk, user=nurse_user, reason='Referred to another hospital', now=hours(5))

        assert BedAssignment.objects.get(visit=admitted_visit).discharged_at == hours(5)
