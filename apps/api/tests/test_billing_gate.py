"""
Billing gate tests: remaining amount, discharge eligibility and the gate on
the paid / completed edges.
"""
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

from apps.billing.gate import (
    calculate_remaining,
    check_discharge,
    compute_billing_breakdown,
    compute_discharge_eligibility,
    room_days,
)
from apps.billing.models import AdjustmentKindChoices, BedAssignment, BillingAdjustment, Room
from apps.clinical.models import Prescription, Procedure, ProcedureStatus
from apps.core.policy import DischargeBlocked, PolicyViolationError, VisitNotFound
from apps.visits.services import apply_transition
from apps.visits.workflow import VisitStatus, VisitType

NOW = datetime(2025, 3, 4, 12, 0, tzinfo=dt_timezone.utc)


class TestCalculateRemaining:

    def test_fully_paid(self):
        assert calculate_remaining(Decimal('100000'), [], [Decimal('100000')]) == 0

    def test_partially_paid(self):
        assert calculate_remaining(Decimal('100000'), [], [Decimal('60000')]) == Decimal('40000')

    def test_adjustments(self):
        remaining = calculate_remaining(
            Decimal('500000'),
            [
                (AdjustmentKindChoices.DISCOUNT, Decimal('50000')),
                (AdjustmentKindChoices.INSURANCE, Decimal('300000')),
                (AdjustmentKindChoices.SURCHARGE, Decimal('25000')),
            ],
            [Decimal('100000')],
        )

        assert remaining == Decimal('75000')

    def test_overpayment_goes_negative(self):
        assert calculate_remaining(Decimal('100000'), [], [Decimal('120000')]) == Decimal('-20000')


class TestRoomDays:

    def test_partial_day_counts_as_one(self):
        assert room_days(NOW, NOW + timedelta(hours=3)) == 1

    def test_same_instant_is_still_one_day(self):
        assert room_days(NOW, NOW) == 1

    def test_started_days_are_charged(self):
        assert room_days(NOW, NOW + timedelta(days=2, minutes=1)) == 3

    def test_whole_days(self):
        assert room_days(NOW, NOW + timedelta(days=2)) == 2


@pytest.mark.django_db
class TestDischargeEligibility:

    def test_fully_paid_visit_can_be_discharged(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '100000.00')

        eligibility = compute_discharge_eligibility(visit.pk)

        assert eligibility.can_discharge is True
        assert eligibility.reason is None
        assert eligibility.remaining_amount == 0

    def test_outstanding_balance_blocks_discharge(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')

        eligibility = compute_discharge_eligibility(visit.pk)

        assert eligibility.can_discharge is False
        assert eligibility.remaining_amount == Decimal('40000.00')
        assert eligibility.reason == 'Outstanding balance Rp 40,000'

    def test_visit_without_charges_is_eligible(self, make_visit):
        visit = make_visit(status=VisitStatus.PAID)

        assert compute_discharge_eligibility(visit.pk).can_discharge is True

    def test_unknown_visit_is_not_eligible(self):
        eligibility = compute_discharge_eligibility(uuid.uuid4())

        assert eligibility.can_discharge is False
        assert eligibility.reason == 'Visit not found'

    def test_check_discharge_on_unknown_visit(self):
        result = check_discharge(uuid.uuid4())

        assert isinstance(result.violation, VisitNotFound)

    def test_check_discharge_carries_remaining(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')

        result = check_discharge(visit.pk)

        assert isinstance(result.violation, DischargeBlocked)
        assert result.violation.details() == {'remaining_amount': '40000.00'}

    def test_recomputed_on_every_call(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')
        assert not compute_discharge_eligibility(visit.pk).can_discharge

        add_payment(visit, '40000.00')

        assert compute_discharge_eligibility(visit.pk).can_discharge


@pytest.mark.django_db
class TestBillingBreakdown:

    def test_every_category_is_counted(self, make_visit, doctor_user, cashier_user, add_service_charge):
        visit = make_visit(status=VisitStatus.IN_EXAMINATION, visit_type=VisitType.INPATIENT)
        room = Room.objects.create(room_number='301', room_type='class_1', daily_rate=Decimal('350000'), bed_count=2)
        BedAssignment.objects.create(
            visit=visit, room=room, bed_number=1,
            assigned_at=NOW - timedelta(days=1, hours=2),
        )
        Prescription.objects.create(
            visit=visit, drug_name='Ceftriaxone 1g', dosage='1g', frequency='2x1',
            quantity=4, unit_price=Decimal('45000'), is_fulfilled=True, dispensed_quantity=3,
            created_by=doctor_user,
        )
        Prescription.objects.create(
            visit=visit, drug_name='Ondansetron 4mg', dosage='4mg', frequency='3x1',
            quantity=6, unit_price=Decimal('12000'), created_by=doctor_user,
        )
        Procedure.objects.create(
            visit=visit, name='Wound debridement', status=ProcedureStatus.COMPLETED,
            price=Decimal('250000'), created_by=doctor_user,
        )
        Procedure.objects.create(
            visit=visit, name='Chest X-ray', status=ProcedureStatus.ORDERED,
            price=Decimal('150000'), created_by=doctor_user,
        )
        add_service_charge(visit, '75000.00', name='Nursing care')
        BillingAdjustment.objects.create(
            visit=visit, kind=AdjustmentKindChoices.INSURANCE, amount=Decimal('500000'),
            justification='BPJS coverage', created_by=cashier_user,
        )

        breakdown = compute_billing_breakdown(visit, NOW)
        totals = breakdown.totals_by_category()

        assert totals == {
            'room': Decimal('700000'),          # 2 started days
            'medication': Decimal('135000'),    # dispensed quantity only
            'procedure': Decimal('250000'),     # completed only
            'service': Decimal('75000'),
        }
        assert breakdown.subtotal == Decimal('1160000')
        assert breakdown.total_due == Decimal('660000')
        assert breakdown.remaining == Decimal('660000')
        assert breakdown.payment_status == 'pending'


@pytest.mark.django_db
class TestGateOnTransitions:

    def test_paid_refused_while_balance_outstanding(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.BILLED)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '60000.00')

        with pytest.raises(PolicyViolationError) as exc_info:
            apply_transition(visit.pk, VisitStatus.PAID)

        violation = exc_info.value.violation
        assert violation.code == 'discharge_blocked'
        assert violation.message == 'Outstanding balance Rp 40,000'
        visit.refresh_from_db()
        assert visit.status == VisitStatus.BILLED

    def test_completion_after_full_payment(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.PAID)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '100000.00')

        visit = apply_transition(visit.pk, VisitStatus.COMPLETED, now=NOW)

        assert visit.status == VisitStatus.COMPLETED
        assert visit.end_time == NOW

    def test_completion_refused_when_charges_added_after_payment(self, make_visit, add_service_charge, add_payment):
        visit = make_visit(status=VisitStatus.PAID)
        add_service_charge(visit, '100000.00')
        add_payment(visit, '100000.00')
        add_service_charge(visit, '15000.00', name='Late material charge')

        with pytest.raises(PolicyViolationError) as exc_info:
            apply_transition(visit.pk, VisitStatus.COMPLETED)

        assert exc_info.value.violation.message == 'Outstanding balance Rp 15,000'
