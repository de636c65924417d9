"""
Billing service layer - cashier operations.

- Bill a visit (snapshot + ready_for_billing -> billed)
- Record payments (billed -> paid once nothing is outstanding)
- Adjustments, material usage, service charges, bed assignments
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.billing.gate import compute_billing_breakdown
from apps.billing.models import (
    BedAssignment,
    Billing,
    BillingAdjustment,
    MaterialUsage,
    Payment,
    PaymentMethodChoices,
    Room,
    ServiceCharge,
)
from apps.clinical.guards import visit_lock_violation
from apps.clinical.models import AuditActionChoices, log_clinical_audit
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.core.observability.tracing import trace_span
from apps.core.policy import PaymentRejected, PolicyViolationError, StatusRequired, format_rupiah
from apps.visits.services import apply_transition, get_visit_for_update
from apps.visits.workflow import (
    BILLABLE_STATUSES,
    CHARGEABLE_STATUSES,
    PAYABLE_STATUSES,
    VisitStatus,
    VisitType,
    can_add_charges,
    can_create_billing,
)

logger = get_sanitized_logger(__name__)

BILLABLE = tuple(s.value for s in VisitStatus if s in BILLABLE_STATUSES)
CHARGEABLE = tuple(s.value for s in VisitStatus if s in CHARGEABLE_STATUSES)
PAYABLE = tuple(s.value for s in VisitStatus if s in PAYABLE_STATUSES)


def _require_billable(visit, action):
    if not can_create_billing(visit.status):
        raise PolicyViolationError(StatusRequired(action, visit.status, BILLABLE))


def _require_chargeable(visit, action):
    if not can_add_charges(visit.status):
        raise PolicyViolationError(StatusRequired(action, visit.status, CHARGEABLE))


def release_beds(visit, now) -> int:
    """Close the visit's open bed assignments; room days stop accruing at `now`."""
    return BedAssignment.objects.filter(visit=visit, discharged_at__isnull=True).update(discharged_at=now)


def create_bill(visit_id, user, now: Optional[datetime] = None, request=None) -> Billing:
    """
    Bill the visit.

    Takes (or refreshes) the bill snapshot and moves ready_for_billing ->
    billed. Open bed assignments are closed first, so the room charge on the
    bill is final. Billing an already billed visit only refreshes the
    snapshot.
    """
    now = now or timezone.now()

    with trace_span('billing_create', attributes={'visit_id': str(visit_id)}):
        with transaction.atomic():
            visit = get_visit_for_update(visit_id)
            _require_billable(visit, 'create a bill')

            released = release_beds(visit, now)
            if released:
                logger.info(f'Released {released} bed assignment(s) for visit {visit.pk} at billing')

            breakdown = compute_billing_breakdown(visit, now)
            billing, created = Billing.objects.update_or_create(
                visit=visit,
                defaults={
                    'subtotal': breakdown.subtotal,
                    'discount_total': breakdown.discount_total,
                    'insurance_total': breakdown.insurance_total,
                    'surcharge_total': breakdown.surcharge_total,
                    'total_due': breakdown.total_due,
                    'currency': settings.BILLING_CURRENCY,
                    'is_void': False,
                    'voided_at': None,
                    'created_by': user,
                }
            )
            log_clinical_audit(
                user, billing,
                AuditActionChoices.CREATE if created else AuditActionChoices.UPDATE,
                request=request, total_due=str(breakdown.total_due),
            )

            if visit.status == VisitStatus.READY_FOR_BILLING:
                apply_transition(visit.pk, VisitStatus.BILLED, user=user, now=now, request=request)

    log_domain_event(
        'billing.created',
        entity_type='Billing',
        entity_id=str(billing.id),
        entity_ids={'visit_id': str(visit.pk)},
        total_due=str(breakdown.total_due),
    )
    return billing


def record_payment(
    visit_id,
    user,
    amount: Decimal,
    method: str,
    reference: str = '',
    amount_received: Optional[Decimal] = None,
    notes: str = '',
    now: Optional[datetime] = None,
    request=None,
):
    """
    Record a payment against a billed visit.

    BUSINESS RULES:
    - the visit must be `billed`, or `paid` with a balance that reappeared
      (e.g. medication dispensed after payment)
    - a payment may not exceed the outstanding balance
    - cash payments need the tendered amount; change is computed
    - once nothing is outstanding the visit moves billed -> paid

    Returns:
        (Payment, BillingBreakdown after the payment)
    """
    now = now or timezone.now()

    with trace_span('payment_record', attributes={'visit_id': str(visit_id), 'method': method}):
        with transaction.atomic():
            visit = get_visit_for_update(visit_id)
            if visit.status not in PAYABLE_STATUSES:
                metrics.payments_total.labels(method=method, result='rejected').inc()
                raise PolicyViolationError(StatusRequired('record a payment', visit.status, PAYABLE))

            outstanding = compute_billing_breakdown(visit, now).remaining
            violation = None
            if amount <= 0:
                violation = PaymentRejected('Payment amount must be positive')
            elif amount > outstanding:
                violation = PaymentRejected(
                    f'Payment of {format_rupiah(amount)} exceeds outstanding balance {format_rupiah(outstanding)}'
                )
            elif method == PaymentMethodChoices.CASH and (amount_received is None or amount_received < amount):
                violation = PaymentRejected('Cash received must cover the payment amount')
            if violation is not None:
                metrics.payments_total.labels(method=method, result='rejected').inc()
                raise PolicyViolationError(violation)

            change_given = None
            if method == PaymentMethodChoices.CASH:
                change_given = amount_received - amount

            payment = Payment.objects.create(
                visit=visit,
                amount=amount,
                method=method,
                reference=reference,
                amount_received=amount_received,
                change_given=change_given,
                notes=notes,
                received_by=user,
                received_at=now,
            )
            log_clinical_audit(user, payment, AuditActionChoices.CREATE, request=request, method=method)

            breakdown = compute_billing_breakdown(visit, now)
            if breakdown.remaining <= 0 and visit.status == VisitStatus.BILLED:
                apply_transition(visit.pk, VisitStatus.PAID, user=user, now=now, request=request)

    metrics.payments_total.labels(method=method, result='success').inc()
    log_domain_event(
        'payment.recorded',
        entity_type='Payment',
        entity_id=str(payment.id),
        entity_ids={'visit_id': str(visit.pk)},
        method=method,
        payment_status=breakdown.payment_status,
    )
    return payment, breakdown


def add_adjustment(visit_id, user, kind: str, amount: Decimal, justification: str, request=None) -> BillingAdjustment:
    """Discount / insurance coverage / surcharge with its justification."""
    if not justification or not justification.strip():
        raise ValidationError({'justification': 'A justification is required for billing adjustments'})

    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_billable(visit, 'adjust the bill')

        adjustment = BillingAdjustment.objects.create(
            visit=visit,
            kind=kind,
            amount=amount,
            justification=justification,
            created_by=user,
        )
        log_clinical_audit(user, adjustment, AuditActionChoices.CREATE, request=request, kind=kind)

    return adjustment


def record_material_usage(visit_id, user, data, request=None) -> MaterialUsage:
    """Consumables used on the patient. A locked visit takes no more entries."""
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        violation = visit_lock_violation(visit)
        if violation is not None:
            raise PolicyViolationError(violation)
        _require_chargeable(visit, 'record material usage')

        usage = MaterialUsage.objects.create(visit=visit, recorded_by=user, **data)
        log_clinical_audit(user, usage, AuditActionChoices.CREATE, request=request)

    return usage


def add_service_charge(visit_id, user, data, request=None) -> ServiceCharge:
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_chargeable(visit, 'add a service charge')

        charge = ServiceCharge.objects.create(visit=visit, created_by=user, **data)
        log_clinical_audit(user, charge, AuditActionChoices.CREATE, request=request)

    return charge


def assign_bed(visit_id, user, room_id, bed_number: int, now: Optional[datetime] = None, request=None) -> BedAssignment:
    """
    Put an inpatient in a bed. An open assignment on the same visit is
    closed first (transfer), so each stay is billed on its own line.
    """
    now = now or timezone.now()

    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        if visit.visit_type != VisitType.INPATIENT:
            raise ValidationError({'visit': 'Beds are only assigned to inpatient visits'})
        _require_chargeable(visit, 'assign a bed')

        try:
            room = Room.objects.select_for_update().get(pk=room_id, is_active=True)
        except Room.DoesNotExist:
            raise ValidationError({'room': 'Room not found or inactive'})

        if not 1 <= bed_number <= room.bed_count:
            raise ValidationError({'bed_number': f'Room {room.room_number} has beds 1-{room.bed_count}'})

        occupied = BedAssignment.objects.filter(
            room=room, bed_number=bed_number, discharged_at__isnull=True
        ).exclude(visit=visit)
        if occupied.exists():
            raise ValidationError({'bed_number': 'Bed is occupied'})

        BedAssignment.objects.filter(visit=visit, discharged_at__isnull=True).update(discharged_at=now)
        assignment = BedAssignment.objects.create(
            visit=visit,
            room=room,
            bed_number=bed_number,
            assigned_at=now,
            assigned_by=user,
        )
        log_clinical_audit(user, assignment, AuditActionChoices.CREATE, request=request)

    return assignment
