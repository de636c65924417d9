"""
Billing gate.

Answers "may this visit be discharged?" from the visit's line items:

    subtotal  = rooms + materials + medications + procedures + services
    remaining = subtotal - discounts - insurance + surcharges - payments

A visit is dischargeable when remaining <= 0. The answer is recomputed on
every call; charges keep changing up to the moment of discharge.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from apps.billing.models import (
    AdjustmentKindChoices,
    BedAssignment,
    BillingAdjustment,
    MaterialUsage,
    Payment,
    PaymentStatusChoices,
    ServiceCharge,
)
from apps.clinical.models import Prescription, Procedure, ProcedureStatus
from apps.core.observability import metrics
from apps.core.observability.events import log_discharge_check
from apps.core.observability.tracing import add_span_attribute
from apps.core.policy import DischargeBlocked, GuardResult, VisitNotFound
from apps.visits.models import Visit

ZERO = Decimal('0')


@dataclass(frozen=True)
class BillingItem:
    category: str  # room, material, medication, procedure, service
    description: str
    quantity: int
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class BillingBreakdown:
    visit_id: str
    items: List[BillingItem] = field(default_factory=list)
    discount_total: Decimal = ZERO
    insurance_total: Decimal = ZERO
    surcharge_total: Decimal = ZERO
    paid_total: Decimal = ZERO

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total for item in self.items), ZERO)

    @property
    def total_due(self) -> Decimal:
        return self.subtotal - self.discount_total - self.insurance_total + self.surcharge_total

    @property
    def remaining(self) -> Decimal:
        return self.total_due - self.paid_total

    @property
    def payment_status(self) -> str:
        if self.remaining <= 0:
            return PaymentStatusChoices.PAID
        if self.paid_total > 0:
            return PaymentStatusChoices.PARTIAL
        return PaymentStatusChoices.PENDING

    def totals_by_category(self):
        totals = {}
        for item in self.items:
            totals[item.category] = totals.get(item.category, ZERO) + item.total
        return totals


@dataclass(frozen=True)
class DischargeEligibility:
    can_discharge: bool
    reason: Optional[str]
    remaining_amount: Decimal


# ============================================================================
# Pure helpers
# ============================================================================

def calculate_remaining(
    subtotal: Decimal,
    adjustments: Iterable[Tuple[str, Decimal]],
    payments: Iterable[Decimal],
) -> Decimal:
    """
    Remaining payable amount.

    adjustments are (kind, amount) pairs with positive amounts; discounts and
    insurance reduce the bill, surcharges raise it.
    """
    remaining = Decimal(subtotal)
    for kind, amount in adjustments:
        if kind == AdjustmentKindChoices.SURCHARGE:
            remaining += amount
        else:
            remaining -= amount
    for amount in payments:
        remaining -= amount
    return remaining


def room_days(assigned_at: datetime, until: datetime) -> int:
    """Started days, at least one."""
    days = math.ceil((until - assigned_at) / timedelta(days=1))
    return max(days, 1)


def eligibility_from_remaining(remaining: Decimal) -> DischargeEligibility:
    if remaining <= 0:
        return DischargeEligibility(can_discharge=True, reason=None, remaining_amount=ZERO)
    return DischargeEligibility(
        can_discharge=False,
        reason=DischargeBlocked(remaining).message,
        remaining_amount=remaining,
    )


# ============================================================================
# Aggregation
# ============================================================================

def collect_billable_items(visit, now: Optional[datetime] = None) -> List[BillingItem]:
    now = now or timezone.now()
    items = []

    for assignment in BedAssignment.objects.filter(visit=visit).select_related('room'):
        until = assignment.discharged_at or now
        items.append(BillingItem(
            category='room',
            description=f'Room {assignment.room.room_number} bed {assignment.bed_number}',
            quantity=room_days(assignment.assigned_at, until),
            unit_price=assignment.room.daily_rate,
        ))

    for usage in MaterialUsage.objects.filter(visit=visit):
        items.append(BillingItem('material', usage.name, usage.quantity, usage.unit_price))

    for prescription in Prescription.objects.filter(visit=visit, is_fulfilled=True):
        items.append(BillingItem(
            'medication',
            prescription.drug_name,
            prescription.billable_quantity,
            prescription.unit_price,
        ))

    for procedure in Procedure.objects.filter(visit=visit, status=ProcedureStatus.COMPLETED):
        items.append(BillingItem('procedure', procedure.name, 1, procedure.price))

    for charge in ServiceCharge.objects.filter(visit=visit):
        items.append(BillingItem('service', charge.name, charge.quantity, charge.unit_price))

    return items


def compute_billing_breakdown(visit, now: Optional[datetime] = None) -> BillingBreakdown:
    totals = {kind: ZERO for kind in AdjustmentKindChoices.values}
    for kind, amount in BillingAdjustment.objects.filter(visit=visit).values_list('kind', 'amount'):
        totals[kind] += amount

    paid_total = sum(
        Payment.objects.filter(visit=visit).values_list('amount', flat=True),
        ZERO
    )

    return BillingBreakdown(
        visit_id=str(visit.pk),
        items=collect_billable_items(visit, now),
        discount_total=totals[AdjustmentKindChoices.DISCOUNT],
        insurance_total=totals[AdjustmentKindChoices.INSURANCE],
        surcharge_total=totals[AdjustmentKindChoices.SURCHARGE],
        paid_total=paid_total,
    )


def _load_visit(visit_id):
    try:
        return Visit.objects.get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, DjangoValidationError):
        return None


def compute_discharge_eligibility(visit_id, now: Optional[datetime] = None) -> DischargeEligibility:
    """
    Discharge eligibility for a visit. Unknown visits are not dischargeable.
    """
    visit = _load_visit(visit_id)
    if visit is None:
        metrics.discharge_eligibility_checks_total.labels(result='not_found').inc()
        return DischargeEligibility(can_discharge=False, reason='Visit not found', remaining_amount=ZERO)

    breakdown = compute_billing_breakdown(visit, now)
    eligibility = eligibility_from_remaining(breakdown.remaining)

    metrics.discharge_eligibility_checks_total.labels(
        result='eligible' if eligibility.can_discharge else 'blocked'
    ).inc()
    add_span_attribute('billing.remaining_amount', str(eligibility.remaining_amount))
    log_discharge_check(visit.pk, eligibility.can_discharge, eligibility.remaining_amount)

    return eligibility


def check_discharge(visit_id, now: Optional[datetime] = None) -> GuardResult:
    if _load_visit(visit_id) is None:
        return GuardResult.deny(VisitNotFound(entity_id=str(visit_id)))
    eligibility = compute_discharge_eligibility(visit_id, now)
    if eligibility.can_discharge:
        return GuardResult.allow(eligibility)
    return GuardResult.deny(DischargeBlocked(eligibility.remaining_amount))

