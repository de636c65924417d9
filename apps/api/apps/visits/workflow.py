"""
Visit status workflow.

The status set, the legal edge list between statuses and the pure predicates
callers use before attempting a transition or a clinical write. Nothing here
touches the database; apps.visits.services applies the result.

    registered        -> waiting, cancelled
    waiting           -> in_examination, cancelled
    in_examination    -> examined, waiting, cancelled
    examined          -> ready_for_billing, in_examination, cancelled
    ready_for_billing -> billed, cancelled
    billed            -> paid, cancelled
    paid              -> completed
    completed         -> (terminal)
    cancelled         -> (terminal)
"""
from typing import Tuple

from django.db import models

from apps.core.policy import GuardResult, InvalidTransition, TerminalStateViolation


class VisitStatus(models.TextChoices):
    REGISTERED = 'registered', 'Registered'
    WAITING = 'waiting', 'Waiting'
    IN_EXAMINATION = 'in_examination', 'In Examination'
    EXAMINED = 'examined', 'Examined'
    READY_FOR_BILLING = 'ready_for_billing', 'Ready for Billing'
    BILLED = 'billed', 'Billed'
    PAID = 'paid', 'Paid'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class VisitType(models.TextChoices):
    OUTPATIENT = 'outpatient', 'Outpatient'
    INPATIENT = 'inpatient', 'Inpatient'
    EMERGENCY = 'emergency', 'Emergency'


class Disposition(models.TextChoices):
    """Outcome of an emergency visit."""
    DISCHARGED = 'discharged', 'Discharged'
    ADMITTED = 'admitted', 'Admitted'
    REFERRED = 'referred', 'Referred'
    OBSERVATION = 'observation', 'Observation'


VISIT_STATUS_TRANSITIONS = {
    VisitStatus.REGISTERED: (VisitStatus.WAITING, VisitStatus.CANCELLED),
    VisitStatus.WAITING: (VisitStatus.IN_EXAMINATION, VisitStatus.CANCELLED),
    # back to waiting: doctor not available
    VisitStatus.IN_EXAMINATION: (VisitStatus.EXAMINED, VisitStatus.WAITING, VisitStatus.CANCELLED),
    VisitStatus.EXAMINED: (VisitStatus.READY_FOR_BILLING, VisitStatus.IN_EXAMINATION, VisitStatus.CANCELLED),
    VisitStatus.READY_FOR_BILLING: (VisitStatus.BILLED, VisitStatus.CANCELLED),
    VisitStatus.BILLED: (VisitStatus.PAID, VisitStatus.CANCELLED),
    VisitStatus.PAID: (VisitStatus.COMPLETED,),
    VisitStatus.COMPLETED: (),
    VisitStatus.CANCELLED: (),
}

TERMINAL_STATUSES = frozenset({VisitStatus.COMPLETED, VisitStatus.CANCELLED})

# Administrative corrections, gated by the visits:override permission
BACKWARD_TRANSITIONS = frozenset({
    (VisitStatus.IN_EXAMINATION, VisitStatus.WAITING),
    (VisitStatus.EXAMINED, VisitStatus.IN_EXAMINATION),
})

BILLABLE_STATUSES = frozenset({VisitStatus.READY_FOR_BILLING, VisitStatus.BILLED})
RECORD_WRITABLE_STATUSES = frozenset({VisitStatus.IN_EXAMINATION, VisitStatus.EXAMINED})

# Charges land on the bill until it is taken; after that only payments move it
CHARGEABLE_STATUSES = frozenset({
    VisitStatus.REGISTERED,
    VisitStatus.WAITING,
    VisitStatus.IN_EXAMINATION,
    VisitStatus.EXAMINED,
    VisitStatus.READY_FOR_BILLING,
})
PAYABLE_STATUSES = frozenset({VisitStatus.BILLED, VisitStatus.PAID})

# Admission happens before the visit heads to billing
ADMITTABLE_STATUSES = frozenset({
    VisitStatus.REGISTERED,
    VisitStatus.WAITING,
    VisitStatus.IN_EXAMINATION,
    VisitStatus.EXAMINED,
})
ADMITTABLE_TYPES = frozenset({VisitType.OUTPATIENT, VisitType.EMERGENCY})

# Labels used at the front desk
STATUS_LABELS_ID = {
    VisitStatus.REGISTERED: 'Terdaftar',
    VisitStatus.WAITING: 'Menunggu',
    VisitStatus.IN_EXAMINATION: 'Sedang Diperiksa',
    VisitStatus.EXAMINED: 'Selesai Diperiksa',
    VisitStatus.READY_FOR_BILLING: 'Siap Ditagih',
    VisitStatus.BILLED: 'Sudah Ditagih',
    VisitStatus.PAID: 'Lunas',
    VisitStatus.COMPLETED: 'Selesai',
    VisitStatus.CANCELLED: 'Dibatalkan',
}

# Type alias: success carries the new status as value
TransitionResult = GuardResult


def _as_status(value):
    try:
        return VisitStatus(value)
    except ValueError:
        return None


def initial_status(visit_type) -> VisitStatus:
    """Status a new visit starts in. Same for every visit type today."""
    return VisitStatus.REGISTERED


def allowed_next_statuses(status) -> Tuple[VisitStatus, ...]:
    current = _as_status(status)
    if current is None:
        return ()
    return VISIT_STATUS_TRANSITIONS[current]


def is_terminal(status) -> bool:
    return status in TERMINAL_STATUSES


def transition(current, target) -> TransitionResult:
    """
    Decide whether current -> target is a legal edge.

    Success carries the new status. Failure carries TerminalStateViolation
    when current is terminal, otherwise InvalidTransition with the legal next
    statuses. Unknown status values are never legal.
    """
    allowed = tuple(s.value for s in allowed_next_statuses(current))

    if is_terminal(current):
        return GuardResult.deny(TerminalStateViolation(str(current), str(target)))

    new_status = _as_status(target)
    if new_status is None or new_status.value not in allowed:
        return GuardResult.deny(InvalidTransition(str(current), str(target), allowed))

    return GuardResult.allow(new_status)


def is_backward_transition(current, target) -> bool:
    return (current, target) in BACKWARD_TRANSITIONS


def can_create_billing(status) -> bool:
    return status in BILLABLE_STATUSES


def can_add_charges(status) -> bool:
    return status in CHARGEABLE_STATUSES


def can_transfer_to_inpatient(visit_type, status) -> bool:
    return visit_type in ADMITTABLE_TYPES and status in ADMITTABLE_STATUSES


def can_complete_visit(status) -> bool:
    return status == VisitStatus.PAID


def can_create_medical_record(status) -> bool:
    return status in RECORD_WRITABLE_STATUSES


def can_lock_medical_record(status) -> bool:
    return status == VisitStatus.EXAMINED


def status_label(status, language='en') -> str:
    """Display label for a status; language is 'en' or 'id'."""
    current = _as_status(status)
    if current is None:
        return str(status)
    if language == 'id':
        return STATUS_LABELS_ID[current]
    return current.label
