"""
Visit workflow service layer.

Every status change goes through apply_transition():
1. Lock the visit row (select_for_update)
2. Validate the edge (apps.visits.workflow.transition)
3. Run the edge's guards (override permission, billing gate, reversal check)
4. Write status + timestamps in one conditional UPDATE
5. Audit, log, count, and emit visit_status_changed after commit

All operations are atomic; a rejected guard raises PolicyViolationError and
rolls the whole transaction back.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.billing.gate import check_discharge
from apps.billing.models import BedAssignment, Billing, Payment
from apps.clinical.models import AuditActionChoices, log_clinical_audit
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_visit_transition
from apps.core.observability.tracing import trace_span
from apps.core.policy import (
    CancellationRequiresReversal,
    InvalidTransition,
    OverrideRequired,
    PolicyViolationError,
    StatusRequired,
    VisitLocked,
    VisitNotFound,
)
from apps.visits.models import Visit
from apps.visits.signals import visit_status_changed
from apps.visits.workflow import (
    ADMITTABLE_STATUSES,
    ADMITTABLE_TYPES,
    BILLABLE_STATUSES,
    Disposition,
    VisitStatus,
    VisitType,
    allowed_next_statuses,
    initial_status,
    is_backward_transition,
    is_terminal,
    transition,
)

logger = get_sanitized_logger(__name__)

OVERRIDE_PERMISSION = 'visits:override'


def get_visit_for_update(visit_id) -> Visit:
    """Lock and return the visit, or raise VisitNotFound."""
    try:
        return Visit.objects.select_for_update().get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, DjangoValidationError):
        raise PolicyViolationError(VisitNotFound(entity_id=str(visit_id)))


def paid_amount(visit) -> Decimal:
    return Payment.objects.filter(visit=visit).aggregate(total=Sum('amount'))['total'] or Decimal('0')


def register_visit(
    patient_name: str,
    visit_type: str,
    created_by=None,
    patient_reference: str = '',
    arrival_time: Optional[datetime] = None,
    request=None,
) -> Visit:
    """Register a new visit in its initial status."""
    with transaction.atomic():
        visit = Visit.objects.create(
            patient_name=patient_name,
            patient_reference=patient_reference,
            visit_type=visit_type,
            status=initial_status(visit_type),
            arrival_time=arrival_time or timezone.now(),
            created_by=created_by,
        )
        log_clinical_audit(created_by, visit, AuditActionChoices.CREATE, request=request)

    logger.info(
        'Visit registered',
        extra={
            'event': 'visit.registered',
            'visit_id': str(visit.id),
            'visit_type': visit_type,
        }
    )
    return visit


def _reject(visit, target, violation):
    metrics.visit_transition_total.labels(
        from_status=visit.status,
        to_status=str(target),
        result='rejected',
    ).inc()
    log_visit_transition(visit.id, visit.status, str(target), result='rejected', reason=violation.code)
    raise PolicyViolationError(violation)


def _edge_guards(visit, target, actor, now):
    """Guards attached to individual edges, on top of the edge table."""
    if is_backward_transition(visit.status, target):
        if actor is None or not actor.has_permission(OVERRIDE_PERMISSION):
            return OverrideRequired(visit.status, str(target), OVERRIDE_PERMISSION)

    if target in (VisitStatus.PAID, VisitStatus.COMPLETED):
        result = check_discharge(visit.pk, now)
        if not result:
            return result.violation

    if target == VisitStatus.CANCELLED and visit.status in BILLABLE_STATUSES:
        paid = paid_amount(visit)
        if paid > 0:
            return CancellationRequiresReversal(paid)

    return None


@metrics.track_duration(metrics.visit_transition_duration_seconds)
def apply_transition(
    visit_id,
    target,
    user=None,
    actor=None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    request=None,
) -> Visit:
    """
    Move a visit to `target`.

    Args:
        visit_id: Visit UUID
        target: VisitStatus value
        user: User performing the transition (for audit)
        actor: apps.authz.actor.Actor, needed for override edges
        reason: Cancellation reason / free-text note
        now: Evaluation instant (defaults to timezone.now())

    Returns:
        The refreshed Visit

    Raises:
        PolicyViolationError: InvalidTransition, TerminalStateViolation,
            OverrideRequired, DischargeBlocked, CancellationRequiresReversal,
            VisitNotFound
    """
    now = now or timezone.now()

    with trace_span('visit_transition', attributes={'visit_id': str(visit_id), 'to_status': str(target)}):
        with transaction.atomic():
            visit = get_visit_for_update(visit_id)
            from_status = visit.status

            result = transition(from_status, target)
            if not result:
                _reject(visit, target, result.violation)
            new_status = result.value

            violation = _edge_guards(visit, new_status, actor, now)
            if violation is not None:
                _reject(visit, target, violation)

            updates = {'status': new_status, 'updated_at': now}
            if new_status == VisitStatus.IN_EXAMINATION and visit.start_time is None:
                updates['start_time'] = now
            if is_terminal(new_status):
                updates['end_time'] = now
            if new_status == VisitStatus.CANCELLED:
                updates['cancellation_reason'] = reason or ''

            # Conditional write: a concurrent writer that moved the status wins
            updated = Visit.objects.filter(pk=visit.pk, status=from_status).update(**updates)
            if updated == 0:
                fresh_status = Visit.objects.filter(pk=visit.pk).values_list('status', flat=True).first()
                fresh_result = transition(fresh_status, new_status)
                _reject(visit, target, fresh_result.violation or InvalidTransition(
                    str(fresh_status),
                    str(new_status),
                    tuple(s.value for s in allowed_next_statuses(fresh_status)),
                ))

            if new_status == VisitStatus.CANCELLED:
                Billing.objects.filter(visit=visit, is_void=False).update(is_void=True, voided_at=now)
                BedAssignment.objects.filter(visit=visit, discharged_at__isnull=True).update(discharged_at=now)

            log_clinical_audit(
                user,
                visit,
                AuditActionChoices.TRANSITION,
                request=request,
                from_status=from_status,
                to_status=new_status.value,
                backward=is_backward_transition(from_status, new_status),
            )

            actor_user_id = str(user.pk) if user else None
            transaction.on_commit(lambda: visit_status_changed.send(
                sender=Visit,
                visit_id=str(visit.pk),
                from_status=from_status,
                to_status=new_status.value,
                actor_user_id=actor_user_id,
            ))

    metrics.visit_transition_total.labels(
        from_status=from_status,
        to_status=new_status.value,
        result='success',
    ).inc()
    log_visit_transition(visit.id, from_status, new_status.value)

    visit.refresh_from_db()
    return visit


def complete_visit(visit_id, user=None, actor=None, now=None, request=None) -> Visit:
    """paid -> completed, gated by the billing gate."""
    return apply_transition(visit_id, VisitStatus.COMPLETED, user=user, actor=actor, now=now, request=request)


def cancel_visit(visit_id, user=None, actor=None, reason=None, now=None, request=None) -> Visit:
    """
    Cancel a visit.

    After billing, cancellation is only allowed while no payment has been
    recorded; the bill snapshot is voided.
    """
    return apply_transition(
        visit_id, VisitStatus.CANCELLED, user=user, actor=actor, reason=reason, now=now, request=request
    )


def set_disposition(visit_id, disposition, user=None, request=None) -> Visit:
    """Record the outcome of an emergency visit before its record is locked."""
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)

        if visit.is_locked:
            raise PolicyViolationError(VisitLocked(str(visit.pk), visit.lock_source, visit.locked_at))
        if is_terminal(visit.status):
            raise PolicyViolationError(StatusRequired(
                'set the disposition',
                visit.status,
                tuple(s.value for s in VisitStatus if not is_terminal(s)),
            ))

        previous = visit.disposition
        visit.disposition = disposition
        visit.save(update_fields=['disposition', 'updated_at'])

        log_clinical_audit(
            user,
            visit,
            AuditActionChoices.UPDATE,
            changed_fields=['disposition'],
            request=request,
            previous_disposition=previous,
            disposition=disposition,
        )

    return visit


def transfer_to_inpatient(visit_id, user=None, reason=None, request=None) -> Visit:
    """
    Admit an outpatient or emergency visit.

    Only allowed before the record is locked and before the visit heads to
    billing. The visit keeps its number and status; an emergency visit gets
    the admitted disposition.
    """
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)

        if visit.is_locked:
            raise PolicyViolationError(VisitLocked(str(visit.pk), visit.lock_source, visit.locked_at))
        if visit.visit_type not in ADMITTABLE_TYPES:
            raise DjangoValidationError({'visit_type': f'A {visit.visit_type} visit cannot be admitted'})
        if visit.status not in ADMITTABLE_STATUSES:
            raise PolicyViolationError(StatusRequired(
                'admit the patient',
                visit.status,
                tuple(s.value for s in VisitStatus if s in ADMITTABLE_STATUSES),
            ))

        previous_type = visit.visit_type
        visit.visit_type = VisitType.INPATIENT
        changed_fields = ['visit_type']
        if previous_type == VisitType.EMERGENCY:
            visit.disposition = Disposition.ADMITTED
            changed_fields.append('disposition')
        visit.save(update_fields=changed_fields + ['updated_at'])

        log_clinical_audit(
            user,
            visit,
            AuditActionChoices.UPDATE,
            changed_fields=changed_fields,
            request=request,
            previous_type=previous_type,
            visit_type=VisitType.INPATIENT.value,
            reason=reason,
        )

    logger.info(
        'Visit transferred to inpatient',
        extra={'visit_id': str(visit.pk), 'previous_type': previous_type},
    )
    return visit
