"""
Clinical service layer.

Every write follows the same read-check-write shape:
1. Lock the owning visit (select_for_update)
2. Evaluate the guards (lock gate, status predicate, time window, authoring)
3. Write with the guard predicate repeated in the WHERE clause
4. Audit (ClinicalAuditLog) and emit lock signals after commit

A rejected guard raises PolicyViolationError; the transaction rolls back and
the API layer renders the violation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.billing.models import AdjustmentKindChoices, BillingAdjustment, Payment
from apps.clinical.authoring import (
    CLINICAL_CONTENT_FIELDS,
    DIAGNOSIS_FIELDS,
    strip_trust_fields,
    validate_authoring,
    validate_diagnosis_author,
)
from apps.clinical.guards import check_delete, check_edit, delete_window, edit_window, visit_lock_violation
from apps.clinical.models import (
    AuditActionChoices,
    Diagnosis,
    DischargeSummary,
    MedicalRecord,
    Prescription,
    Procedure,
    ProcedureStatus,
    RecordType,
    VitalSigns,
    log_clinical_audit,
)
from apps.clinical.signals import medical_record_locked, medical_record_unlocked
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_guard_rejected, log_lock_event
from apps.core.observability.tracing import trace_span
from apps.core.policy import (
    AlreadyFulfilled,
    MissingDisposition,
    PolicyViolationError,
    RecordNotFound,
    StatusRequired,
    UnlockBlocked,
)
from apps.visits.models import LockSource, Visit
from apps.visits.services import apply_transition, get_visit_for_update
from apps.visits.workflow import (
    RECORD_WRITABLE_STATUSES,
    VisitStatus,
    VisitType,
    can_create_medical_record,
    can_lock_medical_record,
    is_terminal,
)

logger = get_sanitized_logger(__name__)

RECORD_WRITABLE = tuple(s.value for s in VisitStatus if s in RECORD_WRITABLE_STATUSES)
OPEN_STATUSES = tuple(s.value for s in VisitStatus if not is_terminal(s))


# ============================================================================
# Guard helpers
# ============================================================================

def _reject(operation, violation, entity_type, entity_id=None):
    metrics.record_guard_rejections_total.labels(operation=operation, reason=violation.code).inc()
    log_guard_rejected(operation, violation, entity_type, entity_id)
    raise PolicyViolationError(violation)


def _require_unlocked(visit, operation, entity_type):
    violation = visit_lock_violation(visit)
    if violation is not None:
        _reject(operation, violation, entity_type, visit.pk)


def _require_record_status(visit, action, operation, entity_type):
    if not can_create_medical_record(visit.status):
        _reject(operation, StatusRequired(action, visit.status, RECORD_WRITABLE), entity_type, visit.pk)


def _require_open(visit, action, operation, entity_type):
    if is_terminal(visit.status):
        _reject(operation, StatusRequired(action, visit.status, OPEN_STATUSES), entity_type, visit.pk)


def _get_for_update(model, entity_id):
    try:
        return model.objects.select_for_update().get(pk=entity_id)
    except (model.DoesNotExist, ValueError, ValidationError):
        raise PolicyViolationError(RecordNotFound(entity=model._meta.verbose_name.lower(), entity_id=str(entity_id)))


def _guarded_edit(instance, operation, now):
    """Lock the owner visit, then evaluate the edit guard on instance."""
    visit = get_visit_for_update(instance.visit_id)
    result = check_edit(instance, now, visit)
    if not result:
        _reject(operation, result.violation, instance.__class__.__name__, instance.pk)
    return visit


def _guarded_delete(instance, operation, now):
    visit = get_visit_for_update(instance.visit_id)
    result = check_delete(instance, now, visit)
    if not result:
        _reject(operation, result.violation, instance.__class__.__name__, instance.pk)
    return visit


def _conditional_queryset(model, instance, window, now):
    """Rows still writable at `now`: inside the window and not locked."""
    qs = model.objects.filter(
        pk=instance.pk,
        created_at__gte=window.earliest_allowed_created_at(now),
        visit__is_locked=False,
    )
    if hasattr(instance, 'is_locked'):
        qs = qs.filter(is_locked=False)
    if hasattr(instance, 'is_fulfilled') and window.operation == 'delete':
        qs = qs.filter(is_fulfilled=False)
    return qs


def _recheck_after_race(instance, check, operation, now):
    """The conditional write matched nothing: report why from fresh state."""
    fresh = instance.__class__.objects.filter(pk=instance.pk).select_related('visit').first()
    result = check(fresh, now)
    violation = result.violation or RecordNotFound(entity_id=str(instance.pk))
    _reject(operation, violation, instance.__class__.__name__, instance.pk)


# ============================================================================
# Medical records
# ============================================================================

def create_medical_record(visit_id, user, actor, data: Dict[str, Any], request=None):
    """
    Create a SOAP / CPPT entry.

    author and author_role always come from `user` / `actor`; any values in
    `data` are discarded.
    """
    data = strip_trust_fields(data)

    with trace_span('medical_record_create', attributes={'visit_id': str(visit_id)}):
        with transaction.atomic():
            visit = get_visit_for_update(visit_id)
            _require_unlocked(visit, 'create_record', 'MedicalRecord')
            _require_record_status(visit, 'create a medical record', 'create_record', 'MedicalRecord')

            authoring = validate_authoring(actor.author_role, data)
            if not authoring:
                _reject('create_record', authoring.violation, 'MedicalRecord', visit.pk)
            author_role = authoring.value

            content = {field: data[field] for field in CLINICAL_CONTENT_FIELDS if data.get(field)}
            record = MedicalRecord.objects.create(
                visit=visit,
                author=user,
                author_role=author_role,
                record_type=data.get('record_type') or RecordType.PROGRESS_NOTE,
                is_draft=data.get('is_draft', True),
                **content
            )

            log_clinical_audit(
                user, record, AuditActionChoices.CREATE,
                changed_fields=list(content), request=request, author_role=author_role.value,
            )

    return record


def update_medical_record(record_id, user, actor, data: Dict[str, Any], now: Optional[datetime] = None, request=None):
    """Edit a record inside its edit window while the visit is unlocked."""
    now = now or timezone.now()
    data = strip_trust_fields(data)

    with transaction.atomic():
        record = _get_for_update(MedicalRecord, record_id)
        _guarded_edit(record, 'edit_record', now)

        authoring = validate_authoring(actor.author_role, data, existing=record)
        if not authoring:
            _reject('edit_record', authoring.violation, 'MedicalRecord', record.pk)

        changes = {field: data[field] for field in CLINICAL_CONTENT_FIELDS if field in data}
        if 'record_type' in data:
            changes['record_type'] = data['record_type']
        if 'is_draft' in data:
            changes['is_draft'] = data['is_draft']

        changed_fields = [f for f, value in changes.items() if getattr(record, f) != value]
        if changed_fields:
            changes['updated_at'] = now
            updated = _conditional_queryset(MedicalRecord, record, edit_window(), now).update(**changes)
            if updated == 0:
                _recheck_after_race(record, check_edit, 'edit_record', now)

            log_clinical_audit(
                user, record, AuditActionChoices.UPDATE,
                changed_fields=changed_fields, request=request,
            )

    record.refresh_from_db()
    return record


def delete_medical_record(record_id, user, now: Optional[datetime] = None, request=None):
    now = now or timezone.now()

    with transaction.atomic():
        record = _get_for_update(MedicalRecord, record_id)
        _guarded_delete(record, 'delete_record', now)

        deleted, _ = _conditional_queryset(MedicalRecord, record, delete_window(), now).delete()
        if deleted == 0:
            _recheck_after_race(record, check_delete, 'delete_record', now)

        log_clinical_audit(user, record, AuditActionChoices.DELETE, request=request, record_type=record.record_type)


def lock_medical_record(
    record_id,
    user,
    billing_adjustment: Optional[Decimal] = None,
    adjustment_note: str = '',
    now: Optional[datetime] = None,
    request=None,
):
    """
    Finalize a record and lock its visit.

    BUSINESS RULES:
    - the visit must be `examined`
    - emergency visits need a disposition first
    - the visit advances examined -> ready_for_billing
    - an optional signed billing adjustment is recorded with its note
      (positive = surcharge, negative = discount)
    """
    now = now or timezone.now()

    with trace_span('medical_record_lock', attributes={'record_id': str(record_id)}):
        with transaction.atomic():
            record = _get_for_update(MedicalRecord, record_id)
            visit = get_visit_for_update(record.visit_id)

            _require_unlocked(visit, 'lock_record', 'MedicalRecord')
            if not can_lock_medical_record(visit.status):
                _reject(
                    'lock_record',
                    StatusRequired('lock the medical record', visit.status, (VisitStatus.EXAMINED.value,)),
                    'MedicalRecord', record.pk,
                )
            if visit.visit_type == VisitType.EMERGENCY and not visit.disposition:
                _reject('lock_record', MissingDisposition(str(visit.pk)), 'MedicalRecord', record.pk)

            MedicalRecord.objects.filter(pk=record.pk).update(
                is_locked=True, is_draft=False, locked_at=now, locked_by=user, updated_at=now,
            )
            _lock_visit(visit, LockSource.FINALIZED_RECORD, user, now)

            if billing_adjustment:
                if not adjustment_note:
                    raise ValidationError({'adjustment_note': 'A note is required with a billing adjustment'})
                adjustment = BillingAdjustment.objects.create(
                    visit=visit,
                    kind=AdjustmentKindChoices.SURCHARGE if billing_adjustment > 0 else AdjustmentKindChoices.DISCOUNT,
                    amount=abs(billing_adjustment),
                    justification=adjustment_note,
                    created_by=user,
                )
                log_clinical_audit(user, adjustment, AuditActionChoices.CREATE, request=request, kind=adjustment.kind)

            log_clinical_audit(user, record, AuditActionChoices.LOCK, request=request, lock_source=LockSource.FINALIZED_RECORD.value)

            apply_transition(visit.pk, VisitStatus.READY_FOR_BILLING, user=user, now=now, request=request)

    record.refresh_from_db()
    return record


def _lock_visit(visit, source, user, now):
    Visit.objects.filter(pk=visit.pk).update(
        is_locked=True, lock_source=source, locked_at=now, locked_by=user, updated_at=now,
    )
    metrics.medical_record_lock_total.labels(action='lock', source=source).inc()

    user_id = str(user.pk) if user else None
    transaction.on_commit(lambda: medical_record_locked.send(
        sender=MedicalRecord,
        visit_id=str(visit.pk),
        source=str(source),
        actor_user_id=user_id,
    ))
    transaction.on_commit(lambda: log_lock_event(visit.pk, 'locked', str(source), user_id))


def unlock_visit(visit_id, user, reason: str, request=None):
    """
    Audited reversal of a lock.

    Clears the lock flags on the visit and its records. The visit status is
    left unchanged. Refused once any payment exists.
    """
    if not reason or not reason.strip():
        raise ValidationError({'reason': 'An unlock reason is required'})

    with transaction.atomic():
        visit = get_visit_for_update(visit_id)

        if not visit.is_locked:
            _reject('unlock', UnlockBlocked('Visit is not locked'), 'Visit', visit.pk)
        if Payment.objects.filter(visit=visit).exists():
            _reject('unlock', UnlockBlocked('Payments have been recorded for this visit'), 'Visit', visit.pk)

        previous_source = visit.lock_source
        Visit.objects.filter(pk=visit.pk).update(
            is_locked=False, lock_source=None, locked_at=None, locked_by=None, updated_at=timezone.now(),
        )
        MedicalRecord.objects.filter(visit=visit, is_locked=True).update(
            is_locked=False, locked_at=None, locked_by=None,
        )

        audit_log = log_clinical_audit(
            user, visit, AuditActionChoices.UNLOCK,
            request=request, reason=reason, previous_lock_source=previous_source, status=visit.status,
        )
        metrics.medical_record_lock_total.labels(action='unlock', source=previous_source or 'unknown').inc()

        user_id = str(user.pk) if user else None
        transaction.on_commit(lambda: medical_record_unlocked.send(
            sender=MedicalRecord,
            visit_id=str(visit.pk),
            actor_user_id=user_id,
            audit_log_id=str(audit_log.pk),
        ))
        transaction.on_commit(lambda: log_lock_event(visit.pk, 'unlocked', previous_source, user_id))

    visit.refresh_from_db()
    return visit


# ============================================================================
# Diagnoses
# ============================================================================

def _require_diagnosis_author(actor, operation, entity_id):
    authoring = validate_diagnosis_author(actor.author_role)
    if not authoring:
        _reject(operation, authoring.violation, 'Diagnosis', entity_id)


def create_diagnosis(visit_id, user, actor, data: Dict[str, Any], request=None):
    """Add an ICD-10 diagnosis. Refused once the visit is locked."""
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_unlocked(visit, 'create_diagnosis', 'Diagnosis')
        _require_record_status(visit, 'add a diagnosis', 'create_diagnosis', 'Diagnosis')
        _require_diagnosis_author(actor, 'create_diagnosis', visit.pk)

        record = data.get('medical_record')
        if record is not None and record.visit_id != visit.pk:
            raise ValidationError({'medical_record': 'Record belongs to another visit'})

        diagnosis = Diagnosis.objects.create(
            visit=visit,
            created_by=user,
            **{k: v for k, v in strip_trust_fields(data).items() if k != 'visit'}
        )
        log_clinical_audit(
            user, diagnosis, AuditActionChoices.CREATE,
            request=request, icd10_code=diagnosis.icd10_code, diagnosis_type=diagnosis.diagnosis_type,
        )

    return diagnosis


def update_diagnosis(diagnosis_id, user, actor, data: Dict[str, Any], now: Optional[datetime] = None, request=None):
    now = now or timezone.now()

    with transaction.atomic():
        diagnosis = _get_for_update(Diagnosis, diagnosis_id)
        _guarded_edit(diagnosis, 'edit_diagnosis', now)
        _require_diagnosis_author(actor, 'edit_diagnosis', diagnosis.pk)

        changes = {field: data[field] for field in DIAGNOSIS_FIELDS if field in data}
        changed_fields = [f for f, value in changes.items() if getattr(diagnosis, f) != value]
        if changed_fields:
            changes['updated_at'] = now
            updated = _conditional_queryset(Diagnosis, diagnosis, edit_window(), now).update(**changes)
            if updated == 0:
                _recheck_after_race(diagnosis, check_edit, 'edit_diagnosis', now)
            log_clinical_audit(user, diagnosis, AuditActionChoices.UPDATE, changed_fields=changed_fields, request=request)

    diagnosis.refresh_from_db()
    return diagnosis


def delete_diagnosis(diagnosis_id, user, actor, now: Optional[datetime] = None, request=None):
    now = now or timezone.now()

    with transaction.atomic():
        diagnosis = _get_for_update(Diagnosis, diagnosis_id)
        _guarded_delete(diagnosis, 'delete_diagnosis', now)
        _require_diagnosis_author(actor, 'delete_diagnosis', diagnosis.pk)

        deleted, _ = _conditional_queryset(Diagnosis, diagnosis, delete_window(), now).delete()
        if deleted == 0:
            _recheck_after_race(diagnosis, check_delete, 'delete_diagnosis', now)

        log_clinical_audit(user, diagnosis, AuditActionChoices.DELETE, request=request, icd10_code=diagnosis.icd10_code)


# ============================================================================
# Discharge summary
# ============================================================================

def create_discharge_summary(visit_id, user, data: Dict[str, Any], now: Optional[datetime] = None, request=None):
    """
    Issue the inpatient discharge summary.

    Locks the visit (source discharge_summary) and walks the status to
    ready_for_billing, validating each step.
    """
    now = now or timezone.now()

    with trace_span('discharge_summary_create', attributes={'visit_id': str(visit_id)}):
        with transaction.atomic():
            visit = get_visit_for_update(visit_id)

            if visit.visit_type != VisitType.INPATIENT:
                raise ValidationError({'visit': 'Discharge summaries are only issued for inpatient visits'})
            _require_unlocked(visit, 'create_discharge_summary', 'DischargeSummary')
            _require_record_status(visit, 'issue a discharge summary', 'create_discharge_summary', 'DischargeSummary')
            if DischargeSummary.objects.filter(visit=visit).exists():
                raise ValidationError({'visit': 'A discharge summary already exists for this visit'})

            summary = DischargeSummary.objects.create(
                visit=visit,
                created_by=user,
                **{k: v for k, v in strip_trust_fields(data).items() if k != 'visit'}
            )
            log_clinical_audit(user, summary, AuditActionChoices.CREATE, request=request)

            MedicalRecord.objects.filter(visit=visit, is_locked=False).update(
                is_locked=True, is_draft=False, locked_at=now, locked_by=user,
            )
            _lock_visit(visit, LockSource.DISCHARGE_SUMMARY, user, now)
            log_clinical_audit(user, visit, AuditActionChoices.LOCK, request=request, lock_source=LockSource.DISCHARGE_SUMMARY.value)

            if visit.status == VisitStatus.IN_EXAMINATION:
                apply_transition(visit.pk, VisitStatus.EXAMINED, user=user, now=now, request=request)
            apply_transition(visit.pk, VisitStatus.READY_FOR_BILLING, user=user, now=now, request=request)

    return summary


# ============================================================================
# Prescriptions
# ============================================================================

def create_prescription(visit_id, user, data: Dict[str, Any], request=None):
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_unlocked(visit, 'create_prescription', 'Prescription')
        _require_record_status(visit, 'prescribe', 'create_prescription', 'Prescription')

        prescription = Prescription.objects.create(
            visit=visit,
            created_by=user,
            **{k: v for k, v in data.items() if k != 'visit'}
        )
        log_clinical_audit(user, prescription, AuditActionChoices.CREATE, request=request)

    return prescription


def delete_prescription(prescription_id, user, now: Optional[datetime] = None, request=None):
    """Delete inside the delete window; dispensed prescriptions stay."""
    now = now or timezone.now()

    with transaction.atomic():
        prescription = _get_for_update(Prescription, prescription_id)
        _guarded_delete(prescription, 'delete_prescription', now)

        deleted, _ = _conditional_queryset(Prescription, prescription, delete_window(), now).delete()
        if deleted == 0:
            _recheck_after_race(prescription, check_delete, 'delete_prescription', now)

        log_clinical_audit(user, prescription, AuditActionChoices.DELETE, request=request)


def fulfill_prescription(prescription_id, user, dispensed_quantity: Optional[int] = None, now=None, request=None):
    """
    Pharmacy dispensing. Not subject to the visit lock: dispensing normally
    happens after the doctor has finalized the record.
    """
    now = now or timezone.now()

    with transaction.atomic():
        prescription = _get_for_update(Prescription, prescription_id)
        visit = get_visit_for_update(prescription.visit_id)
        _require_open(visit, 'fulfill a prescription', 'fulfill_prescription', 'Prescription')

        if prescription.is_fulfilled:
            _reject('fulfill_prescription', AlreadyFulfilled(str(prescription.pk)), 'Prescription', prescription.pk)

        quantity = dispensed_quantity if dispensed_quantity is not None else prescription.quantity
        updated = Prescription.objects.filter(pk=prescription.pk, is_fulfilled=False).update(
            is_fulfilled=True,
            dispensed_quantity=quantity,
            fulfilled_at=now,
            fulfilled_by=user,
            updated_at=now,
        )
        if updated == 0:
            _reject('fulfill_prescription', AlreadyFulfilled(str(prescription.pk)), 'Prescription', prescription.pk)

        log_clinical_audit(
            user, prescription, AuditActionChoices.UPDATE,
            changed_fields=['is_fulfilled', 'dispensed_quantity'], request=request,
        )

    prescription.refresh_from_db()
    return prescription


# ============================================================================
# Procedures
# ============================================================================

def create_procedure(visit_id, user, data: Dict[str, Any], request=None):
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_unlocked(visit, 'create_procedure', 'Procedure')
        _require_record_status(visit, 'order a procedure', 'create_procedure', 'Procedure')

        procedure = Procedure.objects.create(
            visit=visit,
            created_by=user,
            **{k: v for k, v in data.items() if k != 'visit'}
        )
        log_clinical_audit(user, procedure, AuditActionChoices.CREATE, request=request)

    return procedure


def update_procedure(procedure_id, user, data: Dict[str, Any], now: Optional[datetime] = None, request=None):
    """
    Update a procedure (typically its status). Completing it stamps
    performed_at. Subject to the lock gate only: a procedure ordered hours ago
    is still performed later.
    """
    now = now or timezone.now()

    with transaction.atomic():
        procedure = _get_for_update(Procedure, procedure_id)
        visit = get_visit_for_update(procedure.visit_id)
        _require_unlocked(visit, 'edit_procedure', 'Procedure')

        changes = {k: v for k, v in data.items() if k not in ('visit', 'created_by')}
        if changes.get('status') == ProcedureStatus.COMPLETED and not procedure.performed_at:
            changes.setdefault('performed_at', now)

        changed_fields = [f for f, value in changes.items() if getattr(procedure, f) != value]
        if changed_fields:
            changes['updated_at'] = now
            updated = Procedure.objects.filter(pk=procedure.pk, visit__is_locked=False).update(**changes)
            if updated == 0:
                fresh_visit = Visit.objects.filter(pk=visit.pk).first()
                violation = visit_lock_violation(fresh_visit) or RecordNotFound(entity='procedure', entity_id=str(procedure.pk))
                _reject('edit_procedure', violation, 'Procedure', procedure.pk)
            log_clinical_audit(user, procedure, AuditActionChoices.UPDATE, changed_fields=changed_fields, request=request)

    procedure.refresh_from_db()
    return procedure


def delete_procedure(procedure_id, user, now: Optional[datetime] = None, request=None):
    now = now or timezone.now()

    with transaction.atomic():
        procedure = _get_for_update(Procedure, procedure_id)
        _guarded_delete(procedure, 'delete_procedure', now)

        deleted, _ = _conditional_queryset(Procedure, procedure, delete_window(), now).delete()
        if deleted == 0:
            _recheck_after_race(procedure, check_delete, 'delete_procedure', now)

        log_clinical_audit(user, procedure, AuditActionChoices.DELETE, request=request)


# ============================================================================
# Vital signs
# ============================================================================

def record_vital_signs(visit_id, user, data: Dict[str, Any], request=None):
    """Vitals are taken from triage onwards, so only terminal visits refuse them."""
    with transaction.atomic():
        visit = get_visit_for_update(visit_id)
        _require_unlocked(visit, 'record_vitals', 'VitalSigns')
        _require_open(visit, 'record vital signs', 'record_vitals', 'VitalSigns')

        vitals = VitalSigns.objects.create(
            visit=visit,
            recorded_by=user,
            **{k: v for k, v in data.items() if k != 'visit'}
        )
        log_clinical_audit(user, vitals, AuditActionChoices.CREATE, request=request)

    return vitals


def delete_vital_signs(vitals_id, user, now: Optional[datetime] = None, request=None):
    now = now or timezone.now()

    with transaction.atomic():
        vitals = _get_for_update(VitalSigns, vitals_id)
        _guarded_delete(vitals, 'delete_vitals', now)

        deleted, _ = _conditional_queryset(VitalSigns, vitals, delete_window(), now).delete()
        if deleted == 0:
            _recheck_after_race(vitals, check_delete, 'delete_vitals', now)

        log_clinical_audit(user, vitals, AuditActionChoices.DELETE, request=request)
