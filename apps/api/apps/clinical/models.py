"""
Clinical models: medical_record, diagnosis, prescription, procedure,
vital_signs, discharge_summary, clinical_audit_log
"""
import uuid

from django.conf import settings
from django.db import models

from apps.clinical.authoring import AuthorRole
from apps.core.observability import metrics


# ============================================================================
# Enums
# ============================================================================

class RecordType(models.TextChoices):
    INITIAL_CONSULTATION = 'initial_consultation', 'Initial Consultation'
    PROGRESS_NOTE = 'progress_note', 'Progress Note (CPPT)'
    DISCHARGE_SUMMARY = 'discharge_summary', 'Discharge Summary'
    PROCEDURE_NOTE = 'procedure_note', 'Procedure Note'


class ProcedureStatus(models.TextChoices):
    ORDERED = 'ordered', 'Ordered'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class DiagnosisType(models.TextChoices):
    PRIMARY = 'primary', 'Primary'
    SECONDARY = 'secondary', 'Secondary'


class AuditActionChoices(models.TextChoices):
    CREATE = 'create', 'Create'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'
    LOCK = 'lock', 'Lock'
    UNLOCK = 'unlock', 'Unlock'
    TRANSITION = 'transition', 'Status Transition'


class AuditEntityTypeChoices(models.TextChoices):
    VISIT = 'Visit', 'Visit'
    MEDICAL_RECORD = 'MedicalRecord', 'Medical Record'
    DIAGNOSIS = 'Diagnosis', 'Diagnosis'
    PRESCRIPTION = 'Prescription', 'Prescription'
    PROCEDURE = 'Procedure', 'Procedure'
    VITAL_SIGNS = 'VitalSigns', 'Vital Signs'
    DISCHARGE_SUMMARY = 'DischargeSummary', 'Discharge Summary'
    BILLING = 'Billing', 'Billing'
    PAYMENT = 'Payment', 'Payment'
    BILLING_ADJUSTMENT = 'BillingAdjustment', 'Billing Adjustment'
    MATERIAL_USAGE = 'MaterialUsage', 'Material Usage'
    BED_ASSIGNMENT = 'BedAssignment', 'Bed Assignment'
    SERVICE_CHARGE = 'ServiceCharge', 'Service Charge'


# ============================================================================
# Medical Records
# ============================================================================

class MedicalRecord(models.Model):
    """
    SOAP entry or CPPT progress note attached to a visit.

    BUSINESS RULES:
    - author and author_role come from the authenticated actor, never the client
    - nurses write progress_note / instructions only (apps.clinical.authoring)
    - edit within 2h of created_at, delete within 1h, never while the visit is locked
    - locking is one-way; only the audited unlock on the visit reverses it
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='medical_records'
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='authored_records'
    )
    author_role = models.CharField(max_length=10, choices=AuthorRole.choices)
    record_type = models.CharField(
        max_length=30,
        choices=RecordType.choices,
        default=RecordType.PROGRESS_NOTE
    )

    # SOAP (doctor only)
    soap_subjective = models.TextField(blank=True, default='')
    soap_objective = models.TextField(blank=True, default='')
    soap_assessment = models.TextField(blank=True, default='')
    soap_plan = models.TextField(blank=True, default='')

    # CPPT (doctor and nurse)
    progress_note = models.TextField(blank=True, default='')
    instructions = models.TextField(blank=True, default='')

    is_draft = models.BooleanField(default=True)
    is_locked = models.BooleanField(default=False)
    locked_at = models.DateTimeField(blank=True, null=True)
    locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='locked_records'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'medical_record'
        verbose_name = 'Medical Record'
        verbose_name_plural = 'Medical Records'
        indexes = [
            models.Index(fields=['visit'], name='idx_record_visit'),
            models.Index(fields=['created_at'], name='idx_record_created'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f'{self.get_record_type_display()} [{str(self.id)[:8]}] by {self.author_role}'


class Diagnosis(models.Model):
    """
    ICD-10 coded diagnosis on a visit, optionally tied to the record that
    made it. Written by doctors; follows the same lock gate and windows as
    the records.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='diagnoses'
    )
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='diagnoses'
    )
    icd10_code = models.CharField(max_length=10, help_text='ICD-10 code, e.g. A91')
    description = models.CharField(max_length=255)
    diagnosis_type = models.CharField(
        max_length=10,
        choices=DiagnosisType.choices,
        default=DiagnosisType.PRIMARY
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='diagnoses'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'diagnosis'
        verbose_name = 'Diagnosis'
        verbose_name_plural = 'Diagnoses'
        indexes = [
            models.Index(fields=['visit'], name='idx_diagnosis_visit'),
            models.Index(fields=['icd10_code'], name='idx_diagnosis_icd10'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f'{self.icd10_code} {self.description} ({self.diagnosis_type})'


class Prescription(models.Model):
    """
    Medication order. Fulfilled (dispensed) prescriptions are billed and can
    no longer be deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='prescriptions'
    )
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='prescriptions'
    )
    drug_name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=100)
    frequency = models.CharField(max_length=100)
    route = models.CharField(max_length=50, blank=True, default='oral')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    instructions = models.TextField(blank=True, default='')

    is_fulfilled = models.BooleanField(default=False)
    dispensed_quantity = models.PositiveIntegerField(blank=True, null=True)
    fulfilled_at = models.DateTimeField(blank=True, null=True)
    fulfilled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='fulfilled_prescriptions'
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='prescriptions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'prescription'
        verbose_name = 'Prescription'
        verbose_name_plural = 'Prescriptions'
        indexes = [
            models.Index(fields=['visit'], name='idx_prescription_visit'),
            models.Index(fields=['is_fulfilled'], name='idx_prescription_fulfilled'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f'{self.drug_name} x{self.quantity}'

    @property
    def billable_quantity(self):
        if self.dispensed_quantity is not None:
            return self.dispensed_quantity
        return self.quantity


class Procedure(models.Model):
    """Ordered or performed procedure. Only completed procedures are billed."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='procedures'
    )
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=20, blank=True, default='', help_text='ICD-9-CM procedure code')
    status = models.CharField(
        max_length=20,
        choices=ProcedureStatus.choices,
        default=ProcedureStatus.ORDERED
    )
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    notes = models.TextField(blank=True, default='')
    performed_at = models.DateTimeField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='procedures'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'procedure'
        verbose_name = 'Procedure'
        verbose_name_plural = 'Procedures'
        indexes = [
            models.Index(fields=['visit'], name='idx_procedure_visit'),
            models.Index(fields=['status'], name='idx_procedure_status'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f'{self.name} ({self.get_status_display()})'


class VitalSigns(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='vital_signs'
    )
    blood_pressure_systolic = models.PositiveSmallIntegerField(blank=True, null=True)
    blood_pressure_diastolic = models.PositiveSmallIntegerField(blank=True, null=True)
    pulse = models.PositiveSmallIntegerField(blank=True, null=True)
    temperature = models.DecimalField(max_digits=4, decimal_places=1, blank=True, null=True)
    respiratory_rate = models.PositiveSmallIntegerField(blank=True, null=True)
    oxygen_saturation = models.PositiveSmallIntegerField(blank=True, null=True)
    weight = models.DecimalField(max_digits=5, decimal_places=1, blank=True, null=True)
    height = models.DecimalField(max_digits=5, decimal_places=1, blank=True, null=True)
    notes = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='recorded_vitals'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'vital_signs'
        verbose_name = 'Vital Signs'
        verbose_name_plural = 'Vital Signs'
        indexes = [
            models.Index(fields=['visit'], name='idx_vitals_visit'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f'Vitals [{str(self.id)[:8]}] at {self.created_at}'


class DischargeSummary(models.Model):
    """
    Inpatient discharge summary. Issuing it locks the visit and moves it on
    to ready_for_billing.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField(
        'visits.Visit',
        on_delete=models.CASCADE,
        related_name='discharge_summary'
    )
    admission_diagnosis = models.TextField()
    discharge_diagnosis = models.TextField()
    hospital_course = models.TextField(blank=True, default='')
    discharge_condition = models.CharField(max_length=100, blank=True, default='')
    discharge_instructions = models.TextField(blank=True, default='')
    follow_up_date = models.DateField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='discharge_summaries'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'discharge_summary'
        verbose_name = 'Discharge Summary'
        verbose_name_plural = 'Discharge Summaries'

    def __str__(self):
        return f'Discharge summary [{str(self.visit_id)[:8]}]'


# ============================================================================
# Audit
# ============================================================================

class ClinicalAuditLog(models.Model):
    """
    Audit trail for clinical and workflow changes.

    Tracks who changed what and when. metadata holds changed field names,
    status transitions and unlock reasons; clinical text is never copied in.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='clinical_audit_logs',
        help_text='User who performed the action (null for system actions)'
    )

    action = models.CharField(
        max_length=10,
        choices=AuditActionChoices.choices
    )

    entity_type = models.CharField(
        max_length=50,
        choices=AuditEntityTypeChoices.choices
    )

    entity_id = models.UUIDField(
        help_text='UUID of the entity that was changed'
    )

    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='audit_logs',
        help_text='Related visit (if applicable)'
    )

    metadata = models.JSONField(default=dict)

    class Meta:
        db_table = 'clinical_audit_log'
        verbose_name = 'Clinical Audit Log'
        verbose_name_plural = 'Clinical Audit Logs'
        indexes = [
            models.Index(fields=['created_at'], name='idx_audit_created_at'),
            models.Index(fields=['actor_user'], name='idx_audit_actor'),
            models.Index(fields=['entity_type'], name='idx_audit_entity_type'),
            models.Index(fields=['entity_id'], name='idx_audit_entity_id'),
            models.Index(fields=['action'], name='idx_audit_action'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} on {self.entity_type}[{str(self.entity_id)[:8]}] by {actor}"


def log_clinical_audit(
    actor,
    instance,
    action,
    changed_fields=None,
    visit=None,
    request=None,
    **metadata_fields
):
    """
    Create a clinical audit log entry.

    Args:
        actor: User instance or None for system actions
        instance: The entity being audited
        action: AuditActionChoices value
        changed_fields: List of field names that changed (names only)
        visit: Visit instance (inferred from instance when omitted)
        request: Django request object (to capture IP/user-agent)
        **metadata_fields: Extra non-PHI metadata (from_status, reason, ...)

    Returns:
        ClinicalAuditLog instance
    """
    model_name = instance.__class__.__name__

    visit_id = None
    if visit is not None:
        visit_id = visit.pk
    elif model_name == 'Visit':
        visit_id = instance.pk
    elif hasattr(instance, 'visit_id'):
        visit_id = instance.visit_id

    metadata = dict(metadata_fields)
    if changed_fields:
        metadata['changed_fields'] = sorted(changed_fields)

    if request:
        metadata['request'] = {
            'ip': request.META.get('REMOTE_ADDR'),
            'user_agent': request.META.get('HTTP_USER_AGENT', '')[:200],
        }

    audit_log = ClinicalAuditLog.objects.create(
        actor_user=actor,
        action=action,
        entity_type=model_name,
        entity_id=instance.pk,
        visit_id=visit_id,
        metadata=metadata
    )

    metrics.clinical_auditlog_created_total.labels(model=model_name, action=action).inc()

    return audit_log
