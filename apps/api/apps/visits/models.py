"""
Visit model.

A visit is one patient encounter with the clinic (outpatient, inpatient or
emergency). Its status only moves along the edges in apps.visits.workflow,
and only through apps.visits.services.
"""
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.visits.workflow import (
    Disposition,
    VisitStatus,
    VisitType,
    allowed_next_statuses,
    is_terminal,
)


class LockSource(models.TextChoices):
    FINALIZED_RECORD = 'finalized_record', 'Finalized medical record'
    DISCHARGE_SUMMARY = 'discharge_summary', 'Discharge summary'


def generate_visit_number():
    return f'V{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}'


class Visit(models.Model):
    """
    Patient visit.

    BUSINESS RULES:
    - status follows the transition table; terminal visits never change
    - start_time is stamped on first entry to in_examination
    - end_time is stamped on completed / cancelled
    - while is_locked, clinical entries of the visit are read-only
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit_number = models.CharField(max_length=32, unique=True, default=generate_visit_number)
    # Patient registry is an external collaborator
    patient_name = models.CharField(max_length=255)
    patient_reference = models.CharField(
        max_length=64,
        blank=True,
        help_text='Medical record number in the patient registry'
    )
    visit_type = models.CharField(max_length=20, choices=VisitType.choices)
    status = models.CharField(
        max_length=20,
        choices=VisitStatus.choices,
        default=VisitStatus.REGISTERED
    )

    arrival_time = models.DateTimeField(default=timezone.now)
    start_time = models.DateTimeField(blank=True, null=True)
    end_time = models.DateTimeField(blank=True, null=True)

    disposition = models.CharField(
        max_length=20,
        choices=Disposition.choices,
        blank=True,
        null=True,
        help_text='Required before an emergency visit can be locked'
    )
    cancellation_reason = models.TextField(blank=True, null=True)

    # Lock gate
    is_locked = models.BooleanField(default=False)
    lock_source = models.CharField(
        max_length=30,
        choices=LockSource.choices,
        blank=True,
        null=True
    )
    locked_at = models.DateTimeField(blank=True, null=True)
    locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='locked_visits'
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='registered_visits'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visit'
        verbose_name = 'Visit'
        verbose_name_plural = 'Visits'
        indexes = [
            models.Index(fields=['status'], name='idx_visit_status'),
            models.Index(fields=['visit_type'], name='idx_visit_type'),
            models.Index(fields=['arrival_time'], name='idx_visit_arrival'),
        ]
        ordering = ['-arrival_time']

    def __str__(self):
        return f'{self.visit_number} ({self.get_status_display()})'

    @property
    def is_terminal(self):
        return is_terminal(self.status)

    @property
    def allowed_next_statuses(self):
        return [s.value for s in allowed_next_statuses(self.status)]
