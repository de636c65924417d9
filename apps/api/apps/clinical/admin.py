from django.contrib import admin
from .models import (
    MedicalRecord, Diagnosis, Prescription, Procedure, VitalSigns, DischargeSummary, ClinicalAuditLog
)


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ['visit', 'record_type', 'author', 'author_role', 'is_draft', 'is_locked', 'created_at']
    list_filter = ['record_type', 'author_role', 'is_draft', 'is_locked']
    search_fields = ['visit__visit_number', 'author__email']
    readonly_fields = ['id', 'author', 'author_role', 'is_locked', 'locked_at', 'locked_by', 'created_at', 'updated_at']
    autocomplete_fields = ['visit']
    date_hierarchy = 'created_at'


@admin.register(Diagnosis)
class DiagnosisAdmin(admin.ModelAdmin):
    list_display = ['icd10_code', 'description', 'diagnosis_type', 'visit', 'created_by', 'created_at']
    list_filter = ['diagnosis_type']
    search_fields = ['icd10_code', 'description', 'visit__visit_number']
    readonly_fields = ['id', 'created_by', 'created_at', 'updated_at']


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ['drug_name', 'visit', 'quantity', 'unit_price', 'is_fulfilled', 'created_at']
    list_filter = ['is_fulfilled', 'route']
    search_fields = ['drug_name', 'visit__visit_number']
    readonly_fields = ['id', 'fulfilled_at', 'fulfilled_by', 'created_by', 'created_at', 'updated_at']
    autocomplete_fields = ['visit']


@admin.register(Procedure)
class ProcedureAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'visit', 'status', 'price', 'performed_at']
    list_filter = ['status']
    search_fields = ['name', 'code', 'visit__visit_number']
    readonly_fields = ['id', 'created_by', 'created_at', 'updated_at']
    autocomplete_fields = ['visit']


@admin.register(VitalSigns)
class VitalSignsAdmin(admin.ModelAdmin):
    list_display = ['visit', 'blood_pressure_systolic', 'blood_pressure_diastolic', 'pulse', 'temperature', 'created_at']
    search_fields = ['visit__visit_number']
    readonly_fields = ['id', 'recorded_by', 'created_at']
    autocomplete_fields = ['visit']


@admin.register(DischargeSummary)
class DischargeSummaryAdmin(admin.ModelAdmin):
    list_display = ['visit', 'discharge_condition', 'follow_up_date', 'created_at']
    search_fields = ['visit__visit_number']
    readonly_fields = ['id', 'created_by', 'created_at']
    autocomplete_fields = ['visit']


@admin.register(ClinicalAuditLog)
class ClinicalAuditLogAdmin(admin.ModelAdmin):
    """Read-only: the audit trail is append-only."""
    list_display = ['created_at', 'action', 'entity_type', 'entity_id', 'actor_user', 'visit']
    list_filter = ['action', 'entity_type']
    search_fields = ['entity_id', 'visit__visit_number', 'actor_user__email']
    readonly_fields = ['id', 'created_at', 'actor_user', 'action', 'entity_type', 'entity_id', 'visit', 'metadata']
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
