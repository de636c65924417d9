from django.contrib import admin
from .models import Visit


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    """Status and lock state change only through the workflow services."""
    list_display = ['visit_number', 'patient_name', 'visit_type', 'status', 'is_locked', 'arrival_time']
    list_filter = ['visit_type', 'status', 'is_locked', 'disposition']
    search_fields = ['visit_number', 'patient_name', 'patient_reference']
    readonly_fields = [
        'id', 'visit_number', 'status', 'start_time', 'end_time', 'cancellation_reason',
        'is_locked', 'lock_source', 'locked_at', 'locked_by', 'created_by', 'created_at', 'updated_at',
    ]
    date_hierarchy = 'arrival_time'

    fieldsets = (
        ('Visit', {
            'fields': ('id', 'visit_number', 'patient_name', 'patient_reference', 'visit_type', 'disposition')
        }),
        ('Workflow', {
            'fields': ('status', 'arrival_time', 'start_time', 'end_time', 'cancellation_reason')
        }),
        ('Lock', {
            'fields': ('is_locked', 'lock_source', 'locked_at', 'locked_by')
        }),
        ('Audit', {
            'fields': ('created_by', 'created_at', 'updated_at')
        }),
    )
