from django.contrib import admin
from .models import (
    Room, BedAssignment, MaterialUsage, ServiceCharge, BillingAdjustment, Payment, Billing
)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['room_number', 'room_type', 'daily_rate', 'bed_count', 'is_active']
    list_filter = ['room_type', 'is_active']
    search_fields = ['room_number']
    readonly_fields = ['id', 'created_at']


@admin.register(BedAssignment)
class BedAssignmentAdmin(admin.ModelAdmin):
    list_display = ['visit', 'room', 'bed_number', 'assigned_at', 'discharged_at']
    list_filter = ['room__room_type']
    search_fields = ['visit__visit_number', 'room__room_number']
    readonly_fields = ['id', 'assigned_by']
    autocomplete_fields = ['visit', 'room']


@admin.register(MaterialUsage)
class MaterialUsageAdmin(admin.ModelAdmin):
    list_display = ['name', 'visit', 'quantity', 'unit_price', 'used_at']
    search_fields = ['name', 'visit__visit_number']
    readonly_fields = ['id', 'recorded_by', 'created_at']
    autocomplete_fields = ['visit']


@admin.register(ServiceCharge)
class ServiceChargeAdmin(admin.ModelAdmin):
    list_display = ['name', 'visit', 'quantity', 'unit_price', 'created_at']
    search_fields = ['name', 'visit__visit_number']
    readonly_fields = ['id', 'created_by', 'created_at']
    autocomplete_fields = ['visit']


@admin.register(BillingAdjustment)
class BillingAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['visit', 'kind', 'amount', 'created_by', 'created_at']
    list_filter = ['kind']
    search_fields = ['visit__visit_number', 'justification']
    readonly_fields = ['id', 'created_by', 'created_at']
    autocomplete_fields = ['visit']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['visit', 'amount', 'method', 'reference', 'received_by', 'received_at']
    list_filter = ['method']
    search_fields = ['visit__visit_number', 'reference']
    readonly_fields = ['id', 'change_given', 'received_by']
    autocomplete_fields = ['visit']
    date_hierarchy = 'received_at'


@admin.register(Billing)
class BillingAdmin(admin.ModelAdmin):
    list_display = ['visit', 'total_due', 'currency', 'is_void', 'created_at']
    list_filter = ['is_void', 'currency']
    search_fields = ['visit__visit_number']
    readonly_fields = [
        'id', 'subtotal', 'discount_total', 'insurance_total', 'surcharge_total', 'total_due',
        'is_void', 'voided_at', 'created_by', 'created_at', 'updated_at',
    ]
    autocomplete_fields = ['visit']
