"""
Billing serializers.
"""
from decimal import Decimal

from rest_framework import serializers

from apps.billing.models import (
    AdjustmentKindChoices,
    BedAssignment,
    Billing,
    BillingAdjustment,
    MaterialUsage,
    Payment,
    PaymentMethodChoices,
    Room,
    ServiceCharge,
)


def _positive(value, label='Amount'):
    if value is None or value <= Decimal('0'):
        raise serializers.ValidationError(f'{label} must be greater than zero')
    return value


class RoomSerializer(serializers.ModelSerializer):
    occupied_beds = serializers.SerializerMethodField()

    class Meta:
        model = Room
        fields = ['id', 'room_number', 'room_type', 'daily_rate', 'bed_count', 'occupied_beds', 'is_active']
        read_only_fields = fields

    def get_occupied_beds(self, obj):
        return sorted(
            obj.assignments.filter(discharged_at__isnull=True).values_list('bed_number', flat=True)
        )


# ============================================================================
# Breakdown (computed, never stored)
# ============================================================================

class BillingItemSerializer(serializers.Serializer):
    category = serializers.CharField()
    description = serializers.CharField()
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2)
    total = serializers.DecimalField(max_digits=14, decimal_places=2)


class BillingBreakdownSerializer(serializers.Serializer):
    visit_id = serializers.CharField()
    items = BillingItemSerializer(many=True)
    totals_by_category = serializers.SerializerMethodField()
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2)
    discount_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    insurance_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    surcharge_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    paid_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    remaining = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_status = serializers.CharField()

    def get_totals_by_category(self, obj):
        return {category: str(total) for category, total in obj.totals_by_category().items()}


class BillingSerializer(serializers.ModelSerializer):
    """Bill snapshot taken at billing time"""
    visit_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Billing
        fields = [
            'id',
            'visit_id',
            'subtotal',
            'discount_total',
            'insurance_total',
            'surcharge_total',
            'total_due',
            'currency',
            'is_void',
            'voided_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


# ============================================================================
# Payments & adjustments
# ============================================================================

class PaymentSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    received_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id',
            'visit_id',
            'amount',
            'method',
            'reference',
            'amount_received',
            'change_given',
            'notes',
            'received_by_id',
            'received_at',
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    """
    Request body for POST /billing/{visit_id}/payments/.

    Whether the amount fits the outstanding balance is decided when the
    payment is recorded, against the balance at that moment.
    """
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentMethodChoices.choices)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    amount_received = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_amount(self, value):
        return _positive(value)

    def validate(self, attrs):
        if attrs['method'] in (PaymentMethodChoices.TRANSFER, PaymentMethodChoices.CARD) and not attrs.get('reference'):
            raise serializers.ValidationError({'reference': 'A transaction reference is required for transfer and card payments'})
        return attrs


class BillingAdjustmentSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    created_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = BillingAdjustment
        fields = ['id', 'visit_id', 'kind', 'amount', 'justification', 'created_by_id', 'created_at']
        read_only_fields = ['id', 'visit_id', 'created_by_id', 'created_at']

    def validate_kind(self, value):
        if value not in AdjustmentKindChoices.values:
            raise serializers.ValidationError(f"Invalid kind. Options: {', '.join(AdjustmentKindChoices.values)}")
        return value

    def validate_amount(self, value):
        return _positive(value)

    def validate_justification(self, value):
        if not value.strip():
            raise serializers.ValidationError('A justification is required for billing adjustments')
        return value


# ============================================================================
# Charges
# ============================================================================

class MaterialUsageSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = MaterialUsage
        fields = ['id', 'visit_id', 'name', 'quantity', 'unit_price', 'used_at', 'created_at']
        read_only_fields = ['id', 'visit_id', 'created_at']

    def validate_quantity(self, value):
        if value < 1:
            raise serializers.ValidationError('Quantity must be at least 1')
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value


class ServiceChargeSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = ServiceCharge
        fields = ['id', 'visit_id', 'name', 'quantity', 'unit_price', 'created_at']
        read_only_fields = ['id', 'visit_id', 'created_at']

    def validate_quantity(self, value):
        if value < 1:
            raise serializers.ValidationError('Quantity must be at least 1')
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value


class BedAssignmentSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    room_id = serializers.UUIDField()
    room_number = serializers.CharField(source='room.room_number', read_only=True)
    is_open = serializers.BooleanField(read_only=True)

    class Meta:
        model = BedAssignment
        fields = ['id', 'visit_id', 'room_id', 'room_number', 'bed_number', 'assigned_at', 'discharged_at', 'is_open']
        read_only_fields = ['id', 'visit_id', 'room_number', 'assigned_at', 'discharged_at', 'is_open']
