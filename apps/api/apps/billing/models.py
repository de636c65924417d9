"""
Billing models: room, bed_assignment, material_usage, service_charge,
billing_adjustment, payment, billing

All amounts are Rupiah. Nothing here stores the outstanding balance: it is
recomputed from the line items by apps.billing.gate on every read.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class RoomTypeChoices(models.TextChoices):
    VIP = 'vip', _('VIP')
    CLASS_1 = 'class_1', _('Class 1')
    CLASS_2 = 'class_2', _('Class 2')
    CLASS_3 = 'class_3', _('Class 3')
    ICU = 'icu', _('ICU')
    ISOLATION = 'isolation', _('Isolation')


class AdjustmentKindChoices(models.TextChoices):
    DISCOUNT = 'discount', _('Discount')
    INSURANCE = 'insurance', _('Insurance coverage')
    SURCHARGE = 'surcharge', _('Surcharge')


class PaymentMethodChoices(models.TextChoices):
    CASH = 'cash', _('Cash')
    TRANSFER = 'transfer', _('Bank transfer')
    CARD = 'card', _('Debit/Credit card')
    INSURANCE = 'insurance', _('Insurance')


class PaymentStatusChoices(models.TextChoices):
    PENDING = 'pending', _('Pending')
    PARTIAL = 'partial', _('Partially paid')
    PAID = 'paid', _('Paid')


class Room(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_number = models.CharField(_('Room Number'), max_length=20, unique=True)
    room_type = models.CharField(_('Room Type'), max_length=20, choices=RoomTypeChoices.choices)
    daily_rate = models.DecimalField(_('Daily Rate'), max_digits=12, decimal_places=2)
    bed_count = models.PositiveSmallIntegerField(_('Beds'), default=1)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'room'
        ordering = ['room_number']
        verbose_name = _('Room')
        verbose_name_plural = _('Rooms')

    def __str__(self):
        return f'{self.room_number} ({self.get_room_type_display()})'


class BedAssignment(models.Model):
    """
    One stay in one bed. A transfer closes the open assignment and opens a
    new one, so each assignment becomes its own room charge line.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey('visits.Visit', on_delete=models.CASCADE, related_name='bed_assignments')
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name='assignments')
    bed_number = models.PositiveSmallIntegerField(_('Bed Number'))
    assigned_at = models.DateTimeField(_('Assigned At'), default=timezone.now)
    discharged_at = models.DateTimeField(_('Discharged At'), blank=True, null=True)
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='bed_assignments'
    )

    class Meta:
        db_table = 'bed_assignment'
        ordering = ['assigned_at']
        verbose_name = _('Bed Assignment')
        verbose_name_plural = _('Bed Assignments')
        indexes = [
            models.Index(fields=['visit'], name='idx_bed_assignment_visit'),
            models.Index(fields=['room', 'bed_number'], name='idx_bed_assignment_bed'),
        ]

    def __str__(self):
        return f'{self.room.room_number}/{self.bed_number}'

    @property
    def is_open(self):
        return self.discharged_at is None


class MaterialUsage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey('visits.Visit', on_delete=models.CASCADE, related_name='material_usages')
    name = models.CharField(_('Material'), max_length=255)
    quantity = models.PositiveIntegerField(_('Quantity'))
    unit_price = models.DecimalField(_('Unit Price'), max_digits=12, decimal_places=2)
    used_at = models.DateTimeField(_('Used At'), default=timezone.now)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='material_usages'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'material_usage'
        ordering = ['used_at']
        verbose_name = _('Material Usage')
        verbose_name_plural = _('Material Usages')

    def __str__(self):
        return f'{self.name} x{self.quantity}'


class ServiceCharge(models.Model):
    """Flat service fee (registration, consultation, administration)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey('visits.Visit', on_delete=models.CASCADE, related_name='service_charges')
    name = models.CharField(_('Service'), max_length=255)
    quantity = models.PositiveIntegerField(_('Quantity'), default=1)
    unit_price = models.DecimalField(_('Unit Price'), max_digits=12, decimal_places=2)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='service_charges'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'service_charge'
        ordering = ['created_at']
        verbose_name = _('Service Charge')
        verbose_name_plural = _('Service Charges')

    def __str__(self):
        return f'{self.name} x{self.quantity}'


class BillingAdjustment(models.Model):
    """
    Discount, insurance coverage or surcharge on a visit's bill.

    BUSINESS RULE: every adjustment carries a justification.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey('visits.Visit', on_delete=models.CASCADE, related_name='billing_adjustments')
    kind = models.CharField(_('Kind'), max_length=20, choices=AdjustmentKindChoices.choices)
    amount = models.DecimalField(_('Amount'), max_digits=12, decimal_places=2)
    justification = models.TextField(_('Justification'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='billing_adjustments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'billing_adjustment'
        ordering = ['created_at']
        verbose_name = _('Billing Adjustment')
        verbose_name_plural = _('Billing Adjustments')

    def __str__(self):
        return f'{self.get_kind_display()} {self.amount}'


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey('visits.Visit', on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(_('Amount'), max_digits=12, decimal_places=2)
    method = models.CharField(_('Method'), max_length=20, choices=PaymentMethodChoices.choices)
    reference = models.CharField(_('Reference'), max_length=100, blank=True, default='')
    amount_received = models.DecimalField(
        _('Amount Received'),
        max_digits=12,
        decimal_places=2,
        blank=True,
        null=True,
        help_text=_('Cash tendered (cash payments only)')
    )
    change_given = models.DecimalField(
        _('Change Given'),
        max_digits=12,
        decimal_places=2,
        blank=True,
        null=True
    )
    notes = models.TextField(_('Notes'), blank=True, default='')
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='received_payments'
    )
    received_at = models.DateTimeField(_('Received At'), default=timezone.now)

    class Meta:
        db_table = 'payment'
        ordering = ['received_at']
        verbose_name = _('Payment')
        verbose_name_plural = _('Payments')

    def __str__(self):
        return f'{self.get_method_display()} {self.amount}'


class Billing(models.Model):
    """
    Bill snapshot taken when the cashier bills the visit.

    Informational only: the discharge gate always recomputes from line items.
    Voided when the visit is cancelled.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField('visits.Visit', on_delete=models.CASCADE, related_name='billing')
    subtotal = models.DecimalField(_('Subtotal'), max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_total = models.DecimalField(_('Discounts'), max_digits=12, decimal_places=2, default=Decimal('0.00'))
    insurance_total = models.DecimalField(_('Insurance'), max_digits=12, decimal_places=2, default=Decimal('0.00'))
    surcharge_total = models.DecimalField(_('Surcharges'), max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_due = models.DecimalField(_('Total Due'), max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(_('Currency'), max_length=3, default='IDR')
    is_void = models.BooleanField(default=False)
    voided_at = models.DateTimeField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='billings'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing'
        verbose_name = _('Billing')
        verbose_name_plural = _('Billings')

    def __str__(self):
        return f'Billing [{str(self.visit_id)[:8]}] {self.total_due}'
