import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('visits', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Room',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('room_number', models.CharField(max_length=20, unique=True, verbose_name='Room Number')),
                ('room_type', models.CharField(
                    choices=[
                        ('vip', 'VIP'),
                        ('class_1', 'Class 1'),
                        ('class_2', 'Class 2'),
                        ('class_3', 'Class 3'),
                        ('icu', 'ICU'),
                        ('isolation', 'Isolation'),
                    ],
                    max_length=20,
                    verbose_name='Room Type'
                )),
                ('daily_rate', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Daily Rate')),
                ('bed_count', models.PositiveSmallIntegerField(default=1, verbose_name='Beds')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Room',
                'verbose_name_plural': 'Rooms',
                'db_table': 'room',
                'ordering': ['room_number'],
            },
        ),
        migrations.CreateModel(
            name='BedAssignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('bed_number', models.PositiveSmallIntegerField(verbose_name='Bed Number')),
                ('assigned_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Assigned At')),
                ('discharged_at', models.DateTimeField(blank=True, null=True, verbose_name='Discharged At')),
                ('assigned_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bed_assignments', to=settings.AUTH_USER_MODEL)),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='assignments', to='billing.room')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bed_assignments', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Bed Assignment',
                'verbose_name_plural': 'Bed Assignments',
                'db_table': 'bed_assignment',
                'ordering': ['assigned_at'],
                'indexes': [
                    models.Index(fields=['visit'], name='idx_bed_assignment_visit'),
                    models.Index(fields=['room', 'bed_number'], name='idx_bed_assignment_bed'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MaterialUsage',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255, verbose_name='Material')),
                ('quantity', models.PositiveIntegerField(verbose_name='Quantity')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Unit Price')),
                ('used_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Used At')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('recorded_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='material_usages', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='material_usages', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Material Usage',
                'verbose_name_plural': 'Material Usages',
                'db_table': 'material_usage',
                'ordering': ['used_at'],
            },
        ),
        migrations.CreateModel(
            name='ServiceCharge',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255, verbose_name='Service')),
                ('quantity', models.PositiveIntegerField(default=1, verbose_name='Quantity')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Unit Price')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='service_charges', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='service_charges', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Service Charge',
                'verbose_name_plural': 'Service Charges',
                'db_table': 'service_charge',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='BillingAdjustment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(
                    choices=[
                        ('discount', 'Discount'),
                        ('insurance', 'Insurance coverage'),
                        ('surcharge', 'Surcharge'),
                    ],
                    max_length=20,
                    verbose_name='Kind'
                )),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('justification', models.TextField(verbose_name='Justification')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='billing_adjustments', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='billing_adjustments', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Billing Adjustment',
                'verbose_name_plural': 'Billing Adjustments',
                'db_table': 'billing_adjustment',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('method', models.CharField(
                    choices=[
                        ('cash', 'Cash'),
                        ('transfer', 'Bank transfer'),
                        ('card', 'Debit/Credit card'),
                        ('insurance', 'Insurance'),
                    ],
                    max_length=20,
                    verbose_name='Method'
                )),
                ('reference', models.CharField(blank=True, default='', max_length=100, verbose_name='Reference')),
                ('amount_received', models.DecimalField(blank=True, decimal_places=2, help_text='Cash tendered (cash payments only)', max_digits=12, null=True, verbose_name='Amount Received')),
                ('change_given', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Change Given')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Received At')),
                ('received_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='received_payments', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Payment',
                'verbose_name_plural': 'Payments',
                'db_table': 'payment',
                'ordering': ['received_at'],
            },
        ),
        migrations.CreateModel(
            name='Billing',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('subtotal', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Subtotal')),
                ('discount_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Discounts')),
                ('insurance_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Insurance')),
                ('surcharge_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Surcharges')),
                ('total_due', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Total Due')),
                ('currency', models.CharField(default='IDR', max_length=3, verbose_name='Currency')),
                ('is_void', models.BooleanField(default=False)),
                ('voided_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='billings', to=settings.AUTH_USER_MODEL)),
                ('visit', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='billing', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Billing',
                'verbose_name_plural': 'Billings',
                'db_table': 'billing',
            },
        ),
    ]
