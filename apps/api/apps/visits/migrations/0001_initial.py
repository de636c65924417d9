import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import apps.visits.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Visit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('visit_number', models.CharField(default=apps.visits.models.generate_visit_number, max_length=32, unique=True)),
                ('patient_name', models.CharField(max_length=255)),
                ('patient_reference', models.CharField(blank=True, help_text='Medical record number in the patient registry', max_length=64)),
                ('visit_type', models.CharField(
                    choices=[
                        ('outpatient', 'Outpatient'),
                        ('inpatient', 'Inpatient'),
                        ('emergency', 'Emergency'),
                    ],
                    max_length=20
                )),
                ('status', models.CharField(
                    choices=[
                        ('registered', 'Registered'),
                        ('waiting', 'Waiting'),
                        ('in_examination', 'In Examination'),
                        ('examined', 'Examined'),
                        ('ready_for_billing', 'Ready for Billing'),
                        ('billed', 'Billed'),
                        ('paid', 'Paid'),
                        ('completed', 'Completed'),
                        ('cancelled', 'Cancelled'),
                    ],
                    default='registered',
                    max_length=20
                )),
                ('arrival_time', models.DateTimeField(default=django.utils.timezone.now)),
                ('start_time', models.DateTimeField(blank=True, null=True)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('disposition', models.CharField(
                    blank=True,
                    choices=[
                        ('discharged', 'Discharged'),
                        ('admitted', 'Admitted'),
                        ('referred', 'Referred'),
                        ('observation', 'Observation'),
                    ],
                    help_text='Required before an emergency visit can be locked',
                    max_length=20,
                    null=True
                )),
                ('cancellation_reason', models.TextField(blank=True, null=True)),
                ('is_locked', models.BooleanField(default=False)),
                ('lock_source', models.CharField(
                    blank=True,
                    choices=[
                        ('finalized_record', 'Finalized medical record'),
                        ('discharge_summary', 'Discharge summary'),
                    ],
                    max_length=30,
                    null=True
                )),
                ('locked_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='registered_visits', to=settings.AUTH_USER_MODEL)),
                ('locked_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='locked_visits', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Visit',
                'verbose_name_plural': 'Visits',
                'db_table': 'visit',
                'ordering': ['-arrival_time'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_visit_status'),
                    models.Index(fields=['visit_type'], name='idx_visit_type'),
                    models.Index(fields=['arrival_time'], name='idx_visit_arrival'),
                ],
            },
        ),
    ]
