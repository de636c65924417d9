import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('visits', '0001_initial'),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Diagnosis',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('icd10_code', models.CharField(help_text='ICD-10 code, e.g. A91', max_length=10)),
                ('description', models.CharField(max_length=255)),
                ('diagnosis_type', models.CharField(
                    choices=[('primary', 'Primary'), ('secondary', 'Secondary')],
                    default='primary',
                    max_length=10
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='diagnoses', to=settings.AUTH_USER_MODEL)),
                ('medical_record', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='diagnoses', to='clinical.medicalrecord')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='diagnoses', to='visits.visit')),
            ],
            options={
                'verbose_name': 'Diagnosis',
                'verbose_name_plural': 'Diagnoses',
                'db_table': 'diagnosis',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['visit'], name='idx_diagnosis_visit'),
                    models.Index(fields=['icd10_code'], name='idx_diagnosis_icd10'),
                ],
            },
        ),
        migrations.AlterField(
            model_name='clinicalauditlog',
            name='entity_type',
            field=models.CharField(
                choices=[
                    ('Visit', 'Visit'),
                    ('MedicalRecord', 'Medical Record'),
                    ('Diagnosis', 'Diagnosis'),
                    ('Prescription', 'Prescription'),
                    ('Procedure', 'Procedure'),
                    ('VitalSigns', 'Vital Signs'),
                    ('DischargeSummary', 'Discharge Summary'),
                    ('Billing', 'Billing'),
                    ('Payment', 'Payment'),
                    ('BillingAdjustment', 'Billing Adjustment'),
                    ('MaterialUsage', 'Material Usage'),
                    ('BedAssignment', 'Bed Assignment'),
                    ('ServiceCharge', 'Service Charge'),
                ],
                max_length=50
            ),
        ),
    ]
