"""
Clinical serializers: medical records, diagnoses, prescriptions, procedures,
vitals, discharge summaries.

author / author_role are never writable. Write serializers simply do not
declare them, so client-supplied values are dropped during validation and
the services inject the authenticated actor.
"""
from rest_framework import serializers

from apps.clinical.models import (
    Diagnosis,
    DischargeSummary,
    MedicalRecord,
    Prescription,
    Procedure,
    ProcedureStatus,
    VitalSigns,
)


# ============================================================================
# Medical records
# ============================================================================

class MedicalRecordSerializer(serializers.ModelSerializer):
    """Read representation, including who wrote it and the lock state"""
    visit_id = serializers.UUIDField(read_only=True)
    author_id = serializers.UUIDField(read_only=True)
    author_name = serializers.CharField(source='author.display_name', read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'id',
            'visit_id',
            'author_id',
            'author_name',
            'author_role',
            'record_type',
            'soap_subjective',
            'soap_objective',
            'soap_assessment',
            'soap_plan',
            'progress_note',
            'instructions',
            'is_draft',
            'is_locked',
            'locked_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class MedicalRecordWriteSerializer(serializers.ModelSerializer):
    """
    Create / update payload.

    visit_id is required on create and ignored on update (a record never
    moves between visits).
    """
    visit_id = serializers.UUIDField(required=False)

    class Meta:
        model = MedicalRecord
        fields = [
            'visit_id',
            'record_type',
            'soap_subjective',
            'soap_objective',
            'soap_assessment',
            'soap_plan',
            'progress_note',
            'instructions',
            'is_draft',
        ]

    def validate(self, attrs):
        if self.instance is None and not attrs.get('visit_id'):
            raise serializers.ValidationError({'visit_id': 'This field is required.'})
        if self.instance is not None:
            attrs.pop('visit_id', None)
        return attrs


class MedicalRecordLockSerializer(serializers.Serializer):
    """
    Optional doctor billing adjustment on finalize.

    Positive amounts are surcharges, negative amounts discounts; either needs
    a note.
    """
    billing_adjustment = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    adjustment_note = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs.get('billing_adjustment') and not attrs.get('adjustment_note', '').strip():
            raise serializers.ValidationError({'adjustment_note': 'A note is required with a billing adjustment'})
        return attrs


# ============================================================================
# Diagnoses
# ============================================================================

class DiagnosisSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    medical_record_id = serializers.UUIDField(read_only=True, allow_null=True)
    created_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Diagnosis
        fields = [
            'id',
            'visit_id',
            'medical_record_id',
            'icd10_code',
            'description',
            'diagnosis_type',
            'created_by_id',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class DiagnosisWriteSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(required=False)

    class Meta:
        model = Diagnosis
        fields = ['visit_id', 'medical_record', 'icd10_code', 'description', 'diagnosis_type']

    def validate_icd10_code(self, value):
        code = value.strip().upper()
        # Letter, two digits, optional subcategory: A91, J18.9, S72.001
        if len(code) < 3 or not code[0].isalpha() or not code[1:3].isdigit():
            raise serializers.ValidationError('Not an ICD-10 code')
        return code

    def validate(self, attrs):
        if self.instance is None:
            if not attrs.get('visit_id'):
                raise serializers.ValidationError({'visit_id': 'This field is required.'})
        else:
            attrs.pop('visit_id', None)
            attrs.pop('medical_record', None)
        return attrs


# ============================================================================
# Prescriptions
# ============================================================================

class PrescriptionSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    medical_record_id = serializers.UUIDField(read_only=True, allow_null=True)
    created_by_id = serializers.UUIDField(read_only=True)
    fulfilled_by_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Prescription
        fields = [
            'id',
            'visit_id',
            'medical_record_id',
            'drug_name',
            'dosage',
            'frequency',
            'route',
            'quantity',
            'unit_price',
            'instructions',
            'is_fulfilled',
            'dispensed_quantity',
            'fulfilled_at',
            'fulfilled_by_id',
            'created_by_id',
            'created_at',
        ]
        read_only_fields = fields


class PrescriptionCreateSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField()

    class Meta:
        model = Prescription
        fields = [
            'visit_id',
            'medical_record',
            'drug_name',
            'dosage',
            'frequency',
            'route',
            'quantity',
            'unit_price',
            'instructions',
        ]

    def validate_quantity(self, value):
        if value < 1:
            raise serializers.ValidationError('Quantity must be at least 1')
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value

    def validate(self, attrs):
        record = attrs.get('medical_record')
        if record is not None and str(record.visit_id) != str(attrs['visit_id']):
            raise serializers.ValidationError({'medical_record': 'Record belongs to another visit'})
        return attrs


class PrescriptionFulfillSerializer(serializers.Serializer):
    dispensed_quantity = serializers.IntegerField(required=False, allow_null=True, min_value=0)


# ============================================================================
# Procedures
# ============================================================================

class ProcedureSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(read_only=True)
    created_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Procedure
        fields = [
            'id',
            'visit_id',
            'name',
            'code',
            'status',
            'price',
            'notes',
            'performed_at',
            'created_by_id',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ProcedureWriteSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField(required=False)

    class Meta:
        model = Procedure
        fields = ['visit_id', 'name', 'code', 'status', 'price', 'notes', 'performed_at']

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value

    def validate(self, attrs):
        if self.instance is None:
            if not attrs.get('visit_id'):
                raise serializers.ValidationError({'visit_id': 'This field is required.'})
            if attrs.get('status') == ProcedureStatus.COMPLETED:
                raise serializers.ValidationError({'status': 'Order the procedure first, then complete it'})
        else:
            attrs.pop('visit_id', None)
        return attrs


# ============================================================================
# Vital signs
# ============================================================================

class VitalSignsSerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField()
    recorded_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = VitalSigns
        fields = [
            'id',
            'visit_id',
            'blood_pressure_systolic',
            'blood_pressure_diastolic',
            'pulse',
            'temperature',
            'respiratory_rate',
            'oxygen_saturation',
            'weight',
            'height',
            'notes',
            'recorded_by_id',
            'created_at',
        ]
        read_only_fields = ['id', 'recorded_by_id', 'created_at']

    def validate_oxygen_saturation(self, value):
        if value is not None and value > 100:
            raise serializers.ValidationError('SpO2 is a percentage (0-100)')
        return value

    def validate(self, attrs):
        systolic = attrs.get('blood_pressure_systolic')
        diastolic = attrs.get('blood_pressure_diastolic')
        if systolic is not None and diastolic is not None and diastolic >= systolic:
            raise serializers.ValidationError({'blood_pressure_diastolic': 'Diastolic must be below systolic'})
        return attrs


# ============================================================================
# Discharge summary
# ============================================================================

class DischargeSummarySerializer(serializers.ModelSerializer):
    visit_id = serializers.UUIDField()
    created_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DischargeSummary
        fields = [
            'id',
            'visit_id',
            'admission_diagnosis',
            'discharge_diagnosis',
            'hospital_course',
            'discharge_condition',
            'discharge_instructions',
            'follow_up_date',
            'created_by_id',
            'created_at',
        ]
        read_only_fields = ['id', 'created_by_id', 'created_at']
