"""
Visit serializers.

Status, lock flags and timestamps are read-only: they only change through
the workflow endpoints.
"""
from rest_framework import serializers

from apps.visits.models import Visit
from apps.visits.workflow import Disposition, VisitStatus, VisitType, status_label


class VisitListSerializer(serializers.ModelSerializer):
    """Limited fields for the queue view"""
    status_label = serializers.SerializerMethodField()

    class Meta:
        model = Visit
        fields = [
            'id',
            'visit_number',
            'patient_name',
            'patient_reference',
            'visit_type',
            'status',
            'status_label',
            'arrival_time',
            'is_locked',
        ]
        read_only_fields = fields

    def get_status_label(self, obj):
        language = self.context.get('language', 'en')
        return status_label(obj.status, language)


class VisitDetailSerializer(serializers.ModelSerializer):
    status_label = serializers.SerializerMethodField()
    allowed_next_statuses = serializers.ListField(child=serializers.CharField(), read_only=True)
    is_terminal = serializers.BooleanField(read_only=True)
    locked_by_id = serializers.UUIDField(read_only=True, allow_null=True)
    created_by_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Visit
        fields = [
            'id',
            'visit_number',
            'patient_name',
            'patient_reference',
            'visit_type',
            'status',
            'status_label',
            'allowed_next_statuses',
            'is_terminal',
            'arrival_time',
            'start_time',
            'end_time',
            'disposition',
            'cancellation_reason',
            'is_locked',
            'lock_source',
            'locked_at',
            'locked_by_id',
            'created_by_id',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_status_label(self, obj):
        language = self.context.get('language', 'en')
        return status_label(obj.status, language)


class VisitCreateSerializer(serializers.Serializer):
    """Registration payload. The initial status comes from the visit type."""
    patient_name = serializers.CharField(max_length=255)
    patient_reference = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    visit_type = serializers.ChoiceField(choices=VisitType.choices)
    arrival_time = serializers.DateTimeField(required=False)

    def validate_patient_name(self, value):
        if not value.strip():
            raise serializers.ValidationError('Patient name cannot be blank')
        return value.strip()


class VisitTransitionSerializer(serializers.Serializer):
    """
    Request body for POST /visits/{id}/transition/.

    The target must be a known status; whether the edge is legal is the
    workflow's call, so the response carries the allowed targets.
    """
    status = serializers.ChoiceField(choices=VisitStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class VisitCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class VisitUnlockSerializer(serializers.Serializer):
    reason = serializers.CharField()

    def validate_reason(self, value):
        if not value.strip():
            raise serializers.ValidationError('An unlock reason is required')
        return value.strip()


class DispositionSerializer(serializers.Serializer):
    disposition = serializers.ChoiceField(choices=Disposition.choices)


class InpatientTransferSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class DischargeEligibilitySerializer(serializers.Serializer):
    can_discharge = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    remaining_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
