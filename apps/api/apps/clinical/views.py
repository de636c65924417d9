"""
Clinical viewsets: medical records (SOAP / CPPT), diagnoses, prescriptions,
procedures, vital signs and discharge summaries.

Writes go through apps.clinical.services, which evaluate the lock gate,
mutation windows and authoring policy inside the write transaction.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.actor import get_request_actor
from apps.authz.permissions import HasPermission
from apps.clinical import services
from apps.clinical.models import (
    Diagnosis,
    DischargeSummary,
    MedicalRecord,
    Prescription,
    Procedure,
    VitalSigns,
)
from apps.clinical.serializers import (
    DiagnosisSerializer,
    DiagnosisWriteSerializer,
    DischargeSummarySerializer,
    MedicalRecordLockSerializer,
    MedicalRecordSerializer,
    MedicalRecordWriteSerializer,
    PrescriptionCreateSerializer,
    PrescriptionFulfillSerializer,
    PrescriptionSerializer,
    ProcedureSerializer,
    ProcedureWriteSerializer,
    VitalSignsSerializer,
)


class VisitFilterMixin:
    """?visit=<uuid> narrows any clinical list to one visit."""

    def filter_by_visit(self, queryset):
        visit_id = self.request.query_params.get('visit')
        if visit_id:
            queryset = queryset.filter(visit_id=visit_id)
        return queryset


class MedicalRecordViewSet(VisitFilterMixin, viewsets.ModelViewSet):
    """
    ViewSet for medical records.

    Endpoints:
    - GET    /api/v1/records/?visit=<uuid>
    - POST   /api/v1/records/
    - GET    /api/v1/records/{id}/
    - PATCH  /api/v1/records/{id}/
    - DELETE /api/v1/records/{id}/
    - POST   /api/v1/records/{id}/lock/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'medical_records:read',
        'retrieve': 'medical_records:read',
        'create': 'medical_records:write',
        'update': 'medical_records:write',
        'partial_update': 'medical_records:write',
        'destroy': 'medical_records:write',
        'lock': 'medical_records:lock',
    }
    serializer_class = MedicalRecordSerializer

    def get_queryset(self):
        return self.filter_by_visit(MedicalRecord.objects.select_related('author'))

    def create(self, request, *args, **kwargs):
        """
        POST /api/v1/records/

        author and author_role come from the authenticated user; a nurse
        sending SOAP content gets 403 author_role_mismatch.
        """
        serializer = MedicalRecordWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        record = services.create_medical_record(
            visit_id, request.user, get_request_actor(request), data, request=request
        )
        return Response(MedicalRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        record = self.get_object()
        serializer = MedicalRecordWriteSerializer(record, data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)

        record = services.update_medical_record(
            record.pk, request.user, get_request_actor(request), dict(serializer.validated_data), request=request
        )
        return Response(MedicalRecordSerializer(record).data)

    def destroy(self, request, *args, **kwargs):
        record = self.get_object()
        services.delete_medical_record(record.pk, request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='lock')
    def lock(self, request, pk=None):
        """
        POST /api/v1/records/{id}/lock/

        Finalizes the record, locks the visit and moves it to
        ready_for_billing.

        Request body (optional):
        {
            "billing_adjustment": "-25000.00",
            "adjustment_note": "Follow-up consultation fee waived"
        }
        """
        record = self.get_object()
        serializer = MedicalRecordLockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = services.lock_medical_record(
            record.pk,
            request.user,
            billing_adjustment=serializer.validated_data.get('billing_adjustment'),
            adjustment_note=serializer.validated_data.get('adjustment_note', ''),
            request=request,
        )
        return Response(MedicalRecordSerializer(record).data)


class DiagnosisViewSet(VisitFilterMixin, viewsets.ModelViewSet):
    """
    ICD-10 diagnoses, doctor-authored.

    Endpoints:
    - GET    /api/v1/diagnoses/?visit=<uuid>
    - POST   /api/v1/diagnoses/
    - GET    /api/v1/diagnoses/{id}/
    - PATCH  /api/v1/diagnoses/{id}/
    - DELETE /api/v1/diagnoses/{id}/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'medical_records:read',
        'retrieve': 'medical_records:read',
        'create': 'medical_records:write',
        'update': 'medical_records:write',
        'partial_update': 'medical_records:write',
        'destroy': 'medical_records:write',
    }
    serializer_class = DiagnosisSerializer

    def get_queryset(self):
        return self.filter_by_visit(Diagnosis.objects.all())

    def create(self, request, *args, **kwargs):
        serializer = DiagnosisWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        diagnosis = services.create_diagnosis(
            visit_id, request.user, get_request_actor(request), data, request=request
        )
        return Response(DiagnosisSerializer(diagnosis).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        diagnosis = self.get_object()
        serializer = DiagnosisWriteSerializer(diagnosis, data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)

        diagnosis = services.update_diagnosis(
            diagnosis.pk, request.user, get_request_actor(request), dict(serializer.validated_data), request=request
        )
        return Response(DiagnosisSerializer(diagnosis).data)

    def destroy(self, request, *args, **kwargs):
        diagnosis = self.get_object()
        services.delete_diagnosis(diagnosis.pk, request.user, get_request_actor(request), request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PrescriptionViewSet(VisitFilterMixin,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.CreateModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    Endpoints:
    - GET    /api/v1/prescriptions/?visit=<uuid>
    - POST   /api/v1/prescriptions/
    - GET    /api/v1/prescriptions/{id}/
    - DELETE /api/v1/prescriptions/{id}/
    - POST   /api/v1/prescriptions/{id}/fulfill/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'prescriptions:read',
        'retrieve': 'prescriptions:read',
        'create': 'prescriptions:write',
        'destroy': 'prescriptions:write',
        'fulfill': 'prescriptions:fulfill',
    }
    serializer_class = PrescriptionSerializer

    def get_queryset(self):
        return self.filter_by_visit(Prescription.objects.all())

    def create(self, request, *args, **kwargs):
        serializer = PrescriptionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        prescription = services.create_prescription(visit_id, request.user, data, request=request)
        return Response(PrescriptionSerializer(prescription).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        prescription = self.get_object()
        services.delete_prescription(prescription.pk, request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='fulfill')
    def fulfill(self, request, pk=None):
        """
        POST /api/v1/prescriptions/{id}/fulfill/

        Pharmacy dispensing. Request body: {"dispensed_quantity": 10} (optional,
        defaults to the ordered quantity).
        """
        prescription = self.get_object()
        serializer = PrescriptionFulfillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        prescription = services.fulfill_prescription(
            prescription.pk,
            request.user,
            dispensed_quantity=serializer.validated_data.get('dispensed_quantity'),
            request=request,
        )
        return Response(PrescriptionSerializer(prescription).data)


class ProcedureViewSet(VisitFilterMixin, viewsets.ModelViewSet):
    """
    Endpoints:
    - GET    /api/v1/procedures/?visit=<uuid>
    - POST   /api/v1/procedures/
    - GET    /api/v1/procedures/{id}/
    - PATCH  /api/v1/procedures/{id}/
    - DELETE /api/v1/procedures/{id}/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'medical_records:read',
        'retrieve': 'medical_records:read',
        'create': 'medical_records:write',
        'update': 'medical_records:write',
        'partial_update': 'medical_records:write',
        'destroy': 'medical_records:write',
    }
    serializer_class = ProcedureSerializer

    def get_queryset(self):
        return self.filter_by_visit(Procedure.objects.all())

    def create(self, request, *args, **kwargs):
        serializer = ProcedureWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        procedure = services.create_procedure(visit_id, request.user, data, request=request)
        return Response(ProcedureSerializer(procedure).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        procedure = self.get_object()
        serializer = ProcedureWriteSerializer(procedure, data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)

        procedure = services.update_procedure(
            procedure.pk, request.user, dict(serializer.validated_data), request=request
        )
        return Response(ProcedureSerializer(procedure).data)

    def destroy(self, request, *args, **kwargs):
        procedure = self.get_object()
        services.delete_procedure(procedure.pk, request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


class VitalSignsViewSet(VisitFilterMixin,
                        mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        mixins.CreateModelMixin,
                        mixins.DestroyModelMixin,
                        viewsets.GenericViewSet):
    """
    Endpoints:
    - GET    /api/v1/vitals/?visit=<uuid>
    - POST   /api/v1/vitals/
    - GET    /api/v1/vitals/{id}/
    - DELETE /api/v1/vitals/{id}/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': ('medical_records:read', 'inpatient:read'),
        'retrieve': ('medical_records:read', 'inpatient:read'),
        'create': ('medical_records:write', 'inpatient:write'),
        'destroy': ('medical_records:write', 'inpatient:write'),
    }
    serializer_class = VitalSignsSerializer

    def get_queryset(self):
        return self.filter_by_visit(VitalSigns.objects.all())

    def create(self, request, *args, **kwargs):
        serializer = VitalSignsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        vitals = services.record_vital_signs(visit_id, request.user, data, request=request)
        return Response(VitalSignsSerializer(vitals).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        vitals = self.get_object()
        services.delete_vital_signs(vitals.pk, request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


class DischargeSummaryViewSet(VisitFilterMixin,
                              mixins.ListModelMixin,
                              mixins.RetrieveModelMixin,
                              mixins.CreateModelMixin,
                              viewsets.GenericViewSet):
    """
    Endpoints:
    - GET  /api/v1/discharge-summaries/?visit=<uuid>
    - POST /api/v1/discharge-summaries/  (locks the visit)
    - GET  /api/v1/discharge-summaries/{id}/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'discharge:read',
        'retrieve': 'discharge:read',
        'create': 'discharge:write',
    }
    serializer_class = DischargeSummarySerializer

    def get_queryset(self):
        return self.filter_by_visit(DischargeSummary.objects.all())

    def create(self, request, *args, **kwargs):
        serializer = DischargeSummarySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        visit_id = data.pop('visit_id')

        summary = services.create_discharge_summary(visit_id, request.user, data, request=request)
        return Response(DischargeSummarySerializer(summary).data, status=status.HTTP_201_CREATED)
