"""
Billing endpoints, keyed by visit.

    GET  /api/v1/billing/{visit_id}/                  breakdown + payments
    POST /api/v1/billing/{visit_id}/bill/             ready_for_billing -> billed
    POST /api/v1/billing/{visit_id}/payments/         billed -> paid when settled
    POST /api/v1/billing/{visit_id}/adjustments/
    POST /api/v1/billing/{visit_id}/materials/
    POST /api/v1/billing/{visit_id}/services/
    POST /api/v1/billing/{visit_id}/bed-assignments/
    GET  /api/v1/rooms/
"""
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.permissions import HasPermission
from apps.billing import services
from apps.billing.gate import compute_billing_breakdown, eligibility_from_remaining
from apps.billing.models import Billing, Payment, Room
from apps.billing.serializers import (
    BedAssignmentSerializer,
    BillingAdjustmentSerializer,
    BillingBreakdownSerializer,
    BillingSerializer,
    MaterialUsageSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    RoomSerializer,
    ServiceChargeSerializer,
)
from apps.visits.models import Visit
from apps.visits.serializers import DischargeEligibilitySerializer


class VisitBillingViewSet(viewsets.ViewSet):
    """
    Cashier operations on one visit's bill. The lookup value is the visit id.
    """
    permission_classes = [HasPermission]
    lookup_field = 'visit_id'
    lookup_value_regex = '[0-9a-fA-F-]{36}'
    required_permissions = {
        'retrieve': 'billing:read',
        'bill': 'billing:write',
        'payments': 'billing:process_payment',
        'adjustments': 'billing:write',
        'materials': ('billing:write', 'medical_records:write', 'inpatient:write'),
        'service_charges': 'billing:write',
        'bed_assignments': 'inpatient:manage_beds',
    }

    def _visit(self, visit_id):
        return get_object_or_404(Visit, pk=visit_id)

    def _breakdown_payload(self, visit):
        breakdown = compute_billing_breakdown(visit)
        snapshot = Billing.objects.filter(visit=visit).first()
        return {
            'visit_status': visit.status,
            'breakdown': BillingBreakdownSerializer(breakdown).data,
            'eligibility': DischargeEligibilitySerializer(eligibility_from_remaining(breakdown.remaining)).data,
            'billing': BillingSerializer(snapshot).data if snapshot else None,
            'payments': PaymentSerializer(Payment.objects.filter(visit=visit), many=True).data,
        }

    def retrieve(self, request, visit_id=None):
        """GET /api/v1/billing/{visit_id}/"""
        visit = self._visit(visit_id)
        return Response(self._breakdown_payload(visit))

    @action(detail=True, methods=['post'], url_path='bill')
    def bill(self, request, visit_id=None):
        """
        POST /api/v1/billing/{visit_id}/bill/

        Snapshots the bill and moves the visit to billed.
        """
        visit = self._visit(visit_id)
        services.create_bill(visit.pk, request.user, request=request)
        visit.refresh_from_db()
        return Response(self._breakdown_payload(visit), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='payments')
    def payments(self, request, visit_id=None):
        """
        POST /api/v1/billing/{visit_id}/payments/

        Request body:
        {
            "amount": "60000.00",
            "method": "cash",
            "amount_received": "100000.00"
        }

        Returns:
            201: Payment recorded (visit is paid once nothing is outstanding)
            400: Amount above the outstanding balance / cash not covering it
            409: Visit is not billed
        """
        visit = self._visit(visit_id)
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment, breakdown = services.record_payment(visit.pk, request.user, request=request, **serializer.validated_data)
        visit.refresh_from_db()
        return Response(
            {
                'payment': PaymentSerializer(payment).data,
                'visit_status': visit.status,
                'payment_status': breakdown.payment_status,
                'remaining': str(max(breakdown.remaining, 0)),
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['post'], url_path='adjustments')
    def adjustments(self, request, visit_id=None):
        visit = self._visit(visit_id)
        serializer = BillingAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        adjustment = services.add_adjustment(visit.pk, request.user, request=request, **serializer.validated_data)
        return Response(BillingAdjustmentSerializer(adjustment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='materials')
    def materials(self, request, visit_id=None):
        visit = self._visit(visit_id)
        serializer = MaterialUsageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        usage = services.record_material_usage(visit.pk, request.user, dict(serializer.validated_data), request=request)
        return Response(MaterialUsageSerializer(usage).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='services')
    def service_charges(self, request, visit_id=None):
        visit = self._visit(visit_id)
        serializer = ServiceChargeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        charge = services.add_service_charge(visit.pk, request.user, dict(serializer.validated_data), request=request)
        return Response(ServiceChargeSerializer(charge).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='bed-assignments')
    def bed_assignments(self, request, visit_id=None):
        """Assign (or transfer) an inpatient to a bed."""
        visit = self._visit(visit_id)
        serializer = BedAssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = services.assign_bed(
            visit.pk,
            request.user,
            serializer.validated_data['room_id'],
            serializer.validated_data['bed_number'],
            request=request,
        )
        return Response(BedAssignmentSerializer(assignment).data, status=status.HTTP_201_CREATED)


class RoomViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    permission_classes = [HasPermission]
    required_permissions = {
        'list': ('inpatient:read', 'billing:read'),
        'retrieve': ('inpatient:read', 'billing:read'),
    }
    serializer_class = RoomSerializer
    queryset = Room.objects.filter(is_active=True)
