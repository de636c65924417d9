"""
Visit endpoints.

Registration, the queue, and the workflow actions. Every status change is
delegated to apps.visits.services; guard rejections surface as
PolicyViolationError and are rendered by the policy exception handler.
"""
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.actor import get_request_actor
from apps.authz.permissions import HasPermission
from apps.billing.gate import compute_discharge_eligibility
from apps.clinical.services import unlock_visit
from apps.core.observability import get_sanitized_logger
from apps.visits import services
from apps.visits.models import Visit
from apps.visits.serializers import (
    DischargeEligibilitySerializer,
    DispositionSerializer,
    InpatientTransferSerializer,
    VisitCancelSerializer,
    VisitCreateSerializer,
    VisitDetailSerializer,
    VisitListSerializer,
    VisitTransitionSerializer,
    VisitUnlockSerializer,
)
from apps.visits.workflow import status_label

logger = get_sanitized_logger(__name__)


class VisitViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.CreateModelMixin,
                   viewsets.GenericViewSet):
    """
    ViewSet for Visit endpoints.

    Endpoints:
    - GET  /api/v1/visits/
    - POST /api/v1/visits/
    - GET  /api/v1/visits/{id}/
    - POST /api/v1/visits/{id}/transition/
    - GET  /api/v1/visits/{id}/allowed-transitions/
    - GET  /api/v1/visits/{id}/discharge-eligibility/
    - POST /api/v1/visits/{id}/complete/
    - POST /api/v1/visits/{id}/cancel/
    - POST /api/v1/visits/{id}/unlock/
    - PATCH /api/v1/visits/{id}/disposition/
    - POST /api/v1/visits/{id}/transfer-to-inpatient/
    """
    permission_classes = [HasPermission]
    required_permissions = {
        'list': 'visits:read',
        'retrieve': 'visits:read',
        'create': 'visits:write',
        'transition_status': 'visits:write',
        'allowed_transitions': 'visits:read',
        'discharge_eligibility': ('visits:read', 'billing:read'),
        'complete': ('visits:write', 'billing:process_payment'),
        'cancel': 'visits:write',
        'unlock': 'medical_records:unlock',
        'disposition': 'visits:write',
        'transfer_to_inpatient': 'inpatient:write',
    }

    def get_queryset(self):
        """
        Queue filters:
        - ?status=waiting (comma separated for several)
        - ?visit_type=emergency
        - ?q=<visit number / patient name / patient reference>
        """
        queryset = Visit.objects.all()

        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status__in=status_param.split(','))

        visit_type = self.request.query_params.get('visit_type')
        if visit_type:
            queryset = queryset.filter(visit_type=visit_type)

        q = self.request.query_params.get('q')
        if q:
            queryset = queryset.filter(
                Q(visit_number__icontains=q) |
                Q(patient_name__icontains=q) |
                Q(patient_reference__icontains=q)
            )

        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return VisitListSerializer
        if self.action == 'create':
            return VisitCreateSerializer
        return VisitDetailSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['language'] = 'id' if self.request.query_params.get('lang') == 'id' else 'en'
        return context

    def _detail(self, visit, status_code=status.HTTP_200_OK):
        return Response(VisitDetailSerializer(visit, context=self.get_serializer_context()).data, status=status_code)

    def create(self, request, *args, **kwargs):
        """Register a visit (POST /api/v1/visits/)"""
        serializer = VisitCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = services.register_visit(
            created_by=request.user,
            request=request,
            **serializer.validated_data
        )
        return self._detail(visit, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='transition')
    def transition_status(self, request, pk=None):
        """
        POST /api/v1/visits/{id}/transition/

        Request body:
        {
            "status": "in_examination",
            "reason": "optional, stored on cancellation"
        }

        Returns:
            200: Transition applied, visit detail
            409: Illegal edge, terminal visit (allowed targets in details)
                 or billing gate refused (paid / completed)
            403: Override permission missing for a backward edge
        """
        visit = self.get_object()
        serializer = VisitTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = services.apply_transition(
            visit.pk,
            serializer.validated_data['status'],
            user=request.user,
            actor=get_request_actor(request),
            reason=serializer.validated_data.get('reason'),
            request=request,
        )
        return self._detail(visit)

    @action(detail=True, methods=['get'], url_path='allowed-transitions')
    def allowed_transitions(self, request, pk=None):
        """GET /api/v1/visits/{id}/allowed-transitions/"""
        visit = self.get_object()
        language = self.get_serializer_context()['language']
        return Response({
            'visit_id': str(visit.pk),
            'status': visit.status,
            'is_terminal': visit.is_terminal,
            'allowed_next_statuses': [
                {'status': target, 'label': status_label(target, language)}
                for target in visit.allowed_next_statuses
            ],
        })

    @action(detail=True, methods=['get'], url_path='discharge-eligibility')
    def discharge_eligibility(self, request, pk=None):
        """
        GET /api/v1/visits/{id}/discharge-eligibility/

        Recomputed from the line items on every call.
        """
        visit = self.get_object()
        eligibility = compute_discharge_eligibility(visit.pk)
        return Response(DischargeEligibilitySerializer(eligibility).data)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        """POST /api/v1/visits/{id}/complete/ (paid -> completed)"""
        visit = self.get_object()
        visit = services.complete_visit(
            visit.pk, user=request.user, actor=get_request_actor(request), request=request
        )
        return self._detail(visit)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        """
        POST /api/v1/visits/{id}/cancel/

        Request body: {"reason": "Patient left before examination"}
        """
        visit = self.get_object()
        serializer = VisitCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = services.cancel_visit(
            visit.pk,
            user=request.user,
            actor=get_request_actor(request),
            reason=serializer.validated_data.get('reason'),
            request=request,
        )
        return self._detail(visit)

    @action(detail=True, methods=['post'], url_path='unlock')
    def unlock(self, request, pk=None):
        """
        POST /api/v1/visits/{id}/unlock/

        Audited lock reversal. The reason is mandatory and the status is left
        as it is.
        """
        visit = self.get_object()
        serializer = VisitUnlockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = unlock_visit(visit.pk, request.user, serializer.validated_data['reason'], request=request)
        return self._detail(visit)

    @action(detail=True, methods=['patch'], url_path='disposition')
    def disposition(self, request, pk=None):
        """PATCH /api/v1/visits/{id}/disposition/ (emergency outcome)"""
        visit = self.get_object()
        serializer = DispositionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = services.set_disposition(
            visit.pk, serializer.validated_data['disposition'], user=request.user, request=request
        )
        return self._detail(visit)

    @action(detail=True, methods=['post'], url_path='transfer-to-inpatient')
    def transfer_to_inpatient(self, request, pk=None):
        """
        POST /api/v1/visits/{id}/transfer-to-inpatient/

        Request body: {"reason": "Dengue with warning signs, needs observation"}

        Returns:
            200: Visit is now inpatient
            400: Visit is already inpatient
            409: Visit already heading to billing or closed
            423: Record locked
        """
        visit = self.get_object()
        serializer = InpatientTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        visit = services.transfer_to_inpatient(
            visit.pk,
            user=request.user,
            reason=serializer.validated_data.get('reason'),
            request=request,
        )
        return self._detail(visit)

