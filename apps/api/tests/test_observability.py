"""
Tests for observability layer.

Validates that metrics, logs, and events are emitted correctly
without logging PHI/PII.
"""
import json
import logging
from unittest.mock import patch

import pytest
from django.http import HttpResponse
from django.test import RequestFactory
from prometheus_client import REGISTRY
from rest_framework import status

from apps.core.observability.correlation import (
    RequestCorrelationMiddleware,
    clear_request_context,
    get_request_id,
    get_user_id,
    set_actor_context,
)
from apps.core.observability.events import log_domain_event
from apps.core.observability.logging import (
    SENSITIVE_FIELDS,
    CorrelationFilter,
    SanitizedJSONFormatter,
    get_sanitized_logger,
    sanitize_dict,
)
from apps.core.observability.tracing import trace_span
from apps.core.policy import PolicyViolationError, VisitNotFound
from apps.visits.services import apply_transition
from apps.visits.workflow import VisitStatus


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture(autouse=True)
def _clean_context():
    clear_request_context()
    yield
    clear_request_context()


class TestRequestCorrelation:
    """Test request correlation middleware."""

    def _middleware(self):
        return RequestCorrelationMiddleware(lambda request: HttpResponse('ok'))

    def test_generates_request_id_if_missing(self):
        request = RequestFactory().get('/api/v1/visits/')

        self._middleware().process_request(request)

        assert request.request_id
        assert get_request_id() == request.request_id

    def test_propagates_existing_request_id(self):
        request = RequestFactory().get('/api/v1/visits/', HTTP_X_REQUEST_ID='req-123')

        self._middleware().process_request(request)

        assert request.request_id == 'req-123'

    def test_adds_request_id_to_response_headers(self):
        middleware = self._middleware()
        request = RequestFactory().get('/api/v1/visits/', HTTP_X_REQUEST_ID='req-456')
        middleware.process_request(request)

        response = middleware.process_response(request, HttpResponse('ok'))

        assert response['X-Request-ID'] == 'req-456'

    def test_counts_unmatched_requests(self):
        middleware = self._middleware()
        request = RequestFactory().get('/nowhere')
        middleware.process_request(request)
        before = sample('http_requests_total', path='unmatched', method='GET', status='200')

        middleware.process_response(request, HttpResponse('ok'))

        assert sample('http_requests_total', path='unmatched', method='GET', status='200') == before + 1

    def test_actor_context(self):
        set_actor_context('user-1', {'nurse', 'doctor'})

        assert get_user_id() == 'user-1'


class TestSanitization:
    """Test PHI/PII sanitization."""

    def test_sanitize_dict_redacts_clinical_text(self):
        data = {
            'visit_id': 'a1b2',
            'patient_name': 'Budi Hartono',
            'soap_assessment': 'Dengue fever',
            'nested': {'progress_note': 'Febrile', 'status': 'waiting'},
            'items': [{'justification': 'Staff discount'}],
        }

        sanitized = sanitize_dict(data)

        assert sanitized['visit_id'] == 'a1b2'
        assert sanitized['patient_name'] == '[REDACTED]'
        assert sanitized['soap_assessment'] == '[REDACTED]'
        assert sanitized['nested'] == {'progress_note': '[REDACTED]', 'status': 'waiting'}
        assert sanitized['items'] == [{'justification': '[REDACTED]'}]

    def test_sensitive_fields_cover_soap(self):
        for field in ('soap_subjective', 'soap_objective', 'soap_assessment', 'soap_plan'):
            assert field in SENSITIVE_FIELDS

    def test_json_formatter_redacts_extra_fields(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'Visit registered', None, None)
        record.visit_id = 'a1b2'
        record.patient_name = 'Budi Hartono'
        CorrelationFilter().filter(record)

        payload = json.loads(SanitizedJSONFormatter().format(record))

        assert payload['message'] == 'Visit registered'
        assert payload['visit_id'] == 'a1b2'
        assert payload['patient_name'] == '[REDACTED]'
        assert payload['request_id'] == '-'

    def test_sanitized_logger_has_correlation_filter(self):
        logger = get_sanitized_logger('apps.test.observability')
        get_sanitized_logger('apps.test.observability')

        assert sum(isinstance(f, CorrelationFilter) for f in logger.filters) == 1


class TestDomainEvents:

    @patch('apps.core.observability.events.logger')
    def test_event_fields_are_sanitized(self, mock_logger):
        log_domain_event(
            'visit.registered',
            entity_type='Visit',
            entity_id='a1b2',
            patient_name='Budi Hartono',
        )

        extra = mock_logger.info.call_args.kwargs['extra']
        assert extra['event'] == 'visit.registered'
        assert extra['entity_id'] == 'a1b2'
        assert extra['patient_name'] == '[REDACTED]'

    @patch('apps.core.observability.events.logger')
    def test_rejections_log_as_warning(self, mock_logger):
        log_domain_event('visit.transition', result='rejected')

        mock_logger.warning.assert_called_once()
        mock_logger.info.assert_not_called()


class TestTracing:

    def test_trace_span_reraises(self):
        with pytest.raises(ValueError):
            with trace_span('failing_operation', attributes={'visit_id': 'a1b2', 'missing': None}):
                raise ValueError('boom')


@pytest.mark.django_db
class TestWorkflowMetrics:

    def test_successful_transition_is_counted(self, make_visit):
        visit = make_visit(status=VisitStatus.REGISTERED)
        labels = {'from_status': 'registered', 'to_status': 'waiting', 'result': 'success'}
        before = sample('visit_transition_total', **labels)

        apply_transition(visit.pk, VisitStatus.WAITING)

        assert sample('visit_transition_total', **labels) == before + 1

    def test_rejected_transition_is_counted(self, make_visit):
        visit = make_visit(status=VisitStatus.COMPLETED)
        labels = {'from_status': 'completed', 'to_status': 'waiting', 'result': 'rejected'}
        before = sample('visit_transition_total', **labels)

        with pytest.raises(PolicyViolationError):
            apply_transition(visit.pk, VisitStatus.WAITING)

        assert sample('visit_transition_total', **labels) == before + 1

    def test_transition_of_unknown_visit(self):
        with pytest.raises(PolicyViolationError) as exc_info:
            apply_transition('00000000-0000-0000-0000-000000000000', VisitStatus.WAITING)

        assert isinstance(exc_info.value.violation, VisitNotFound)

    def test_guard_rejection_is_counted(self, doctor_client, make_visit):
        visit = make_visit(status=VisitStatus.WAITING)
        labels = {'operation': 'create_record', 'reason': 'status_required'}
        before = sample('record_guard_rejections_total', **labels)

        response = doctor_client.post('/api/v1/records/', {
            'visit_id': str(visit.pk), 'progress_note': 'Too early',
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert sample('record_guard_rejections_total', **labels) == before + 1


@pytest.mark.django_db
class TestHealthEndpoints:

    def test_healthz(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        assert response.json()['status'] == 'ok'

    def test_readyz(self, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json()['checks'] == {'database': True}

    def test_metrics_exposition(self, client):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'visit_transition_total' in response.content
