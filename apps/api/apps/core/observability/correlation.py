"""
Request correlation middleware.

Generates/propagates X-Request-ID and keeps per-request context (request id,
trace id, acting user and roles) in thread-local storage so every log line
emitted while serving the request can be tied back to it.
"""
import uuid
import time
import logging
from threading import local

from django.utils.deprecation import MiddlewareMixin

from .metrics import metrics

_request_context = local()

logger = logging.getLogger(__name__)

_CONTEXT_ATTRS = ('request_id', 'trace_id', 'span_id', 'user_id', 'user_roles')


def get_request_id():
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    return getattr(_request_context, 'user_roles', [])


def set_actor_context(user_id, roles):
    """
    Record the authenticated actor for log correlation.

    JWT authentication runs inside the DRF view, after this middleware has
    seen the request, so the actor is attached once apps.authz resolves it.
    """
    _request_context.user_id = str(user_id) if user_id else None
    _request_context.user_roles = sorted(roles or [])


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates or propagates X-Request-ID
    - Extracts X-Trace-ID / X-Span-ID when an upstream proxy sets them
    - Adds correlation headers to the response
    - Logs request completion with its duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'
    SPAN_ID_HEADER = 'HTTP_X_SPAN_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)
        span_id = request.META.get(self.SPAN_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.span_id = span_id
        request.start_time = time.time()

        clear_request_context()
        _request_context.request_id = request_id
        _request_context.trace_id = trace_id
        _request_context.span_id = span_id

        # Session-authenticated users (admin site) are known already
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            set_actor_context(
                user.id,
                list(user.user_roles.values_list('role__name', flat=True))
            )
        else:
            set_actor_context(None, [])

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        resolver_match = getattr(request, 'resolver_match', None)
        route = resolver_match.route if resolver_match else 'unmatched'
        metrics.http_requests_total.labels(
            path=route,
            method=request.method,
            status=str(response.status_code),
        ).inc()

        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000
            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        return response

    def process_exception(self, request, exception):
        metrics.exceptions_total.labels(
            exception_type=exception.__class__.__name__,
            location='middleware',
        ).inc()

        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
            }
        )


def clear_request_context():
    """Clear thread-local request context (useful for testing)."""
    for attr in _CONTEXT_ATTRS:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
