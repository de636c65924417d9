"""
DRF exception handler that renders workflow policy violations.
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.core.observability import get_sanitized_logger
from apps.core.policy import PolicyViolationError

logger = get_sanitized_logger(__name__)


def policy_exception_handler(exc, context):
    """
    Map PolicyViolationError to its violation's HTTP status.

    Response body:
        {"error": "<code>", "message": "<human readable>", "details": {...}}

    Django ValidationError (raised from model.clean()) becomes a 400 with the
    message dict. Anything else falls through to DRF's default handler, and
    unexpected infrastructure errors keep propagating as 500s.
    """
    if isinstance(exc, PolicyViolationError):
        violation = exc.violation
        view = context.get('view')
        logger.warning(
            'Policy violation',
            extra={
                'event': 'policy_violation',
                'code': violation.code,
                'view': view.__class__.__name__ if view else None,
            }
        )
        return Response(violation.to_dict(), status=violation.http_status)

    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
        return Response(detail, status=status.HTTP_400_BAD_REQUEST)

    return exception_handler(exc, context)
