"""
Domain events logging helpers.

Provides structured event logging for visit workflow operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'visit.transition')
        entity_type: Type of entity (e.g., 'Visit', 'MedicalRecord')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, blocked, failure)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'visit.transition',
            entity_type='Visit',
            entity_id=str(visit.id),
            result='success',
            from_status='waiting',
            to_status='in_examination'
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'rejected']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_visit_transition(visit_id, from_status, to_status, result='success', **extra):
    """Log visit status transition event."""
    log_domain_event(
        'visit.transition',
        entity_type='Visit',
        entity_id=str(visit_id),
        entity_ids={'visit_id': str(visit_id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_guard_rejected(operation, violation, entity_type, entity_id, **extra):
    """Log a clinical write rejected by a guard."""
    log_domain_event(
        'guard.rejected',
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else None,
        result='rejected',
        operation=operation,
        reason=violation.code,
        **extra
    )


def log_lock_event(visit_id, action, source, actor_id=None):
    """Log visit lock/unlock."""
    log_domain_event(
        f'medical_record.{action}',
        entity_type='Visit',
        entity_id=str(visit_id),
        entity_ids={'visit_id': str(visit_id)},
        result='success',
        lock_source=source,
        actor_id=str(actor_id) if actor_id else None,
    )


def log_discharge_check(visit_id, can_discharge, remaining_amount):
    """Log a billing gate evaluation."""
    log_domain_event(
        'visit.discharge_eligibility',
        entity_type='Visit',
        entity_id=str(visit_id),
        result='success' if can_discharge else 'blocked',
        remaining_amount=str(remaining_amount),
    )
