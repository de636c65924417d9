"""
Write guards for clinical entries.

Two independent time windows measured from an entry's created_at:

    edit    2 hours  (RECORD_EDIT_WINDOW_SECONDS)
    delete  1 hour   (RECORD_DELETE_WINDOW_SECONDS)

Boundaries are inclusive. A locked visit rejects every write before the
window is looked at, and anything that cannot be resolved (missing entry,
missing created_at, missing visit) is rejected, never allowed.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Type

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError
from django.utils import timezone

from apps.core.policy import (
    AlreadyFulfilled,
    DeleteWindowExpired,
    EditWindowExpired,
    GuardResult,
    RecordNotFound,
    VisitLocked,
    VisitNotFound,
    WindowExpired,
)

DEFAULT_EDIT_WINDOW = timedelta(milliseconds=7_200_000)
DEFAULT_DELETE_WINDOW = timedelta(milliseconds=3_600_000)

VISIT_NOT_FOUND_REASON = 'Visit not found'


@dataclass(frozen=True)
class MutationWindow:
    """How long after creation an operation stays allowed."""
    operation: str
    limit: timedelta
    violation_class: Type[WindowExpired]

    def elapsed(self, created_at: datetime, now: datetime) -> timedelta:
        return now - created_at

    def evaluate(self, created_at: datetime, now: datetime) -> GuardResult:
        elapsed = self.elapsed(created_at, now)
        if elapsed <= self.limit:
            return GuardResult.allow(elapsed)
        return GuardResult.deny(self.violation_class(elapsed=elapsed, limit=self.limit))

    def earliest_allowed_created_at(self, now: datetime) -> datetime:
        """Lower bound on created_at for a conditional write at `now`."""
        return now - self.limit


def _window_from_settings(setting_name, default):
    seconds = getattr(settings, setting_name, None)
    if seconds is None:
        return default
    return timedelta(seconds=seconds)


def edit_window() -> MutationWindow:
    return MutationWindow(
        'edit',
        _window_from_settings('RECORD_EDIT_WINDOW_SECONDS', DEFAULT_EDIT_WINDOW),
        EditWindowExpired,
    )


def delete_window() -> MutationWindow:
    return MutationWindow(
        'delete',
        _window_from_settings('RECORD_DELETE_WINDOW_SECONDS', DEFAULT_DELETE_WINDOW),
        DeleteWindowExpired,
    )


# ============================================================================
# Visit lock gate
# ============================================================================

def visit_lock_violation(visit) -> Optional[VisitLocked]:
    if visit is None or not visit.is_locked:
        return None
    return VisitLocked(
        visit_id=str(visit.pk),
        source=visit.lock_source,
        locked_at=visit.locked_at,
    )


def visit_lock_reason(visit) -> Optional[str]:
    """None when the visit accepts clinical writes, otherwise why it does not."""
    if visit is None:
        return VISIT_NOT_FOUND_REASON
    violation = visit_lock_violation(visit)
    return violation.message if violation else None


def check_visit_locked(visit_id) -> Optional[str]:
    """Read the visit and report its lock reason. Unknown visits are locked."""
    from apps.visits.models import Visit

    try:
        visit = Visit.objects.get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, DjangoValidationError):
        return VISIT_NOT_FOUND_REASON
    return visit_lock_reason(visit)


def _resolve_visit(record, visit):
    if visit is not None:
        return visit
    if getattr(record, 'visit_id', None) is None:
        return None
    try:
        return record.visit
    except ObjectDoesNotExist:
        return None


def _precheck(record, visit) -> GuardResult:
    """Existence and lock checks shared by edit and delete."""
    if record is None:
        return GuardResult.deny(RecordNotFound())

    record_id = str(record.pk) if getattr(record, 'pk', None) else None
    if getattr(record, 'created_at', None) is None:
        return GuardResult.deny(RecordNotFound(entity_id=record_id))

    visit = _resolve_visit(record, visit)
    if visit is None:
        visit_id = getattr(record, 'visit_id', None)
        return GuardResult.deny(VisitNotFound(entity_id=str(visit_id) if visit_id else None))

    violation = visit_lock_violation(visit)
    if violation is not None:
        return GuardResult.deny(violation)

    # Finalized records are read-only on their own
    if getattr(record, 'is_locked', False):
        return GuardResult.deny(VisitLocked(
            visit_id=str(visit.pk),
            source='finalized_record',
            locked_at=getattr(record, 'locked_at', None),
        ))

    return GuardResult.allow(record)


def check_edit(record, now: Optional[datetime] = None, visit=None) -> GuardResult:
    result = _precheck(record, visit)
    if not result:
        return result

    window = edit_window().evaluate(record.created_at, now or timezone.now())
    if not window:
        return window
    return GuardResult.allow(record)


def check_delete(record, now: Optional[datetime] = None, visit=None) -> GuardResult:
    result = _precheck(record, visit)
    if not result:
        return result

    window = delete_window().evaluate(record.created_at, now or timezone.now())
    if not window:
        return window

    # Prescriptions only; other entries have no fulfillment
    if getattr(record, 'is_fulfilled', False):
        return GuardResult.deny(AlreadyFulfilled(prescription_id=str(record.pk)))

    return GuardResult.allow(record)


def can_edit(record, now: Optional[datetime] = None, visit=None) -> bool:
    return check_edit(record, now, visit).ok


def can_delete(record, now: Optional[datetime] = None, visit=None) -> bool:
    return check_delete(record, now, visit).ok
