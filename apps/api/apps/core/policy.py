"""
Typed policy results for workflow guards.

Guards (transition validator, mutation windows, lock gate, billing gate,
authoring policy) never raise for an expected rejection. They return a
GuardResult carrying either a value or a PolicyViolation. Services that need
to abort a transaction wrap the violation in PolicyViolationError; the DRF
exception handler in apps.core.exceptions turns it into a response.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple

from rest_framework import status


def format_rupiah(amount: Decimal) -> str:
    """Format an amount the way the cashier desk reads it: Rp 50,000."""
    quantized = Decimal(amount).quantize(Decimal('1'))
    return f'Rp {quantized:,}'


def humanize_duration(delta: timedelta) -> str:
    """Render a timedelta as '12 minutes' / '2 hours 5 minutes'."""
    total_minutes = int(delta.total_seconds() // 60)
    if total_minutes < 1:
        seconds = max(int(delta.total_seconds()), 0)
        return f'{seconds} second{"s" if seconds != 1 else ""}'
    hours, minutes = divmod(total_minutes, 60)
    parts = []
    if hours:
        parts.append(f'{hours} hour{"s" if hours != 1 else ""}')
    if minutes:
        parts.append(f'{minutes} minute{"s" if minutes != 1 else ""}')
    return ' '.join(parts)


# ============================================================================
# Violations
# ============================================================================

@dataclass(frozen=True)
class PolicyViolation:
    """Base class for every expected policy rejection."""
    code: ClassVar[str] = 'policy_violation'
    http_status: ClassVar[int] = status.HTTP_409_CONFLICT

    @property
    def message(self) -> str:
        return 'Operation not allowed'

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details(),
        }


@dataclass(frozen=True)
class InvalidTransition(PolicyViolation):
    current: str
    attempted: str
    allowed: Tuple[str, ...]
    code: ClassVar[str] = 'invalid_transition'

    @property
    def message(self) -> str:
        if self.current == self.attempted:
            return f'Visit is already in status "{self.current}"'
        return (
            f'Invalid status transition from "{self.current}" to "{self.attempted}". '
            f'Allowed transitions: {", ".join(self.allowed)}'
        )

    def details(self):
        return {
            'current_status': self.current,
            'attempted_status': self.attempted,
            'allowed_statuses': list(self.allowed),
        }


@dataclass(frozen=True)
class TerminalStateViolation(PolicyViolation):
    current: str
    attempted: str
    allowed: Tuple[str, ...] = ()
    code: ClassVar[str] = 'terminal_state'

    @property
    def message(self) -> str:
        return f'Cannot change status from terminal state "{self.current}"'

    def details(self):
        return {
            'current_status': self.current,
            'attempted_status': self.attempted,
            'allowed_statuses': [],
        }


@dataclass(frozen=True)
class WindowExpired(PolicyViolation):
    elapsed: timedelta
    limit: timedelta
    operation: ClassVar[str] = 'mutate'
    http_status: ClassVar[int] = status.HTTP_403_FORBIDDEN

    @property
    def expired_for(self) -> timedelta:
        return self.elapsed - self.limit

    @property
    def message(self) -> str:
        return (
            f'{self.operation.capitalize()} window of {humanize_duration(self.limit)} '
            f'expired {humanize_duration(self.expired_for)} ago'
        )

    def details(self):
        return {
            'operation': self.operation,
            'elapsed_ms': int(self.elapsed.total_seconds() * 1000),
            'limit_ms': int(self.limit.total_seconds() * 1000),
        }


@dataclass(frozen=True)
class EditWindowExpired(WindowExpired):
    code: ClassVar[str] = 'edit_window_expired'
    operation: ClassVar[str] = 'edit'


@dataclass(frozen=True)
class DeleteWindowExpired(WindowExpired):
    code: ClassVar[str] = 'delete_window_expired'
    operation: ClassVar[str] = 'delete'


@dataclass(frozen=True)
class VisitLocked(PolicyViolation):
    visit_id: str
    source: Optional[str] = None
    locked_at: Optional[datetime] = None
    code: ClassVar[str] = 'visit_locked'
    http_status: ClassVar[int] = status.HTTP_423_LOCKED

    @property
    def message(self) -> str:
        if self.source == 'discharge_summary':
            return 'Visit is locked: discharge summary has been issued'
        if self.source == 'finalized_record':
            return 'Visit is locked: medical record has been finalized'
        return 'Visit is locked'

    def details(self):
        return {
            'visit_id': self.visit_id,
            'lock_source': self.source,
            'locked_at': self.locked_at.isoformat() if self.locked_at else None,
        }


@dataclass(frozen=True)
class AuthorRoleMismatch(PolicyViolation):
    author_role: str
    fields: Tuple[str, ...]
    code: ClassVar[str] = 'author_role_mismatch'
    http_status: ClassVar[int] = status.HTTP_403_FORBIDDEN

    @property
    def message(self) -> str:
        return f'Role "{self.author_role}" may not write: {", ".join(self.fields)}'

    def details(self):
        return {'author_role': self.author_role, 'fields': list(self.fields)}


@dataclass(frozen=True)
class DischargeBlocked(PolicyViolation):
    remaining_amount: Decimal
    code: ClassVar[str] = 'discharge_blocked'

    @property
    def message(self) -> str:
        return f'Outstanding balance {format_rupiah(self.remaining_amount)}'

    def details(self):
        return {'remaining_amount': str(self.remaining_amount)}


@dataclass(frozen=True)
class RecordNotFound(PolicyViolation):
    entity: str = 'record'
    entity_id: Optional[str] = None
    code: ClassVar[str] = 'not_found'
    http_status: ClassVar[int] = status.HTTP_404_NOT_FOUND

    @property
    def message(self) -> str:
        return f'{self.entity.capitalize()} not found'

    def details(self):
        return {'entity': self.entity, 'entity_id': self.entity_id}


@dataclass(frozen=True)
class VisitNotFound(RecordNotFound):
    entity: str = 'visit'


@dataclass(frozen=True)
class AlreadyFulfilled(PolicyViolation):
    prescription_id: str
    code: ClassVar[str] = 'already_fulfilled'

    @property
    def message(self) -> str:
        return 'Prescription has already been dispensed by pharmacy'

    def details(self):
        return {'prescription_id': self.prescription_id}


@dataclass(frozen=True)
class MissingDisposition(PolicyViolation):
    visit_id: str
    code: ClassVar[str] = 'missing_disposition'
    http_status: ClassVar[int] = status.HTTP_400_BAD_REQUEST

    @property
    def message(self) -> str:
        return 'Emergency visit needs a disposition before the record can be locked'

    def details(self):
        return {'visit_id': self.visit_id}


@dataclass(frozen=True)
class OverrideRequired(PolicyViolation):
    current: str
    attempted: str
    permission: str
    code: ClassVar[str] = 'override_required'
    http_status: ClassVar[int] = status.HTTP_403_FORBIDDEN

    @property
    def message(self) -> str:
        return (
            f'Moving a visit back from "{self.current}" to "{self.attempted}" '
            f'requires the {self.permission} permission'
        )

    def details(self):
        return {
            'current_status': self.current,
            'attempted_status': self.attempted,
            'permission': self.permission,
        }


@dataclass(frozen=True)
class CancellationRequiresReversal(PolicyViolation):
    paid_amount: Decimal
    code: ClassVar[str] = 'cancellation_requires_reversal'

    @property
    def message(self) -> str:
        return (
            f'Payments of {format_rupiah(self.paid_amount)} were recorded; '
            f'refund them before cancelling the visit'
        )

    def details(self):
        return {'paid_amount': str(self.paid_amount)}


@dataclass(frozen=True)
class UnlockBlocked(PolicyViolation):
    reason: str
    code: ClassVar[str] = 'unlock_blocked'

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class PaymentRejected(PolicyViolation):
    reason: str
    code: ClassVar[str] = 'payment_rejected'
    http_status: ClassVar[int] = status.HTTP_400_BAD_REQUEST

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class StatusRequired(PolicyViolation):
    """The visit status does not permit the requested clinical/billing action."""
    action: str
    current: str
    required: Tuple[str, ...]
    code: ClassVar[str] = 'status_required'

    @property
    def message(self) -> str:
        return (
            f'Cannot {self.action} while visit is "{self.current}". '
            f'Required status: {", ".join(self.required)}'
        )

    def details(self):
        return {
            'action': self.action,
            'current_status': self.current,
            'required_statuses': list(self.required),
        }


# ============================================================================
# Results
# ============================================================================

@dataclass(frozen=True)
class GuardResult:
    """Outcome of a guard evaluation: a value or a violation, never both."""
    value: Any = None
    violation: Optional[PolicyViolation] = None

    @property
    def ok(self) -> bool:
        return self.violation is None

    def __bool__(self):
        return self.ok

    @property
    def reason(self) -> Optional[str]:
        return self.violation.message if self.violation else None

    @classmethod
    def allow(cls, value=None) -> 'GuardResult':
        return cls(value=value)

    @classmethod
    def deny(cls, violation: PolicyViolation) -> 'GuardResult':
        return cls(violation=violation)

    def unwrap(self):
        """Return the value or raise PolicyViolationError."""
        if self.violation is not None:
            raise PolicyViolationError(self.violation)
        return self.value


class PolicyViolationError(Exception):
    """Raised by services to abort a write when a guard rejects it."""

    def __init__(self, violation: PolicyViolation):
        self.violation = violation
        super().__init__(violation.message)
