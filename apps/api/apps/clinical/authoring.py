"""
Record authoring policy.

Which clinical sections an author may write is decided by an explicit
AuthorRole variant and a per-role field set. The author role comes from the
authenticated actor; request bodies never carry it.
"""
from typing import Iterable, Mapping, Union

from django.db import models

from apps.core.policy import AuthorRoleMismatch, GuardResult


class AuthorRole(models.TextChoices):
    DOCTOR = 'doctor', 'Doctor'
    NURSE = 'nurse', 'Nurse'


SOAP_FIELDS = (
    'soap_subjective',
    'soap_objective',
    'soap_assessment',
    'soap_plan',
)

NOTE_FIELDS = (
    'progress_note',
    'instructions',
)

# Ordered for stable error messages
CLINICAL_CONTENT_FIELDS = SOAP_FIELDS + NOTE_FIELDS

AUTHORING_FIELDS = {
    AuthorRole.DOCTOR: frozenset(SOAP_FIELDS + NOTE_FIELDS),
    AuthorRole.NURSE: frozenset(NOTE_FIELDS),
}

# Identity fields a client might try to smuggle into a write
TRUST_FIELDS = ('author', 'author_id', 'author_role', 'authorId', 'authorRole')


def author_role_for(system_role: Union[str, Iterable[str], None]) -> AuthorRole:
    """
    Map system role(s) onto an authoring variant.

    doctor -> DOCTOR; any other clinical role -> NURSE. A user holding several
    roles authors as a doctor when one of them is doctor.
    """
    if system_role is None:
        return AuthorRole.NURSE
    roles = {system_role} if isinstance(system_role, str) else set(system_role)
    return AuthorRole.DOCTOR if 'doctor' in roles else AuthorRole.NURSE


def writable_fields(author_role) -> frozenset:
    return AUTHORING_FIELDS.get(author_role, frozenset())


def _is_set(value) -> bool:
    return value is not None and value != ''


def _touches(field, payload: Mapping, existing) -> bool:
    if field not in payload:
        return False
    if existing is None:
        return _is_set(payload[field])
    # Clearing stored content is a write; re-sending it unchanged is not
    return (payload[field] or '') != (getattr(existing, field) or '')


def validate_authoring(author_role, payload: Mapping, existing=None) -> GuardResult:
    """
    Reject content the author role may not write.

    On create (existing is None) empty or null values do not count as writing
    a field. On update any change to a stored field counts, clearing included.
    Returns the author role on success so callers can chain it into the save.
    """
    allowed = writable_fields(author_role)
    forbidden = tuple(
        field for field in CLINICAL_CONTENT_FIELDS
        if field not in allowed and _touches(field, payload, existing)
    )
    if forbidden:
        return GuardResult.deny(AuthorRoleMismatch(str(author_role), forbidden))
    return GuardResult.allow(AuthorRole(author_role))


def strip_trust_fields(data: Mapping) -> dict:
    """Copy of data without client-supplied author identity."""
    return {key: value for key, value in data.items() if key not in TRUST_FIELDS}


# Diagnoses are part of the assessment
DIAGNOSIS_FIELDS = ('icd10_code', 'description', 'diagnosis_type')


def validate_diagnosis_author(author_role) -> GuardResult:
    if author_role != AuthorRole.DOCTOR:
        return GuardResult.deny(AuthorRoleMismatch(str(author_role), DIAGNOSIS_FIELDS))
    return GuardResult.allow(AuthorRole(author_role))
