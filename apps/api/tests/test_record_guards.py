"""
Tests for the clinical write guards: edit / delete windows and the visit
lock gate.

Boundaries are inclusive and everything that cannot be resolved is
rejected. The evaluation instant is always passed explicitly.
"""
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from apps.clinical.guards import (
    VISIT_NOT_FOUND_REASON,
    can_delete,
    can_edit,
    check_delete,
    check_edit,
    check_visit_locked,
    visit_lock_reason,
)
from apps.clinical.models import MedicalRecord, Prescription
from apps.core.policy import (
    AlreadyFulfilled,
    DeleteWindowExpired,
    EditWindowExpired,
    RecordNotFound,
    VisitLocked,
    VisitNotFound,
)
from apps.visits.models import LockSource, Visit
from apps.visits.workflow import VisitStatus, VisitType

CREATED_AT = datetime(2025, 3, 1, 8, 0, tzinfo=dt_timezone.utc)


def at(ms):
    """Instant `ms` milliseconds after CREATED_AT."""
    return CREATED_AT + timedelta(milliseconds=ms)


@pytest.fixture
def open_visit():
    return Visit(
        patient_name='Siti Aminah',
        visit_type=VisitType.OUTPATIENT,
        status=VisitStatus.IN_EXAMINATION,
    )


@pytest.fixture
def locked_visit():
    return Visit(
        patient_name='Siti Aminah',
        visit_type=VisitType.OUTPATIENT,
        status=VisitStatus.READY_FOR_BILLING,
        is_locked=True,
        lock_source=LockSource.FINALIZED_RECORD,
        locked_at=CREATED_AT,
    )


def _record(visit, **fields):
    return MedicalRecord(visit=visit, created_at=CREATED_AT, **fields)


class TestEditWindow:

    def test_just_inside_the_window(self, open_visit):
        assert can_edit(_record(open_visit), at(7_199_999), open_visit)

    def test_exact_boundary_is_allowed(self, open_visit):
        assert can_edit(_record(open_visit), at(7_200_000), open_visit)

    def test_one_millisecond_past_the_boundary(self, open_visit):
        result = check_edit(_record(open_visit), at(7_200_001), open_visit)

        assert not result.ok
        assert isinstance(result.violation, EditWindowExpired)
        assert result.violation.details()['elapsed_ms'] == 7_200_001
        assert result.violation.details()['limit_ms'] == 7_200_000

    def test_expiry_message_is_human_readable(self, open_visit):
        result = check_edit(_record(open_visit), at(7_200_000 + 12 * 60_000), open_visit)

        assert result.reason == 'Edit window of 2 hours expired 12 minutes ago'

    def test_fresh_record(self, open_visit):
        assert can_edit(_record(open_visit), at(0), open_visit)

    def test_window_comes_from_settings(self, open_visit, settings):
        settings.RECORD_EDIT_WINDOW_SECONDS = 600

        assert can_edit(_record(open_visit), at(600_000), open_visit)
        assert not can_edit(_record(open_visit), at(600_001), open_visit)


class TestDeleteWindow:

    def test_exact_boundary_is_allowed(self, open_visit):
        assert can_delete(_record(open_visit), at(3_600_000), open_visit)

    def test_past_the_delete_window(self, open_visit):
        result = check_delete(_record(open_visit), at(3_600_001), open_visit)

        assert isinstance(result.violation, DeleteWindowExpired)
        assert result.violation.code == 'delete_window_expired'

    def test_editable_but_no_longer_deletable(self, open_visit):
        record = _record(open_visit)
        now = at(5_400_000)

        assert can_edit(record, now, open_visit)
        assert not can_delete(record, now, open_visit)

    def test_fulfilled_prescription_cannot_be_deleted(self, open_visit):
        prescription = Prescription(
            visit=open_visit,
            drug_name='Amoxicillin 500mg',
            dosage='500mg',
            frequency='3x1',
            quantity=10,
            is_fulfilled=True,
            created_at=CREATED_AT,
        )

        result = check_delete(prescription, at(60_000), open_visit)

        assert isinstance(result.violation, AlreadyFulfilled)

    def test_unfulfilled_prescription_can_be_deleted(self, open_visit):
        prescription = Prescription(
            visit=open_visit,
            drug_name='Paracetamol 500mg',
            dosage='500mg',
            frequency='3x1',
            quantity=10,
            created_at=CREATED_AT,
        )

        assert can_delete(prescription, at(60_000), open_visit)


class TestLockPrecedence:

    def test_locked_visit_rejects_edit_inside_window(self, locked_visit):
        result = check_edit(_record(locked_visit), at(1_000), locked_visit)

        assert isinstance(result.violation, VisitLocked)
        assert result.violation.source == LockSource.FINALIZED_RECORD
        assert result.violation.http_status == 423

    def test_lock_reported_before_expired_window(self, locked_visit):
        """A locked visit reports the lock, not the window, for old records."""
        result = check_delete(_record(locked_visit), at(10 * 3_600_000), locked_visit)

        assert isinstance(result.violation, VisitLocked)

    def test_finalized_record_is_read_only(self, open_visit):
        record = _record(open_visit, is_locked=True, locked_at=CREATED_AT)

        result = check_edit(record, at(1_000), open_visit)

        assert isinstance(result.violation, VisitLocked)
        assert result.violation.source == 'finalized_record'

    def test_lock_reason_messages(self, open_visit, locked_visit):
        assert visit_lock_reason(open_visit) is None
        assert visit_lock_reason(locked_visit) == 'Visit is locked: medical record has been finalized'
        assert visit_lock_reason(None) == VISIT_NOT_FOUND_REASON

        locked_visit.lock_source = LockSource.DISCHARGE_SUMMARY
        assert visit_lock_reason(locked_visit) == 'Visit is locked: discharge summary has been issued'


class TestFailClosed:

    def test_missing_record(self):
        result = check_edit(None, at(0))

        assert isinstance(result.violation, RecordNotFound)
        assert result.violation.http_status == 404

    def test_missing_created_at(self, open_visit):
        record = MedicalRecord(visit=open_visit)

        assert not can_edit(record, at(0), open_visit)
        assert not can_delete(record, at(0), open_visit)

    def test_record_without_visit(self):
        record = MedicalRecord(created_at=CREATED_AT)

        result = check_edit(record, at(0))

        assert isinstance(result.violation, VisitNotFound)

    @pytest.mark.django_db
    def test_record_pointing_at_missing_visit(self):
        missing_id = uuid.uuid4()
        record = MedicalRecord(created_at=CREATED_AT, visit_id=missing_id)

        edit = check_edit(record, at(0))
        delete = check_delete(record, at(0))

        assert isinstance(edit.violation, VisitNotFound)
        assert isinstance(delete.violation, VisitNotFound)
        assert edit.violation.http_status == 404


@pytest.mark.django_db
class TestCheckVisitLocked:

    def test_unlocked_visit(self, make_visit):
        visit = make_visit(status=VisitStatus.IN_EXAMINATION)

        assert check_visit_locked(visit.pk) is None

    def test_locked_visit(self, make_visit):
        visit = make_visit(
            status=VisitStatus.READY_FOR_BILLING,
            is_locked=True,
            lock_source=LockSource.DISCHARGE_SUMMARY,
        )

        assert check_visit_locked(visit.pk) == 'Visit is locked: discharge summary has been issued'

    def test_unknown_visit_is_treated_as_locked(self):
        assert check_visit_locked(uuid.uuid4()) == VISIT_NOT_FOUND_REASON

    def test_malformed_id_is_treated_as_locked(self):
        assert check_visit_locked('not-a-uuid') == VISIT_NOT_FOUND_REASON


@pytest.mark.django_db
class TestGuardedServices:
    """The services evaluate the same windows against stored rows."""

    def _stored_record(self, visit, user, created_at):
        from apps.clinical.authoring import AuthorRole

        record = MedicalRecord.objects.create(
            visit=visit,
            author=user,
            author_role=AuthorRole.NURSE,
            progress_note='Patient resting',
        )
        MedicalRecord.objects.filter(pk=record.pk).update(created_at=created_at)
        return record

    def test_update_inside_window(self, make_visit, nurse_user):
        from apps.authz.actor import resolve_actor
        from apps.authz.cache import RoleCache
        from apps.clinical.services import update_medical_record

        visit = make_visit(status=VisitStatus.IN_EXAMINATION)
        record = self._stored_record(visit, nurse_user, CREATED_AT)
        actor = resolve_actor(nurse_user, RoleCache())

        updated = update_medical_record(
            record.pk, nurse_user, actor, {'progress_note': 'Patient sleeping'}, now=at(7_200_000)
        )

        assert updated.progress_note == 'Patient sleeping'

    def test_update_after_window_is_refused(self, make_visit, nurse_user):
        from apps.authz.actor import resolve_actor
        from apps.authz.cache import RoleCache
        from apps.clinical.services import update_medical_record
        from apps.core.policy import PolicyViolationError

        visit = make_visit(status=VisitStatus.IN_EXAMINATION)
        record = self._stored_record(visit, nurse_user, CREATED_AT)
        actor = resolve_actor(nurse_user, RoleCache())

        with pytest.raises(PolicyViolationError) as exc_info:
            update_medical_record(
                record.pk, nurse_user, actor, {'progress_note': 'Too late'}, now=at(7_200_001)
            )

        assert exc_info.value.violation.code == 'edit_window_expired'
        record.refresh_from_db()
        assert record.progress_note == 'Patient resting'

    def test_delete_after_window_is_refused(self, make_visit, nurse_user):
        from apps.clinical.services import delete_medical_record
        from apps.core.policy import PolicyViolationError

        visit = make_visit(status=VisitStatus.IN_EXAMINATION)
        record = self._stored_record(visit, nurse_user, CREATED_AT)

        with pytest.raises(PolicyViolationError) as exc_info:
            delete_medical_record(record.pk, nurse_user, now=at(3_600_001))

        assert exc_info.value.violation.code == 'delete_window_expired'
        assert MedicalRecord.objects.filter(pk=record.pk).exists()

    def test_delete_inside_window(self, make_visit, nurse_user):
        from apps.clinical.services import delete_medical_record

        visit = make_visit(status=VisitStatus.IN_EXAMINATION)
        record = self._stored_record(visit, nurse_user, CREATED_AT)

        delete_medical_record(record.pk, nurse_user, now=at(3_600_000))

        assert not MedicalRecord.objects.filter(pk=record.pk).exists()
