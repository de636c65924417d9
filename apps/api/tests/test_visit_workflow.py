"""
Visit status workflow tests.

Covers the edge table, terminal states, the workflow predicates and the
status labels. Pure functions, no database.
"""
import pytest

from apps.core.policy import InvalidTransition, TerminalStateViolation
from apps.visits.workflow import (
    VISIT_STATUS_TRANSITIONS,
    VisitStatus,
    VisitType,
    allowed_next_statuses,
    can_complete_visit,
    can_create_billing,
    can_create_medical_record,
    can_lock_medical_record,
    initial_status,
    is_backward_transition,
    is_terminal,
    status_label,
    transition,
)

S = VisitStatus

LEGAL_EDGES = {
    (S.REGISTERED, S.WAITING), (S.REGISTERED, S.CANCELLED),
    (S.WAITING, S.IN_EXAMINATION), (S.WAITING, S.CANCELLED),
    (S.IN_EXAMINATION, S.EXAMINED), (S.IN_EXAMINATION, S.WAITING), (S.IN_EXAMINATION, S.CANCELLED),
    (S.EXAMINED, S.READY_FOR_BILLING), (S.EXAMINED, S.IN_EXAMINATION), (S.EXAMINED, S.CANCELLED),
    (S.READY_FOR_BILLING, S.BILLED), (S.READY_FOR_BILLING, S.CANCELLED),
    (S.BILLED, S.PAID), (S.BILLED, S.CANCELLED),
    (S.PAID, S.COMPLETED),
}


class TestTransitionTable:

    @pytest.mark.parametrize('current', list(VisitStatus))
    @pytest.mark.parametrize('target', list(VisitStatus))
    def test_every_status_pair(self, current, target):
        """Exactly the listed edges succeed; everything else is refused."""
        result = transition(current, target)

        if (current, target) in LEGAL_EDGES:
            assert result.ok
            assert result.value == target
        else:
            assert not result.ok
            assert result.value is None

    def test_every_status_has_an_entry(self):
        assert set(VISIT_STATUS_TRANSITIONS) == set(VisitStatus)

    def test_paid_only_moves_to_completed(self):
        assert allowed_next_statuses(S.PAID) == (S.COMPLETED,)
        assert not transition(S.PAID, S.CANCELLED).ok

    def test_rejection_lists_allowed_targets(self):
        result = transition(S.REGISTERED, S.PAID)

        assert isinstance(result.violation, InvalidTransition)
        assert result.violation.allowed == ('waiting', 'cancelled')
        assert 'waiting, cancelled' in result.reason

    def test_self_transition_is_refused(self):
        result = transition(S.WAITING, S.WAITING)

        assert not result.ok
        assert result.reason == 'Visit is already in status "waiting"'

    def test_unknown_statuses_are_never_legal(self):
        assert not transition('registered', 'teleported').ok
        assert not transition('teleported', 'waiting').ok
        assert allowed_next_statuses('teleported') == ()

    def test_plain_string_values_are_accepted(self):
        result = transition('waiting', 'in_examination')

        assert result.ok
        assert result.value == S.IN_EXAMINATION


class TestTerminalStates:

    @pytest.mark.parametrize('terminal', [S.COMPLETED, S.CANCELLED])
    def test_terminal_states_have_no_outgoing_edges(self, terminal):
        assert is_terminal(terminal)
        assert allowed_next_statuses(terminal) == ()

    @pytest.mark.parametrize('terminal', [S.COMPLETED, S.CANCELLED])
    @pytest.mark.parametrize('target', list(VisitStatus))
    def test_terminal_rejection_is_distinguishable(self, terminal, target):
        result = transition(terminal, target)

        assert isinstance(result.violation, TerminalStateViolation)
        assert result.violation.code == 'terminal_state'
        assert result.violation.details()['allowed_statuses'] == []

    def test_non_terminal_states(self):
        non_terminal = [s for s in VisitStatus if s not in (S.COMPLETED, S.CANCELLED)]
        assert all(not is_terminal(s) for s in non_terminal)


class TestPredicates:

    def test_initial_status_is_registered_for_every_type(self):
        for visit_type in VisitType:
            assert initial_status(visit_type) == S.REGISTERED

    def test_billing_allowed_while_ready_or_billed(self):
        allowed = {s for s in VisitStatus if can_create_billing(s)}
        assert allowed == {S.READY_FOR_BILLING, S.BILLED}

    def test_completion_requires_paid(self):
        assert {s for s in VisitStatus if can_complete_visit(s)} == {S.PAID}

    def test_medical_record_writable_during_examination(self):
        allowed = {s for s in VisitStatus if can_create_medical_record(s)}
        assert allowed == {S.IN_EXAMINATION, S.EXAMINED}

    def test_lock_requires_examined(self):
        assert {s for s in VisitStatus if can_lock_medical_record(s)} == {S.EXAMINED}

    def test_backward_edges(self):
        assert is_backward_transition(S.IN_EXAMINATION, S.WAITING)
        assert is_backward_transition(S.EXAMINED, S.IN_EXAMINATION)
        assert not is_backward_transition(S.WAITING, S.IN_EXAMINATION)
        assert not is_backward_transition(S.BILLED, S.CANCELLED)


class TestStatusLabels:

    def test_english_labels(self):
        assert status_label(S.READY_FOR_BILLING) == 'Ready for Billing'
        assert status_label('in_examination', 'en') == 'In Examination'

    def test_indonesian_labels(self):
        assert status_label(S.PAID, 'id') == 'Lunas'
        assert status_label(S.CANCELLED, 'id') == 'Dibatalkan'
        assert status_label('waiting', 'id') == 'Menunggu'

    def test_every_status_has_both_labels(self):
        for s in VisitStatus:
            assert status_label(s, 'en')
            assert status_label(s, 'id')

    def test_unknown_status_is_echoed(self):
        assert status_label('teleported', 'id') == 'teleported'
