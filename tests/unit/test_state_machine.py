"""
Unit tests for the state machine base and the consistency check machine.
"""

import json

import pytest
from returns.result import Failure, Success

from ktverify.consistency.checker import ALLOWED_TRANSITIONS, ConsistencyStateMachine
from ktverify.consistency.types import (
    CheckContext,
    CheckFailed,
    CheckState,
    ChecksumComputed,
    KDCPresenceConfirmed,
    KeytabPresenceConfirmed,
    SecretFetched,
)
from ktverify.core.exceptions import InvariantViolation, StateError
from ktverify.core.state_machine import verify_trace
from ktverify.core.types import Principal


CHECKSUM = "0" * 64


@pytest.fixture
def machine() -> ConsistencyStateMachine:
    return ConsistencyStateMachine(
        _context=CheckContext(
            principals=[Principal.from_string("svc/host@EXAMPLE.COM")],
            secret="__svc-keytab",
        ),
    )


def run_to_keytab_verified(machine: ConsistencyStateMachine) -> None:
    machine.process_event(KDCPresenceConfirmed(checked=1))
    machine.process_event(SecretFetched(size=64))
    machine.process_event(KeytabPresenceConfirmed(entries=2))


class TestConsistencyStateMachine:
    """Tests for transitions and invariants."""

    def test_initial_state(self, machine):
        assert machine.state == CheckState.START
        assert machine.INITIAL_STATE == CheckState.START
        assert not machine.state.is_terminal

    def test_happy_path(self, machine):
        run_to_keytab_verified(machine)
        result = machine.process_event(ChecksumComputed(checksum=CHECKSUM))

        assert result == Success(CheckState.CHECKSUM_COMPUTED)
        assert machine.state.is_terminal
        assert machine.context.secret_size == 64
        assert machine.context.keytab_entries == 2
        assert machine.outcome().checksum == CHECKSUM

    def test_fail_from_start(self, machine):
        machine.process_event(CheckFailed(reason="Principal 'x@R' does not exist in kerberos"))
        assert machine.state == CheckState.FAILED
        status = machine.outcome()
        assert not status.passed
        assert status.reason == "Principal 'x@R' does not exist in kerberos"

    def test_undefined_transition_is_failure(self, machine):
        result = machine.process_event(SecretFetched(size=1))
        assert isinstance(result, Failure)
        assert "No transition" in result.failure()
        assert machine.state == CheckState.START
        assert machine.get_trace() == []

    def test_cannot_fail_after_keytab_verified(self, machine):
        run_to_keytab_verified(machine)
        assert isinstance(machine.process_event(CheckFailed(reason="late")), Failure)

    def test_terminal_states_accept_nothing(self, machine):
        machine.process_event(CheckFailed(reason="nope"))
        assert isinstance(machine.process_event(KDCPresenceConfirmed(checked=1)), Failure)

    def test_short_checksum_violates_invariant(self, machine):
        run_to_keytab_verified(machine)
        with pytest.raises(InvariantViolation):
            machine.process_event(ChecksumComputed(checksum="abc"))
        assert machine.state == CheckState.KEYTAB_PRESENCE_VERIFIED

    def test_empty_reason_violates_invariant(self, machine):
        with pytest.raises(InvariantViolation):
            machine.process_event(CheckFailed(reason=""))

    def test_outcome_requires_terminal_state(self, machine):
        with pytest.raises(StateError):
            machine.outcome()


class TestTrace:
    """Tests for transition history and export."""

    def test_visited_states(self, machine):
        assert machine.visited_states() == ["START"]
        run_to_keytab_verified(machine)
        machine.process_event(ChecksumComputed(checksum=CHECKSUM))
        assert machine.visited_states() == [
            "START",
            "KDC_PRESENCE_VERIFIED",
            "SECRET_LOADED",
            "KEYTAB_PRESENCE_VERIFIED",
            "CHECKSUM_COMPUTED",
        ]

    def test_trace_verifies(self, machine):
        run_to_keytab_verified(machine)
        machine.process_event(ChecksumComputed(checksum=CHECKSUM))
        assert verify_trace(machine.get_trace(), ALLOWED_TRANSITIONS) == []

    def test_verify_trace_reports_unknown_transition(self, machine):
        machine.process_event(KDCPresenceConfirmed(checked=1))
        allowed = {("START", "CheckFailed"): "FAILED"}
        errors = verify_trace(machine.get_trace(), allowed)
        assert len(errors) == 1
        assert "Invalid transition" in errors[0]

    def test_verify_trace_reports_wrong_target(self, machine):
        machine.process_event(KDCPresenceConfirmed(checked=1))
        allowed = {("START", "KDCPresenceConfirmed"): "FAILED"}
        errors = verify_trace(machine.get_trace(), allowed)
        assert "Expected" in errors[0]

    def test_transition_record(self, machine):
        machine.process_event(KDCPresenceConfirmed(checked=1))
        machine.process_event(CheckFailed(reason="Secret '__svc-keytab' does not exist"))

        records = [json.loads(json.dumps(t.to_dict())) for t in machine.get_trace()]
        assert [r["event_type"] for r in records] == ["KDCPresenceConfirmed", "CheckFailed"]
        assert records[0]["event_data"] == {"checked": 1}
        assert records[-1]["from_state"] == "KDC_PRESENCE_VERIFIED"
        assert records[-1]["to_state"] == "FAILED"
        assert records[-1]["event_data"] == {"reason": "Secret '__svc-keytab' does not exist"}

    def test_transition_names_cover_table(self):
        assert ALLOWED_TRANSITIONS == ConsistencyStateMachine.transition_names()
        assert len(ALLOWED_TRANSITIONS) == len(ConsistencyStateMachine.TRANSITIONS)
        assert ALLOWED_TRANSITIONS[("SECRET_LOADED", "CheckFailed")] == "FAILED"

    def test_trace_is_a_copy(self, machine):
        machine.process_event(KDCPresenceConfirmed(checked=1))
        trace = machine.get_trace()
        trace.clear()
        assert len(machine.get_trace()) == 1
