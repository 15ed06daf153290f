"""
Unit tests for ktverify.consistency.checker module.

Tests check outcomes, failure reasons, step ordering and hard errors.
"""

import hashlib

import pytest

from ktverify.admin.collaborators import KDCAdmin, SecretStore
from ktverify.consistency.checker import ALLOWED_TRANSITIONS, ConsistencyChecker
from ktverify.consistency.types import CheckState
from ktverify.core.exceptions import CollaboratorError, InvalidRequest, MalformedKeytab
from ktverify.core.state_machine import verify_trace
from ktverify.core.types import Key, Principal


SECRET = "__svc-keytab"


# =============================================================================
# TEST COLLABORATORS
# =============================================================================


class RecordingKDC(KDCAdmin):
    """KDC that records presence queries and knows a fixed principal set."""

    def __init__(self, known=(), error=None):
        self.known = {p.full() for p in known}
        self.error = error
        self.queried = []

    def has_principal(self, principal):
        self.queried.append(principal.full())
        if self.error is not None:
            raise self.error
        return principal.full() in self.known

    def list_principals(self, filter="*"):
        return []

    def add_missing_principals(self, principals):
        pass

    def delete_principals(self, principals):
        pass

    def export_keytab(self, principals):
        return b"\x05\x02"


class RecordingSecretStore(SecretStore):
    """Secret store returning fixed contents and recording loads."""

    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error
        self.loaded = []

    def load(self, name, binary=False):
        self.loaded.append((name, binary))
        if self.error is not None:
            raise self.error
        return self.data

    def store(self, name, data, binary=False):
        pass

    def delete(self, name, binary=False):
        pass


@pytest.fixture
def provisioned(kdc, secret_store, service_principal):
    """KDC and store holding svc/host with keys (18, aa) and (17, bb)."""
    kdc.set_keys(
        service_principal,
        [Key(enc_type=18, material=b"\xaa"), Key(enc_type=17, material=b"\xbb")],
    )
    secret_store.store(SECRET, kdc.export_keytab([service_principal]))
    return kdc, secret_store


# =============================================================================
# OUTCOMES
# =============================================================================


class TestCheckPasses:
    """Tests for passing checks."""

    def test_pass_with_known_checksum(self, provisioned, checker, service_principal):
        status = checker.check([service_principal], SECRET)

        assert status.passed
        assert status.reason == ""
        assert status.checksum == hashlib.sha256(b"17:bb,18:aa").hexdigest()

    def test_binary_secret(self, kdc, secret_store, checker, service_principal):
        kdc.add_missing_principals([service_principal])
        secret_store.store(SECRET, kdc.export_keytab([service_principal]), binary=True)

        assert checker.check([service_principal], SECRET, binary=True).passed

    def test_checksum_independent_of_request_order(self, kdc, secret_store, checker, broker_principals):
        kdc.add_missing_principals(broker_principals)
        secret_store.store(SECRET, kdc.export_keytab(broker_principals))

        forward = checker.check(broker_principals, SECRET)
        backward = checker.check(tuple(reversed(broker_principals)), SECRET)
        assert forward.passed
        assert forward.checksum == backward.checksum

    def test_subset_of_keytab(self, kdc, secret_store, checker, broker_principals):
        kdc.add_missing_principals(broker_principals)
        secret_store.store(SECRET, kdc.export_keytab(broker_principals))

        subset = checker.check(broker_principals[:1], SECRET)
        full = checker.check(broker_principals, SECRET)
        assert subset.passed
        assert subset.checksum != full.checksum

    def test_checksum_changes_after_key_rotation(self, provisioned, checker, service_principal):
        kdc, secret_store = provisioned
        before = checker.check([service_principal], SECRET).checksum

        kdc.randomize_keys(service_principal)
        secret_store.store(SECRET, kdc.export_keytab([service_principal]))

        after = checker.check([service_principal], SECRET).checksum
        assert before != after


class TestCheckFails:
    """Tests for failed checks and their reasons."""

    def test_principal_missing_from_kdc(self, provisioned, checker, service_principal):
        missing = Principal.from_string("ghost/host@EXAMPLE.COM")
        status = checker.check([service_principal, missing], SECRET)

        assert not status.passed
        assert status.checksum is None
        assert status.reason == "Principal 'ghost/host@EXAMPLE.COM' does not exist in kerberos"

    def test_kdc_failure_reported_before_keytab_failure(self, kdc, secret_store, checker):
        a = Principal.from_string("a@EXAMPLE.COM")
        b = Principal.from_string("b@EXAMPLE.COM")
        kdc.add_missing_principals([b])
        secret_store.store(SECRET, kdc.export_keytab([]))

        status = checker.check([a, b], SECRET)
        assert status.reason == "Principal 'a@EXAMPLE.COM' does not exist in kerberos"

    def test_secret_missing(self, kdc, checker, service_principal):
        kdc.add_missing_principals([service_principal])

        status = checker.check([service_principal], "__nope")
        assert not status.passed
        assert status.reason == "Secret '__nope' does not exist"

    def test_empty_secret_counts_as_missing(self, service_principal):
        checker = ConsistencyChecker(
            kdc=RecordingKDC(known=[service_principal]),
            secrets=RecordingSecretStore(data=b""),
        )
        status = checker.check([service_principal], SECRET)
        assert status.reason == f"Secret '{SECRET}' does not exist"

    def test_principal_missing_from_keytab(self, provisioned, checker, service_principal):
        kdc, _ = provisioned
        extra = Principal.from_string("extra/host@EXAMPLE.COM")
        kdc.add_missing_principals([extra])

        status = checker.check([service_principal, extra], SECRET)
        assert status.reason == "Principal 'extra/host@EXAMPLE.COM' does not exist in keytab"

    def test_first_keytab_miss_in_request_order(self, kdc, secret_store, checker):
        z = Principal.from_string("z@EXAMPLE.COM")
        a = Principal.from_string("a@EXAMPLE.COM")
        kdc.add_missing_principals([z, a])
        secret_store.store(SECRET, kdc.export_keytab([]))

        status = checker.check([z, a], SECRET)
        assert status.reason == "Principal 'z@EXAMPLE.COM' does not exist in keytab"

    def test_empty_keytab(self, kdc, secret_store, checker, service_principal):
        kdc.add_missing_principals([service_principal])
        secret_store.store(SECRET, b"\x05\x02")

        status = checker.check([service_principal], SECRET)
        assert status.reason == "Principal 'svc/host@EXAMPLE.COM' does not exist in keytab"


class TestStepOrdering:
    """Tests that later steps are skipped once a step fails."""

    def test_kdc_queries_stop_at_first_absent(self):
        a = Principal.from_string("a@R")
        b = Principal.from_string("b@R")
        c = Principal.from_string("c@R")
        kdc = RecordingKDC(known=[a, c])
        store = RecordingSecretStore(data=b"\x05\x02")
        checker = ConsistencyChecker(kdc=kdc, secrets=store)

        status = checker.check([a, b, c], SECRET)

        assert status.reason == "Principal 'b@R' does not exist in kerberos"
        assert kdc.queried == ["a@R", "b@R"]
        assert store.loaded == []

    def test_secret_loaded_with_binary_flag(self):
        a = Principal.from_string("a@R")
        store = RecordingSecretStore(data=None)
        checker = ConsistencyChecker(kdc=RecordingKDC(known=[a]), secrets=store)

        checker.check([a], SECRET, binary=True)
        assert store.loaded == [(SECRET, True)]

    def test_malformed_secret_not_parsed_when_kdc_fails(self):
        store = RecordingSecretStore(data=b"garbage")
        checker = ConsistencyChecker(kdc=RecordingKDC(), secrets=store)

        status = checker.check([Principal.from_string("a@R")], SECRET)
        assert not status.passed


# =============================================================================
# HARD ERRORS
# =============================================================================


class TestCheckErrors:
    """Tests for errors that are raised instead of returned."""

    def test_malformed_keytab(self, kdc, secret_store, checker, service_principal):
        kdc.add_missing_principals([service_principal])
        secret_store.store(SECRET, b"not a keytab")

        with pytest.raises(MalformedKeytab):
            checker.check([service_principal], SECRET)

    def test_kdc_error(self, service_principal):
        cause = ConnectionError("kadmin unreachable")
        checker = ConsistencyChecker(
            kdc=RecordingKDC(error=cause), secrets=RecordingSecretStore()
        )

        with pytest.raises(CollaboratorError) as exc_info:
            checker.check([service_principal], SECRET)
        assert str(exc_info.value) == (
            "Unable to check if principal svc/host@EXAMPLE.COM exists: kadmin unreachable"
        )
        assert exc_info.value.__cause__ is cause

    def test_secret_store_error(self, service_principal):
        checker = ConsistencyChecker(
            kdc=RecordingKDC(known=[service_principal]),
            secrets=RecordingSecretStore(error=PermissionError("token expired")),
        )

        with pytest.raises(CollaboratorError, match="Unable to read the keytab secret"):
            checker.check([service_principal], SECRET)

    def test_empty_principal_list(self, checker):
        with pytest.raises(InvalidRequest):
            checker.check([], SECRET)

    def test_blank_secret(self, checker, service_principal):
        with pytest.raises(InvalidRequest):
            checker.check([service_principal], "")


# =============================================================================
# AUDIT TRACE
# =============================================================================


class TestCheckTrace:
    """Tests for the state machine trace of a check."""

    def test_pass_trace(self, provisioned, checker, service_principal):
        status, machine = checker.check_with_trace([service_principal], SECRET)

        assert status.passed
        assert machine.state == CheckState.CHECKSUM_COMPUTED
        assert machine.context.keytab_entries == 2
        assert verify_trace(machine.get_trace(), ALLOWED_TRANSITIONS) == []

    def test_secret_failure_trace(self, kdc, checker, service_principal):
        kdc.add_missing_principals([service_principal])
        _, machine = checker.check_with_trace([service_principal], "__nope")

        assert machine.visited_states() == ["START", "KDC_PRESENCE_VERIFIED", "FAILED"]
        assert verify_trace(machine.get_trace(), ALLOWED_TRANSITIONS) == []

    def test_kdc_failure_trace(self, checker, service_principal):
        _, machine = checker.check_with_trace([service_principal], SECRET)
        assert machine.visited_states() == ["START", "FAILED"]

