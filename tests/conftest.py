"""
Pytest configuration and shared fixtures for ktverify tests.
"""

from typing import Callable, Iterable, Tuple

import pytest

from ktverify.admin.memory import InMemoryKDC, InMemorySecretStore
from ktverify.consistency.checker import ConsistencyChecker
from ktverify.core.types import Key, Keytab, KeytabEntry, Principal
from ktverify.keytab.codec import encode_keytab
from ktverify.manager import ManagerConfig, PrincipalManager


# =============================================================================
# REALM AND PRINCIPAL FIXTURES
# =============================================================================


@pytest.fixture
def test_realm() -> str:
    """Test Kerberos realm."""
    return "EXAMPLE.COM"


@pytest.fixture
def service_principal(test_realm: str) -> Principal:
    """Test service principal with an instance."""
    return Principal(realm=test_realm, primary="svc", instance="host")


@pytest.fixture
def user_principal(test_realm: str) -> Principal:
    """Test principal without an instance."""
    return Principal(realm=test_realm, primary="alice")


@pytest.fixture
def broker_principals(test_realm: str) -> Tuple[Principal, ...]:
    """A small set of broker service principals."""
    return tuple(
        Principal(realm=test_realm, primary="kafka", instance=f"broker-{i}")
        for i in range(3)
    )


# =============================================================================
# KEYTAB FIXTURES
# =============================================================================


KeytabRows = Iterable[Tuple[Principal, int, bytes]]


@pytest.fixture
def make_keytab() -> Callable[..., bytes]:
    """
    Factory building keytab bytes from (principal, enc_type, key bytes).

    Entries are written in the order given.
    """

    def _make(rows: KeytabRows, version: int = 2, kvno: int = 1) -> bytes:
        entries = [
            KeytabEntry.for_principal(
                principal, Key(enc_type=enc_type, material=material), kvno=kvno
            )
            for principal, enc_type, material in rows
        ]
        return encode_keytab(Keytab(version=version, entries=entries))

    return _make


@pytest.fixture
def service_keytab(make_keytab, service_principal: Principal) -> bytes:
    """svc/host@EXAMPLE.COM with an aes256 key before an aes128 key."""
    return make_keytab(
        [
            (service_principal, 18, b"\xaa"),
            (service_principal, 17, b"\xbb"),
        ]
    )


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================


@pytest.fixture
def kdc(test_realm: str) -> InMemoryKDC:
    """Empty in-memory KDC."""
    return InMemoryKDC(realm=test_realm)


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    """Empty in-memory secret store."""
    return InMemorySecretStore()


@pytest.fixture
def checker(kdc: InMemoryKDC, secret_store: InMemorySecretStore) -> ConsistencyChecker:
    """Consistency checker over the in-memory collaborators."""
    return ConsistencyChecker(kdc=kdc, secrets=secret_store)


@pytest.fixture
def manager_config(test_realm: str) -> ManagerConfig:
    """Manager configuration for testing."""
    return ManagerConfig(realm=test_realm)


@pytest.fixture
def manager(
    kdc: InMemoryKDC,
    secret_store: InMemorySecretStore,
    manager_config: ManagerConfig,
) -> PrincipalManager:
    """Principal manager over the in-memory collaborators."""
    return PrincipalManager(kdc=kdc, secrets=secret_store, config=manager_config)


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
