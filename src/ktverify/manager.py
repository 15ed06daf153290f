"""
ktverify Principal Manager

High-level interface for provisioning and verifying Kerberos service
principals and their keytab secrets.

Operations:
1. add_principals: create missing principals, export their keytab, store it
2. delete_principals: remove the keytab secret, then the principals
3. list_principals: enumerate principals, optionally against a secret
4. check_principals: consistency check against KDC and keytab secret

The manager only orchestrates: KDC and secret store access goes through
the collaborator interfaces, and verification through the consistency
module.
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional, Sequence, Tuple

import attrs
import structlog

from ktverify.admin.collaborators import KDCAdmin, SecretStore, call_collaborator
from ktverify.admin.memory import DEFAULT_ENC_TYPES, InMemoryKDC, InMemorySecretStore
from ktverify.consistency.checker import ConsistencyChecker
from ktverify.consistency.listing import DEFAULT_FILTER, list_principals
from ktverify.core.exceptions import InvalidRequest
from ktverify.core.types import CheckStatus, ListingResult, Principal

logger = structlog.get_logger()

_TRUE_VALUES = ("1", "true", "yes", "on")


# =============================================================================
# CONFIGURATION
# =============================================================================


@attrs.define
class ManagerConfig:
    """
    Principal manager configuration.

    Attributes:
        realm: Default Kerberos realm (e.g., "EXAMPLE.COM")
        default_binary: Store/read secrets as raw bytes unless told otherwise
        keytab_version: Keytab format version written by the simulated KDC
        enc_types: Enc types the simulated KDC mints keys for
    """

    realm: str = "EXAMPLE.COM"
    default_binary: bool = False
    keytab_version: int = attrs.field(default=2, validator=attrs.validators.in_((1, 2)))
    enc_types: Tuple[int, ...] = attrs.field(default=DEFAULT_ENC_TYPES, converter=tuple)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> ManagerConfig:
        """
        Create config from environment variables.

        Reads KTVERIFY_REALM, KTVERIFY_BINARY_SECRETS,
        KTVERIFY_KEYTAB_VERSION and KTVERIFY_ENC_TYPES (comma separated).
        Unset variables keep their defaults.
        """
        if environ is None:
            environ = os.environ
        defaults = cls()

        enc_types = defaults.enc_types
        raw_enc_types = environ.get("KTVERIFY_ENC_TYPES", "").strip()
        if raw_enc_types:
            enc_types = tuple(int(v) for v in raw_enc_types.split(",") if v.strip())

        return cls(
            realm=environ.get("KTVERIFY_REALM", defaults.realm),
            default_binary=environ.get("KTVERIFY_BINARY_SECRETS", "").strip().lower()
            in _TRUE_VALUES,
            keytab_version=int(environ.get("KTVERIFY_KEYTAB_VERSION", defaults.keytab_version)),
            enc_types=enc_types,
        )


# =============================================================================
# PRINCIPAL MANAGER
# =============================================================================


@attrs.define
class PrincipalManager:
    """
    Provisioning and verification facade.

    Example:
        manager = create_simulated_manager()
        manager.add_principals(principals, secret="__kafka-keytab")
        status = manager.check_principals(principals, secret="__kafka-keytab")
        assert status.passed
    """

    kdc: KDCAdmin
    secrets: SecretStore
    config: ManagerConfig = attrs.Factory(ManagerConfig)

    _checker: Optional[ConsistencyChecker] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def checker(self) -> ConsistencyChecker:
        """Get or create the consistency checker."""
        if self._checker is None:
            self._checker = ConsistencyChecker(kdc=self.kdc, secrets=self.secrets)
        return self._checker

    def _binary(self, binary: Optional[bool]) -> bool:
        return self.config.default_binary if binary is None else binary

    @staticmethod
    def _require(principals: Sequence[Principal], secret: str) -> Tuple[Principal, ...]:
        requested = tuple(principals)
        if not requested:
            raise InvalidRequest("given an empty list of principals")
        if not secret:
            raise InvalidRequest("missing secret name")
        return requested

    def add_principals(
        self,
        principals: Sequence[Principal],
        secret: str,
        binary: Optional[bool] = None,
    ) -> None:
        """
        Add principals to the KDC and store their keytab as a secret.

        Args:
            principals: Principals to provision (existing ones are kept)
            secret: Secret name to store the keytab under
            binary: Secret encoding; None uses the configured default

        Raises:
            InvalidRequest: If principals is empty or secret is blank
            CollaboratorError: If a KDC or secret store call fails
        """
        requested = self._require(principals, secret)
        use_binary = self._binary(binary)

        call_collaborator(
            "Unable to add principals", self.kdc.add_missing_principals, requested
        )
        keytab_bytes = call_collaborator(
            "Unable to export keytab", self.kdc.export_keytab, requested
        )
        call_collaborator(
            "Unable to upload to secret store",
            self.secrets.store,
            secret,
            keytab_bytes,
            use_binary,
        )
        self._logger.info(
            "principals_provisioned",
            secret=secret,
            principals=[p.full() for p in requested],
            binary=use_binary,
        )

    def delete_principals(
        self,
        principals: Sequence[Principal],
        secret: str,
        binary: Optional[bool] = None,
    ) -> None:
        """
        Delete the keytab secret, then revoke the principals from the KDC.

        Raises:
            InvalidRequest: If principals is empty or secret is blank
            CollaboratorError: If a KDC or secret store call fails
        """
        requested = self._require(principals, secret)
        use_binary = self._binary(binary)

        call_collaborator(
            "Unable to delete secret", self.secrets.delete, secret, use_binary
        )
        call_collaborator(
            "Unable to delete principals", self.kdc.delete_principals, requested
        )
        self._logger.info(
            "principals_revoked",
            secret=secret,
            principals=[p.full() for p in requested],
        )

    def list_principals(
        self,
        filter: str = DEFAULT_FILTER,
        secret: Optional[str] = None,
        binary: Optional[bool] = None,
    ) -> ListingResult:
        """List principals matching filter, optionally narrowed to a secret."""
        return list_principals(
            self.kdc,
            self.secrets,
            filter=filter,
            secret=secret,
            binary=self._binary(binary),
        )

    def check_principals(
        self,
        principals: Sequence[Principal],
        secret: str,
        binary: Optional[bool] = None,
    ) -> CheckStatus:
        """Check principals exist in the KDC and in the keytab secret."""
        requested = self._require(principals, secret)
        return self.checker.check(requested, secret, self._binary(binary))


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_simulated_manager(config: Optional[ManagerConfig] = None) -> PrincipalManager:
    """
    Create a PrincipalManager backed by in-memory collaborators.

    Args:
        config: Manager configuration (defaults to ManagerConfig())

    Returns:
        PrincipalManager over an InMemoryKDC and InMemorySecretStore
    """
    if config is None:
        config = ManagerConfig()
    kdc = InMemoryKDC(
        realm=config.realm,
        enc_types=config.enc_types,
        keytab_version=config.keytab_version,
    )
    return PrincipalManager(kdc=kdc, secrets=InMemorySecretStore(), config=config)
