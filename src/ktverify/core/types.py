"""
ktverify Core Types

Value types shared by the keytab codec, the checksum computer and the
consistency checker.

Design Principles:
- Immutable: All types use frozen attrs
- Canonical: principal identity is its full string form, nothing else
- Validated: Type constraints enforced at construction
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

import attrs
from attrs import field, validators


INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# Default principal name type (KRB5_NT_PRINCIPAL)
NT_PRINCIPAL = 1


# =============================================================================
# ENUMS
# =============================================================================


class EncryptionType(Enum):
    """
    Kerberos encryption types.

    Values match RFC 3961 / RFC 3962 / RFC 8009 assigned numbers.
    Keys decoded from a keytab keep their raw integer type; this enum only
    names the well-known ones.
    """

    AES256_CTS_HMAC_SHA384_192 = 20
    AES128_CTS_HMAC_SHA256_128 = 19
    AES256_CTS_HMAC_SHA1_96 = 18
    AES128_CTS_HMAC_SHA1_96 = 17
    RC4_HMAC = 23  # Legacy
    DES3_CBC_SHA1 = 16  # Deprecated but may be encountered
    DES_CBC_MD5 = 3  # Deprecated, insecure

    @property
    def key_size(self) -> int:
        """Return key size in bytes for this encryption type."""
        sizes = {
            EncryptionType.AES256_CTS_HMAC_SHA384_192: 32,
            EncryptionType.AES128_CTS_HMAC_SHA256_128: 16,
            EncryptionType.AES256_CTS_HMAC_SHA1_96: 32,
            EncryptionType.AES128_CTS_HMAC_SHA1_96: 16,
            EncryptionType.RC4_HMAC: 16,
            EncryptionType.DES3_CBC_SHA1: 24,
            EncryptionType.DES_CBC_MD5: 8,
        }
        return sizes[self]

    @classmethod
    def describe(cls, enc_type: int) -> str:
        """Human-readable name for a raw enc type, for log output."""
        try:
            return cls(enc_type).name
        except ValueError:
            return f"ENCTYPE_{enc_type}"


# =============================================================================
# IDENTITY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True, eq=False, order=False)
class Principal:
    """
    Kerberos principal.

    Format: primary[/instance]@realm (e.g., HTTP/web.example.com@EXAMPLE.COM)

    INVARIANT: equality, hashing and ordering use full() only
    """

    realm: str = field(validator=validators.instance_of(str))
    primary: str = field(validator=validators.instance_of(str))
    instance: str = field(default="", validator=validators.instance_of(str))

    def full(self) -> str:
        """Canonical form used as the identity, map key and sort key."""
        if self.instance:
            return f"{self.primary}/{self.instance}@{self.realm}"
        return f"{self.primary}@{self.realm}"

    @classmethod
    def from_components(cls, components: Sequence[str], realm: str) -> Principal:
        """
        Build a principal from ordered name components.

        Only the first two components are significant; a keytab entry with
        more components maps onto its first two.
        """
        primary = components[0] if len(components) > 0 else ""
        instance = components[1] if len(components) > 1 else ""
        return cls(realm=realm, primary=primary, instance=instance)

    @classmethod
    def from_string(cls, principal_str: str) -> Principal:
        """
        Parse principal from its canonical string form.

        Examples:
            "user@REALM.COM" -> Principal(realm="REALM.COM", primary="user")
            "HTTP/web@REALM.COM" -> Principal(realm="REALM.COM", primary="HTTP", instance="web")
        """
        if "@" not in principal_str:
            raise ValueError(f"Invalid principal format: {principal_str}")

        # Split on last @ to handle names with @ in them
        at_pos = principal_str.rfind("@")
        name = principal_str[:at_pos]
        realm = principal_str[at_pos + 1 :]

        primary, _, instance = name.partition("/")
        return cls(realm=realm, primary=primary, instance=instance)

    @property
    def components(self) -> Tuple[str, ...]:
        """Name components as written to a keytab."""
        if self.instance:
            return (self.primary, self.instance)
        return (self.primary,)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return self.full() == other.full()

    def __hash__(self) -> int:
        return hash(self.full())

    def __lt__(self, other: Principal) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return self.full() < other.full()

    def __str__(self) -> str:
        return self.full()


def sort_principals(principals: Iterable[Principal]) -> list:
    """Return principals ordered by canonical form, ascending."""
    return sorted(principals, key=Principal.full)


# =============================================================================
# KEY MATERIAL
# =============================================================================


def _check_int32(instance: object, attribute: attrs.Attribute, value: int) -> None:
    if not INT32_MIN <= value <= INT32_MAX:
        raise ValueError(f"{attribute.name} must fit a signed 32-bit integer, got {value}")


@attrs.define(frozen=True, slots=True)
class Key:
    """
    One key of one principal, as stored in a keytab.

    INVARIANT: fingerprint encodes both enc_type and every key byte
    """

    enc_type: int = field(validator=[validators.instance_of(int), _check_int32])
    material: bytes = field(validator=validators.instance_of(bytes), repr=False)

    @property
    def fingerprint(self) -> str:
        """Canonical "<enc_type>:<lowercase hex key bytes>" string."""
        return f"{self.enc_type}:{self.material.hex()}"


@attrs.define(frozen=True, slots=True)
class KeytabEntry:
    """
    One decoded keytab record.

    Carries the wire fields (components, name type, timestamp, kvno) so a
    decoded keytab can be written back unchanged.
    """

    realm: str
    components: Tuple[str, ...] = field(converter=tuple)
    key: Key
    name_type: int = NT_PRINCIPAL
    timestamp: int = 0
    kvno: int = 0

    @property
    def principal(self) -> Principal:
        return Principal.from_components(self.components, self.realm)

    @classmethod
    def for_principal(
        cls,
        principal: Principal,
        key: Key,
        kvno: int = 1,
        timestamp: int = 0,
    ) -> KeytabEntry:
        """Create an entry holding key for principal."""
        return cls(
            realm=principal.realm,
            components=principal.components,
            key=key,
            kvno=kvno,
            timestamp=timestamp,
        )


@attrs.define(frozen=True, slots=True)
class Keytab:
    """
    Decoded keytab container.

    A keytab with zero entries is valid and is not the same thing as a
    missing secret.
    """

    version: int = field(default=2, validator=validators.in_((1, 2)))
    entries: Tuple[KeytabEntry, ...] = field(factory=tuple, converter=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def principals(self) -> list:
        """Distinct principals held by this keytab, in canonical order."""
        return sort_principals({entry.principal for entry in self.entries})


# =============================================================================
# RESULT TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class CheckStatus:
    """
    Outcome of a consistency check.

    Attributes:
        passed: Whether every requested principal is in the KDC and the keytab
        reason: Human-readable failure reason (fail only)
        checksum: Consistency fingerprint of the verified keys (pass only)
    """

    passed: bool
    reason: str = ""
    checksum: Optional[str] = None

    def __attrs_post_init__(self) -> None:
        if self.passed:
            if not self.checksum:
                raise ValueError("Passing check must carry a checksum")
            if self.reason:
                raise ValueError("Passing check must not carry a reason")
        else:
            if not self.reason:
                raise ValueError("Failed check must carry a reason")
            if self.checksum is not None:
                raise ValueError("Failed check must not carry a checksum")

    @classmethod
    def pass_result(cls, checksum: str) -> CheckStatus:
        """Create a passing check outcome."""
        return cls(passed=True, checksum=checksum)

    @classmethod
    def fail_result(cls, reason: str) -> CheckStatus:
        """Create a failed check outcome."""
        return cls(passed=False, reason=reason)


@attrs.define(frozen=True, slots=True)
class ListingResult:
    """
    Outcome of a principal listing.

    principals are ordered by canonical form. checksum is only present
    when the listing was filtered against a keytab secret.
    """

    principals: Tuple[Principal, ...] = field(factory=tuple, converter=tuple)
    checksum: Optional[str] = None
