"""
ktverify Keytab Codec

Reader and writer for the MIT keytab container format.

Format reference:
    https://web.mit.edu/kerberos/krb5-latest/doc/formats/keytab_file_format.html

Layout:
- 0x05 magic byte, then version 0x01 or 0x02
- Records: signed 32-bit length, then that many bytes of entry.
  Negative length marks a hole of -length bytes. Zero ends the keytab.
- Entry: component count, realm, components, name type (v2 only),
  timestamp, 8-bit kvno, key type, key bytes, optional 32-bit kvno

Version 1 uses native byte order and counts the realm as a component.
Version 2 is big-endian throughout.

The reader never returns a partial keytab: any structural problem raises
MalformedKeytab.
"""

from __future__ import annotations

import struct
from typing import Iterator, List, Tuple

import structlog

from ktverify.core.exceptions import MalformedKeytab
from ktverify.core.types import Key, Keytab, KeytabEntry, Principal

logger = structlog.get_logger()

KEYTAB_MAGIC = 0x05
SUPPORTED_VERSIONS = (1, 2)

# Key type is a signed 16-bit field on the wire
ENCTYPE_MIN = -(2**15)
ENCTYPE_MAX = 2**15 - 1


# =============================================================================
# READER
# =============================================================================


class KeytabReader:
    """
    Bounds-checked cursor over keytab bytes.

    Reads past the current limit raise MalformedKeytab instead of returning
    short data. The limit is narrowed to a single record while that record
    is parsed, so a field cannot run into the next record.
    """

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0
        self._limit = len(data)
        self._order = ">"
        self.version = 0

    @property
    def remaining(self) -> int:
        return self._limit - self._pos

    def read(self, length: int) -> bytes:
        if length < 0 or length > self.remaining:
            raise MalformedKeytab(
                f"need {length} bytes, only {self.remaining} left", offset=self._pos
            )
        chunk = self._data[self._pos : self._pos + length].tobytes()
        self._pos += length
        return chunk

    def _read_fmt(self, fmt: str) -> int:
        size = struct.calcsize(self._order + fmt)
        return struct.unpack(self._order + fmt, self.read(size))[0]

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u16(self) -> int:
        return self._read_fmt("H")

    def read_s16(self) -> int:
        return self._read_fmt("h")

    def read_u32(self) -> int:
        return self._read_fmt("I")

    def read_s32(self) -> int:
        return self._read_fmt("i")

    def read_data(self) -> bytes:
        """Counted octet string: 16-bit length then bytes."""
        return self.read(self.read_u16())

    def read_string(self) -> str:
        start = self._pos
        raw = self.read_data()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedKeytab(f"name component is not valid UTF-8: {e}", offset=start) from e

    def read_header(self) -> int:
        if len(self._data) < 2:
            raise MalformedKeytab(f"keytab too short ({len(self._data)} bytes)", offset=0)
        magic = self.read_u8()
        if magic != KEYTAB_MAGIC:
            raise MalformedKeytab(f"bad magic byte 0x{magic:02x}", offset=0)
        version = self.read_u8()
        if version not in SUPPORTED_VERSIONS:
            raise MalformedKeytab(f"unsupported keytab version {magic}.{version}", offset=1)
        self.version = version
        # Version 1 was written in the host's byte order
        self._order = "=" if version == 1 else ">"
        return version

    def read_entry(self, length: int) -> KeytabEntry:
        """Parse one record of exactly length bytes."""
        start = self._pos
        end = start + length
        outer_limit = self._limit
        self._limit = end
        try:
            n_components = self.read_u16()
            if self.version == 1:
                if n_components == 0:
                    raise MalformedKeytab("version 1 entry without realm", offset=start)
                n_components -= 1
            realm = self.read_string()
            components = [self.read_string() for _ in range(n_components)]
            name_type = self.read_u32() if self.version >= 2 else 1
            timestamp = self.read_u32()
            kvno = self.read_u8()
            enc_type = self.read_s16()
            key_bytes = self.read_data()
            if self.remaining >= 4:
                kvno32 = self.read_u32()
                if kvno32 != 0:
                    kvno = kvno32
        finally:
            self._limit = outer_limit
        # Skip to end of the slot
        self._pos = end
        return KeytabEntry(
            realm=realm,
            components=components,
            key=Key(enc_type=enc_type, material=key_bytes),
            name_type=name_type,
            timestamp=timestamp,
            kvno=kvno,
        )

    def iter_entries(self) -> Iterator[KeytabEntry]:
        while self.remaining > 0:
            offset = self._pos
            length = self.read_s32()
            if length == 0:
                break
            if length < 0:
                # Hole left by a deleted entry
                if -length > self.remaining:
                    raise MalformedKeytab(
                        f"hole of {-length} bytes runs past end of keytab", offset=offset
                    )
                self._pos += -length
                continue
            if length > self.remaining:
                raise MalformedKeytab(
                    f"entry length {length} exceeds remaining {self.remaining} bytes",
                    offset=offset,
                )
            yield self.read_entry(length)

    def read_keytab(self) -> Keytab:
        version = self.read_header()
        entries = list(self.iter_entries())
        return Keytab(version=version, entries=entries)


def decode_keytab(data: bytes) -> Keytab:
    """
    Decode keytab bytes.

    Args:
        data: Raw keytab container

    Returns:
        Keytab with entries in file order (possibly zero entries)

    Raises:
        MalformedKeytab: If data is not a structurally valid keytab
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"keytab data must be bytes, got {type(data).__name__}")
    keytab = KeytabReader(bytes(data)).read_keytab()
    logger.debug("keytab_decoded", version=keytab.version, entries=len(keytab.entries))
    return keytab


def decode_entries(data: bytes) -> List[Tuple[Principal, Key]]:
    """Decode keytab bytes into (principal, key) pairs in file order."""
    return [(entry.principal, entry.key) for entry in decode_keytab(data).entries]


# =============================================================================
# WRITER
# =============================================================================


class KeytabWriter:
    """Serializes KeytabEntry records for a given keytab version."""

    def __init__(self, version: int = 2) -> None:
        if version not in SUPPORTED_VERSIONS:
            raise ValueError(f"unsupported keytab version {version}")
        self.version = version
        self._order = "=" if version == 1 else ">"
        self._chunks: List[bytes] = []

    def _write_fmt(self, fmt: str, value: int) -> None:
        self._chunks.append(struct.pack(self._order + fmt, value))

    def write_data(self, data: bytes) -> None:
        if len(data) > 0xFFFF:
            raise ValueError(f"counted string too long ({len(data)} bytes)")
        self._write_fmt("H", len(data))
        self._chunks.append(data)

    def write_entry(self, entry: KeytabEntry) -> None:
        if not ENCTYPE_MIN <= entry.key.enc_type <= ENCTYPE_MAX:
            raise ValueError(
                f"enc type {entry.key.enc_type} does not fit the 16-bit keytab key type field"
            )
        n_components = len(entry.components)
        if self.version == 1:
            n_components += 1
        self._write_fmt("H", n_components)
        self.write_data(entry.realm.encode("utf-8"))
        for component in entry.components:
            self.write_data(component.encode("utf-8"))
        if self.version >= 2:
            self._write_fmt("I", entry.name_type)
        self._write_fmt("I", entry.timestamp)
        self._write_fmt("B", min(entry.kvno, 0xFF))
        self._write_fmt("h", entry.key.enc_type)
        self.write_data(entry.key.material)
        self._write_fmt("I", entry.kvno)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)


def encode_entry(entry: KeytabEntry, version: int = 2) -> bytes:
    """Encode one entry body (without its length prefix)."""
    writer = KeytabWriter(version)
    writer.write_entry(entry)
    return writer.getvalue()


def encode_keytab(keytab: Keytab) -> bytes:
    """
    Encode a keytab container.

    Args:
        keytab: Keytab to serialize

    Returns:
        Raw keytab bytes readable by decode_keytab and MIT tooling
    """
    order = "=" if keytab.version == 1 else ">"
    chunks = [bytes((KEYTAB_MAGIC, keytab.version))]
    for entry in keytab.entries:
        body = encode_entry(entry, keytab.version)
        chunks.append(struct.pack(order + "i", len(body)))
        chunks.append(body)
    return b"".join(chunks)
