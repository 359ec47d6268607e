"""Shared nkey utilities."""

import base64
import binascii
import enum
import os
from typing import Optional, Tuple

import nkeys
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
SEED_SIZE = 32
FILLER = ord("x")
_READ_CHUNK = 4096


class NkError(Exception):
    """Base class for every fatal nk condition."""


class ConfigError(NkError):
    pass


class EntropyError(NkError):
    pass


class SearchError(NkError):
    pass


class SearchExhaustedError(SearchError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate prefix after {attempts} attempts")
        self.attempts = attempts


class KeyNotFoundError(NkError):
    pass


class KeyFormatError(NkError):
    pass


class VerificationError(NkError):
    pass


class KeyType(enum.Enum):
    """Role a key is issued for, valued by its nkeys prefix byte."""

    USER = nkeys.PREFIX_BYTE_USER
    ACCOUNT = nkeys.PREFIX_BYTE_ACCOUNT
    SERVER = nkeys.PREFIX_BYTE_SERVER
    CLUSTER = nkeys.PREFIX_BYTE_CLUSTER
    OPERATOR = nkeys.PREFIX_BYTE_OPERATOR

    @classmethod
    def parse(cls, name: str) -> "KeyType":
        try:
            return cls[name.upper()]
        except KeyError:
            names = "|".join(t.name.lower() for t in cls)
            raise ConfigError(f"Usage: nk -gen [{names}]") from None

    @classmethod
    def from_prefix_byte(cls, prefix: int) -> "KeyType":
        try:
            return cls(prefix)
        except ValueError:
            raise KeyFormatError("nkeys: invalid prefix byte") from None

    @property
    def prefix_char(self) -> str:
        """First character of every public key of this type."""
        return BASE32_ALPHABET[self.value >> 3]


# --- validity: base32(prefix || payload || crc16-le), unpadded ---

def _decode(src) -> bytes:
    """Return the checksummed body (prefix and payload) of an encoded key."""
    src = bytes(src)
    try:
        raw = base64.b32decode(src + b"=" * (-len(src) % 8))
    except binascii.Error:
        raise KeyFormatError("nkeys: invalid encoded key") from None
    if len(raw) < 4:
        raise KeyFormatError("nkeys: invalid encoded key")
    body, crc = raw[:-2], int.from_bytes(raw[-2:], "little")
    if nkeys.crc16(body) != crc:
        raise KeyFormatError("nkeys: invalid checksum")
    return body


def _decode_seed(seed) -> Tuple[KeyType, bytes]:
    # nkeys.decode_seed does not check the checksum, so _decode runs first.
    if len(_decode(seed)) != 2 + SEED_SIZE:
        raise KeyFormatError("nkeys: invalid seed")
    try:
        prefix, raw = nkeys.decode_seed(bytes(seed))
    except nkeys.NkeysError:
        raise KeyFormatError("nkeys: invalid seed") from None
    return KeyType.from_prefix_byte(prefix), raw


def is_valid_encoding(line) -> bool:
    """Syntactic check only: base32 decodes and the checksum matches."""
    try:
        _decode(line)
    except KeyFormatError:
        return False
    return True


# --- keypairs ---

class PublicKeyPair:
    """Public-only keypair: reports its public key and verifies signatures."""

    def __init__(self, public_key: bytes, verify_key: Optional[VerifyKey] = None):
        self._public_key = bytes(public_key)
        self._verify_key = verify_key

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def key_type(self) -> KeyType:
        return KeyType.from_prefix_byte(_decode(self._public_key)[0])

    @property
    def seed(self) -> bytes:
        raise KeyFormatError("nkeys: no seed available for a public-only key")

    def sign(self, data: bytes) -> bytes:
        raise KeyFormatError("nkeys: cannot sign with a public-only key")

    def verify(self, data: bytes, sig: bytes) -> None:
        try:
            self._verify_key.verify(bytes(data), bytes(sig))
        except CryptoError:
            raise VerificationError("nkeys: signature verification failed") from None


class KeyPair(PublicKeyPair):
    """Full keypair backed by an nkeys.KeyPair; it can also sign."""

    def __init__(self, kp):
        super().__init__(kp.public_key)
        self._kp = kp

    @property
    def seed(self) -> bytes:
        return bytes(self._kp.seed)

    def sign(self, data: bytes) -> bytes:
        return bytes(self._kp.sign(bytes(data)))

    def verify(self, data: bytes, sig: bytes) -> None:
        try:
            self._kp.verify(bytes(data), bytes(sig))
        except (nkeys.ErrInvalidSignature, CryptoError):
            raise VerificationError("nkeys: signature verification failed") from None


def read_entropy(source: Optional[str] = None) -> bytes:
    """Return 32 bytes of entropy, from os.urandom or the named file."""
    if not source:
        return os.urandom(SEED_SIZE)
    try:
        with open(source, "rb") as f:
            raw = f.read(SEED_SIZE)
    except OSError as e:
        raise EntropyError(f"Error reading from {source}: {e}") from e
    if len(raw) != SEED_SIZE:
        raise EntropyError(
            f"Error reading from {source}: got {len(raw)} of {SEED_SIZE} bytes"
        )
    return raw


def keypair_from_raw_seed(key_type: KeyType, raw: bytes) -> KeyPair:
    if len(raw) != SEED_SIZE:
        raise EntropyError(f"Error creating {key_type.prefix_char}: seed must be {SEED_SIZE} bytes")
    return KeyPair(nkeys.from_seed(bytearray(nkeys.encode_seed(raw, key_type.value))))


def generate_keypair(key_type: KeyType, entropy: Optional[str] = None) -> KeyPair:
    """Create a keypair of the given type from fresh (or overridden) entropy."""
    return keypair_from_raw_seed(key_type, read_entropy(entropy))


def keypair_from_seed(seed) -> KeyPair:
    _decode_seed(seed)
    return KeyPair(nkeys.from_seed(bytearray(seed)))


def keypair_from_public_key(public) -> PublicKeyPair:
    body = _decode(public)
    if len(body) != 1 + SEED_SIZE:
        raise KeyFormatError("nkeys: invalid public key")
    KeyType.from_prefix_byte(body[0])
    return PublicKeyPair(bytes(public), VerifyKey(body[1:]))


def format_keypair(kp: KeyPair):
    """Print a keypair's seed and public key."""
    print(f"Seed:        {kp.seed.decode()}")
    print(f"Public key:  {kp.public_key.decode()}")


# --- secret material ---

def wipe(buf) -> None:
    """Overwrite a writable buffer in place with the filler byte."""
    for i in range(len(buf)):
        buf[i] = FILLER


class SecretBuffer:
    """
    Best-effort scoped secret container.
    Holds a caller-owned bytearray and wipes it when the block exits.
    """

    def __init__(self, buf: bytearray):
        self._buf = buf

    def __enter__(self) -> bytearray:
        return self._buf

    def __exit__(self, *exc_info):
        wipe(self._buf)


def _lines(buf):
    view = memoryview(buf)
    start = 0
    while start <= len(buf):
        end = buf.find(b"\n", start)
        stop = end if end >= 0 else len(buf)
        next_start = stop + 1
        if stop > start and buf[stop - 1] == ord("\r"):
            stop -= 1
        yield view[start:stop]
        start = next_start


def read_key(contents: bytearray) -> bytearray:
    """Return a copy of the first line of contents that is a valid nkey.

    contents is always scrubbed before this returns or raises.
    """
    if memoryview(contents).readonly:
        raise TypeError("key content must be a writable buffer")
    try:
        for line in _lines(contents):
            if is_valid_encoding(line):
                return bytearray(line)
        raise KeyNotFoundError("Could not find a valid key")
    finally:
        wipe(contents)


def read_key_file(path: str) -> bytearray:
    """Load a key file straight into a scrubbable buffer and read the key.

    Pipes and process substitution report no size, so the buffer grows
    until EOF and every outgrown buffer is wiped.
    """
    buf = bytearray()
    try:
        with open(path, "rb", buffering=0) as f:
            buf = bytearray(os.fstat(f.fileno()).st_size + _READ_CHUNK)
            n = 0
            while True:
                if n == len(buf):
                    grown = bytearray(len(buf) + _READ_CHUNK)
                    grown[:n] = buf
                    wipe(buf)
                    buf = grown
                with memoryview(buf)[n:] as view:
                    got = f.readinto(view)
                if not got:
                    break
                n += got
    except OSError as e:
        wipe(buf)
        raise ConfigError(f"Error reading key from {path}: {e}") from e
    del buf[n:]
    return read_key(buf)
