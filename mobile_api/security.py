"""
Security Related Utilities

This module contains the 256-bit SecurityKey value type and a Secure Random
Number Generator (SRNG) which generates cryptographically secure random
bytes, SecurityKeys and UUIDv7 identifiers.

For the UUIDv7 we need Unix time in milliseconds, provided by get_unix_time_ms.
"""

import base64
import binascii
import os
import time
import uuid
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from cryptography.hazmat.primitives import constant_time

from .config import KEY_SIZE, KEY_HEX_LENGTH
from .errors import (
    ClockError, InvalidDigitError, KeyFormatError, RandomSourceError, WrongLengthError
)

# Timestamp used in deterministic tests where a real clock is unavailable.
# Never used unless passed explicitly as the SRNG clock.
TEST_PATTERN_TIMESTAMP_MS = 0x0155_5555_5555

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

# UUIDv7 layout masks
_UNIX_TS_MS_MASK = (1 << 48) - 1
_VERSION_VARIANT_CLEAR = 0xFFFFFFFF_FFFF_0FFF_3FFF_FFFFFFFFFFFF
_VERSION_VARIANT_SET = 0x00000000_0000_7000_8000_000000000000

BytesLike = Union[bytes, bytearray, memoryview]


def get_unix_time_ms() -> int:
    """
    Return the current Unix timestamp in milliseconds.

    Raises:
        ClockError: If the system time is before the Unix epoch
    """
    now_ns = time.time_ns()
    if now_ns < 0:
        raise ClockError(f"system time is {-now_ns} ns before the Unix epoch")
    return now_ns // 1_000_000


def pattern_clock() -> int:
    """Clock for deterministic tests, always returns TEST_PATTERN_TIMESTAMP_MS"""
    return TEST_PATTERN_TIMESTAMP_MS


class KeyEncoding(Enum):
    """Textual encoding detected for a caller-supplied key string"""
    HEX = "hex"
    BASE64 = "base64"


def detect_encoding(text: str) -> KeyEncoding:
    """
    Decide how a key string should be interpreted.

    A 64 character string made of hex digits is always treated as hex, even
    when the same string would also be valid base64. Everything else is
    treated as base64.
    """
    if len(text) == KEY_HEX_LENGTH and all(c in _HEX_DIGITS for c in text):
        return KeyEncoding.HEX
    return KeyEncoding.BASE64


class SecurityKey:
    """
    256-bit security key

    Used as the authorization key for the HTTP API endpoints and as the
    shared key between DHT clients. Instances are immutable and compare by
    value. Equality uses a constant-time comparison.
    """

    __slots__ = ('_bytes',)

    def __init__(self, key_bytes: BytesLike) -> None:
        if not isinstance(key_bytes, (bytes, bytearray, memoryview)):
            raise KeyFormatError(f"expected 32 bytes, got {type(key_bytes).__name__}")
        key_bytes = bytes(key_bytes)
        if len(key_bytes) != KEY_SIZE:
            raise WrongLengthError()
        object.__setattr__(self, '_bytes', key_bytes)

    def __setattr__(self, name, value):
        raise AttributeError("SecurityKey is immutable")

    # ========================================================================
    # Construction
    # ========================================================================

    @classmethod
    def new(cls) -> 'SecurityKey':
        """
        Create a new random key.

        Calling SRNG.generate_key directly is more efficient when many keys
        are needed.
        """
        return SRNG().generate_key()

    @classmethod
    def from_bytes(cls, key_bytes: BytesLike) -> 'SecurityKey':
        """
        Create a key from exactly 32 bytes.

        Raises:
            KeyFormatError: If key_bytes is not bytes-like
            WrongLengthError: If key_bytes is not 32 bytes long
        """
        return cls(key_bytes)

    @classmethod
    def from_hex(cls, text: str) -> 'SecurityKey':
        """
        Create a key from a hex string.

        The string must be exactly 64 characters. Lowercase, uppercase and
        mixed case digits are accepted. Each pair of characters is one byte,
        most significant nibble first.

        Raises:
            WrongLengthError: If the string is not 64 characters
            InvalidDigitError: If any character is not a hex digit
        """
        if len(text) != KEY_HEX_LENGTH:
            raise WrongLengthError()
        if not all(c in _HEX_DIGITS for c in text):
            raise InvalidDigitError()
        return cls(bytes.fromhex(text))

    @classmethod
    def from_base64(cls, text: str) -> 'SecurityKey':
        """
        Create a key from a standard base64 string (with padding).

        Raises:
            KeyFormatError: If the string is not valid base64
            WrongLengthError: If the decoded data is not 32 bytes
        """
        try:
            decoded = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyFormatError(f"invalid base64: {e}") from e
        return cls(decoded)

    @classmethod
    def from_string(cls, text: str) -> 'SecurityKey':
        """
        Create a key from either a hex or a base64 string.

        See detect_encoding for how the two are told apart.

        Raises:
            KeyFormatError: If the string is neither a valid hex nor base64 key
        """
        try:
            if detect_encoding(text) is KeyEncoding.HEX:
                return cls.from_hex(text)
            return cls.from_base64(text)
        except KeyFormatError as e:
            raise KeyFormatError("not a suitable key string") from e

    # ========================================================================
    # Accessors
    # ========================================================================

    def as_bytes(self) -> bytes:
        """Return the 32 key bytes"""
        return self._bytes

    def as_u128_pair(self) -> Tuple[int, int]:
        """
        Return the key as two 128-bit unsigned integers.

        The first key byte is the most significant byte of the first value.
        """
        return (
            int.from_bytes(self._bytes[:16], 'big'),
            int.from_bytes(self._bytes[16:], 'big'),
        )

    def is_null(self) -> bool:
        """Test if the key is null (all zeros)"""
        return self._bytes == bytes(KEY_SIZE)

    def hex(self, upper: bool = False) -> str:
        """Render the key as 64 hex characters"""
        text = self._bytes.hex()
        return text.upper() if upper else text

    def base64(self) -> str:
        """Render the key as standard base64 with padding (44 characters)"""
        return base64.b64encode(self._bytes).decode('ascii')

    # ========================================================================
    # Serialization
    # ========================================================================

    def serialize(self, human_readable: bool = True) -> Union[str, bytes]:
        """
        Serialize the key.

        Human readable formats (JSON) get the lowercase hex string, binary
        formats get the 32 raw bytes.
        """
        if human_readable:
            return self.hex(False)
        return self._bytes

    @classmethod
    def deserialize(cls, value: Union[str, BytesLike]) -> 'SecurityKey':
        """
        Mirror of serialize.

        Strings must be 64 hex characters, binary values exactly 32 bytes.

        Raises:
            KeyFormatError: On any other value
        """
        if isinstance(value, str):
            return cls.from_hex(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.from_bytes(value)
        raise KeyFormatError(
            f"expected 64 hex characters or 32 bytes, got {type(value).__name__}"
        )

    # ========================================================================
    # Comparison and formatting
    # ========================================================================

    def constant_time_equals(self, other: 'SecurityKey') -> bool:
        """Compare keys without leaking the length of a matching prefix"""
        return constant_time.bytes_eq(self._bytes, other._bytes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SecurityKey):
            return NotImplemented
        return self.constant_time_equals(other)

    def __hash__(self) -> int:
        return hash(self._bytes)

    def __bytes__(self) -> bytes:
        return self._bytes

    def __str__(self) -> str:
        return self.hex(False)

    def __repr__(self) -> str:
        return f'"{self.hex(False)}"'

    def __format__(self, format_spec: str) -> str:
        if format_spec == 'x':
            return self.hex(False)
        if format_spec == 'X':
            return self.hex(True)
        return format(str(self), format_spec)

    def __copy__(self) -> 'SecurityKey':
        return self

    def __deepcopy__(self, memo) -> 'SecurityKey':
        return self

    def __reduce__(self):
        return (SecurityKey, (self._bytes,))


class SRNG:
    """
    Secure Random Number Generator

    Uses the operating system random source to generate cryptographically
    secure random bytes, with convenience functions for SecurityKey and
    UUIDv7 generation. Instances hold no mutable state and can be shared
    between threads.

    Example:
        srng = SRNG()
        key = srng.generate_key()
        device_uuid = srng.generate_uuid()
        buffer = bytearray(16)
        srng.fill(buffer)
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        """
        Args:
            clock: Millisecond Unix timestamp source for UUIDs. Defaults to
                get_unix_time_ms. Tests may pass pattern_clock.
        """
        self._clock = clock or get_unix_time_ms

    def fill(self, buffer: Union[bytearray, memoryview]) -> None:
        """
        Fill a writable buffer with random bytes.

        Raises:
            RandomSourceError: If the operating system random source fails
        """
        size = len(buffer)
        if size == 0:
            return
        try:
            buffer[:] = os.urandom(size)
        except (OSError, NotImplementedError) as e:
            raise RandomSourceError(f"random source failed: {e}") from e

    def random_bytes(self, size: int) -> bytes:
        """Return size random bytes"""
        buffer = bytearray(size)
        self.fill(buffer)
        return bytes(buffer)

    def generate_key(self) -> SecurityKey:
        """Generate a secure random 256-bit key"""
        return SecurityKey(self.random_bytes(KEY_SIZE))

    def generate_uuid(self) -> uuid.UUID:
        """
        Generate a UUIDv7 for the Smart Device.

        UUID version 7 fields and bit layout::

             0                   1                   2                   3
             0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
            +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
            |                           unix_ts_ms                          |
            +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
            |          unix_ts_ms           |  ver  |       rand_a          |
            +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
            |var|                        rand_b                             |
            +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
            |                            rand_b                             |
            +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

        unix_ts_ms is 48 bits, ver is 0b0111, rand_a is 12 random bits,
        var is 0b10 and rand_b is 62 random bits.

        Raises:
            ClockError: If the clock reports a time before the Unix epoch
            RandomSourceError: If the random source fails
        """
        # First 48 bits are unix time in milliseconds
        value = (self._clock() & _UNIX_TS_MS_MASK) << 80

        # Randomizing the remaining 80 bits
        buffer = bytearray(16)
        self.fill(memoryview(buffer)[6:])
        value |= int.from_bytes(buffer, 'big')

        # Setting UUID version 7 and variant bits
        value &= _VERSION_VARIANT_CLEAR
        value |= _VERSION_VARIANT_SET

        return uuid.UUID(int=value)


def uuid_timestamp_ms(value: uuid.UUID) -> int:
    """Extract the 48-bit millisecond timestamp from a UUIDv7"""
    return value.int >> 80
