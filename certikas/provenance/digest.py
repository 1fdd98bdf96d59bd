"""Content digests (SHA-256 content addresses)."""

import hashlib
import re
from typing import Union

from certikas.errors import InvalidDigestFormat

DIGEST_HEX_LENGTH = 64
_HEX_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


class DigestValue:
    """Validated 64-character lowercase hex SHA-256 digest."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        """Validate and normalize a hex digest."""
        if not self.is_valid(value):
            raise InvalidDigestFormat(
                f"Invalid content digest format (expected {DIGEST_HEX_LENGTH} hex characters)"
            )
        self._value = value.lower()

    @staticmethod
    def is_valid(value) -> bool:
        """Check hex digest format without raising."""
        return isinstance(value, str) and bool(_HEX_PATTERN.fullmatch(value))

    @classmethod
    def parse(cls, value: str) -> "DigestValue":
        """Build a digest from an externally supplied string."""
        return cls(value)

    @property
    def hex(self) -> str:
        return self._value

    def truncated(self, length: int = 12) -> str:
        """Short display form, e.g. ``2cf24dba5fb0...9824``."""
        return f"{self._value[:length]}...{self._value[-4:]}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, DigestValue):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"DigestValue({self.truncated()!r})"


def digest(content: Union[bytes, bytearray, memoryview, str]) -> DigestValue:
    """Compute the SHA-256 digest of content (text is UTF-8 encoded)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    elif not isinstance(content, (bytes, bytearray, memoryview)):
        raise TypeError("Content must be bytes or str")
    return DigestValue(hashlib.sha256(content).hexdigest())
