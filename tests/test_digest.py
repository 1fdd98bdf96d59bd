"""Tests for content digests."""

import hashlib

import pytest

from certikas.errors import CertificationError, InvalidDigestFormat
from certikas.provenance.digest import DigestValue, digest


def test_digest_is_deterministic():
    """Same bytes always produce the same digest."""
    content = b"the quick brown fox"
    assert digest(content) == digest(content)
    assert digest(content).hex == hashlib.sha256(content).hexdigest()


def test_different_content_produces_different_digest():
    """Distinct content yields distinct digests."""
    assert digest(b"content-a") != digest(b"content-b")
    assert digest(b"") != digest(b"\x00")


def test_text_content_is_utf8_encoded():
    """Text and its UTF-8 bytes hash identically."""
    assert digest("héllo") == digest("héllo".encode("utf-8"))


def test_digest_rejects_unsupported_types():
    """Only bytes-like and str content are accepted."""
    with pytest.raises(TypeError):
        digest(12345)


def test_digest_value_is_64_lowercase_hex():
    """Digest text form is 64 lowercase hex characters."""
    value = digest(b"abc").hex
    assert len(value) == 64
    assert value == value.lower()


def test_parse_normalizes_case():
    """Uppercase hex is accepted and normalized."""
    lower = digest(b"abc").hex
    parsed = DigestValue.parse(lower.upper())
    assert parsed.hex == lower
    assert parsed == digest(b"abc")
    assert hash(parsed) == hash(digest(b"abc"))


@pytest.mark.parametrize(
    "value",
    [
        "",
        "abc",
        "g" * 64,
        "a" * 63,
        "a" * 65,
        " " + "a" * 63,
        "a" * 64 + "\n",
        "\n" + "a" * 64,
        None,
    ],
)
def test_parse_rejects_malformed_digests(value):
    """Length and alphabet are validated exactly."""
    with pytest.raises(InvalidDigestFormat) as exc_info:
        DigestValue.parse(value)
    assert isinstance(exc_info.value, CertificationError)
    assert isinstance(exc_info.value, ValueError)
    assert exc_info.value.code == "invalid_digest_format"


def test_is_valid_requires_exact_length():
    """A trailing newline is not part of a valid digest."""
    assert DigestValue.is_valid("a" * 64)
    assert not DigestValue.is_valid("a" * 64 + "\n")


def test_truncated_display():
    """Display form keeps the first 12 and last 4 characters."""
    value = digest(b"abc")
    assert value.truncated() == f"{value.hex[:12]}...{value.hex[-4:]}"


def test_equality_with_other_types():
    """A digest never equals its raw string."""
    value = digest(b"abc")
    assert value != value.hex
