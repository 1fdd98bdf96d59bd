"""Content addressing."""

from certikas.provenance.digest import DIGEST_HEX_LENGTH, DigestValue, digest

__all__ = ["DIGEST_HEX_LENGTH", "DigestValue", "digest"]
