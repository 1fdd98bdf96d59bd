"""Certificate repositories."""

from certikas.storage.base import CertificateStatistics, CertificateStore
from certikas.storage.memory import InMemoryCertificateStore

__all__ = ["CertificateStatistics", "CertificateStore", "InMemoryCertificateStore"]
