"""Database models - import all models here for metadata discovery."""

from certikas.models.certificate import CertificateRecord

__all__ = [
    "CertificateRecord",
]
