"""Completion certificates."""

from sketchbrains.certificates.service import CertificateService

__all__ = ["CertificateService"]
