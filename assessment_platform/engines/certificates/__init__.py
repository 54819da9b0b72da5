"""
Certificate rendering and retrieval.
"""

from assessment_platform.engines.certificates.renderer import CertificateData, CertificateRenderer
from assessment_platform.engines.certificates.service import CertificateService

__all__ = ["CertificateData", "CertificateRenderer", "CertificateService"]
