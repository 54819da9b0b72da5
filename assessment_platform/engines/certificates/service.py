"""
Certificate lookups and downloads.
"""

import asyncio
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.engines.certificates.renderer import CertificateData, CertificateRenderer
from assessment_platform.kernel.errors import NotFound
from assessment_platform.kernel.models.base import ensure_utc
from assessment_platform.kernel.models.certificate import Certificate
from assessment_platform.kernel.models.user import User, UserRole


class CertificateService:
    """
    Read access to issued certificates.

    A certificate is visible to its owner and to admins. Everyone else gets
    NotFound, the same answer as for an id that does not exist.
    """

    def __init__(self, session: AsyncSession, renderer: CertificateRenderer = None):
        self.session = session
        self.renderer = renderer or CertificateRenderer()

    async def list_for_user(self, user_id: uuid.UUID) -> List[Certificate]:
        result = await self.session.execute(
            select(Certificate)
            .where(Certificate.user_id == user_id)
            .order_by(Certificate.issued_at.desc())
        )
        return list(result.scalars().all())

    async def get_for(self, certificate_id: uuid.UUID, viewer: User) -> Certificate:
        certificate = await self.session.get(Certificate, certificate_id)
        if certificate is None:
            raise NotFound("Certificate not found")
        if certificate.user_id != viewer.id and viewer.role != UserRole.ADMIN:
            raise NotFound("Certificate not found")
        return certificate

    async def data_for(self, certificate: Certificate) -> CertificateData:
        owner = await self.session.get(User, certificate.user_id)
        return CertificateData(
            certificate_id=certificate.id,
            full_name=owner.full_name if owner else "",
            level=certificate.level_achieved,
            score=certificate.score,
            step=certificate.step,
            issued_at=ensure_utc(certificate.issued_at),
        )

    async def render_pdf(self, certificate_id: uuid.UUID, viewer: User) -> tuple[Certificate, bytes]:
        """PDF bytes for a certificate the viewer may see."""
        certificate = await self.get_for(certificate_id, viewer)
        data = await self.data_for(certificate)
        return certificate, await asyncio.to_thread(self.renderer.render_pdf, data)
