"""
Certificate endpoints.
"""

import uuid

from fastapi import APIRouter, Response

from assessment_platform.api.deps import CurrentUser, DbSession, Renderer
from assessment_platform.engines.certificates.service import CertificateService
from assessment_platform.schemas.assessment import CertificateResponse
from assessment_platform.schemas.common import ApiResponse

router = APIRouter()


@router.get("/user/me")
async def my_certificates(user: CurrentUser, db: DbSession):
    certificates = await CertificateService(db).list_for_user(user.id)
    return ApiResponse.ok(
        [CertificateResponse.model_validate(c) for c in certificates],
        "Certificates retrieved successfully",
    )


@router.get("/{certificate_id}")
async def get_certificate(certificate_id: uuid.UUID, user: CurrentUser, db: DbSession):
    certificate = await CertificateService(db).get_for(certificate_id, user)
    return ApiResponse.ok(CertificateResponse.model_validate(certificate), "Certificate retrieved successfully")


@router.get("/{certificate_id}/download")
async def download_certificate(
    certificate_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    renderer: Renderer,
):
    """The certificate as a PDF attachment (owner or admin)."""
    certificate, pdf = await CertificateService(db, renderer=renderer).render_pdf(certificate_id, user)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="certificate-{certificate.id}.pdf"',
        },
    )
