"""
API v1 routes.
"""

from fastapi import APIRouter

from assessment_platform.api.v1 import assessments, auth, certificates, competencies, questions, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(competencies.router, prefix="/competencies", tags=["Competencies"])
router.include_router(questions.router, prefix="/questions", tags=["Questions"])
router.include_router(assessments.router, prefix="/assessments", tags=["Assessments"])
router.include_router(certificates.router, prefix="/certificates", tags=["Certificates"])
