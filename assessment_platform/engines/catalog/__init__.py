"""
Question bank and competency catalog.
"""

from assessment_platform.engines.catalog.competency_service import CompetencyService
from assessment_platform.engines.catalog.question_bank import QuestionBank

__all__ = ["CompetencyService", "QuestionBank"]
