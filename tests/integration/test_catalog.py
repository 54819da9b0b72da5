"""Integration tests for the competency catalog and question bank."""

import pytest
from sqlalchemy import select

from assessment_platform.engines.assessment.engine import AssessmentEngine
from assessment_platform.engines.assessment.levels import Level
from assessment_platform.engines.catalog import CompetencyService, QuestionBank
from assessment_platform.kernel.errors import Conflict, NotFound, ValidationError
from assessment_platform.kernel.models import Competency, Question


OPTIONS = ["Alpha", "Beta", "Gamma", "Delta"]


class TestCompetencyService:
    async def test_create_and_list(self, db_session):
        service = CompetencyService(db_session)
        await service.create("Information Literacy", "Finding and judging information")
        await service.create("communication")
        await db_session.commit()

        items, total = await service.list()
        assert total == 2
        assert [c.name for c in items] == ["communication", "Information Literacy"]

        found, found_total = await service.list(search="judging")
        assert found_total == 1
        assert found[0].name == "Information Literacy"

    async def test_name_is_unique_ignoring_case(self, db_session):
        service = CompetencyService(db_session)
        await service.create("Safety")
        await db_session.commit()

        with pytest.raises(Conflict):
            await service.create("  SAFETY ")

    async def test_blank_name(self, db_session):
        with pytest.raises(ValidationError):
            await CompetencyService(db_session).create("   ")

    async def test_rename_to_own_name_in_other_case(self, db_session):
        service = CompetencyService(db_session)
        competency = await service.create("problem solving")
        await db_session.commit()

        updated = await service.update(competency.id, name="Problem Solving")

        assert updated.name == "Problem Solving"
        assert updated.name_key == "problem solving"

    async def test_rename_collision(self, db_session):
        service = CompetencyService(db_session)
        await service.create("Safety")
        other = await service.create("Creation")
        await db_session.commit()

        with pytest.raises(Conflict):
            await service.update(other.id, name="safety")

    async def test_delete_blocked_by_active_questions(self, db_session, bank):
        service = CompetencyService(db_session)

        with pytest.raises(Conflict) as exc_info:
            await service.delete(bank[0].id)
        assert "6 active questions" in exc_info.value.message

    async def test_delete_unused(self, db_session):
        service = CompetencyService(db_session)
        competency = await service.create("Temporary")
        await db_session.commit()

        await service.delete(competency.id)
        await db_session.commit()

        with pytest.raises(NotFound):
            await service.get(competency.id)

    async def test_delete_after_retiring_questions(self, db_session, bank):
        service = CompetencyService(db_session)
        questions = QuestionBank(db_session)
        target = bank[1]
        result = await db_session.execute(select(Question).where(Question.competency_id == target.id))
        for question in result.unique().scalars().all():
            await questions.delete_question(question.id)
        await db_session.commit()

        await service.delete(target.id)
        await db_session.commit()

        remaining = await db_session.execute(select(Question).where(Question.competency_id == target.id))
        assert remaining.unique().scalars().all() == []

    async def test_usage(self, db_session, bank):
        service = CompetencyService(db_session)

        usage = await service.usage(bank[0].id)
        assert usage.total_questions == 6
        assert usage.questions_by_level == {level.value: 1 for level in Level}
        assert usage.can_delete is False

        extra = await service.create("Unused")
        await db_session.commit()
        usages, summary = await service.list_with_usage()
        assert summary.total_competencies == 5
        assert summary.total_questions == 24
        assert summary.competencies_in_use == 4
        assert {u.competency_id: u.can_delete for u in usages}[extra.id] is True


class TestQuestionBank:
    async def test_create(self, db_session, admin):
        competency = await CompetencyService(db_session).create("Digital Content")
        question = await QuestionBank(db_session).create_question(
            competency.id, "B1", "  Which format is lossless? ", OPTIONS, 2, difficulty=3, created_by=admin.id
        )
        await db_session.commit()

        assert question.level == "B1"
        assert question.text == "Which format is lossless?"
        assert question.is_active is True
        assert question.competency.name == "Digital Content"

    async def test_one_active_question_per_slot(self, db_session, bank):
        with pytest.raises(Conflict) as exc_info:
            await QuestionBank(db_session).create_question(bank[0].id, Level.A1, "Another?", OPTIONS, 0)
        assert "Competency 01" in exc_info.value.message

    async def test_invalid_shape(self, db_session, bank):
        service = QuestionBank(db_session)
        with pytest.raises(ValidationError):
            await service.create_question(bank[0].id, "A1", "Q?", OPTIONS[:3], 0)
        with pytest.raises(ValidationError):
            await service.create_question(bank[0].id, "Z9", "Q?", OPTIONS, 0)

    async def test_unknown_competency(self, db_session):
        import uuid

        with pytest.raises(ValidationError):
            await QuestionBank(db_session).create_question(uuid.uuid4(), "A1", "Q?", OPTIONS, 0)

    async def test_edit_in_place_when_unused(self, db_session, bank):
        service = QuestionBank(db_session)
        question = (
            await db_session.execute(select(Question).where(Question.competency_id == bank[0].id).limit(1))
        ).unique().scalar_one()

        updated = await service.update_question(question.id, text="Reworded?", correct_option_index=3)
        await db_session.commit()

        assert updated.id == question.id
        assert updated.text == "Reworded?"
        assert updated.correct_option_index == 3

    async def test_edit_supersedes_question_in_running_session(self, db_session, session_factory, student, bank):
        """A running session keeps scoring against the question it was given."""
        async with session_factory() as session:
            started = await AssessmentEngine(session).start(student.id, 1)
        async with session_factory() as session:
            current = await AssessmentEngine(session).get_current_question(student.id, started.session_id)
        original_id = current.question.id

        async with session_factory() as session:
            replacement = await QuestionBank(session).update_question(
                original_id, text="Changed wording?", correct_option_index=1
            )
            await session.commit()
            replacement_id = replacement.id

        assert replacement_id != original_id
        async with session_factory() as session:
            original = await session.get(Question, original_id)
            replacement = await session.get(Question, replacement_id)
            assert original.is_active is False
            assert original.correct_option_index == 0
            assert replacement.supersedes_id == original_id
            assert replacement.is_active is True

        async with session_factory() as session:
            result = await AssessmentEngine(session).submit_answer(
                student.id, started.session_id, original_id, 0
            )
        assert result.is_correct is True

    async def test_delete_is_soft(self, db_session, bank):
        service = QuestionBank(db_session)
        items, _ = await service.list_questions(competency_id=bank[0].id)
        await service.delete_question(items[0].id)
        await db_session.commit()

        active, active_total = await service.list_questions(competency_id=bank[0].id)
        retired, retired_total = await service.list_questions(competency_id=bank[0].id, is_active=False)
        assert active_total == 5
        assert retired_total == 1
        assert retired[0].id == items[0].id

    async def test_list_by_step(self, db_session, bank):
        items, total = await QuestionBank(db_session).list_questions(step=3)

        assert total == 8
        assert {q.level for q in items} == {"C1", "C2"}

    async def test_questions_for_step(self, db_session, bank):
        questions = await QuestionBank(db_session).questions_for_step(2, randomize=False)
        assert len(questions) == 8

    async def test_questions_for_step_incomplete(self, db_session, bank):
        service = QuestionBank(db_session)
        items, _ = await service.list_questions(level=Level.B1)
        await service.delete_question(items[0].id)
        await db_session.commit()

        with pytest.raises(Conflict) as exc_info:
            await service.questions_for_step(2)
        assert "Required: 8, Available: 7" in exc_info.value.message

    async def test_readiness(self, db_session, bank):
        await CompetencyService(db_session).create("Not Yet Covered")
        await db_session.commit()

        readiness = await QuestionBank(db_session).readiness()

        assert readiness.total_competencies == 5
        assert readiness.required_questions_total == 30
        assert readiness.total_questions_available == 24
        assert readiness.overall_completion == 80
        assert readiness.questions_by_level["A1"] == 4
        step_one = readiness.step_status[0]
        assert step_one.questions_required == 10
        assert step_one.questions_available == 8
        assert step_one.is_ready is False

    async def test_missing_question(self, db_session):
        import uuid

        with pytest.raises(NotFound):
            await QuestionBank(db_session).get_question(uuid.uuid4())

    async def test_competency_row_exists(self, db_session, bank):
        result = await db_session.execute(select(Competency).order_by(Competency.name_key))
        assert [c.name for c in result.scalars().all()][:2] == ["Competency 01", "Competency 02"]
