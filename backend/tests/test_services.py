import json
import random
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from conftest import T0, FakeClock, make_submission_record
from examhall.db.models import Base
from examhall.errors import (
    AssignmentUnavailableError,
    AttemptsExhaustedError,
    InsufficientPoolError,
    InvalidTransitionError,
    NotFoundError,
)
from examhall.models.assignment import AssignmentCreate, AssignmentSettings, AssignmentStatus
from examhall.models.exam import ExamCreate, SelectionMatrix
from examhall.models.question import AnswerOption, QuestionCreate, QuestionLevel
from examhall.models.session import SubmissionAnswer
from examhall.services.assignments import AssignmentService, generate_access_code
from examhall.services.exams import ExamService
from examhall.services.question_bank import QuestionBankService
from examhall.services.submissions import SubmissionService

R = QuestionLevel.RECOGNITION
U = QuestionLevel.UNDERSTANDING


@pytest.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'services.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


def question_request(level: QuestionLevel, lesson_id: str = "L1", n: int = 0) -> QuestionCreate:
    return QuestionCreate(
        content=f"{level.value} question {n}",
        level=level,
        lesson_id=lesson_id,
        options=[
            AnswerOption(content="right", is_correct=True),
            AnswerOption(content="wrong"),
        ],
    )


async def seed_bank(db, recognition=4, understanding=2):
    bank = QuestionBankService(db)
    created = []
    for i in range(recognition):
        created.append(await bank.create_question(question_request(R, n=i)))
    for i in range(understanding):
        created.append(await bank.create_question(question_request(U, n=i)))
    created.append(await bank.create_question(question_request(R, lesson_id="L2")))
    return created


async def create_exam(db, variant_count=2):
    request = ExamCreate(
        title="Week 3 quiz",
        duration_minutes=20,
        matrix=SelectionMatrix(level_counts={R: 2, U: 1}, lesson_ids=["L1"], variant_count=variant_count),
    )
    return await ExamService(db, rng=random.Random(4)).create_exam(request)


def assignment_request(exam_id, publish=True, **overrides) -> AssignmentCreate:
    fields = dict(
        exam_id=exam_id,
        class_id="6A",
        start_time=T0 - timedelta(hours=1),
        end_time=T0 + timedelta(hours=2),
        publish=publish,
    )
    fields.update(overrides)
    return AssignmentCreate(**fields)


# ----------------------------------------------------------------------
# Question bank
# ----------------------------------------------------------------------


async def test_count_by_level_for_selected_lessons(db):
    await seed_bank(db)
    counts = await QuestionBankService(db).count_by_level(["L1"])
    assert counts[R] == 4
    assert counts[U] == 2
    assert counts[QuestionLevel.APPLICATION] == 0


async def test_load_questions_from_json_skips_invalid(db, tmp_path):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps({"questions": [
        {
            "content": "2 + 2 = ?",
            "level": "recognition",
            "lesson_id": "math-1",
            "options": [
                {"id": "a", "content": "4", "is_correct": True},
                {"id": "b", "content": "5"},
            ],
        },
        {
            "content": "No correct option",
            "level": "recognition",
            "lesson_id": "math-1",
            "options": [{"id": "a", "content": "x"}, {"id": "b", "content": "y"}],
        },
    ]}))
    bank = QuestionBankService(db)
    assert await bank.load_questions_from_json(path) == 1
    questions = await bank.list_questions(lesson_id="math-1")
    assert [q.correct_option_id for q in questions] == ["a"]


async def test_public_view_hides_correctness_and_shuffles_stably(db):
    question = (await seed_bank(db, recognition=1, understanding=0))[0]
    first = QuestionBankService.to_public(question, shuffle_seed="attempt_a_s1")
    second = QuestionBankService.to_public(question, shuffle_seed="attempt_a_s1")
    assert [o.id for o in first.options] == [o.id for o in second.options]
    assert "is_correct" not in first.model_dump()["options"][0]


# ----------------------------------------------------------------------
# Exams
# ----------------------------------------------------------------------


async def test_create_exam_stores_variants(db):
    await seed_bank(db)
    exam = await create_exam(db, variant_count=3)

    stored = await ExamService(db).get_exam(exam.id)
    assert [v.code for v in stored.variants] == ["101", "102", "103"]
    assert stored.total_questions == 3
    questions = await ExamService(db).get_variant_questions(exam.id, "102")
    assert [q.id for q in questions] == list(stored.variants[1].question_ids)
    assert all(q.lesson_id == "L1" for q in questions)


async def test_create_exam_with_short_bank(db):
    await seed_bank(db, recognition=1)
    with pytest.raises(InsufficientPoolError) as exc_info:
        await create_exam(db)
    assert exc_info.value.shortfalls[R].available == 1


async def test_create_exam_variant_limit(db):
    await seed_bank(db)
    with pytest.raises(ValueError):
        await create_exam(db, variant_count=21)


# ----------------------------------------------------------------------
# Assignments
# ----------------------------------------------------------------------


def test_access_code_avoids_existing():
    rng = random.Random(1)
    taken = generate_access_code(random.Random(1), set())
    code = generate_access_code(rng, {taken})
    assert code != taken
    assert len(code) == 8
    assert code.isalnum() and code.upper() == code


async def test_assignment_for_unknown_exam(db):
    with pytest.raises(NotFoundError):
        await AssignmentService(db).create_assignment(assignment_request("nope"))


async def test_publish_and_close_transitions(db):
    await seed_bank(db)
    exam = await create_exam(db)
    service = AssignmentService(db, clock=FakeClock())

    draft = await service.create_assignment(assignment_request(exam.id, publish=False))
    assert draft.status == AssignmentStatus.DRAFT
    with pytest.raises(InvalidTransitionError):
        await service.close(draft.id)

    opened = await service.publish(draft.id)
    assert opened.status == AssignmentStatus.OPEN
    with pytest.raises(InvalidTransitionError):
        await service.publish(draft.id)

    closed = await service.close(draft.id)
    assert closed.status == AssignmentStatus.CLOSED


async def test_assignment_closes_after_window(db):
    await seed_bank(db)
    exam = await create_exam(db)
    clock = FakeClock()
    service = AssignmentService(db, clock=clock)
    assignment = await service.create_assignment(assignment_request(exam.id))

    clock.advance(3 * 3600)
    refreshed = await service.get_assignment(assignment.id)
    assert refreshed.status == AssignmentStatus.CLOSED
    assert await service.close_expired() == 0


async def test_close_expired_sweeps_open_assignments(db):
    await seed_bank(db)
    exam = await create_exam(db)
    clock = FakeClock()
    service = AssignmentService(db, clock=clock)
    await service.create_assignment(assignment_request(exam.id))
    await service.create_assignment(assignment_request(exam.id, end_time=T0 + timedelta(days=2)))

    clock.advance(3 * 3600)
    assert await service.close_expired() == 1


async def test_entry_by_code(db):
    await seed_bank(db)
    exam = await create_exam(db)
    service = AssignmentService(db, clock=FakeClock())
    assignment = await service.create_assignment(assignment_request(exam.id))

    entry = await service.check_entry(f"  {assignment.code.lower()} ", "s1")
    assert entry.assignment_id == assignment.id
    assert entry.attempts_used == 0
    assert entry.attempts_allowed == 1


@pytest.mark.parametrize("publish,start_offset,message", [
    (False, -1, "not been published"),
    (True, 1, "opens at"),
])
async def test_entry_rejected(db, publish, start_offset, message):
    await seed_bank(db)
    exam = await create_exam(db)
    service = AssignmentService(db, clock=FakeClock())
    assignment = await service.create_assignment(assignment_request(
        exam.id, publish=publish, start_time=T0 + timedelta(hours=start_offset)
    ))
    with pytest.raises(AssignmentUnavailableError, match=message):
        await service.check_entry(assignment.code, "s1")


async def test_entry_with_unknown_code(db):
    with pytest.raises(AssignmentUnavailableError, match="Invalid exam code"):
        await AssignmentService(db, clock=FakeClock()).check_entry("ZZZZZZZZ", "s1")


async def test_entry_after_last_attempt(db):
    await seed_bank(db)
    exam = await create_exam(db)
    service = AssignmentService(db, clock=FakeClock())
    assignment = await service.create_assignment(assignment_request(exam.id))
    submission = make_submission_record(assignment.id, "s1")
    await SubmissionService(db).create(submission)

    with pytest.raises(AttemptsExhaustedError) as exc_info:
        await service.check_entry(assignment.code, "s1")
    assert exc_info.value.submission_id == submission.id

    # Another student is unaffected
    entry = await service.check_entry(assignment.code, "s2")
    assert entry.attempts_used == 0


# ----------------------------------------------------------------------
# Submissions
# ----------------------------------------------------------------------


async def test_submission_updates_usage_stats(db):
    questions = await seed_bank(db, recognition=2, understanding=0)
    right, wrong = questions[0], questions[1]
    wrong_option = next(o.id for o in wrong.options if not o.is_correct)
    submission = make_submission_record("assign-x", "s1", answers=(
        SubmissionAnswer(question_id=right.id, answer_id=right.correct_option_id),
        SubmissionAnswer(question_id=wrong.id, answer_id=wrong_option),
    ))
    await SubmissionService(db).create(submission)

    bank = QuestionBankService(db)
    assert (await bank.get_question(right.id)).stats.model_dump() == {"used": 1, "correct": 1}
    assert (await bank.get_question(wrong.id)).stats.model_dump() == {"used": 1, "correct": 0}

    stored = await SubmissionService(db).get(submission.id)
    assert stored.answers == submission.answers
    assert stored.start_time == submission.start_time


def test_result_hidden_unless_enabled():
    from conftest import make_assignment

    submission = make_submission_record("assign-1", "s1")
    hidden = SubmissionService.to_result(submission, make_assignment())
    assert hidden.result_visible is False
    assert hidden.score is None

    shown = SubmissionService.to_result(
        submission,
        make_assignment(settings=AssignmentSettings(show_result_after_submit=True)),
    )
    assert shown.result_visible is True
    assert shown.score == submission.score
