import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="examhall-tests-"))
os.environ.setdefault("EXAMHALL_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'app.db'}")
os.environ.setdefault("EXAMHALL_DATA_DIR", str(_TMP / "data"))
os.environ.setdefault("EXAMHALL_SESSION_STORE_BACKEND", "memory")
os.environ.setdefault("SKIP_SEEDING", "true")

from examhall.models.assignment import Assignment, AssignmentStatus  # noqa: E402
from examhall.models.exam import Exam, ExamStructure, ExamVariant  # noqa: E402
from examhall.models.question import AnswerOption, Question, QuestionLevel  # noqa: E402
from examhall.models.session import Submission  # noqa: E402
from examhall.services.integrity import IntegrityEventBus  # noqa: E402
from examhall.services.session_store import InMemorySessionStore  # noqa: E402

T0 = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryAttemptRepository:
    def __init__(self, assignments=(), exams=(), answer_key=None, events=None):
        self.assignments = {a.id: a for a in assignments}
        self.exams = {e.id: e for e in exams}
        self.answer_key = dict(answer_key or {})
        self.submissions = []
        self.fail_next_submissions = 0
        self.fail_next_answer_keys = 0
        self.events = events if events is not None else []

    async def get_assignment(self, assignment_id):
        return self.assignments.get(assignment_id)

    async def get_exam(self, exam_id):
        return self.exams.get(exam_id)

    async def list_submissions(self, assignment_id, student_id):
        return [
            s for s in self.submissions
            if s.assignment_id == assignment_id and s.student_id == student_id
        ]

    async def get_answer_key(self, question_ids):
        if self.fail_next_answer_keys:
            self.fail_next_answer_keys -= 1
            raise RuntimeError("database unavailable")
        return {q: self.answer_key[q] for q in question_ids if q in self.answer_key}

    async def create_submission(self, submission):
        self.events.append("create_submission")
        if self.fail_next_submissions:
            self.fail_next_submissions -= 1
            raise RuntimeError("database unavailable")
        self.submissions.append(submission)

    async def get_public_questions(self, question_ids, shuffle_seed):
        return []


class RecordingStore(InMemorySessionStore):
    def __init__(self, events):
        super().__init__()
        self.events = events

    def clear_all(self, key):
        self.events.append("clear_all")
        super().clear_all(key)


def make_question(qid: str, level: QuestionLevel, lesson_id: str = "L1") -> Question:
    return Question(
        id=qid,
        content=f"Question {qid}",
        level=level,
        lesson_id=lesson_id,
        options=[
            AnswerOption(id=f"{qid}-a", content="A", is_correct=True),
            AnswerOption(id=f"{qid}-b", content="B"),
            AnswerOption(id=f"{qid}-c", content="C"),
        ],
    )


def make_exam(duration_minutes: int = 30) -> Exam:
    return Exam(
        id="exam-1",
        title="Unit test",
        duration_minutes=duration_minutes,
        structure=ExamStructure(
            lesson_ids=("L1",),
            level_counts={
                QuestionLevel.RECOGNITION: 2,
                QuestionLevel.UNDERSTANDING: 1,
                QuestionLevel.APPLICATION: 0,
                QuestionLevel.HIGH_APPLICATION: 0,
            },
            total_questions=3,
        ),
        variants=(
            ExamVariant(code="101", question_ids=("q1", "q2", "q3")),
            ExamVariant(code="102", question_ids=("q3", "q1", "q2")),
        ),
    )


def make_assignment(**overrides) -> Assignment:
    fields = dict(
        id="assign-1",
        exam_id="exam-1",
        class_id="6A",
        code="ABCD1234",
        status=AssignmentStatus.OPEN,
        start_time=T0 - timedelta(hours=1),
        end_time=T0 + timedelta(days=1),
        attempts=1,
    )
    fields.update(overrides)
    return Assignment(**fields)


def make_submission_record(
    assignment_id: str,
    student_id: str,
    start_time: datetime = T0 - timedelta(hours=2),
    **overrides,
) -> Submission:
    fields = dict(
        assignment_id=assignment_id,
        student_id=student_id,
        variant_code="101",
        start_time=start_time,
        end_time=start_time + timedelta(minutes=20),
        answers=(),
        correct_count=0,
        total_questions=3,
        score=0.0,
        passed=False,
    )
    fields.update(overrides)
    return Submission(**fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
def store(events):
    return RecordingStore(events)


@pytest.fixture
def bus():
    return IntegrityEventBus()


@pytest.fixture
def repository(events):
    return InMemoryAttemptRepository(
        assignments=[make_assignment()],
        exams=[make_exam()],
        answer_key={"q1": "A", "q2": "B", "q3": "C"},
        events=events,
    )
