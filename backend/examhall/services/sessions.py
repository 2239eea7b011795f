"""Live exam sessions behind the HTTP API.

One ExamSessionEngine is kept per (assignment, student) while the attempt is
running. POST /start always rebuilds it from the session store, which is the
same as the student reloading the page. Every other call goes to the live
engine under a per-attempt lock, so events are handled one at a time.
"""

import asyncio
import logging
import random
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from examhall.config import settings
from examhall.errors import AssignmentUnavailableError, InvalidTransitionError, NotFoundError
from examhall.models.assignment import Assignment, as_utc
from examhall.models.exam import Exam
from examhall.models.question import QuestionPublic
from examhall.models.session import IntegrityEventType, SessionView, Submission

from .assignments import AssignmentService
from .exams import ExamService
from .integrity import IntegrityEventBus
from .question_bank import QuestionBankService
from .session_engine import Clock, ExamSessionEngine, utc_now
from .session_store import InMemorySessionStore, JsonFileSessionStore, SessionKey, SessionStore
from .submissions import SubmissionService

logger = logging.getLogger(__name__)


def build_session_store() -> SessionStore:
    if settings.session_store_backend == "memory":
        return InMemorySessionStore()
    return JsonFileSessionStore(settings.session_store_dir)


class SqlAttemptRepository:
    """AttemptRepository backed by the application database.

    Each call opens its own short transaction, so a stored submission is
    committed before the engine clears the session keys.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_assignment(self, assignment_id: str) -> Assignment | None:
        async with self.session_factory() as db:
            assignment = await AssignmentService(db).get_assignment(assignment_id)
            await db.commit()
            return assignment

    async def get_exam(self, exam_id: str) -> Exam | None:
        async with self.session_factory() as db:
            return await ExamService(db).get_exam(exam_id)

    async def list_submissions(self, assignment_id: str, student_id: str) -> list[Submission]:
        async with self.session_factory() as db:
            return await SubmissionService(db).list_for_student(assignment_id, student_id)

    async def get_answer_key(self, question_ids: list[str]) -> dict[str, str]:
        async with self.session_factory() as db:
            return await QuestionBankService(db).answer_key(question_ids)

    async def create_submission(self, submission: Submission) -> None:
        async with self.session_factory() as db:
            await SubmissionService(db).create(submission)
            await db.commit()

    async def get_public_questions(
        self, question_ids: list[str], shuffle_seed: str | None
    ) -> list[QuestionPublic]:
        async with self.session_factory() as db:
            questions = await QuestionBankService(db).get_questions_by_ids(question_ids)
        return [
            QuestionBankService.to_public(questions[qid], shuffle_seed)
            for qid in question_ids
            if qid in questions
        ]


class ExamSessionService:
    """Registry of running attempts."""

    def __init__(
        self,
        repository: SqlAttemptRepository,
        store: SessionStore,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        self.repository = repository
        self.store = store
        self.clock = clock
        self.rng = rng
        self._engines: dict[SessionKey, ExamSessionEngine] = {}
        self._buses: dict[SessionKey, IntegrityEventBus] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}

    def _lock(self, key: SessionKey) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def _live(self, key: SessionKey) -> ExamSessionEngine:
        engine = self._engines.get(key)
        if engine is None:
            raise InvalidTransitionError("No running session; start (or reload) the exam first")
        return engine

    async def _view(self, engine: ExamSessionEngine) -> SessionView:
        snapshot = engine.snapshot()
        questions: list[QuestionPublic] = []
        if engine.question_ids and not snapshot.submission_id:
            seed = engine.key.prefix if engine.assignment.settings.shuffle_answers else None
            questions = await self.repository.get_public_questions(list(engine.question_ids), seed)
        return SessionView(snapshot=snapshot, questions=questions)

    async def start(self, assignment_id: str, student_id: str) -> SessionView:
        self.forget_completed()
        key = SessionKey(assignment_id, student_id)
        async with self._lock(key):
            previous = self._engines.pop(key, None)
            if previous is not None:
                previous.close()
            bus = self._buses.setdefault(key, IntegrityEventBus())
            engine = ExamSessionEngine(
                assignment_id,
                student_id,
                repository=self.repository,
                store=self.store,
                integrity=bus,
                clock=self.clock,
                rng=self.rng,
            )
            self._engines[key] = engine
            try:
                await engine.start()
            except (NotFoundError, AssignmentUnavailableError):
                self._engines.pop(key, None)
                engine.close()
                raise
            return await self._view(engine)

    async def _run(
        self,
        assignment_id: str,
        student_id: str,
        action: Callable[[ExamSessionEngine], object] | None = None,
    ) -> SessionView:
        key = SessionKey(assignment_id, student_id)
        async with self._lock(key):
            engine = self._live(key)
            await engine.tick()
            if action is not None:
                result = action(engine)
                if asyncio.iscoroutine(result):
                    await result
            return await self._view(engine)

    async def status(self, assignment_id: str, student_id: str) -> SessionView:
        return await self._run(assignment_id, student_id)

    async def resume(self, assignment_id: str, student_id: str) -> SessionView:
        return await self._run(assignment_id, student_id, lambda e: e.resume())

    async def restart_answers(self, assignment_id: str, student_id: str) -> SessionView:
        return await self._run(assignment_id, student_id, lambda e: e.restart_answers())

    async def select_answer(
        self, assignment_id: str, student_id: str, question_id: str, answer_id: str
    ) -> SessionView:
        return await self._run(
            assignment_id, student_id, lambda e: e.select_answer(question_id, answer_id)
        )

    async def navigate(self, assignment_id: str, student_id: str, index: int) -> SessionView:
        return await self._run(assignment_id, student_id, lambda e: e.go_to(index))

    async def report_integrity(
        self, assignment_id: str, student_id: str, event: IntegrityEventType
    ) -> SessionView:
        key = SessionKey(assignment_id, student_id)
        return await self._run(assignment_id, student_id, lambda e: self._buses[key].emit(event))

    async def acknowledge_violation(self, assignment_id: str, student_id: str) -> SessionView:
        return await self._run(assignment_id, student_id, lambda e: e.acknowledge_violation())

    async def submit(self, assignment_id: str, student_id: str) -> SessionView:
        return await self._run(assignment_id, student_id, lambda e: e.submit())

    def forget_completed(self) -> int:
        """Drop finished engines and engines left idle past their assignment window.

        Evicted attempts keep their stored state; the next start either
        resumes them or submits them on load.
        """
        now = as_utc((self.clock or utc_now)())
        done = [
            k for k, e in self._engines.items()
            if e.submission is not None
            or (e.assignment is not None and now > e.assignment.end_time)
        ]
        for key in done:
            self._engines.pop(key).close()
            self._buses.pop(key, None)
        idle_locks = [
            k for k, lock in self._locks.items() if k not in self._engines and not lock.locked()
        ]
        for key in idle_locks:
            del self._locks[key]
        if done:
            logger.debug(f"Dropped {len(done)} finished or expired session(s)")
        return len(done)
