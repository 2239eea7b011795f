"""Runtime for a single student's attempt at an assignment.

The engine is rebuilt from the session store whenever the student loads the
exam, so a reload, a crashed tab and a new request all take the same path:

    UNINITIALIZED -> LOADING -> [RESUME_PROMPT] -> ACTIVE <-> VIOLATION_OVERLAY
                                                     -> SUBMITTING -> COMPLETED

Timing is always derived from the stored start timestamp. Nothing that counts
down is ever persisted, so the clock cannot be rewound by reloading.

Ordering on submit: the submission is handed to the repository first and the
session keys are cleared only after that succeeds. A crash in between leaves
orphaned keys, which are detected on the next start by matching the stored
start timestamp against existing submissions.
"""

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol

from examhall.config import settings
from examhall.errors import (
    AssignmentUnavailableError,
    InvalidAnswerError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    SubmissionFailedError,
)
from examhall.models.assignment import Assignment, as_utc
from examhall.models.exam import Exam, ExamVariant
from examhall.models.session import (
    IntegrityEventType,
    SessionPhase,
    SessionSnapshot,
    Submission,
)

from .grading import grade
from .integrity import IntegrityEventSource
from .session_store import SessionKey, SessionStore, from_millis, to_millis

logger = logging.getLogger(__name__)

AUTO_SUBMIT_NOTICE = "Time is up. Your attempt was submitted automatically."

RUNNING_PHASES = (SessionPhase.RESUME_PROMPT, SessionPhase.ACTIVE, SessionPhase.VIOLATION_OVERLAY)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptRepository(Protocol):
    """Records the engine reads at start and writes at submit."""

    async def get_assignment(self, assignment_id: str) -> Assignment | None:
        ...

    async def get_exam(self, exam_id: str) -> Exam | None:
        ...

    async def list_submissions(self, assignment_id: str, student_id: str) -> list[Submission]:
        """Prior submissions, oldest first."""
        ...

    async def get_answer_key(self, question_ids: list[str]) -> dict[str, str]:
        ...

    async def create_submission(self, submission: Submission) -> None:
        """Store the submission durably; raise on failure."""
        ...


class ExamSessionEngine:
    """State machine for one attempt of one student."""

    def __init__(
        self,
        assignment_id: str,
        student_id: str,
        repository: AttemptRepository,
        store: SessionStore,
        integrity: IntegrityEventSource | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        review_threshold: int | None = None,
    ):
        self.key = SessionKey(assignment_id, student_id)
        self.repository = repository
        self.store = store
        self.integrity = integrity
        self.clock = clock or utc_now
        self.rng = rng or random.Random()
        self.review_threshold = (
            settings.violation_review_threshold if review_threshold is None else review_threshold
        )

        self.phase = SessionPhase.UNINITIALIZED
        self.assignment: Assignment | None = None
        self.exam: Exam | None = None
        self.start_time: datetime | None = None
        self.variant_index: int | None = None
        self.answers: dict[str, str] = {}
        self.violation_count = 0
        self.current_index = 0
        self.last_saved_at: datetime | None = None
        self.autosave_degraded = False
        self.submission: Submission | None = None
        self.redirected = False
        self.notice: str | None = None
        self.last_error: str | None = None

        self._pending_resume: tuple[dict[str, str], int] | None = None
        self._pending_submission: Submission | None = None
        self._submit_in_flight = False
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def variant(self) -> ExamVariant | None:
        if self.exam is None or self.variant_index is None:
            return None
        return self.exam.variants[self.variant_index]

    @property
    def question_ids(self) -> tuple[str, ...]:
        variant = self.variant
        return variant.question_ids if variant else ()

    @property
    def duration_seconds(self) -> int:
        minutes = self.assignment.duration_minutes or self.exam.duration_minutes
        return minutes * 60

    def remaining_seconds(self, now: datetime | None = None) -> int:
        """Seconds left, recomputed from the fixed start and capped by the window end."""
        if self.start_time is None or self.assignment is None:
            return 0
        now = as_utc(now or self.clock())
        elapsed = math.floor((now - self.start_time).total_seconds())
        remaining = min(self.duration_seconds - elapsed, self.duration_seconds)
        until_close = math.floor((self.assignment.end_time - now).total_seconds())
        return max(0, min(remaining, until_close))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def start(self) -> SessionPhase:
        """Load (or reload) the attempt and decide which phase it is in."""
        if self.phase != SessionPhase.UNINITIALIZED:
            raise InvalidTransitionError(f"Cannot start a session in phase {self.phase.value}")
        self.phase = SessionPhase.LOADING

        try:
            assignment = await self.repository.get_assignment(self.key.assignment_id)
            if assignment is None:
                raise NotFoundError("Assignment", self.key.assignment_id)
            exam = await self.repository.get_exam(assignment.exam_id)
            if exam is None:
                raise NotFoundError("Exam", assignment.exam_id)
            if not exam.variants:
                raise NotFoundError("Exam variant", exam.id)
            prior = await self.repository.list_submissions(
                self.key.assignment_id, self.key.student_id
            )
        except Exception:
            self.phase = SessionPhase.UNINITIALIZED
            raise

        self.assignment = assignment
        self.exam = exam
        now = as_utc(self.clock())

        if len(prior) >= assignment.attempts:
            self.submission = prior[0]
            self.redirected = True
            self.phase = SessionPhase.COMPLETED
            logger.info(
                f"Attempts exhausted for {self.key.prefix}; redirecting to submission {prior[0].id}"
            )
            return self.phase

        stored_start = self.store.get_start_time(self.key)
        if stored_start is not None and any(
            to_millis(s.start_time) == to_millis(stored_start) for s in prior
        ):
            logger.warning(f"Clearing orphaned session state for {self.key.prefix}")
            self._persist(self.store.clear_all, self.key)
            stored_start = None

        if stored_start is None:
            if not assignment.is_accepting(now):
                self.phase = SessionPhase.UNINITIALIZED
                raise AssignmentUnavailableError(
                    f"Assignment {assignment.id} is not accepting new attempts"
                )
            self.start_time = from_millis(to_millis(now))
            self._persist(self.store.set_start_time_once, self.key, self.start_time)
        else:
            self.start_time = stored_start

        self._resolve_variant()

        stored_answers = self.store.get_answers(self.key) or {}
        in_variant = set(self.question_ids)
        stored_answers = {q: a for q, a in stored_answers.items() if q in in_variant}
        stored_violations = self.store.get_violation_count(self.key) or 0

        if self.integrity is not None:
            self._unsubscribe = self.integrity.subscribe(self.handle_integrity_event)

        if self.remaining_seconds(now) <= 0:
            # Time ran out while away: grade what was saved.
            self.answers = stored_answers
            self.violation_count = stored_violations
            logger.info(f"Time already elapsed for {self.key.prefix}; submitting on load")
            await self.submit(auto=True)
            return self.phase

        if stored_answers:
            self._pending_resume = (stored_answers, stored_violations)
            self.phase = SessionPhase.RESUME_PROMPT
        else:
            self.violation_count = stored_violations
            self.phase = SessionPhase.ACTIVE

        logger.info(
            f"Session {self.key.prefix} loaded: variant {self.variant.code}, "
            f"{self.remaining_seconds(now)}s left, phase {self.phase.value}"
        )
        return self.phase

    def _resolve_variant(self) -> None:
        count = len(self.exam.variants)
        index = self.store.get_variant_index(self.key)
        if index is not None and index >= count:
            logger.warning(f"Stored variant index {index} out of range for {self.key.prefix}")
            self._persist(self.store.discard_variant_index, self.key)
            index = None
        if index is None:
            index = self.rng.randrange(count)
            self._persist(self.store.set_variant_index_once, self.key, index)
        self.variant_index = index

    # ------------------------------------------------------------------
    # Resume prompt
    # ------------------------------------------------------------------

    def resume(self) -> None:
        """Adopt the saved answers and violation count."""
        self._require(SessionPhase.RESUME_PROMPT)
        self.answers, self.violation_count = self._pending_resume
        self._pending_resume = None
        self.last_saved_at = self.clock()
        self.phase = SessionPhase.ACTIVE

    def restart_answers(self) -> None:
        """Discard saved answers; start time, variant and violations stay."""
        self._require(SessionPhase.RESUME_PROMPT)
        _, self.violation_count = self._pending_resume
        self._pending_resume = None
        self.answers = {}
        self._persist(self.store.clear_answers, self.key)
        self.phase = SessionPhase.ACTIVE

    # ------------------------------------------------------------------
    # Active
    # ------------------------------------------------------------------

    def select_answer(self, question_id: str, answer_id: str) -> None:
        self._require(SessionPhase.ACTIVE)
        if question_id not in self.question_ids:
            raise InvalidAnswerError(f"Question {question_id} is not part of this attempt")
        if not answer_id:
            raise InvalidAnswerError("An answer id is required")
        self.answers[question_id] = answer_id
        self._persist(self.store.set_answers, self.key, dict(self.answers))

    def go_to(self, index: int) -> int:
        self._require(SessionPhase.ACTIVE)
        last = max(len(self.question_ids) - 1, 0)
        self.current_index = min(max(index, 0), last)
        return self.current_index

    def next_question(self) -> int:
        return self.go_to(self.current_index + 1)

    def previous_question(self) -> int:
        return self.go_to(self.current_index - 1)

    def handle_integrity_event(self, event: IntegrityEventType) -> None:
        """Count a visibility or focus loss while active; ignored in any other phase."""
        if not event.is_violation or self.phase != SessionPhase.ACTIVE:
            return
        self.violation_count += 1
        self._persist(self.store.set_violation_count, self.key, self.violation_count)
        self.phase = SessionPhase.VIOLATION_OVERLAY
        logger.info(f"Violation {self.violation_count} ({event.value}) for {self.key.prefix}")

    def acknowledge_violation(self) -> None:
        self._require(SessionPhase.VIOLATION_OVERLAY)
        self.phase = SessionPhase.ACTIVE

    @property
    def flagged_for_review(self) -> bool:
        return self.violation_count > self.review_threshold

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def tick(self) -> Submission | None:
        """Check the clock; submits automatically when time has run out."""
        if self.phase not in RUNNING_PHASES:
            return None
        if self.remaining_seconds() > 0:
            return None
        return await self.submit(auto=True)

    async def run_timer(
        self,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        interval: float | None = None,
    ) -> Submission | None:
        """Tick until the attempt leaves the running phases."""
        interval = settings.timer_tick_seconds if interval is None else interval
        while self.phase in RUNNING_PHASES:
            await sleep(interval)
            submission = await self.tick()
            if submission is not None:
                return submission
        return self.submission

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, auto: bool = False) -> Submission:
        """Grade and store the attempt. Safe to call again after a failure."""
        if self.phase == SessionPhase.COMPLETED and self.submission is not None:
            return self.submission
        if self._submit_in_flight:
            raise InvalidTransitionError("Submission already in progress")
        if self.phase == SessionPhase.SUBMITTING and self._pending_submission is None:
            raise InvalidTransitionError("Submission already in progress")
        if self.phase != SessionPhase.SUBMITTING:
            allowed = (RUNNING_PHASES + (SessionPhase.LOADING,)) if auto else (SessionPhase.ACTIVE,)
            if self.phase not in allowed:
                raise InvalidTransitionError(f"Cannot submit in phase {self.phase.value}")

        previous = self.phase
        if self._pending_resume is not None:
            # Time ran out on the resume prompt: grade what was saved.
            self.answers, self.violation_count = self._pending_resume
            self._pending_resume = None

        self.phase = SessionPhase.SUBMITTING
        self._submit_in_flight = True
        try:
            submission = self._pending_submission or await self._build_submission(auto)
            self._pending_submission = submission
            await self.repository.create_submission(submission)
        except Exception as e:
            if self._pending_submission is None:
                # Nothing was built; go back so the next tick or submit rebuilds it.
                self.phase = (
                    previous
                    if previous in (SessionPhase.ACTIVE, SessionPhase.VIOLATION_OVERLAY)
                    else SessionPhase.ACTIVE
                )
            self.last_error = str(e)
            logger.error(f"Could not store submission for {self.key.prefix}: {e}")
            raise SubmissionFailedError(
                "Your attempt could not be saved. Please retry submitting."
            ) from e
        finally:
            self._submit_in_flight = False

        self.submission = submission
        self._pending_submission = None
        self.last_error = None
        self._persist(self.store.clear_all, self.key)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if submission.auto_submitted:
            self.notice = AUTO_SUBMIT_NOTICE
        self.phase = SessionPhase.COMPLETED
        logger.info(
            f"Submission {submission.id} stored for {self.key.prefix}: "
            f"score {submission.score}, {submission.violation_count} violation(s)"
        )
        return submission

    async def _build_submission(self, auto: bool) -> Submission:
        question_ids = list(self.question_ids)
        answer_key = await self.repository.get_answer_key(question_ids)
        result = grade(question_ids, answer_key, self.answers)
        return Submission(
            assignment_id=self.key.assignment_id,
            student_id=self.key.student_id,
            variant_code=self.variant.code,
            start_time=self.start_time,
            end_time=max(as_utc(self.clock()), self.start_time),
            answers=result.answers,
            correct_count=result.correct_count,
            total_questions=result.total_questions,
            score=result.score,
            passed=result.passed,
            violation_count=self.violation_count,
            flagged_for_review=self.flagged_for_review,
            auto_submitted=auto,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, phase: SessionPhase) -> None:
        if self.phase != phase:
            raise InvalidTransitionError(
                f"Expected phase {phase.value}, session is {self.phase.value}"
            )

    def _persist(self, operation: Callable[..., object], *args) -> bool:
        """Run a store write; failures degrade auto-save instead of stopping the attempt."""
        try:
            operation(*args)
        except PersistenceError as e:
            self.autosave_degraded = True
            logger.warning(f"Auto-save failed for {self.key.prefix}: {e}")
            return False
        self.autosave_degraded = False
        self.last_saved_at = self.clock()
        return True

    def close(self) -> None:
        """Stop listening for integrity events without touching stored state."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def snapshot(self) -> SessionSnapshot:
        running = self.phase in RUNNING_PHASES
        return SessionSnapshot(
            assignment_id=self.key.assignment_id,
            student_id=self.key.student_id,
            phase=self.phase,
            remaining_seconds=self.remaining_seconds() if running else 0,
            variant_code=self.variant.code if self.variant else None,
            question_ids=list(self.question_ids),
            current_index=self.current_index,
            answers=dict(self.answers),
            violation_count=self.violation_count,
            pending_resume_answers=len(self._pending_resume[0]) if self._pending_resume else 0,
            last_saved_at=self.last_saved_at,
            autosave_degraded=self.autosave_degraded,
            submission_id=self.submission.id if self.submission else None,
            redirected=self.redirected,
            notice=self.notice,
        )
