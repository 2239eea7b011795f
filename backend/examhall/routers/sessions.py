"""Exam session API endpoints.

The browser drives these: it starts (or reloads) the attempt, polls the
status once a second for the countdown, saves answers as they change and
reports visibility and focus losses.
"""

from collections.abc import Awaitable

from fastapi import APIRouter, Depends, HTTPException, Request

from examhall.errors import (
    AssignmentUnavailableError,
    InvalidAnswerError,
    InvalidTransitionError,
    NotFoundError,
    SubmissionFailedError,
)
from examhall.models.session import AnswerUpdate, IntegrityReport, NavigateRequest, SessionView
from examhall.services.sessions import ExamSessionService

router = APIRouter(prefix="/api/sessions/{assignment_id}/{student_id}", tags=["sessions"])


def get_session_service(request: Request) -> ExamSessionService:
    return request.app.state.session_service


async def _handle(call: Awaitable[SessionView]) -> SessionView:
    try:
        return await call
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssignmentUnavailableError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidAnswerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SubmissionFailedError as e:
        raise HTTPException(status_code=503, detail={"message": str(e), "retry": True})


@router.post("/start", response_model=SessionView)
async def start_session(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    """Start or reload an attempt.

    Returns the resume prompt when saved answers exist, and a redirect to the
    earlier submission when no attempts are left.
    """
    return await _handle(service.start(assignment_id, student_id))


@router.get("", response_model=SessionView)
async def get_session(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    """Current state and remaining time. Submits automatically once time is up."""
    return await _handle(service.status(assignment_id, student_id))


@router.post("/resume", response_model=SessionView)
async def resume_session(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    return await _handle(service.resume(assignment_id, student_id))


@router.post("/restart", response_model=SessionView)
async def restart_answers(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    """Discard saved answers. The clock keeps running from the first start."""
    return await _handle(service.restart_answers(assignment_id, student_id))


@router.put("/answers", response_model=SessionView)
async def save_answer(
    assignment_id: str,
    student_id: str,
    update: AnswerUpdate,
    service: ExamSessionService = Depends(get_session_service),
):
    return await _handle(
        service.select_answer(assignment_id, student_id, update.question_id, update.answer_id)
    )


@router.post("/navigate", response_model=SessionView)
async def navigate(
    assignment_id: str,
    student_id: str,
    request: NavigateRequest,
    service: ExamSessionService = Depends(get_session_service),
):
    return await _handle(service.navigate(assignment_id, student_id, request.index))


@router.post("/integrity", response_model=SessionView)
async def report_integrity(
    assignment_id: str,
    student_id: str,
    report: IntegrityReport,
    service: ExamSessionService = Depends(get_session_service),
):
    """Report a visibility change or focus change from the browser."""
    return await _handle(service.report_integrity(assignment_id, student_id, report.event))


@router.post("/acknowledge", response_model=SessionView)
async def acknowledge_violation(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    return await _handle(service.acknowledge_violation(assignment_id, student_id))


@router.post("/submit", response_model=SessionView)
async def submit_session(
    assignment_id: str,
    student_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    """Submit the attempt. A 503 response means it was not stored and can be retried."""
    return await _handle(service.submit(assignment_id, student_id))
