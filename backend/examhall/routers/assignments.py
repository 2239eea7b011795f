"""Assignment API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db import get_db
from examhall.errors import (
    AssignmentUnavailableError,
    AttemptsExhaustedError,
    InvalidTransitionError,
    NotFoundError,
)
from examhall.models.assignment import Assignment, AssignmentCreate, EntryRequest, EntryResult
from examhall.services.assignments import AssignmentService

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


@router.post("", response_model=Assignment, status_code=201)
async def create_assignment(
    request: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Assign an exam to a class, as a draft or published straight away."""
    service = AssignmentService(db)
    try:
        return await service.create_assignment(request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/enter", response_model=EntryResult)
async def enter_assignment(
    request: EntryRequest,
    db: AsyncSession = Depends(get_db),
):
    """Check an access code before a student starts an attempt."""
    service = AssignmentService(db)
    try:
        return await service.check_entry(request.code, request.student_id)
    except AttemptsExhaustedError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "submission_id": e.submission_id},
        )
    except AssignmentUnavailableError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/close-expired")
async def close_expired(db: AsyncSession = Depends(get_db)):
    """Close all open assignments whose window has ended."""
    closed = await AssignmentService(db).close_expired()
    return {"closed": closed}


@router.get("/{assignment_id}", response_model=Assignment)
async def get_assignment(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    assignment = await AssignmentService(db).get_assignment(assignment_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return assignment


@router.post("/{assignment_id}/publish", response_model=Assignment)
async def publish_assignment(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentService(db).publish(assignment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{assignment_id}/close", response_model=Assignment)
async def close_assignment(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentService(db).close(assignment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
