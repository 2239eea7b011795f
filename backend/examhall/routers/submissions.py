"""Submission result endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db import get_db
from examhall.models.session import SubmissionResult
from examhall.services.assignments import AssignmentService
from examhall.services.submissions import SubmissionService

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


@router.get("/{submission_id}", response_model=SubmissionResult)
async def get_submission_result(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Result view for the student who made the submission."""
    submission = await SubmissionService(db).get(submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    assignment = await AssignmentService(db).get_assignment(submission.assignment_id)
    return SubmissionService.to_result(submission, assignment)
