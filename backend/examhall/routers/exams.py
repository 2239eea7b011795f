"""Exam authoring API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db import get_db
from examhall.errors import InsufficientPoolError
from examhall.models.exam import Exam, ExamCreate, ExamSummary
from examhall.models.question import Question
from examhall.services.exams import ExamService

router = APIRouter(prefix="/api/exams", tags=["exams"])


@router.post("/generate", response_model=Exam, status_code=201)
async def generate_exam(
    request: ExamCreate,
    db: AsyncSession = Depends(get_db),
):
    """Generate an exam from a selection matrix.

    Every variant holds the same questions in a different order. If the bank
    cannot satisfy the matrix the response lists the shortfall per level.
    """
    service = ExamService(db)
    try:
        return await service.create_exam(request)
    except InsufficientPoolError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "message": str(e),
                "shortfalls": {
                    level.value: {"requested": s.requested, "available": s.available}
                    for level, s in e.shortfalls.items()
                },
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=list[ExamSummary])
async def list_exams(db: AsyncSession = Depends(get_db)):
    """List generated exams, newest first."""
    return await ExamService(db).list_exams()


@router.get("/{exam_id}", response_model=Exam)
async def get_exam(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
):
    exam = await ExamService(db).get_exam(exam_id)
    if not exam:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam


@router.get("/{exam_id}/variants/{code}", response_model=list[Question])
async def get_variant_questions(
    exam_id: str,
    code: str,
    db: AsyncSession = Depends(get_db),
):
    """Preview one variant's questions in presentation order."""
    questions = await ExamService(db).get_variant_questions(exam_id, code)
    if questions is None:
        raise HTTPException(status_code=404, detail="Exam or variant not found")
    return questions
