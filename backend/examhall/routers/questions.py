"""Question bank API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db import get_db
from examhall.models.question import LevelAvailability, Question, QuestionCreate, QuestionLevel
from examhall.services.question_bank import QuestionBankService

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.post("", response_model=Question, status_code=201)
async def create_question(
    question: QuestionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Add a question to the bank."""
    service = QuestionBankService(db)
    return await service.create_question(question)


@router.get("", response_model=list[Question])
async def list_questions(
    lesson_id: str | None = None,
    level: QuestionLevel | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List questions with optional lesson and level filters."""
    service = QuestionBankService(db)
    return await service.list_questions(lesson_id=lesson_id, level=level, limit=limit, offset=offset)


@router.get("/availability", response_model=LevelAvailability)
async def get_availability(
    lesson_ids: list[str] = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Available questions per cognitive level for the selected lessons."""
    service = QuestionBankService(db)
    counts = await service.count_by_level(lesson_ids)
    return LevelAvailability(lesson_ids=lesson_ids, counts=counts)


@router.get("/{question_id}", response_model=Question)
async def get_question(
    question_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific question by ID."""
    service = QuestionBankService(db)
    question = await service.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question
