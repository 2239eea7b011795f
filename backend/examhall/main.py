"""Examhall - FastAPI Application."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select

from examhall.config import settings
from examhall.db import init_db
from examhall.db.database import async_session, engine
from examhall.db.models import QuestionDB
from examhall.routers import (
    assignments_router,
    exams_router,
    questions_router,
    sessions_router,
    submissions_router,
)
from examhall.services.question_bank import QuestionBankService
from examhall.services.sessions import ExamSessionService, SqlAttemptRepository, build_session_store
from examhall.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def seed_questions():
    """Seed the question bank from JSON files if it is empty."""
    if os.getenv("SKIP_SEEDING", "").lower() == "true":
        logger.info("SKIP_SEEDING is set. Skipping database seed.")
        return

    async with async_session() as session:
        count = await session.scalar(select(func.count()).select_from(QuestionDB))
        if count and count > 0:
            logger.info(f"Database already has {count} questions. Skipping seed.")
            return

        questions_dir = settings.data_dir / "questions"
        if not questions_dir.exists():
            logger.info(f"No seed directory at {questions_dir}")
            return

        logger.info("Seeding question bank...")
        service = QuestionBankService(session)
        total_imported = 0
        for json_file in sorted(questions_dir.glob("*.json")):
            logger.info(f"Loading {json_file.name}...")
            total_imported += await service.load_questions_from_json(json_file)
        await session.commit()
        logger.info(f"Imported {total_imported} questions.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    configure_logging(logging.DEBUG if settings.debug else logging.INFO)
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Initializing database...")
    await init_db()
    logger.info("Database initialized.")

    await seed_questions()

    if not hasattr(app.state, "session_service"):
        app.state.session_service = ExamSessionService(
            SqlAttemptRepository(async_session),
            build_session_store(),
        )

    logger.info("Startup complete.")
    yield

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Exam authoring and exam-taking service for schools",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(questions_router)
app.include_router(exams_router)
app.include_router(assignments_router)
app.include_router(sessions_router)
app.include_router(submissions_router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "description": "Exam blueprints and exam sessions",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
