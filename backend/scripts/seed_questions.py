"""Script to seed the question bank from JSON files."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from examhall.config import settings
from examhall.db import async_session, init_db
from examhall.models.question import QuestionLevel
from examhall.services.question_bank import QuestionBankService


async def main(lesson_ids: list[str]):
    """Load questions into the database and print availability per level."""
    print("Initializing database...")
    await init_db()

    print("Loading questions from JSON files...")
    questions_dir = settings.data_dir / "questions"

    async with async_session() as db:
        service = QuestionBankService(db)

        total_loaded = 0
        for json_file in sorted(questions_dir.glob("*.json")):
            print(f"Loading {json_file.name}...")
            count = await service.load_questions_from_json(json_file)
            print(f"  Loaded {count} questions")
            total_loaded += count

        await db.commit()

    print(f"\nTotal questions loaded: {total_loaded}")

    if not lesson_ids:
        return

    async with async_session() as db:
        counts = await QuestionBankService(db).count_by_level(lesson_ids)

    print(f"\nQuestions by level for {', '.join(lesson_ids)}:")
    for level in QuestionLevel:
        print(f"  {level.value}: {counts[level]}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
