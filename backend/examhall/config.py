"""Application configuration settings."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Examhall"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/examhall.db"

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = base_dir / "data"
    session_store_dir: Path = data_dir / "sessions"

    # Session state backend: "file" survives restarts, "memory" is per-process
    session_store_backend: str = "file"

    # Grading
    max_score: float = 10.0
    pass_threshold: float = 5.0
    violation_review_threshold: int = 3  # flag when count exceeds this

    # Blueprint generation
    variant_code_base: int = 101
    max_variants: int = 20

    # Assignments
    access_code_length: int = 8
    access_code_alphabet: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

    # Session timer
    timer_tick_seconds: float = 1.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "EXAMHALL_"


settings = Settings()
