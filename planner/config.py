from pydantic_settings import BaseSettings
from pathlib import Path

# Get the project root directory (parent of planner folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = "sqlite:///./study_planner.db"

    # Key under which the in-progress wizard draft is stored
    draft_storage_key: str = "timetable-wizard-progress"

    # AI Provider Configuration for timetable generation
    ai_provider: str = "ollama"

    # Ollama settings (for local development)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2:latest"

    log_level: str = "INFO"

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        extra = "ignore"

settings = Settings()
