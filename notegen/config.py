"""
Configuration settings for the notegen backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "notegen"
    VERSION: str = "0.3.0"
    LOG_LEVEL: str = "INFO"

    # Generation endpoint (OpenAI-compatible chat completions)
    GENERATION_API_URL: str = "https://api.groq.com/openai/v1/chat/completions"
    GENERATION_API_KEY: str = ""
    GENERATION_MODEL: str = "llama-3.3-70b-versatile"
    GENERATION_TIMEOUT: int = 120  # seconds per generation call
    GENERATION_MAX_TOKENS: int = 8000

    # Batch fan-out
    BATCH_CONCURRENCY: int = 3  # in-flight generate+render operations
    BATCH_RETENTION: int = 20  # finished batches kept for polling and download

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Upload Configuration
    MAX_FILE_SIZE: int = 20 * 1024 * 1024  # 20 MB
    # Read as text and sent through the generation endpoint
    DOCUMENT_UPLOAD_TYPES: List[str] = [".pdf", ".docx", ".txt", ".md"]
    # Rejected with a save-as-CSV hint
    SPREADSHEET_UPLOAD_TYPES: List[str] = [".xlsx", ".xls"]

    # Import Configuration
    DEFAULT_SUBJECT: str = "Computing"
    # content_standard | indicator_set
    CURRICULUM_MERGE_POLICY: str = "content_standard"
    # Characters of the joined indicator list folded into the indicator_set key
    INDICATOR_KEY_LENGTH: int = 200

    # PDF reflow (PDF user-space units)
    PDF_SAME_LINE_TOLERANCE: float = 5.0
    PDF_NEW_LINE_TOLERANCE: float = 10.0

    # Draft storage
    DRAFT_DIR: str = "./drafts"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
