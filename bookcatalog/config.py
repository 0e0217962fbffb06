"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    """Read a boolean flag from the environment."""
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "booksdb")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_MIN_CONN = int(os.getenv("DB_MIN_CONN", "1"))
    DB_MAX_CONN = int(os.getenv("DB_MAX_CONN", "10"))

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Ratings
    MAX_RATING_VALUE = int(os.getenv("MAX_RATING_VALUE", "5"))
    RATING_PRECISION = int(os.getenv("RATING_PRECISION", "2"))

    # Taxonomy
    DEDUPE_LINKS = _env_flag("DEDUPE_LINKS")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
