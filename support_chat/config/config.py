import os
from pathlib import Path

from dotenv import load_dotenv

from support_chat.errors import ConfigError

load_dotenv(Path(__file__).resolve().parents[2] / ".env")


def _build_database_url() -> str:
    if os.getenv("DB_HOST") or os.getenv("DB_USER") or os.getenv("DB_PWD") or os.getenv("DB_NAME"):
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        user = os.getenv("DB_USER", "user")
        password = os.getenv("DB_PWD", "pass")
        name = os.getenv("DB_NAME")
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    return "sqlite:///./support_chat.db"


MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3001"))
DATABASE_URL = _build_database_url()

# Longer messages are truncated at the relay, not rejected.
MAX_MESSAGE_CHARS = 5000
# Requests above this are rejected with 400 before any processing.
MESSAGE_HARD_LIMIT = int(os.getenv("MESSAGE_HARD_LIMIT", "20000"))

MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "500"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.7"))
UPSTREAM_TIMEOUT_SEC = float(os.getenv("UPSTREAM_TIMEOUT_SEC", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

API_BASE_URL = os.getenv("SUPPORT_CHAT_API_URL", "http://localhost:3001")


def require_api_key() -> str:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ConfigError("OPENAI_API_KEY environment variable is required")
    return api_key
