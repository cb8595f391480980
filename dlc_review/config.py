"""
Verification Pipeline Configuration

Environment variables and tuning knobs for the 10DLC compliance pipeline.
Values are read once at import; tests override them through the Flask
config object or by passing explicit arguments to the components.
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///instance/dlc_review.db")

# Model provider (OpenAI)
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_CHAT_MODEL = os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
OPENAI_EMBEDDING_MODEL = os.environ.get("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSION = _int_env("EMBEDDING_DIMENSION", 1536)
MODEL_TEMPERATURE = _float_env("MODEL_TEMPERATURE", 0.1)  # Low temperature for consistency
MODEL_MAX_TOKENS = _int_env("MODEL_MAX_TOKENS", 2000)

# Guideline store
# - memory: in-process store (tests, offline mode)
# - pinecone: hosted index, requires PINECONE_API_KEY
GUIDELINE_STORE = os.environ.get("GUIDELINE_STORE", "memory")
PINECONE_API_KEY = os.environ.get("PINECONE_API_KEY")
PINECONE_GUIDELINE_INDEX = os.environ.get("PINECONE_GUIDELINE_INDEX", "dlc-carrier-guidelines")

# Retrieval policy
RAG_TOP_K = _int_env("RAG_TOP_K", 5)
RAG_MIN_SIMILARITY = _float_env("RAG_MIN_SIMILARITY", 0.65)

# Concurrency and timeouts (seconds)
EVALUATION_MAX_WORKERS = _int_env("EVALUATION_MAX_WORKERS", 4)
MODEL_TIMEOUT_SECONDS = _float_env("MODEL_TIMEOUT_SECONDS", 60.0)
STORE_TIMEOUT_SECONDS = _float_env("STORE_TIMEOUT_SECONDS", 15.0)
STEP_TIMEOUT_SECONDS = _float_env("STEP_TIMEOUT_SECONDS", 600.0)

# Progress estimation
DEFAULT_STEP_ESTIMATE_SECONDS = _float_env("DEFAULT_STEP_ESTIMATE_SECONDS", 60.0)

# Stall detection
# Threshold = max(STALL_FLOOR_SECONDS, STALL_SECONDS_PER_UNIT * content units)
STALL_FLOOR_SECONDS = _float_env("STALL_FLOOR_SECONDS", 900.0)
STALL_SECONDS_PER_UNIT = _float_env("STALL_SECONDS_PER_UNIT", 60.0)
SWEEP_INTERVAL_SECONDS = _float_env("SWEEP_INTERVAL_SECONDS", 180.0)


class Config:
    """Flask configuration consumed by create_app()."""
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    RAG_TOP_K = RAG_TOP_K
    RAG_MIN_SIMILARITY = RAG_MIN_SIMILARITY
    EVALUATION_MAX_WORKERS = EVALUATION_MAX_WORKERS
    MODEL_TIMEOUT_SECONDS = MODEL_TIMEOUT_SECONDS
    STORE_TIMEOUT_SECONDS = STORE_TIMEOUT_SECONDS
    STEP_TIMEOUT_SECONDS = STEP_TIMEOUT_SECONDS
    STALL_FLOOR_SECONDS = STALL_FLOOR_SECONDS
    STALL_SECONDS_PER_UNIT = STALL_SECONDS_PER_UNIT


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
