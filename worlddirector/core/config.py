"""
Process configuration - environment driven settings for storage, secrets and loop timing.
Budgets, feature flags and backend profiles live in the guardrail document instead.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Storage layout
DATA_DIR = os.getenv("DIRECTOR_DATA_DIR", "./data")
GUARDRAILS_PATH = os.getenv("GUARDRAILS_PATH", os.path.join(DATA_DIR, "guardrails.json"))
DIRECTOR_CONFIG_PATH = os.getenv("DIRECTOR_CONFIG_PATH", os.path.join(DATA_DIR, "director_config.json"))
GENERATED_DIR = os.getenv("GENERATED_DIR", os.path.join(DATA_DIR, "generated"))
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(DATA_DIR, "static"))
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR", "./snapshots")

# Secrets
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "default_director_key_change_in_production")
SNAPSHOT_ENCRYPTION_ENABLED = os.getenv("SNAPSHOT_ENCRYPTION_ENABLED", "false").lower() == "true"

# Automation loop and config watcher
DIRECTOR_TICK_SEC = float(os.getenv("DIRECTOR_TICK_SEC", "10"))
CONFIG_POLL_SEC = float(os.getenv("CONFIG_POLL_SEC", "2"))
DIRECTOR_LOG_LIMIT = int(os.getenv("DIRECTOR_LOG_LIMIT", "1000"))
DIRECTOR_THOUGHT_LIMIT = int(os.getenv("DIRECTOR_THOUGHT_LIMIT", "100"))

# Generation backend
GENERATION_TIMEOUT_SEC = float(os.getenv("GENERATION_TIMEOUT_SEC", "60"))
GENERATION_RETRIES = int(os.getenv("GENERATION_RETRIES", "1"))
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3:8b")

# Admin API
API_CORS_ORIGINS = [o.strip() for o in os.getenv("API_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_data_directories():
    """Ensure the data, generated-content and snapshot directories exist."""
    for path in (DATA_DIR, GENERATED_DIR, STATIC_DIR, SNAPSHOT_DIR):
        Path(path).mkdir(parents=True, exist_ok=True)


def validate_director_config():
    """Validate process configuration and return any issues."""
    issues = []

    if DIRECTOR_TICK_SEC < 1:
        issues.append("DIRECTOR_TICK_SEC must be >= 1")

    if CONFIG_POLL_SEC <= 0:
        issues.append("CONFIG_POLL_SEC must be > 0")

    if GENERATION_TIMEOUT_SEC <= 0:
        issues.append("GENERATION_TIMEOUT_SEC must be > 0")

    if GENERATION_RETRIES < 0:
        issues.append("GENERATION_RETRIES must be >= 0")

    if ENCRYPTION_KEY == "default_director_key_change_in_production":
        issues.append("ENCRYPTION_KEY is using the built-in default")

    return issues
