import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


class Settings:
    BFL_API_9B: str = os.getenv("BFL_API_9B", "https://api.bfl.ai/v1/flux-2-klein-9b")
    BFL_API_4B: str = os.getenv("BFL_API_4B", "https://api.bfl.ai/v1/flux-2-klein-4b")

    IMAGE_WIDTH: int = 768
    IMAGE_HEIGHT: int = 768

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "0.5"))  # seconds
    # None keeps the interactive loop unbounded
    MAX_POLL_ATTEMPTS: Optional[int] = _optional_int("MAX_POLL_ATTEMPTS")
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "300"))

    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
    CREDENTIAL_KEY: str = "bfl_api_key"

    TIMER_INTERVAL: float = 0.1  # seconds

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
