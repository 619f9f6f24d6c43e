# backend/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """
    Setup environment variables.
        - STORE_BACKEND the persistence backend: "redis" or "memory"
        - SWEEP_INTERVAL_SECONDS how often empty non-default rooms are swept
        - STORE_RETRY_SECONDS the fixed backoff between store connection attempts
        - GOOGLE_* the OAuth client used for sign-in
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORE_BACKEND: Literal["redis", "memory"] = os.getenv("STORE_BACKEND", "redis")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _as_bool(os.getenv("REDIS_SSL", "false"))

    STORE_RETRY_SECONDS: float = float(os.getenv("STORE_RETRY_SECONDS", "10"))
    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", str(30 * 60)))
    MESSAGE_HISTORY_LIMIT: int = int(os.getenv("MESSAGE_HISTORY_LIMIT", "100"))
    SEND_TIMEOUT_SECONDS: float = float(os.getenv("SEND_TIMEOUT_SECONDS", "5"))

    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_REDIRECT_URI: str = os.getenv(
        "GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/google/callback"
    )

    CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:5173")
    ALLOWED_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000"
        ).split(",")
        if origin.strip()
    ]

    COOKIE_SECURE: bool = _as_bool(os.getenv("COOKIE_SECURE", "false"))
    SESSION_MAX_AGE_SECONDS: int = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(7 * 24 * 3600)))

    @property
    def redis_url(self) -> str:
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_ACCESS_KEY}@" if self.REDIS_ACCESS_KEY else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
