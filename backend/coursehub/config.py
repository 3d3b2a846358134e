"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    ENV: str
    JWT_SECRET: str
    DATABASE_URL: str
    ALLOW_INSECURE_JWT: bool
    EXERCISES_REPO_URL: str
    EXERCISES_LOCAL_PATH: Path
    EXERCISES_BRANCH: str
    EXERCISES_SYNC_INTERVAL_MS: int
    EXERCISES_SYNC_ENABLED: bool
    EXERCISES_GIT_TIMEOUT_SECONDS: float

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.ALLOW_INSECURE_JWT = _env_flag("ALLOW_INSECURE_JWT", "false")
        self.EXERCISES_REPO_URL = os.getenv("EXERCISES_REPO_URL", "").strip()
        self.EXERCISES_LOCAL_PATH = Path(
            os.getenv("EXERCISES_LOCAL_PATH", str(BASE / "data" / "exercises-repo"))
        ).expanduser()
        self.EXERCISES_BRANCH = os.getenv("EXERCISES_BRANCH", "main").strip() or "main"
        self.EXERCISES_SYNC_INTERVAL_MS = int(os.getenv("EXERCISES_SYNC_INTERVAL_MS", str(60 * 60 * 1000)))  # hourly
        self.EXERCISES_SYNC_ENABLED = _env_flag("EXERCISES_SYNC_ENABLED", "false")
        self.EXERCISES_GIT_TIMEOUT_SECONDS = float(os.getenv("EXERCISES_GIT_TIMEOUT_SECONDS", "120"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.EXERCISES_SYNC_INTERVAL_MS <= 0:
            raise RuntimeError("EXERCISES_SYNC_INTERVAL_MS must be a positive number of milliseconds")
        if self.EXERCISES_GIT_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("EXERCISES_GIT_TIMEOUT_SECONDS must be positive")
        if self.EXERCISES_SYNC_ENABLED and not self.EXERCISES_REPO_URL:
            raise RuntimeError("EXERCISES_REPO_URL is required when EXERCISES_SYNC_ENABLED is set")

    @property
    def sync_interval_seconds(self) -> float:
        return self.EXERCISES_SYNC_INTERVAL_MS / 1000.0


settings = Settings()
