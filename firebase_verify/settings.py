from __future__ import annotations

import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from firebase_verify.idtoken.config import DEFAULT_CLOCK_SKEW_SECONDS, project_id_from_environ

EMULATOR_HOST_ENV = "FIREBASE_AUTH_EMULATOR_HOST"


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - ``APP_PROJECT_ID`` falls back to ``FIREBASE_PROJECT_ID`` / ``GOOGLE_CLOUD_PROJECT``.
    - Setting ``FIREBASE_AUTH_EMULATOR_HOST`` switches to the emulator verifiers.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    project_id: str | None = None
    use_emulator: bool = False
    session_cookie_name: str = "session"
    clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS
    auth_time_skew_seconds: int = 0
    http_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    def resolved_project_id(self) -> str:
        if self.project_id:
            return self.project_id
        return project_id_from_environ()

    def emulated(self) -> bool:
        return self.use_emulator or bool(os.environ.get(EMULATOR_HOST_ENV, "").strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
