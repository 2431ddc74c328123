"""Application settings and configuration management."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    CONFIG_PATH: str = Field(default="app_config.json")
    INTERVIEW_ROLE: str = "Full Stack Developer (React/Node.js)"

    GENERATION_TIMEOUT_S: float = Field(default=35.0, gt=0)
    EVALUATION_TIMEOUT_S: float = Field(default=30.0, gt=0)
    SUMMARY_TIMEOUT_S: float = Field(default=30.0, gt=0)
    TICK_SECONDS: float = Field(default=1.0, gt=0)

    NO_ANSWER_TEXT: str = "No answer provided (time ran out)"

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True)


settings = Settings()
