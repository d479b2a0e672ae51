# core/config.py
from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Visual CI/CD"
    debug: bool = Field(default=False)

    github_api_url: str = Field(default="https://api.github.com")
    github_web_url: str = Field(default="https://github.com")
    github_token: Optional[str] = Field(default=None)

    workflow_path: str = Field(default=".github/workflows/visual-cicd-workflow.yml")
    commit_message: str = Field(default="Add GitHub Actions workflow via Visual CI/CD")

    # GitHub needs a moment before a freshly committed workflow file is dispatchable
    registration_delay: float = Field(default=5.0)
    poll_attempts: int = Field(default=30)
    poll_interval: float = Field(default=5.0)
    request_timeout: float = Field(default=30.0)
    # Runs created this long before our dispatch still count as ours
    dispatch_clock_skew: float = Field(default=60.0)

    debounce_seconds: float = Field(default=0.3)
    default_pipeline_name: str = Field(default="default_pipeline")

    model_config = SettingsConfigDict(
        env_prefix="VISUAL_CICD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
