"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Anthropic
    anthropic_api_key: str = ""
    grade_model: str = "claude-sonnet-4-20250514"
    identity_model: str = "claude-sonnet-4-20250514"
    grade_model_max_tokens: int = 2048
    identity_model_max_tokens: int = 1024

    # Pipeline bounds
    grade_model_timeout_seconds: float = 90.0
    image_fetch_timeout_seconds: float = 15.0

    # Image limits
    max_images_per_job: int = 8
    max_image_bytes: int = 10 * 1024 * 1024

    # Job store
    job_ttl_minutes: int = 30
    job_sweep_interval_seconds: float = 60.0

    # Post-grading value
    psa_grading_fee: float = 40.0
    bgs_grading_fee: float = 55.0
    comps_window_days: int = 90
    cmv_cache_ttl_minutes: int = 60

    # Service
    log_level: str = "INFO"
    compute_port: int = 8001

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
