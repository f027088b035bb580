from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "development"

    # Database (reference foods + diet vocabulary)
    database_url: str = "sqlite:///./nutrigen.db"

    # LLM providers
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.0

    # FDC key (optional, local search is used without it)
    fdc_api_key: Optional[str] = None

    # Reference food matching
    reference_candidate_limit: int = 20
    reference_similarity_threshold: float = 0.6

    # Per-field retry policy
    field_max_retries: int = 5
    field_backoff_ms: int = 400
    field_salvage_after: int = 3
    field_base_tokens: int = 64
    description_base_tokens: int = 512
    backoff_max_delay_ms: int = 60_000

    # Strict weightG retry
    weight_retry_backoff_ms: int = 500

    # Whole-run retry
    run_attempts: int = 3
    run_backoff_ms: int = 600

    # Finished background jobs kept for polling
    job_history_limit: int = 100

    # Logging
    log_level: str = "INFO"
    structured_logs: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    class Config:
        env_file = ".env"


settings = Settings()
