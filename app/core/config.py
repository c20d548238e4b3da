from typing import List

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    debug: bool = True
    log_level: str = "INFO"

    # Batch control
    default_batch_size: int = 100
    pause_poll_interval_seconds: float = 0.5  # How often a paused run re-checks its control flags
    inter_batch_delay_seconds: float = 0.3  # Courtesy gap between batches sent to the processor
    error_tail_size: int = 5  # Number of recent error messages exposed in progress views
    finished_run_retention_seconds: float = 3600.0  # How long a finished run stays readable over the API

    # Header detection (case-folded substring markers)
    header_markers: List[str] = ["email", "mail", "メール", "user"]

    # Remote batch processor (e.g., https://<project>.supabase.co/functions/v1)
    processor_base_url: str = "http://localhost:54321/functions/v1"
    processor_api_key: str = ""
    processor_timeout_seconds: float = 60.0  # Per-batch call timeout; the remote side has none of its own

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
