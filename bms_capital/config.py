"""Configuration management using Pydantic Settings"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Backend REST API
    api_base_url: str = "http://localhost:8000/api"
    api_token: Optional[str] = None
    active_branch_id: Optional[str] = None

    # Service
    service_name: str = "bms-capital"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 10.0

    # Loan form
    nic_lookup_debounce_seconds: float = 0.3
    default_documentation_fee: str = "1000"
    witness_roles: List[str] = ["manager", "field_officer", "staff"]

    # Drafts
    max_draft_count: int = 10
    draft_storage_key: str = "loanCreationDraft"
    draft_list_storage_key: str = "loanCreationDraftList"
    draft_store_url: str = "sqlite:///./bms_drafts.db"

    # Approval queue
    approval_queue_page_size: int = 100


settings = Settings()
