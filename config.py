# ScopeGuard - configuration
from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    secret_key: str = "dev-secret-change-in-production"
    database_url: str = "sqlite+aiosqlite:///./scopeguard.db"
    access_token_expire_minutes: int = 60
    data_dir: Path = Path("./data")
    audit_log_path: Path = Path("./data/audit_log.jsonl")
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
