from pydantic import BaseModel
import os

class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # sweeper schedule and retention (seconds)
    cleanup_interval_seconds: int = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
    commands_ttl_seconds: int = int(os.getenv("COMMANDS_TTL_SECONDS", "3600"))
    responses_ttl_seconds: int = int(os.getenv("RESPONSES_TTL_SECONDS", "3600"))
    offline_after_seconds: int = int(os.getenv("OFFLINE_AFTER_SECONDS", "600"))

    poll_limit: int = int(os.getenv("POLL_LIMIT", "50"))
    read_limit: int = int(os.getenv("READ_LIMIT", "20"))

settings = Settings()
