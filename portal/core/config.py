# portal/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    SECRET_KEY: str = "change-me"  # override in .env / secrets
    LOG_LEVEL: str = "INFO"
    CLIENT_URL: str = "http://localhost:3000"

    # Session tokens
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # MongoDB
    MONGODB_URI: str = "mongodb://localhost:27017/assessment_portal"
    MONGODB_DB: str = "assessment_portal"

    # AI provider: 'openai' or 'groq' (both speak the OpenAI chat API)
    AI_PROVIDER: str = "openai"
    OPENAI_API_KEY: Optional[str] = None
    AI_MODEL: str = "gpt-3.5-turbo"
    AI_BASE_URL: str = "https://api.openai.com/v1"
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-70b-versatile"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    AI_TIMEOUT_SEC: float = 20.0
    AI_MAX_TOKENS: int = 2000
    AI_TEMPERATURE: float = 0.5
    # hard cap on prompt size sent to the provider
    AI_PROMPT_MAX_CHARS: int = 8000

    # Cron trigger shared secret; the sweep endpoint is closed while unset
    CRON_TOKEN: Optional[str] = None
    SCHEDULER_BATCH_SIZE: int = 50

    # Uploads
    UPLOAD_TEMP_DIR: str = "uploads/temp"
    UPLOAD_MAX_BYTES: int = 5 * 1024 * 1024
    UPLOAD_MAX_AGE_SEC: int = 24 * 60 * 60
    UPLOAD_SWEEP_INTERVAL_SEC: int = 60 * 60

    # Email (SMTP); sending is skipped when SMTP_HOST is unset
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "no-reply@assessment-portal.local"
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SEC: int = 12

    # Invitations
    INVITE_TOKEN_TTL_HOURS: int = 72

    # First super admin, used by scripts/create_super_admin.py
    SUPER_ADMIN_EMAIL: str = "superadmin@assessment-portal.local"
    SUPER_ADMIN_PASSWORD: Optional[str] = None

    # Pydantic v2 settings: read from .env file
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def ai_credentials(self) -> Optional[dict]:
        """Resolve key/model/base_url for the configured provider, or None when no key is set."""
        provider = (self.AI_PROVIDER or "openai").lower()
        if provider == "groq":
            key, model, base_url = self.GROQ_API_KEY, self.GROQ_MODEL, self.GROQ_BASE_URL
        else:
            key, model, base_url = self.OPENAI_API_KEY, self.AI_MODEL, self.AI_BASE_URL
        if not key:
            return None
        return {"provider": provider, "api_key": key, "model": model, "base_url": base_url.rstrip("/")}


# single shared settings instance
settings = Settings()
