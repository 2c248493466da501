from pathlib import Path
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

ENV_FILE = Path(__file__).resolve().parents[3] / ".env"
load_dotenv(dotenv_path=ENV_FILE)


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Secrets
    ADMIN_API_KEY: str = ""
    ADMIN_TASK_SECRET: str = ""

    # Identity
    AUTH_COOKIE_NAME: str = "auth_jwt"

    # Pricing
    CREDITS_PER_1K_TOKENS: float = 1.0
    WARN_CREDITS: float = 10.0
    FREE_IDENTITY_PREFIXES: str = "guest:"
    LEDGER_MAX_WRITE_ATTEMPTS: int = 8

    # Providers, tried in this order unless a caller asks for one first
    LLM_PROVIDERS: str = "groq,openai"
    LLM_REQUEST_TIMEOUT_SECONDS: float = 60.0
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str = ""
    XAI_API_KEY: str = ""
    XAI_MODEL: str = "grok-3-mini"
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-20241022"
    GOOGLE_API_KEY: str = ""
    GOOGLE_MODEL: str = "gemini-2.0-flash"
    LOCAL_LLM_BASE_URL: str = "http://127.0.0.1:8000"
    LOCAL_LLM_MODEL: str = "local"

    # Jobs
    JOB_EAGER_TRIGGER: bool = True
    JOB_TRIGGER_BASE_URL: str = ""
    JOB_SWEEP_MAX_PER_TICK: int = 5
    JOB_SWEEP_INTERVAL_SECONDS: float = 0.0

    # Application DB (ledger, usage and jobs)
    APP_DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "credit_metering"
    POSTGRES_SSLMODE: str = "disable"

    @staticmethod
    def _is_placeholder_database_url(value: str) -> bool:
        normalized = value.lower()
        placeholder_tokens = (
            "project-ref",
            "your-db-password",
        )
        return any(token in normalized for token in placeholder_tokens)

    def _derive_postgres_database_url(self) -> str:
        host = (self.POSTGRES_HOST or "").strip()
        username = (self.POSTGRES_USER or "").strip()
        database = (self.POSTGRES_DB or "").strip()
        if not host or not username or not database:
            return ""

        encoded_user = quote_plus(username)
        encoded_password = quote_plus(self.POSTGRES_PASSWORD or "")
        auth = f"{encoded_user}:{encoded_password}" if self.POSTGRES_PASSWORD else encoded_user

        base = (
            f"postgresql+psycopg://{auth}"
            f"@{host}:{int(self.POSTGRES_PORT or 5432)}/{database}"
        )
        sslmode = (self.POSTGRES_SSLMODE or "").strip()
        if sslmode:
            return f"{base}?sslmode={sslmode}"
        return base

    @property
    def app_database_url(self) -> str:
        configured_url = (self.APP_DATABASE_URL or "").strip()
        if configured_url:
            if self._is_placeholder_database_url(configured_url):
                raise ValueError(
                    "APP_DATABASE_URL still contains placeholder values. "
                    "Set a real APP_DATABASE_URL or leave it empty to use POSTGRES_*."
                )
            return configured_url

        derived_url = self._derive_postgres_database_url()
        if derived_url:
            return derived_url

        raise ValueError(
            "Database configuration is missing. Set APP_DATABASE_URL or "
            "POSTGRES_HOST/POSTGRES_PORT/POSTGRES_USER/POSTGRES_PASSWORD/POSTGRES_DB."
        )

    @property
    def provider_order(self) -> list[str]:
        return [
            name.strip().lower()
            for name in (self.LLM_PROVIDERS or "").split(",")
            if name.strip()
        ]

    @property
    def free_identity_prefixes(self) -> tuple[str, ...]:
        return tuple(
            prefix.strip().lower()
            for prefix in (self.FREE_IDENTITY_PREFIXES or "").split(",")
            if prefix.strip()
        )

    class Config:
        env_file = str(ENV_FILE)
        extra = "ignore"


settings = Settings()
