from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """
    App configuration.

    Values come from the environment first, then `config.env` / `.env` at the
    repository root (or the current directory).
    """

    model_config = SettingsConfigDict(
        env_file=(
            str(_PROJECT_ROOT / "config.env"),
            str(_PROJECT_ROOT / ".env"),
            "config.env",
            ".env",
        ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_host: str = Field(default="localhost", validation_alias="DB_HOST")
    db_port: int = Field(default=5432, validation_alias="DB_PORT")
    db_user: str = Field(default="pos", validation_alias="DB_USER")
    db_password: str = Field(default="pos", validation_alias="DB_PASSWORD")
    db_name: str = Field(default="pos", validation_alias="DB_NAME")
    # Full SQLAlchemy URL; wins over the DB_* parts when set (e.g. sqlite for local runs)
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    secret_key: str = Field(default="CHANGE_THIS_IN_PRODUCTION", validation_alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=480, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS configuration
    cors_origins: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS"
    )

    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")

    # SMTP (Gmail by default, any provider works)
    smtp_host: str = Field(default="smtp.gmail.com", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, validation_alias="SMTP_USE_TLS")
    email_from: str = Field(default="", validation_alias="EMAIL_FROM")
    email_from_name: str = Field(default="Bites & Co", validation_alias="EMAIL_FROM_NAME")

    # Twilio SMS
    twilio_account_sid: str = Field(default="", validation_alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", validation_alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: str = Field(default="", validation_alias="TWILIO_FROM_NUMBER")
    sms_country_code: str = Field(default="+91", validation_alias="SMS_COUNTRY_CODE")

    # Generative AI (assistant + RAG answers)
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", validation_alias="GEMINI_MODEL")

    sse_keepalive_seconds: float = Field(default=15, validation_alias="SSE_KEEPALIVE_SECONDS")

    uploads_dir: Path = Field(default=_PROJECT_ROOT / "uploads", validation_alias="UPLOADS_DIR")

    kitchen_bridge_cors_origins: str = Field(
        default="http://localhost:3000",
        validation_alias="KITCHEN_BRIDGE_CORS_ORIGINS"
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        # SQLModel uses SQLAlchemy under the hood; this uses the psycopg driver (v3).
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def email_sender(self) -> str:
        return self.email_from or self.smtp_user


settings = Settings()
