from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field("sqlite:///hymnbook.db")
    redis_url: str = Field("redis://localhost:6379/0")
    api_title: str = Field("Hymnbook API")
    trusted_threshold: int = Field(5, ge=1)
    audit_frequency: int = Field(60 * 60 * 24)
    access_token_expire_minutes: int = Field(60 * 24)
    refresh_token_expire_minutes: int = Field(60 * 24 * 30)
    jwt_secret: str = Field("secret")
    jwt_algorithm: str = Field("HS256")
    rate_limit_enabled: bool = Field(True)


settings = Settings()
