from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Localfy"
    app_env: str = "dev"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "localfy"
    mongo_server_selection_timeout_ms: int = 10000
    businesses_collection: str = "businesses"
    users_collection: str = "users"

    page_size: int = Field(default=20, ge=1, le=100)
    cache_validity_seconds: int = Field(default=300, ge=0)
    local_storage_dir: str = "localfy-data"
    business_cache_key: str = "businesses_cache"
    favorites_key: str = "favorites"
    favorites_persist_delay_seconds: float = Field(default=0.05, ge=0.0)

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
