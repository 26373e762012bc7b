import json
from functools import lru_cache
from typing import Annotated, Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, all configurable via LIBRARY_* environment variables"""

    model_config = SettingsConfigDict(env_prefix="LIBRARY_", env_file=".env", extra="ignore")

    # Persistence
    DATABASE_URL: str = "sqlite:///./library.db"
    STORE_BACKEND: str = "sql"  # sql | json
    JSON_DATA_DIR: str = "./data"

    # Auth
    # to get a string like this run:
    # openssl rand -hex 32
    SECRET_KEY: str = "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Circulation policy
    LOAN_PERIOD_DAYS: int = 15
    FINE_PER_DAY: int = 5

    # First-run seeding
    ADMIN_EMAIL: str = "admin@drait.edu.in"
    ADMIN_PASSWORD: str = "admin@1234"
    SEED_DEMO_BOOKS: bool = False

    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> Any:
        # Accept a comma-separated string as well as a JSON list
        if isinstance(v, str):
            if v.strip().startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("STORE_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("sql", "json"):
            raise ValueError("STORE_BACKEND must be 'sql' or 'json'")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
