from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://workhive:workhive_dev@db:5432/workhive"
    DATABASE_ECHO: bool = False

    # Disputes
    DISPUTE_CREATE_RETRIES: int = 1
    AUTO_RESOLUTION_NOTE: str = "Project completed peacefully; dispute automatically resolved."
    SYSTEM_ACTOR_NAME: str = "System"

    # HTTP
    ALLOWED_ORIGINS: str = "*"

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
