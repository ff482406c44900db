from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "development"
    DATABASE_URL: str = "sqlite:///./kyoture.db"

    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    TEXT_ANALYSIS_TIMEOUT_S: float = 60.0
    TEXT_ANALYSIS_MAX_TOKENS: int = 2000
    TEXT_ANALYSIS_TEMPERATURE: float = 0.2
    TEXT_ANALYSIS_ATTEMPTS: int = 3
    TEXT_ANALYSIS_RATE_LIMIT_DELAY_S: float = 5.0

    IMAGES_ROOT: str = "./public/images/events"
    IMAGES_URL_PREFIX: str = "/images/events"
    IMAGE_DOWNLOAD_TIMEOUT_S: float = 30.0
    IMAGE_PROBE_TIMEOUT_S: float = 10.0
    IMAGE_DOWNLOAD_ATTEMPTS: int = 3
    IMAGE_RETRY_DELAY_S: float = 1.0
    IMAGE_CONCURRENCY: int = 5
    PLACEHOLDER_IMAGE_PATH: str = "./public/images/placeholder.jpg"


settings = Settings()
