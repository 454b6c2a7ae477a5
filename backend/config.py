from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Health Target Engine"
    ENCRYPTION_KEY: str = "change-me-in-production-32bytes!"
    DATABASE_URL: str = "sqlite:///data/health_targets.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:8050",
        "http://localhost:8001",
        "https://localhost:8050",
        "https://127.0.0.1:8050",
    ]
    DEFAULT_AI_PROVIDER: str = "google"
    AI_REQUEST_TIMEOUT_SECONDS: int = 8
    EXERCISE_CATALOG_REMOTE_ENABLED: bool = True
    EXERCISE_CATALOG_BASE_URL: str = "https://exercisedb-api.vercel.app/api/v1"
    EXERCISE_CATALOG_FETCH_LIMIT: int = 100
    EXERCISE_CATALOG_MAX_RESULTS: int = 20
    EXERCISE_CATALOG_TIMEOUT_SECONDS: int = 5
    EXERCISE_CATALOG_CIRCUIT_FAIL_THRESHOLD: int = 3
    EXERCISE_CATALOG_CIRCUIT_OPEN_SECONDS: int = 60
    SUGGESTION_CACHE_TTL_HOURS: int = 12
    SECURITY_HEADERS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.ENCRYPTION_KEY == "change-me-in-production-32bytes!":
            errors.append("ENCRYPTION_KEY must be changed from the default value")
        if len((self.ENCRYPTION_KEY or "").strip()) < 16:
            errors.append("ENCRYPTION_KEY must be at least 16 characters")
        if any(origin.startswith("http://") for origin in self.CORS_ORIGINS):
            errors.append("CORS_ORIGINS must use https in production-like environments")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
