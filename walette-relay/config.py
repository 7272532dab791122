"""Relay configuration, read from WALETTE_* environment variables or .env."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WALETTE_", env_file=".env", extra="ignore"
    )

    APP_TITLE: str = "Walette Relay"
    APP_VERSION: str = "0.1.0"

    SERVICE_BASE_URL: str = "http://192.168.10.175:3033"
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = 7777
    EVENT_LISTENER_PATH: str = "/event-listener"

    # Shared by every flow; also used as the authorization request nonce.
    CORRELATION_ID: str = "my-first-offer"
    PRESENTATION_DEFINITION_ID: str = "selv_presentation_definition"

    CREDENTIAL_FIXTURE_PATH: Path = BASE_DIR / "fixtures" / "selv_credential.jwt"
    SIGNING_KEY_PATH: Optional[Path] = None
    # DID URL placed in the `kid` header of personalized credentials.
    SIGNING_KEY_ID: Optional[str] = None

    HTTP_TIMEOUT: float = 10.0
    RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.2
    RETRY_MAX_DELAY: float = 2.0

    INITIATE_ON_STARTUP: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


settings = Settings()


def get_settings() -> Settings:
    return settings
