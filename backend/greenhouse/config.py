from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from sqlalchemy.engine import make_url


def _split_list(value, default: List[str]) -> List[str]:
    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",") if item.strip()]
        return parts or default
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Application
    greenhouse_id: int = 191
    public_path: str = "../client/public"
    api_host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database
    database_url: str = "postgresql+psycopg2://localhost:5432"
    database_user: Optional[str] = None
    database_pass: Optional[str] = None
    database_name: Optional[str] = "main"

    # Security
    salt_rounds: int = 10
    secret: str = "dev-only-change-me-please-dev-only-change-me"
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    rate_limit_enabled: bool = True
    auth_rate_limit: str = "5/minute"

    # Third-party APIs
    myfood_api_url: str = "https://hub.myfood.eu/opendata"
    farmbot_api_url: str = "https://my.farmbot.io/api"
    farmbot_token: str = ""
    http_timeout: float = 30.0

    # Mail delivery of the FarmBot report is disabled, kept for deployments
    mail_user: Optional[str] = None
    mail_pass: Optional[str] = None
    send_mail: bool = False

    # Jobs
    scheduler_enabled: bool = True
    fetch_on_startup: bool = True
    metrics_enabled: bool = True
    occupancy_modules: Annotated[List[str], NoDecode] = ["Aquaponic greenhouse", "Cultivation carts", "Farmbot"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        return _split_list(value, ["http://localhost:3000"])

    @field_validator("occupancy_modules", mode="before")
    @classmethod
    def parse_occupancy_modules(cls, value):
        return _split_list(value, ["Aquaponic greenhouse", "Cultivation carts", "Farmbot"])

    @field_validator("salt_rounds")
    @classmethod
    def validate_salt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("salt_rounds must be between 4 and 31")
        return value

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, value: str, info: ValidationInfo) -> str:
        env = str(info.data.get("environment", "development")).lower()
        if env in {"prod", "production"} and "dev-only-change-me" in value:
            raise ValueError("secret must be overridden in production")
        return value

    @property
    def sqlalchemy_url(self) -> str:
        """Database URL with the separately configured credentials applied."""
        if self.database_url.startswith("sqlite"):
            return self.database_url
        url = make_url(self.database_url)
        overrides = {
            "username": self.database_user,
            "password": self.database_pass,
            "database": self.database_name,
        }
        url = url.set(**{key: value for key, value in overrides.items() if value})
        return url.render_as_string(hide_password=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
