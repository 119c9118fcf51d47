from typing import List, Optional
from pydantic import PostgresDsn, field_validator, ValidationInfo
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Meta Ads Bridge"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Meta app (Facebook Login for Business)
    META_APP_ID: Optional[str] = None
    META_APP_SECRET: Optional[str] = None
    META_REDIRECT_URI: Optional[str] = None
    META_GRAPH_VERSION: str = "v18.0"
    META_HTTP_TIMEOUT: float = 30.0

    # Lead fan-out: number of forms visited and leads pulled per form
    LEADS_MAX_FORMS: int = 5
    LEADS_PER_FORM: int = 10

    # Comma separated list, "*" allows everything
    CORS_ORIGIN: str = "*"

    POSTGRES_SERVER: str = "db"
    POSTGRES_USER: str = "meta_bridge"
    POSTGRES_PASSWORD: str = "meta_bridge"
    POSTGRES_DB: str = "meta_bridge"

    # Full connection URL (assembled from the POSTGRES_* parts when unset)
    DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        if isinstance(v, str):
            return v

        return str(PostgresDsn.build(
            scheme="postgresql",
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD"),
            host=info.data.get("POSTGRES_SERVER"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        ))

    @property
    def graph_api_base(self) -> str:
        return f"https://graph.facebook.com/{self.META_GRAPH_VERSION}"

    @property
    def oauth_dialog_url(self) -> str:
        return f"https://www.facebook.com/{self.META_GRAPH_VERSION}/dialog/oauth"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]

    @property
    def oauth_configured(self) -> bool:
        return bool(self.META_APP_ID and self.META_APP_SECRET)

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
