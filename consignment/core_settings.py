from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "consignment"
    POSTGRES_USER: str = "consignment"
    POSTGRES_PASSWORD: str = "consignment"
    # Takes precedence over the POSTGRES_* fields (e.g. sqlite:///./local.db)
    DATABASE_URL: Optional[str] = None
    SQL_ECHO: bool = False

    SERVICE_NAME: str = "consignment-schema"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    BCRYPT_ROUNDS: int = 12
    # Days after a transaction is recorded before its line items are overdue
    PAYMENT_TERM_DAYS: int = 30

    DB_CONNECT_ATTEMPTS: int = 30
    DB_CONNECT_DELAY: float = 1.0

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
