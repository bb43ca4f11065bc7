from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "orders"
    POSTGRES_USER: str = "orders"
    POSTGRES_PASSWORD: str = "orders"
    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* fields
    DATABASE_URL: Optional[str] = None

    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Collaborating services
    PRODUCTS_SERVICE_URL: str = "http://products:8000"
    NOTIFICATIONS_SERVICE_URL: str = "http://notifications:8000"
    HTTP_TIMEOUT_SECONDS: float = 5.0

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    ORDER_NUMBER_MAX_ATTEMPTS: int = 3

    # Shipping, amounts in IQD
    FREE_SHIPPING_THRESHOLD: int = 100_000
    DEFAULT_SHIPPING_RATE: int = 8_000
    DEFAULT_DELIVERY_DAYS: int = 3

    # Loyalty: earn LOYALTY_POINTS_PER_UNIT for every LOYALTY_EARN_UNIT spent,
    # one point is worth LOYALTY_REDEMPTION_RATE at checkout
    LOYALTY_POINTS_PER_UNIT: int = 1
    LOYALTY_EARN_UNIT: int = 1_000
    LOYALTY_REDEMPTION_RATE: int = 50
    LOYALTY_MIN_REDEMPTION: int = 100
    LOYALTY_MAX_REDEMPTION_PERCENTAGE: int = 100

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
