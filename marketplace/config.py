from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL : str
    LOG_LEVEL : str = "INFO"

    FREE_SHIPPING_THRESHOLD : Decimal = Decimal("500")
    BASE_SHIPPING_FEE : Decimal = Decimal("60")

    DISCOUNT_CODE_MAX_RETRIES : int = 5
    ORDER_CANCEL_WINDOW_HOURS : int = 24

    CORS_ORIGINS : List[str] = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]

    model_config = SettingsConfigDict(
        env_file = ".env",
        extra = "ignore"
    )


Config = Settings()
