from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    DATABASE_URL: str
    # Empty disables the notification public key cache
    REDIS_URL: str = ""

    # Circle Web3 Services
    CIRCLE_API_KEY: str = ""
    CIRCLE_API_BASE_URL: str = "https://api.circle.com"
    CIRCLE_TIMEOUT_SECONDS: float = 30.0
    PUBLIC_KEY_CACHE_TTL: int = 86400

    # Upper bound on wallets scanned when attributing a notification
    WALLET_SCAN_LIMIT: int = 50

    # Supabase Auth access tokens
    SUPABASE_JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Stripe crypto on-ramp; empty disables the endpoint
    STRIPE_SECRET_KEY: str = ""
    ONRAMP_DEFAULT_AMOUNT: str = "10"

    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

settings = Settings()
