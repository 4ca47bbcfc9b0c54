from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8098
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = ""
    DATABASE_PATH: str = "honua.db"
    DATABASE_ECHO: bool = False

    # Auth
    AUTH_JWT_SECRET: str = "honua-dev-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_SESSION_COOKIE: str = "honua_session"
    AUTH_TOKEN_TTL_SECONDS: int = 7 * 24 * 3600

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Invites / green points
    INVITE_CODE_LENGTH: int = 10
    INVITE_BULK_COUNT: int = 5
    INVITE_BULK_MAX: int = 20
    REFERRAL_INVITER_POINTS: int = 100
    REFERRAL_INVITEE_POINTS: int = 50
    SELLER_REWARD_RATE: float = 0.05
    GREEN_POINT_VALUE_CENTS: int = 100

    # Ranking
    TRENDING_WINDOW: int = 100
    HASHTAG_WINDOW_DAYS: int = 7

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or f"sqlite+aiosqlite:///{self.DATABASE_PATH}"


settings = Settings()
