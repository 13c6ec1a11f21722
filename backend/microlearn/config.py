"""Application settings and validation."""

import os


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_AUDIENCE: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DATABASE_URL: str
    DB_TIMEOUT_SECONDS: float
    STREAK_UTC_OFFSET_MINUTES: int
    COMPLETE_MAX_RETRIES: int
    VALIDATE_RATE_LIMIT_PER_MIN: int
    VALIDATE_RATE_LIMIT_WINDOW_SECONDS: int
    RECOMMENDER_URL: str
    RECOMMENDER_API_KEY: str
    RECOMMENDER_MODEL: str
    RECOMMENDER_TIMEOUT_SECONDS: float

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        # identity providers such as Supabase stamp "authenticated"; empty disables the check
        self.JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "")
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))
        self.STREAK_UTC_OFFSET_MINUTES = int(os.getenv("STREAK_UTC_OFFSET_MINUTES", "0"))
        self.COMPLETE_MAX_RETRIES = int(os.getenv("COMPLETE_MAX_RETRIES", "3"))
        self.VALIDATE_RATE_LIMIT_PER_MIN = int(os.getenv("VALIDATE_RATE_LIMIT_PER_MIN", "120"))
        self.VALIDATE_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("VALIDATE_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.RECOMMENDER_URL = os.getenv("RECOMMENDER_URL", "https://api.openai.com/v1/chat/completions")
        self.RECOMMENDER_API_KEY = os.getenv("RECOMMENDER_API_KEY", "")
        self.RECOMMENDER_MODEL = os.getenv("RECOMMENDER_MODEL", "gpt-4o-mini")
        self.RECOMMENDER_TIMEOUT_SECONDS = float(os.getenv("RECOMMENDER_TIMEOUT_SECONDS", "20"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if not -840 <= self.STREAK_UTC_OFFSET_MINUTES <= 840:
            raise RuntimeError("STREAK_UTC_OFFSET_MINUTES must be within -840..840")
        if self.COMPLETE_MAX_RETRIES < 1:
            raise RuntimeError("COMPLETE_MAX_RETRIES must be >= 1")


settings = Settings()
