"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "https://localhost:3000",
    "https://localhost:5173",
    "https://pulih-hati-frontend.vercel.app",
    "https://pulih-hati-frontend.netlify.app",
    "https://pulih-hati-frontend.onrender.com",
    "https://pulih-hati-frontend.up.railway.app",
]

# Preview deployments on the hosting platforms the frontend ships to.
DEFAULT_CORS_ORIGIN_REGEX = (
    r"^https://.*\.(vercel\.app|netlify\.app|onrender\.com|up\.railway\.app|github\.io|surge\.sh)$"
)


def _split_csv(raw: str) -> list:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings:
    ENV: str
    LOG_LEVEL: str
    DATABASE_URL: str
    DB_SCHEMA: str
    DB_POOL_SIZE: int
    DB_POOL_TIMEOUT: int
    DB_MAX_RETRIES: int
    DB_RETRY_BASE_DELAY: float
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    CORS_ORIGINS: list
    CORS_ORIGIN_REGEX: str
    MAX_AVATAR_BYTES: int
    CLOUDINARY_CLOUD_NAME: str
    CLOUDINARY_API_KEY: str
    CLOUDINARY_API_SECRET: str
    CHATBOT_API_URL: str
    CHATBOT_API_KEY: str
    CHATBOT_TIMEOUT_SECONDS: float
    CHATBOT_RATE_LIMIT_PER_MIN: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'pulihhati.db'}")
        self.DB_SCHEMA = os.getenv("DB_SCHEMA", "").strip()
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
        self.DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "10"))
        self.DB_MAX_RETRIES = int(os.getenv("DB_MAX_RETRIES", "3"))
        self.DB_RETRY_BASE_DELAY = float(os.getenv("DB_RETRY_BASE_DELAY", "0.5"))

        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "720"))  # 30 days
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"

        self.CORS_ORIGINS = _split_csv(os.getenv("CORS_ORIGINS", "")) or list(DEFAULT_CORS_ORIGINS)
        frontend_url = os.getenv("FRONTEND_URL", "").strip()
        if frontend_url and frontend_url not in self.CORS_ORIGINS:
            self.CORS_ORIGINS.append(frontend_url)
        self.CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", DEFAULT_CORS_ORIGIN_REGEX)

        self.MAX_AVATAR_BYTES = int(os.getenv("MAX_AVATAR_BYTES", str(5 * 1024 * 1024)))  # 5 MB default
        self.CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
        self.CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
        self.CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")

        self.CHATBOT_API_URL = os.getenv("CHATBOT_API_URL", "").strip()
        self.CHATBOT_API_KEY = os.getenv("CHATBOT_API_KEY", "")
        self.CHATBOT_TIMEOUT_SECONDS = float(os.getenv("CHATBOT_TIMEOUT_SECONDS", "30"))
        self.CHATBOT_RATE_LIMIT_PER_MIN = int(os.getenv("CHATBOT_RATE_LIMIT_PER_MIN", "30"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.DB_MAX_RETRIES < 0:
            raise RuntimeError("DB_MAX_RETRIES must be >= 0")

    @property
    def is_production(self) -> bool:
        return self.ENV in ("prod", "production")

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.CLOUDINARY_CLOUD_NAME and self.CLOUDINARY_API_KEY and self.CLOUDINARY_API_SECRET)


settings = Settings()
