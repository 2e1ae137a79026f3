"""Application configuration"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database Configuration
    DATABASE_USER = os.getenv("DATABASE_USER", "postgres")
    DATABASE_PASSWORD = os.getenv("DATABASE_PASSWORD", "123456")
    DATABASE_HOST = os.getenv("DATABASE_HOST", "localhost")
    DATABASE_PORT = os.getenv("DATABASE_PORT", "5432")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "bookstream")

    @property
    def DATABASE_URL(self) -> str:
        """Full database URL; DATABASE_URL wins over the individual parts"""
        override = os.getenv("DATABASE_URL")
        if override:
            return override
        return f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", "bookstream/logs")

    # Signup rate limiting (per IP, rolling windows)
    SIGNUP_HOURLY_LIMIT = int(os.getenv("SIGNUP_HOURLY_LIMIT", 3))
    SIGNUP_DAILY_LIMIT = int(os.getenv("SIGNUP_DAILY_LIMIT", 5))
    SIGNUP_ATTEMPT_RETENTION_DAYS = int(os.getenv("SIGNUP_ATTEMPT_RETENTION_DAYS", 90))

    # Free trial abuse prevention
    TRIAL_DURATION_DAYS = int(os.getenv("TRIAL_DURATION_DAYS", 7))
    TRIAL_LOOKBACK_DAYS = int(os.getenv("TRIAL_LOOKBACK_DAYS", 30))
    TRIAL_DOMAIN_LIMIT = int(os.getenv("TRIAL_DOMAIN_LIMIT", 2))

    # Loans & devices
    MAX_ACTIVE_LOANS = int(os.getenv("MAX_ACTIVE_LOANS", 20))
    MAX_DEVICES_PER_USER = int(os.getenv("MAX_DEVICES_PER_USER", 5))
    OFFLINE_LICENSE_DAYS = int(os.getenv("OFFLINE_LICENSE_DAYS", 30))

    # Development/Production Settings
    ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # Project Metadata
    PROJECT_NAME = "Bookstream Entitlements API"
    PROJECT_VERSION = "1.0.0"
    API_V1_STR = "/api/v1"

    # JWT Authentication
    SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-this-in-production-min-32-chars")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

    # Super Admin Configuration (Initial Setup)
    SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL", "admin@bookstream.app")
    SUPER_ADMIN_PASSWORD = os.getenv("SUPER_ADMIN_PASSWORD", "SuperSecure@Admin123!")


settings = Settings()
