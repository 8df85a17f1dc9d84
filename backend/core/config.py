import os

from dotenv import load_dotenv


load_dotenv()

MIN_JWT_SECRET_LENGTH = 32
DEFAULT_JWT_SECRET_KEY = "change-me-before-deploying-this-service"


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV.lower() == "production"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./docappoint.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET_KEY)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(24 * 60)))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

RATE_LIMIT_ENABLED = _get_bool(os.getenv("RATE_LIMIT_ENABLED"), default=True)
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
REGISTER_RATE_LIMIT = os.getenv("REGISTER_RATE_LIMIT", "100 per 15 minutes")
LOGIN_FAILURE_RATE_LIMIT = os.getenv("LOGIN_FAILURE_RATE_LIMIT", "5 per 15 minutes")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3022"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG").upper()


def validate_runtime_config() -> None:
    if IS_PRODUCTION and JWT_SECRET_KEY == DEFAULT_JWT_SECRET_KEY:
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if len(JWT_SECRET_KEY) < MIN_JWT_SECRET_LENGTH:
        raise RuntimeError(f"JWT_SECRET_KEY must be at least {MIN_JWT_SECRET_LENGTH} characters long.")
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set.")
