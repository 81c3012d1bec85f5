import os

class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")
    WTF_CSRF_SECRET_KEY = SECRET_KEY
    WTF_CSRF_TIME_LIMIT = None

    # Database (env in prod; dev/test may use default)
    try:
        from dotenv import dotenv_values
        _ENV_FALLBACK = dotenv_values(".env")
    except Exception:
        _ENV_FALLBACK = {}
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cookies: secure-by-default
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Flask-Limiter default: off globally; prefer per-route limits
    RATELIMIT_DEFAULT = None
    CHECK_STATUS_RATE_LIMIT = os.getenv("CHECK_STATUS_RATE_LIMIT", "10 per minute")

    # --- API tokens (Authorization: Bearer ...) ---
    API_TOKEN_SALT = os.getenv("API_TOKEN_SALT", "api-token-v1")
    API_TOKEN_MAX_AGE = int(os.getenv("API_TOKEN_MAX_AGE", str(7 * 24 * 3600)))

    # --- Delivery provider (SendGrid v3) ---
    SENDGRID_API_BASE = os.getenv("SENDGRID_API_BASE", "https://api.sendgrid.com")
    PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
    MESSAGE_SEARCH_LIMIT = int(os.getenv("MESSAGE_SEARCH_LIMIT", "50"))

    # --- Delivery status reconciliation ---
    RECONCILE_BATCH_LIMIT = int(os.getenv("RECONCILE_BATCH_LIMIT", "50"))
    WEBHOOK_FALLBACK_LOOKBACK_DAYS = int(os.getenv("WEBHOOK_FALLBACK_LOOKBACK_DAYS", "7"))
    WEBHOOK_FALLBACK_CANDIDATES = int(os.getenv("WEBHOOK_FALLBACK_CANDIDATES", "5"))
    WEBHOOK_FALLBACK_WINDOW_MINUTES = int(os.getenv("WEBHOOK_FALLBACK_WINDOW_MINUTES", "30"))

    # Where copies of sent invoice PDFs are kept
    ATTACHMENT_DIR = os.getenv("ATTACHMENT_DIR", os.path.join(os.getcwd(), "var", "attachments"))

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # REQUIRE env vars in production (fail fast if missing)
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False

_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
