import os


def _flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: hosted Postgres providers hand out
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Tokens ---
    # Session bearer tokens handed to the browser client and edge functions.
    ACCESS_TOKEN_SECRET = os.environ.get("ACCESS_TOKEN_SECRET")
    ACCESS_TOKEN_TTL = int(os.environ.get("ACCESS_TOKEN_TTL", 3600))
    # Chrome extension tokens are signed with their own secret.
    CHROME_EXTENSION_JWT_SECRET = os.environ.get("CHROME_EXTENSION_JWT_SECRET")
    CHROME_EXTENSION_TOKEN_TTL = int(
        os.environ.get("CHROME_EXTENSION_TOKEN_TTL", 24 * 60 * 60)
    )

    # --- Lusha enrichment ---
    LUSHA_API_BASE_URL = os.environ.get(
        "LUSHA_API_BASE_URL", "https://api.lusha.com"
    )
    LUSHA_TIMEOUT = int(os.environ.get("LUSHA_TIMEOUT", 15))
    LUSHA_MAX_ATTEMPTS = int(os.environ.get("LUSHA_MAX_ATTEMPTS", 10))
    # Seconds the RTNE enrich route waits before giving up on a result.
    ENRICHMENT_TIMEOUT = float(os.environ.get("ENRICHMENT_TIMEOUT", 30))

    # --- Realtime ---
    REALTIME_RECONNECT_DELAY = float(
        os.environ.get("REALTIME_RECONNECT_DELAY", 3)
    )

    # --- Dispositions ---
    # Older clients still send "not_connected".
    ACCEPT_LEGACY_DISPOSITIONS = _flag("ACCEPT_LEGACY_DISPOSITIONS", "true")

    # --- RTNE fulfilment ---
    # Accounts that work the RTNE queues besides admins, comma-separated.
    RTNP_USER_EMAILS = [
        e.strip().lower()
        for e in os.environ.get("RTNP_USER_EMAILS", "").split(",")
        if e.strip()
    ]

    # --- Edge functions ---
    CORS_ALLOW_ORIGIN = os.environ.get("CORS_ALLOW_ORIGIN", "*")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "ACCESS_TOKEN_SECRET",
            "CHROME_EXTENSION_JWT_SECRET",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    ACCESS_TOKEN_SECRET = "test-access-token-secret"
    CHROME_EXTENSION_JWT_SECRET = "test-chrome-extension-secret"
    LUSHA_API_BASE_URL = "https://api.lusha.test"
    ENRICHMENT_TIMEOUT = 2.0
    ACCEPT_LEGACY_DISPOSITIONS = True
    RTNP_USER_EMAILS = ["rtnp@altleads.local"]
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
