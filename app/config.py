import os


def _bool_env(name, default="0"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class BaseConfig:
    JSON_SORT_KEYS = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")
    RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")
    CHECKOUT_LIMIT_PER_IP = os.getenv("CHECKOUT_LIMIT_PER_IP", "20 per hour")
    WITHDRAW_LIMIT_PER_IP = os.getenv("WITHDRAW_LIMIT_PER_IP", "10 per hour")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-insecure-jwt-key")
    ACCESS_TOKEN_LIFETIME_MIN = int(os.getenv("ACCESS_TOKEN_LIFETIME_MIN", 15))

    # Cart & coins
    CART_SCHEMA_VERSION = int(os.getenv("CART_SCHEMA_VERSION", 79))
    COIN_DISCOUNT_RATE = os.getenv("COIN_DISCOUNT_RATE", "0.05")
    CHECKOUT_OPTIMISTIC_CART_REMOVAL = _bool_env("CHECKOUT_OPTIMISTIC_CART_REMOVAL")
    COIN_LEDGER_AUTO_REPAIR = _bool_env("COIN_LEDGER_AUTO_REPAIR")

    # Order lifecycle
    ORDER_CONFIRMATION_ACTOR = os.getenv("ORDER_CONFIRMATION_ACTOR", "seller")
    ORDER_AUTO_COMPLETE_DAYS = int(os.getenv("ORDER_AUTO_COMPLETE_DAYS", 3))

    # Escrow & payouts
    PAYOUT_HOLDING_PERIOD_HOURS = float(os.getenv("PAYOUT_HOLDING_PERIOD_HOURS", 1))
    PAYOUT_RETRY_BASE_SECONDS = int(os.getenv("PAYOUT_RETRY_BASE_SECONDS", 3600))
    PAYOUT_RETRY_MAX_SECONDS = int(os.getenv("PAYOUT_RETRY_MAX_SECONDS", 6 * 3600))
    PAYOUT_MAX_ATTEMPTS = int(os.getenv("PAYOUT_MAX_ATTEMPTS", 5))
    PAYOUT_SCAN_LIMIT = int(os.getenv("PAYOUT_SCAN_LIMIT", 200))
    PAYOUT_PROCESSING_LEASE_SECONDS = int(os.getenv("PAYOUT_PROCESSING_LEASE_SECONDS", 900))
    MIN_WITHDRAWAL_AMOUNT = os.getenv("MIN_WITHDRAWAL_AMOUNT", "500")
    PAYOUT_GATEWAY = os.getenv("PAYOUT_GATEWAY", "mock")
    PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT_SECONDS = float(os.getenv("PAYSTACK_TIMEOUT_SECONDS", 15))

    OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "storelink-commerce")
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318/v1/traces")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-insecure-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///dev.db")


class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = "test-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    RATELIMIT_ENABLED = False
    PAYOUT_GATEWAY = "mock"
    CELERY_TASK_ALWAYS_EAGER = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")

    @staticmethod
    def validate():
        missing = []
        for name in ("SECRET_KEY", "DATABASE_URL", "JWT_SECRET"):
            if not os.getenv(name):
                missing.append(name)
        if os.getenv("PAYOUT_GATEWAY", "mock") == "paystack" and not os.getenv("PAYSTACK_SECRET_KEY"):
            missing.append("PAYSTACK_SECRET_KEY")
        if missing:
            raise RuntimeError(
                f"Missing required env vars in production: {', '.join(missing)}"
            )


def get_config_class():
    env = os.getenv("APP_ENV", "development").lower()
    if env == "production":
        ProductionConfig.validate()
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
