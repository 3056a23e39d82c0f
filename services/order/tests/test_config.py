from app.config import Settings


def test_defaults(monkeypatch):
    for key in ("DATABASE_URL", "REDIS_URL", "PAYMENT_TIMEOUT", "ORDER_EVENTS_CHANNEL", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    settings = Settings.from_env()
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert settings.redis_url == "redis://localhost:6379"
    assert settings.events_channel == "order.status"
    assert settings.payment_timeout == 30.0
    assert settings.currency == "usd"
    assert settings.log_level == "INFO"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///orders.db")
    monkeypatch.setenv("PAYMENT_TIMEOUT", "12.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings.from_env()
    assert settings.database_url == "sqlite+aiosqlite:///orders.db"
    assert settings.payment_timeout == 12.5
    assert settings.log_level == "DEBUG"
