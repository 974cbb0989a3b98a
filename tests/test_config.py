from zoneinfo import ZoneInfo

from ledgershare.config import Settings


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://ledger:secret@db/ledger")
    monkeypatch.setenv("TZ", "Europe/Berlin")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.database_url == "postgresql+asyncpg://ledger:secret@db/ledger"
    assert settings.zoneinfo == ZoneInfo("Europe/Berlin")
    assert settings.log_level == "debug"


def test_settings_defaults(monkeypatch):
    for name in ("DATABASE_URL", "TZ", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.database_url == "postgresql://localhost/ledgershare"
    assert settings.zoneinfo == ZoneInfo("UTC")
