import pytest

from config import ConfigurationError, get_settings, require_database_url
from database import Store, StoreNotConnected


def test_require_database_url_is_fatal_when_unset(monkeypatch) -> None:
    monkeypatch.delenv("FINANCE_DATABASE_URL", raising=False)
    with pytest.raises(ConfigurationError):
        require_database_url()


def test_require_database_url_returns_configured_value(monkeypatch) -> None:
    monkeypatch.setenv("FINANCE_DATABASE_URL", "sqlite:///elsewhere.db")
    assert require_database_url() == "sqlite:///elsewhere.db"


def test_server_settings_default_to_local_sqlite_named_after_db(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("FINANCE_DATABASE_URL", raising=False)
    monkeypatch.setenv("FINANCE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("FINANCE_DB_NAME", "ledger")
    monkeypatch.setenv("FINANCE_API_URL", "http://api.local/api/finance/")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.database_url == f"sqlite:///{tmp_path.resolve() / 'ledger.db'}"
        assert settings.database_name == "ledger"
        assert settings.api_url == "http://api.local/api/finance"
        assert settings.poll_interval_secs == 15
        assert settings.default_account_id == "acc1"
    finally:
        get_settings.cache_clear()


def test_store_refuses_sessions_before_connect() -> None:
    store = Store("sqlite://")
    with pytest.raises(StoreNotConnected):
        store.session()
    with pytest.raises(ConfigurationError):
        store.ping()

    store.connect()
    assert store.ping() is True
    store.close()
    assert store.connected is False


def test_default_data_dir_is_created_on_connect_not_on_settings(monkeypatch, tmp_path) -> None:
    data_dir = tmp_path / "nested" / "data"
    monkeypatch.delenv("FINANCE_DATABASE_URL", raising=False)
    monkeypatch.delenv("FINANCE_DB_NAME", raising=False)
    monkeypatch.setenv("FINANCE_DATA_DIR", str(data_dir))
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert not data_dir.exists()

        store = Store(settings.database_url)
        store.connect()
        store.close()
        assert (data_dir / "finance_db.db").exists()
    finally:
        get_settings.cache_clear()
