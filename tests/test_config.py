"""Settings parsing and resolution of the per-run record."""

import pytest

from kline_movers.core.config import RunConfig, Settings, load_run_config
from kline_movers.core.errors import SetupError
from kline_movers.core.storage import JsonStorage


def test_settings_read_environment(monkeypatch) -> None:
    """Scalar and JSON mapping settings come from the environment."""

    monkeypatch.setenv("KLINES_LIMIT", "750")
    monkeypatch.setenv("KLINES_INTERVAL", "4h")
    monkeypatch.setenv("FILTERS", '{"status": "TRADING", "underlyingSubType": "AI"}')

    settings = Settings(_env_file=None)

    assert settings.KLINES_LIMIT == 750
    assert settings.KLINES_INTERVAL == "4h"
    assert settings.FILTERS == {"status": "TRADING", "underlyingSubType": "AI"}


def test_missing_record_falls_back_to_settings(tmp_path) -> None:
    """Without a stored record the run uses the settings defaults."""

    settings = Settings(_env_file=None, KLINES_LIMIT=99, KLINES_INTERVAL="15m", RSI_PERIOD=None)

    run_config = load_run_config(JsonStorage(tmp_path), settings)

    assert run_config.klines.limit == 99
    assert run_config.klines.interval == "15m"
    assert run_config.filters == settings.FILTERS
    assert run_config.rsi_period is None


def test_stored_record_wins_over_settings(tmp_path) -> None:
    """A saved config record is validated and used as is."""

    storage = JsonStorage(tmp_path)
    storage.save(
        "config",
        {"klines": {"limit": 1500, "interval": "1d"}, "filters": {"quoteAsset": "USDC"}, "rsi_period": 7},
    )

    run_config = load_run_config(storage, Settings(_env_file=None))

    assert run_config == RunConfig.model_validate(
        {"klines": {"limit": 1500, "interval": "1d"}, "filters": {"quoteAsset": "USDC"}, "rsi_period": 7}
    )


@pytest.mark.parametrize(
    "record",
    [
        {"filters": {}},
        {"klines": {"limit": 0, "interval": "1h"}},
        {"klines": {"limit": 100, "interval": ""}},
    ],
)
def test_invalid_record_is_a_setup_failure(tmp_path, record) -> None:
    """Bad run records abort before anything is fetched."""

    storage = JsonStorage(tmp_path)
    storage.save("config", record)

    with pytest.raises(SetupError):
        load_run_config(storage, Settings(_env_file=None))


def test_corrupt_record_is_a_setup_failure(tmp_path) -> None:
    """Unparseable JSON in the config record is fatal."""

    storage = JsonStorage(tmp_path)
    storage.path_for("config").write_text("{", encoding="utf-8")

    with pytest.raises(SetupError):
        load_run_config(storage, Settings(_env_file=None))
