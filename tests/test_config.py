"""TOML config loading and profile overlays."""

import pytest

from poolmarket.config import Settings, get_settings, load_config


def test_profile_overlays_default(tmp_path):
    (tmp_path / "default.toml").write_text(
        '[storage]\ndb_path = "data/a.duckdb"\nlock_timeout_sec = 5\n[market]\nstarting_balance = 500\n'
    )
    (tmp_path / "dev.toml").write_text('[storage]\ndb_path = "data/dev.duckdb"\n')

    raw = load_config("dev", tmp_path)
    assert raw["storage"] == {"db_path": "data/dev.duckdb", "lock_timeout_sec": 5}

    s = get_settings("dev", tmp_path)
    assert s.db_path == "data/dev.duckdb"
    assert s.lock_timeout_sec == 5.0
    assert s.starting_balance == 500


def test_missing_config_dir_gives_defaults(tmp_path):
    s = get_settings(None, tmp_path)
    assert s.db_path == "data/poolmarket.duckdb"
    assert s.starting_balance == 1000
    assert s.notify_queue_size == 64
    assert s.api_port == 8080
    assert s.cors_origins == ["*"]


def test_logging_level_accessors():
    s = Settings(logging={"level": "debug", "format": "json"})
    assert s.logging_level == "DEBUG"
    assert s.logging_level_num == 10
    assert s.logging_format == "json"


def test_unknown_section_rejected():
    with pytest.raises(TypeError):
        Settings(databse={"db_path": "x"})
