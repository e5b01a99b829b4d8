import json

import pytest

from core.config_loader import ConfigLoader
from scripts import validate_config
from shared.config.planner import load_planner_config


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("TRIPBLOCKS_DB_PATH", "TRIPBLOCKS_API_HOST", "TRIPBLOCKS_API_PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_from_empty_document(clean_env):
    config = load_planner_config({})

    assert config.storage.db_path == "data/tripblocks.db"
    assert config.storage.busy_timeout_seconds == 5.0
    assert config.api.host == "0.0.0.0"
    assert config.api.port == 8310
    assert config.api.allow_origins == ["*"]
    assert config.voting.default_duplicate_policy == "soft_block"
    assert config.voting.allow_proxy_votes is True


def test_malformed_values_fall_back_to_defaults(clean_env):
    config = load_planner_config(
        {
            "storage": {"busy_timeout_seconds": "soon"},
            "api": {"enabled": "yes", "port": "eighty"},
            "voting": {"default_duplicate_policy": "sometimes", "allow_proxy_votes": 1},
        }
    )

    assert config.storage.busy_timeout_seconds == 5.0
    assert config.api.enabled is True
    assert config.api.port == 8310
    assert config.voting.default_duplicate_policy == "soft_block"
    assert config.voting.allow_proxy_votes is True


def test_document_values_are_used(clean_env):
    config = load_planner_config(
        {
            "storage": {"db_path": "/srv/planner.db"},
            "api": {"port": 9000, "allow_origins": ["https://trips.example"]},
            "voting": {"default_duplicate_policy": "prevent", "allow_proxy_votes": False},
        }
    )

    assert config.storage.db_path == "/srv/planner.db"
    assert config.api.port == 9000
    assert config.api.allow_origins == ["https://trips.example"]
    assert config.voting.default_duplicate_policy == "prevent"
    assert config.voting.allow_proxy_votes is False


def test_environment_overrides(clean_env, tmp_path):
    clean_env.setenv("TRIPBLOCKS_DB_PATH", str(tmp_path / "env.db"))
    clean_env.setenv("TRIPBLOCKS_API_HOST", "127.0.0.1")
    clean_env.setenv("TRIPBLOCKS_API_PORT", "9100")

    config = load_planner_config({"api": {"port": 9000}})

    assert config.storage.db_path == str(tmp_path / "env.db")
    assert config.api.host == "127.0.0.1"
    assert config.api.port == 9100


def test_bad_port_override_is_ignored(clean_env):
    clean_env.setenv("TRIPBLOCKS_API_PORT", "not-a-port")

    assert load_planner_config({}).api.port == 8310


def test_shipped_config_is_valid():
    assert ConfigLoader().validate() == []


def test_schema_violations_are_reported_not_raised():
    messages = ConfigLoader().validate(
        {"api": {"port": 70000}, "voting": {"default_duplicate_policy": "sometimes"}}
    )

    assert len(messages) == 2
    assert any("api/port" in m for m in messages)
    assert any("voting/default_duplicate_policy" in m for m in messages)


def test_loader_returns_config_and_warnings(tmp_path, clean_env):
    path = tmp_path / "planner.json"
    path.write_text(json.dumps({"api": {"port": "x"}}), encoding="utf-8")

    config, warnings = ConfigLoader(config_path=path).load()

    assert config.api.port == 8310
    assert len(warnings) == 1


def test_missing_config_file_uses_defaults(tmp_path, clean_env):
    config, warnings = ConfigLoader(config_path=tmp_path / "absent.json").load()

    assert warnings == []
    assert config.api.port == 8310


def test_validate_script_exit_codes(tmp_path, capsys):
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"voting": {"default_duplicate_policy": "allow"}}), encoding="utf-8")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"storage": {"db_path": ""}}), encoding="utf-8")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    assert validate_config.main([str(good)]) == 0
    assert validate_config.main([str(bad)]) == 1
    assert validate_config.main([str(broken)]) == 1
    assert "invalid JSON" in capsys.readouterr().err
