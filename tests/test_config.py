import pytest

from utils.config import load_config
from utils.errors import ConfigError


def test_missing_token_is_fatal(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "no-existe.yaml"), env={})


def test_yaml_values_are_overridden_by_env(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("telegram_token: from-yaml\nrpc_url: https://yaml.rpc\nalert_interval_secs: 15\n", encoding="utf-8")

    config = load_config(str(path), env={"TELEGRAM_BOT_TOKEN": "from-env", "COPY_LOOKBACK": "8"})

    assert config.telegram_token == "from-env"
    assert config.rpc_url == "https://yaml.rpc"
    assert config.alert_interval_secs == 15
    assert config.copy_lookback == 8


def test_wrong_type_is_a_config_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "none.yaml"), env={"TELEGRAM_BOT_TOKEN": "t", "RPC_RETRIES": "muchos"})


def test_defaults(tmp_path):
    config = load_config(str(tmp_path / "none.yaml"), env={"TELEGRAM_BOT_TOKEN": "t"})

    assert config.copy_lookback == 5
    assert config.confirm_timeout_secs > 0
