"""Unit tests for config_manager module."""

import os

import pytest

from opskit.config_manager import ConfigError, ConfigManager, OpskitConfig


class TestOpskitConfig:
    """Tests for the config dataclass."""

    def test_to_dict_drops_none(self):
        data = OpskitConfig(kusto_cluster="help").to_dict()
        assert data["kusto_cluster"] == "help"
        assert "subscription_id" not in data

    def test_from_dict_ignores_unknown(self):
        config = OpskitConfig.from_dict({"throttle_limit": 4, "legacy_key": True})
        assert config.throttle_limit == 4


class TestLoadSave:
    """Tests for reading and writing the config file."""

    def test_defaults_when_missing(self):
        config = ConfigManager.load_config()
        assert config == OpskitConfig()

    def test_round_trip_with_secure_permissions(self):
        ConfigManager.save_config(OpskitConfig(default_resource_group="web-rg", throttle_limit=3))

        path = ConfigManager.DEFAULT_CONFIG_FILE
        assert os.stat(path).st_mode & 0o777 == 0o600
        config = ConfigManager.load_config()
        assert config.default_resource_group == "web-rg"
        assert config.throttle_limit == 3

    def test_comments_preserved(self):
        ConfigManager.ensure_config_dir()
        path = ConfigManager.DEFAULT_CONFIG_FILE
        path.write_text("# team defaults\nkusto_cluster = \"help\"\n")
        os.chmod(path, 0o600)

        ConfigManager.update_config(kusto_database="Samples")

        text = path.read_text()
        assert "# team defaults" in text
        assert 'kusto_database = "Samples"' in text

    def test_insecure_permissions_fixed(self):
        ConfigManager.ensure_config_dir()
        path = ConfigManager.DEFAULT_CONFIG_FILE
        path.write_text('tenant_id = "x"\n')
        os.chmod(path, 0o644)

        ConfigManager.load_config()

        assert os.stat(path).st_mode & 0o777 == 0o600

    def test_invalid_toml(self):
        ConfigManager.ensure_config_dir()
        ConfigManager.DEFAULT_CONFIG_FILE.write_text("not = [valid\n")
        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()

    def test_custom_path_outside_allowed_dirs(self):
        with pytest.raises(ConfigError, match="outside allowed directories"):
            ConfigManager.get_config_path("/etc/opskit.toml")

    def test_update_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown config key"):
            ConfigManager.update_config(colour="blue")


class TestResolution:
    """Tests for CLI value / config / environment precedence."""

    def test_subscription_precedence(self, monkeypatch):
        monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", "from-env")
        assert ConfigManager.get_subscription_id() == "from-env"

        ConfigManager.update_config(subscription_id="from-config")
        assert ConfigManager.get_subscription_id() == "from-config"
        assert ConfigManager.get_subscription_id("from-cli") == "from-cli"

    def test_resource_group(self):
        assert ConfigManager.get_resource_group() is None
        ConfigManager.update_config(default_resource_group="ops-rg")
        assert ConfigManager.get_resource_group() == "ops-rg"


class TestCoerceValue:
    """Tests for converting command-line strings."""

    @pytest.mark.parametrize("raw,expected", [("true", True), ("No", False), ("1", True)])
    def test_bool(self, raw, expected):
        assert ConfigManager.coerce_value("auto_fix_outbound_snat", raw) is expected

    def test_int_and_float(self):
        assert ConfigManager.coerce_value("throttle_limit", "8") == 8
        assert ConfigManager.coerce_value("poll_interval", "0.5") == 0.5

    def test_string_passthrough(self):
        assert ConfigManager.coerce_value("kusto_cluster", "help") == "help"

    def test_bad_value(self):
        with pytest.raises(ConfigError, match="Invalid value for throttle_limit"):
            ConfigManager.coerce_value("throttle_limit", "many")

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            ConfigManager.coerce_value("colour", "blue")
