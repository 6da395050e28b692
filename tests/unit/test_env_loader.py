"""Unit tests for env_loader module."""

import os

import pytest

from opskit.env_loader import (
    EnvLoaderError,
    is_secret_key,
    load_env_file,
    masked_items,
    read_env_file,
)


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text(
        "# database settings\n"
        "\n"
        "DB_HOST=localhost\n"
        'DB_NAME="orders"\n'
        "DB_PASSWORD='s3cr=t'\n"
        "export REGION=westus2\n"
    )
    return path


class TestReadEnvFile:
    """Tests for parsing env files."""

    def test_parses_values_and_strips_quotes(self, env_file):
        values = read_env_file(env_file)
        assert values == {
            "DB_HOST": "localhost",
            "DB_NAME": "orders",
            "DB_PASSWORD": "s3cr=t",
            "REGION": "westus2",
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(EnvLoaderError, match="not found"):
            read_env_file(tmp_path / "missing.env")

    def test_comments_and_blank_lines_only(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("# nothing here\n\n   \n")
        assert read_env_file(path) == {}

    def test_invalid_key_rejected(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("1BAD=value\n")
        with pytest.raises(EnvLoaderError, match="Invalid environment variable name '1BAD'"):
            read_env_file(path)

    def test_no_interpolation(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("A=1\nB=${A}\n")
        assert read_env_file(path)["B"] == "${A}"


class TestLoadEnvFile:
    """Tests for applying env files to an environment."""

    def test_existing_keys_skipped(self, env_file):
        environ = {"DB_HOST": "prod-db"}

        result = load_env_file(env_file, environ=environ)

        assert environ["DB_HOST"] == "prod-db"
        assert result.skipped == ["DB_HOST"]
        assert "DB_NAME" in result.applied
        assert environ["REGION"] == "westus2"

    def test_override_replaces_existing(self, env_file):
        environ = {"DB_HOST": "prod-db"}

        result = load_env_file(env_file, override=True, environ=environ)

        assert environ["DB_HOST"] == "localhost"
        assert result.skipped == []

    def test_comment_only_file_leaves_environment_untouched(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("# KEY=value\n\n")
        environ = {"KEEP": "1"}

        result = load_env_file(path, environ=environ)

        assert environ == {"KEEP": "1"}
        assert result.applied == []

    def test_defaults_to_os_environ(self, tmp_path, monkeypatch):
        path = tmp_path / ".env"
        path.write_text("OPSKIT_TEST_VALUE=42\n")
        monkeypatch.setenv("OPSKIT_TEST_VALUE", "old")
        monkeypatch.delenv("OPSKIT_TEST_VALUE")

        load_env_file(path)

        assert os.environ["OPSKIT_TEST_VALUE"] == "42"


class TestMasking:
    """Tests for display masking."""

    @pytest.mark.parametrize(
        "key", ["API_KEY", "client_secret", "DB_PASSWORD", "GITHUB_TOKEN", "CONNECTION_STRING"]
    )
    def test_secret_keys(self, key):
        assert is_secret_key(key)

    def test_plain_key(self):
        assert not is_secret_key("REGION")

    def test_masked_items(self):
        items = masked_items({"REGION": "westus2", "DB_PASSWORD": "hunter2", "X": "ab"})
        assert items == [("REGION", "west****"), ("DB_PASSWORD", "****"), ("X", "****")]
