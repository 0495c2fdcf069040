"""Unit tests for layered configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from icalfeed.core.cache import key_fingerprint
from icalfeed.core.config_manager import (
    DEFAULT_COLORS,
    AppConfig,
    ConfigError,
    ConfigManager,
    parse_env_file,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]

FEEDS_YAML = """
feeds:
  - name: Family
    tokens:
      private: fam-private
      public: fam-public
    calendars:
      - name: work
        url: https://cal.example.com/work.ics
"""


def write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def default_file(tmp_path):
    return write(
        tmp_path / "config-default.yml",
        "server:\n  host: 127.0.0.1\n  port: 9000\ncache:\n  ttl_seconds: 120\nfeeds: []\n",
    )


def make_manager(tmp_path, default_file, config_path=None, environ=None):
    return ConfigManager(
        config_path=config_path,
        default_path=default_file,
        env_file_path=tmp_path / ".env",
        environ=environ if environ is not None else {},
    )


def test_defaults_without_any_file(tmp_path):
    manager = make_manager(tmp_path, tmp_path / "missing.yml")
    config = manager.load()
    assert config.server.port == 8080
    assert config.cache.ttl_seconds == 60
    assert config.colors == DEFAULT_COLORS
    assert config.feeds == []


def test_override_file_merges_over_defaults(tmp_path, default_file):
    override = write(tmp_path / "config.yml", "server:\n  port: 9001\n" + FEEDS_YAML)
    config = make_manager(tmp_path, default_file, config_path=override).load()
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 9001
    assert config.cache.ttl_seconds == 120
    assert [feed.name for feed in config.feeds] == ["Family"]
    assert config.feeds[0].calendars[0].url.get_secret_value() == "https://cal.example.com/work.ics"


def test_override_path_from_environment(tmp_path, default_file):
    override = write(tmp_path / "env-config.yml", FEEDS_YAML)
    config = make_manager(
        tmp_path, default_file, environ={"ICALFEED_CONFIG": str(override)}
    ).load()
    assert len(config.feeds) == 1


def test_environment_variables_win(tmp_path, default_file):
    environ = {
        "ICALFEED_SERVER_PORT": "9100",
        "ICALFEED_CACHE_TTL_SECONDS": "5",
        "ICALFEED_LOG_LEVEL": "debug",
    }
    config = make_manager(tmp_path, default_file, environ=environ).load()
    assert config.server.port == 9100
    assert config.cache.ttl_seconds == 5
    assert config.log_level == "DEBUG"


def test_invalid_env_port_is_ignored(tmp_path, default_file):
    config = make_manager(
        tmp_path, default_file, environ={"ICALFEED_SERVER_PORT": "eighty"}
    ).load()
    assert config.server.port == 9000


def test_env_file_supplies_defaults(tmp_path, default_file):
    write(tmp_path / ".env", "# comment\nICALFEED_SERVER_HOST='10.0.0.5'\nICALFEED_SERVER_PORT=9200\n")
    environ = {"ICALFEED_SERVER_PORT": "9300"}
    config = make_manager(tmp_path, default_file, environ=environ).load()
    assert config.server.host == "10.0.0.5"
    assert config.server.port == 9300


def test_missing_override_file_raises(tmp_path, default_file):
    with pytest.raises(ConfigError, match="not found"):
        make_manager(tmp_path, default_file, config_path=tmp_path / "nope.yml").load()


@pytest.mark.parametrize(
    "text",
    [
        "server: [unclosed\n",
        "- just\n- a list\n",
        "server:\n  port: 70000\n",
        "feeds:\n  - name: NoTokens\n",
    ],
)
def test_invalid_files_raise_config_error(tmp_path, default_file, text):
    override = write(tmp_path / "bad.yml", text)
    with pytest.raises(ConfigError):
        make_manager(tmp_path, default_file, config_path=override).load()


def test_parse_env_file_missing(tmp_path):
    assert parse_env_file(tmp_path / "absent.env") == {}


class TestFeedLookup:
    def test_private_and_public_tokens(self, app_config):
        family = app_config.get_feed_by_token("family-private")
        assert family.name == "Family"
        assert not family.is_public_token("family-private")
        public = app_config.get_feed_by_token("family-public")
        assert public is family
        assert public.is_public_token("family-public")

    @pytest.mark.parametrize("token", ["", "unknown", "Family"])
    def test_unknown_tokens(self, app_config, token):
        assert app_config.get_feed_by_token(token) is None

    def test_secrets_are_hidden_in_repr(self, app_config):
        assert "family-private" not in repr(app_config)
        assert "work.ics" not in str(app_config.feeds[0].calendars[0])

    def test_config_is_immutable(self, app_config):
        with pytest.raises(ValidationError):
            app_config.log_level = "DEBUG"

    def test_calendar_label(self):
        config = AppConfig.model_validate(
            {
                "feeds": [
                    {
                        "name": "x",
                        "tokens": {"private": "a", "public": "b"},
                        "calendars": [
                            {"url": "https://h/x.ics"},
                            {"url": "https://h/y.ics", "name": "Team"},
                        ],
                    }
                ]
            }
        )
        unnamed, named = config.feeds[0].calendars
        assert unnamed.label == key_fingerprint("https://h/x.ics")
        assert "h/x.ics" not in unnamed.label
        assert named.label == "Team"
