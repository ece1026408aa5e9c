"""Tests for trill.config and trill.config_loader."""

from pathlib import Path

import pytest

from trill._errors import ConfigError
from trill.config import TrillConfig
from trill.config_loader import load_config


class TestTrillConfig:
    """TrillConfig — frozen dataclass with protocol defaults."""

    def test_defaults(self) -> None:
        config = TrillConfig()
        assert config.request_header == "Trill-Request"
        assert config.navigate_header == "Trill-Navigate"
        assert config.navigate_key_header == "Trill-Navigate-Key"
        assert config.response_marker == "X-Trill-Response"
        assert config.always_array_keys == ("messages", "errors")
        assert config.retry_ms is None
        assert config.debug is False

    def test_frozen(self) -> None:
        config = TrillConfig()
        with pytest.raises(AttributeError):
            config.debug = True  # type: ignore[misc]

    def test_list_keys_become_tuple(self) -> None:
        config = TrillConfig(always_array_keys=["items"])  # type: ignore[arg-type]
        assert config.always_array_keys == ("items",)
        hash(config)

    def test_negative_retry_rejected(self) -> None:
        with pytest.raises(ConfigError):
            TrillConfig(retry_ms=-5)


class TestLoadConfig:
    """load_config — yaml/toml/pyproject discovery and overrides."""

    def test_no_files_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == TrillConfig()

    def test_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text(
            "debug: true\nretry_ms: 2000\nalways_array_keys: [messages, items]\n"
        )
        config = load_config(tmp_path)
        assert config.debug is True
        assert config.retry_ms == 2000
        assert config.always_array_keys == ("messages", "items")

    def test_yaml_trill_section(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yml").write_text("trill:\n  request_header: X-Reactive\n")
        assert load_config(tmp_path).request_header == "X-Reactive"

    def test_toml(self, tmp_path: Path) -> None:
        (tmp_path / "trill.toml").write_text('[trill]\nnavigate_event = "app:navigate"\n')
        assert load_config(tmp_path).navigate_event == "app:navigate"

    def test_pyproject_tool_section(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "app"\n\n[tool.trill]\ndebug = true\n'
        )
        assert load_config(tmp_path).debug is True

    def test_yaml_wins_over_toml(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text("dump_title: From YAML\n")
        (tmp_path / "trill.toml").write_text('dump_title = "From TOML"\n')
        assert load_config(tmp_path).dump_title == "From YAML"

    def test_overrides_win(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text("debug: false\n")
        assert load_config(tmp_path, debug=True).debug is True

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text("trill:\n  colour: blue\n")
        with pytest.raises(ConfigError, match="colour"):
            load_config(tmp_path)

    def test_unknown_override_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path, port=3000)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text("debug: [unclosed\n")
        with pytest.raises(ConfigError, match="trill.yaml"):
            load_config(tmp_path)

    def test_yaml_must_be_mapping(self, tmp_path: Path) -> None:
        (tmp_path / "trill.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        (tmp_path / "trill.toml").write_text("debug = \n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)
