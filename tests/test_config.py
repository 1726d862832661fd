"""
Tests for configuration loading.
"""

import textwrap
from pathlib import Path

import pytest

from caskctl.core.config.loader import CONFIG_FILE, Settings, find_config_file, load_settings
from caskctl.core.errors import ConfigError


class TestLoadSettings:
    def test_load_valid_config(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        path.write_text(textwrap.dedent("""\
            catalog_dirs:
              - Casks
              - /opt/casks
            state_dir: var/state
            download:
              timeout: 5
            installer:
              use_sudo: false
        """))
        settings = load_settings(path)

        assert settings.catalog_dirs == [(tmp_path / "Casks").resolve(), Path("/opt/casks")]
        assert settings.state_dir == (tmp_path / "var" / "state").resolve()
        assert settings.state_file.name == "installs.json"
        assert settings.download.timeout == 5
        assert settings.download.chunk_size == 64 * 1024
        assert settings.installer.use_sudo is False
        assert settings.installer.target_volume == "/"
        assert settings.config_path == path

    def test_empty_file_is_defaults(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        path.write_text("")
        settings = load_settings(path)
        assert settings.catalog_dirs == [(tmp_path / "Casks").resolve()]

    def test_missing_explicit_file_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml_raises(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        path.write_text("catalog_dirs: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_non_mapping_raises(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_invalid_value_raises(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        path.write_text("download:\n  timeout: -1\n")
        with pytest.raises(ConfigError) as exc:
            load_settings(path)
        assert exc.value.exit_code == 2

    def test_auto_search_falls_back_to_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("caskctl.core.config.loader.find_config_file", lambda: None)
        settings = load_settings()
        assert settings.config_path is None
        assert settings.state_dir == (tmp_path / ".state").resolve()


class TestFindConfigFile:
    def test_find_in_current_dir(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE).write_text("{}")
        assert find_config_file(tmp_path) == (tmp_path / CONFIG_FILE).resolve()

    def test_find_in_parent_dir(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE).write_text("{}")
        child = tmp_path / "a" / "b"
        child.mkdir(parents=True)
        assert find_config_file(child) == (tmp_path / CONFIG_FILE).resolve()


class TestSettings:
    def test_resolved_keeps_absolute_paths(self, tmp_path: Path):
        settings = Settings(catalog_dirs=[Path("/abs")], state_dir=Path("rel")).resolved(tmp_path)
        assert settings.catalog_dirs == [Path("/abs")]
        assert settings.state_dir == (tmp_path / "rel").resolve()
