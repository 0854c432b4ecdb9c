"""config.py 单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from mercurium.core.config import Config, default_config_path
from mercurium.core.exceptions import ConfigError


class TestDefaults:
    def test_xdg_locations(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        cfg = Config()
        assert cfg.sources_dir == tmp_path / "cache" / "mercurium" / "sources"
        assert cfg.builds_dir == tmp_path / "cache" / "mercurium" / "builds"
        assert cfg.packages_dir == tmp_path / "data" / "mercurium"
        assert cfg.database_path.name == "packages.db"
        assert cfg.abort_on_failure is True
        assert cfg.download_timeout == 300

    def test_default_config_path_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MERCURIUM_CONFIG", str(tmp_path / "x.yml"))
        assert default_config_path() == tmp_path / "x.yml"

    def test_default_config_path_xdg(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MERCURIUM_CONFIG", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert default_config_path() == tmp_path / "mercurium" / "config.yml"


class TestFromFile:
    def test_missing_file_defaults(self, tmp_path: Path) -> None:
        cfg = Config.from_file(tmp_path / "none.yml")
        assert cfg.sources_dir.is_absolute()

    def test_directories_section(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        p = tmp_path / "config.yml"
        p.write_text(
            "directories:\n"
            f"  sources: {tmp_path}/s\n"
            f"  binaries: {tmp_path}/bin\n"
            "download_timeout: 60\n"
            "abort_on_failure: false\n"
            "mirror: https://example.com\n",
            encoding="utf-8",
        )
        cfg = Config.from_file(p)
        assert cfg.sources_dir == (tmp_path / "s").resolve()
        assert cfg.binaries_dir == (tmp_path / "bin").resolve()
        assert cfg.download_timeout == 60
        assert cfg.abort_on_failure is False
        assert "mirror" in caplog.text

    def test_top_level_dirs_and_tilde(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        p = tmp_path / "config.yml"
        p.write_text("packages: ~/pkgs\n", encoding="utf-8")
        cfg = Config.from_file(p)
        assert cfg.packages_dir == (tmp_path / "pkgs").resolve()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        p = tmp_path / "config.yml"
        p.write_text("directories: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            Config.from_file(p)

    def test_not_mapping(self, tmp_path: Path) -> None:
        p = tmp_path / "config.yml"
        p.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            Config.from_file(p)

    def test_bad_value_types(self, tmp_path: Path) -> None:
        p = tmp_path / "config.yml"
        p.write_text("abort_on_failure: maybe\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="abort_on_failure"):
            Config.from_file(p)

    def test_bad_directories(self, tmp_path: Path) -> None:
        p = tmp_path / "config.yml"
        p.write_text("directories: [a]\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="directories"):
            Config.from_file(p)


class TestEnsureDirs:
    def test_idempotent(self, config: Config) -> None:
        config.ensure_dirs()
        config.ensure_dirs()
        for d in (config.sources_dir, config.builds_dir, config.binaries_dir, config.packages_dir):
            assert d.is_dir()
