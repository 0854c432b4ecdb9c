"""集中配置管理

四个工作目录 + 流水线策略，支持从 YAML 文件加载 + 编程式覆盖。

配置文件示例 (config.yml):
    directories:
      sources: ~/.cache/mercurium/sources    # 源码包下载目录
      builds: ~/.cache/mercurium/builds      # 解压/构建目录
      binaries: ~/.local/bin                 # 安装目标目录
      packages: ~/.local/share/mercurium     # 包数据库所在目录
    download_timeout: 300
    abort_on_failure: true
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from mercurium.core.exceptions import ConfigError
from mercurium.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

APP_NAME = "mercurium"
_DIR_KEYS = ("sources", "builds", "binaries", "packages")


def _xdg(var: str, fallback: str) -> Path:
    value = os.environ.get(var)
    return Path(value) if value else Path.home() / fallback


def default_config_path() -> Path:
    """默认配置文件路径: $MERCURIUM_CONFIG 或 $XDG_CONFIG_HOME/mercurium/config.yml"""
    explicit = os.environ.get("MERCURIUM_CONFIG")
    if explicit:
        return Path(explicit)
    return _xdg("XDG_CONFIG_HOME", ".config") / APP_NAME / "config.yml"


def _default_sources() -> Path:
    return _xdg("XDG_CACHE_HOME", ".cache") / APP_NAME / "sources"


def _default_builds() -> Path:
    return _xdg("XDG_CACHE_HOME", ".cache") / APP_NAME / "builds"


def _default_binaries() -> Path:
    return Path.home() / ".local" / "bin"


def _default_packages() -> Path:
    return _xdg("XDG_DATA_HOME", ".local/share") / APP_NAME


@dataclass
class Config:
    """全局配置"""

    # 目录
    sources_dir: Path = field(default_factory=_default_sources)
    builds_dir: Path = field(default_factory=_default_builds)
    binaries_dir: Path = field(default_factory=_default_binaries)
    packages_dir: Path = field(default_factory=_default_packages)

    # 流水线
    download_timeout: int = 300
    abort_on_failure: bool = True

    @property
    def database_path(self) -> Path:
        from mercurium.core.store import DB_FILENAME
        return self.packages_dir / DB_FILENAME

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise ConfigError(f"配置文件无效: {path} - {e}") from e
        if not data:
            logger.info("配置文件不存在或为空，使用默认配置: %s", path)
            return cls().resolved()

        data = dict(data)
        dirs = data.pop("directories", None) or {}
        if not isinstance(dirs, dict):
            raise ConfigError(f"配置项 directories 必须是字典: {path}")
        for key in _DIR_KEYS:
            if key in data:
                dirs.setdefault(key, data.pop(key))

        kwargs: dict[str, Any] = {}
        for key in _DIR_KEYS:
            value = dirs.get(key)
            if value is None:
                continue
            if not isinstance(value, str) or not value:
                raise ConfigError(f"目录配置 {key} 必须是非空字符串: {value!r}")
            kwargs[f"{key}_dir"] = Path(value)

        known = {f.name for f in fields(cls)}
        for key in list(data):
            if key in known:
                kwargs[key] = data.pop(key)

        if "download_timeout" in kwargs and not isinstance(kwargs["download_timeout"], int):
            raise ConfigError(f"download_timeout 必须是整数: {kwargs['download_timeout']!r}")
        if "abort_on_failure" in kwargs and not isinstance(kwargs["abort_on_failure"], bool):
            raise ConfigError(f"abort_on_failure 必须是布尔值: {kwargs['abort_on_failure']!r}")

        if data:
            logger.warning("忽略未知配置项: %s", ", ".join(sorted(map(str, data))))
        cfg = cls(**kwargs)
        logger.info("配置已加载: %s", path)
        return cfg.resolved()

    def resolved(self) -> Config:
        """展开 ~ 并转换为绝对路径"""
        for name in ("sources_dir", "builds_dir", "binaries_dir", "packages_dir"):
            setattr(self, name, Path(getattr(self, name)).expanduser().resolve())
        return self

    def ensure_dirs(self) -> None:
        """创建全部工作目录（幂等）"""
        for d in (self.sources_dir, self.builds_dir, self.binaries_dir, self.packages_dir):
            d.mkdir(parents=True, exist_ok=True)

