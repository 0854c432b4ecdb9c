"""包定义文件加载

定义文件包含两个段:

    [package]
    name = "ripgrep"
    version = "14.1.0"
    license = "MIT"
    repository = "https://github.com/BurntSushi/ripgrep"    # 可选
    authors = ["BurntSushi"]                                # 可选
    description = "recursively search directories"         # 可选
    dependencies = []                                       # 可选
    build_dependencies = []                                 # 可选
    provides = "rg"                                         # 可选

    [source]
    url = "https://example.com/ripgrep-14.1.0.tar.gz"
    checksum = "<128 位十六进制 SHA-512>"                     # 可选
    build = "cd ${source} && make"                          # 可选
    install = "mv ${source}/rg ${binary}"

默认按 TOML 解析；扩展名为 .yml/.yaml 时按 YAML 解析（段结构相同）。
"""

from __future__ import annotations

import logging
import re
import tomllib
from pathlib import Path
from typing import Any

import yaml
from semver import Version

from mercurium.core.exceptions import InvalidDefinitionError
from mercurium.core.models import (
    InstallState,
    Local,
    Package,
    PackageDefinition,
    PackageInfo,
    Source,
)
from mercurium.core.store import PackageStore, Table, sync_installed
from mercurium.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_SHA512_RE = re.compile(r"^[0-9a-fA-F]{128}$")
_YAML_SUFFIXES = (".yml", ".yaml")
_NAME_FORBIDDEN = ("/", "\\", "..", "\0")


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise InvalidDefinitionError(f"缺少 [{key}] 段")
    return value


def _required_str(section: dict[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidDefinitionError(f"{where}.{key} 必须是非空字符串")
    return value.strip()


def _optional_str(section: dict[str, Any], key: str, where: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidDefinitionError(f"{where}.{key} 必须是字符串")
    return value.strip() or None


def _optional_list(section: dict[str, Any], key: str, where: str) -> tuple[str, ...] | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise InvalidDefinitionError(f"{where}.{key} 必须是非空字符串列表")
    return tuple(value) or None


def _package_name(section: dict[str, Any]) -> str:
    """包名用于拼接下载/构建路径，不允许路径分隔符与上级引用"""
    name = _required_str(section, "name", "package")
    if name.startswith(".") or any(s in name for s in _NAME_FORBIDDEN):
        raise InvalidDefinitionError(f"package.name 不能以 . 开头或包含 / \\ ..: {name!r}")
    return name


def parse_definition(data: dict[str, Any]) -> PackageDefinition:
    """校验并转换已解析的定义文档"""
    pkg = _section(data, "package")
    src = _section(data, "source")

    raw_version = pkg.get("version")
    if not isinstance(raw_version, str):
        raise InvalidDefinitionError("package.version 必须是字符串")
    try:
        version = Version.parse(raw_version.strip())
    except ValueError as e:
        raise InvalidDefinitionError(f"package.version 不是合法的语义化版本: {raw_version}") from e

    checksum = _optional_str(src, "checksum", "source")
    if checksum is not None and not _SHA512_RE.match(checksum):
        raise InvalidDefinitionError("source.checksum 必须是 128 位十六进制 SHA-512")

    install = _required_str(src, "install", "source")
    return PackageDefinition(
        info=PackageInfo(
            name=_package_name(pkg),
            version=version,
            license=_required_str(pkg, "license", "package"),
            repository=_optional_str(pkg, "repository", "package"),
            authors=_optional_list(pkg, "authors", "package"),
            description=_optional_str(pkg, "description", "package"),
            dependencies=_optional_list(pkg, "dependencies", "package"),
            build_dependencies=_optional_list(pkg, "build_dependencies", "package"),
            provides=_optional_str(pkg, "provides", "package"),
        ),
        source=Source(
            url=_required_str(src, "url", "source"),
            install=install,
            checksum=checksum.lower() if checksum else None,
            build=_optional_str(src, "build", "source"),
        ),
    )


def load_definition(path: str | Path) -> PackageDefinition:
    """读取并解析定义文件，任何问题均抛 InvalidDefinitionError"""
    p = Path(path)
    if not p.is_file():
        raise InvalidDefinitionError("定义文件不存在", path=str(p))
    try:
        if p.suffix in _YAML_SUFFIXES:
            data = load_yaml(p)
        else:
            data = tomllib.loads(p.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, yaml.YAMLError, ValueError, OSError) as e:
        raise InvalidDefinitionError(f"解析失败: {e}", path=str(p)) from e

    try:
        definition = parse_definition(data)
    except InvalidDefinitionError as e:
        raise InvalidDefinitionError(e.message, path=str(p)) from e
    logger.info("已加载定义文件: %s (%s %s)", p, definition.name, definition.version)
    return definition


def add_to_catalog(store: PackageStore, definition: PackageDefinition) -> Package:
    """将定义写入目录并标记为手动添加

    已存在的条目保留其安装状态；新条目标记为未安装。
    已安装镜像表在同一事务内刷新。
    """
    name = definition.name

    def _merge(current: Package | None) -> Package:
        if current is None:
            local = Local(installed=InstallState.not_installed(), added=True)
        else:
            local = Local(installed=current.local.installed, added=True)
        return Package.from_definition(definition, local)

    with store.transaction() as txn:
        entry = txn.modify(Table.ALL, name, _merge)
        sync_installed(txn, name, entry)
    logger.info("已添加到目录: %s %s", name, definition.version)
    return entry  # type: ignore[return-value]
