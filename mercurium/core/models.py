"""核心数据模型

包记录的内存形态与数据库线上形态集中定义于此：
- PackageInfo / Source: 包元信息与源码/脚本信息（来自定义文件或目录）
- InstallState / Local: 本地安装状态（状态机 + 是否手动添加）
- Package / PackageDefinition: 完整包记录 / 不含本地状态的包定义
- PackageRecord: 数据库中存储的线上记录

线上记录的可选字段约定: None 写出为空字符串/空列表，读回时空值还原为 None。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from semver import Version

# =========================================================================
# 包元信息
# =========================================================================


@dataclass(frozen=True)
class PackageInfo:
    """包的身份与元信息（全部字段参与相等/哈希）"""

    name: str
    version: Version
    license: str
    repository: str | None = None
    authors: tuple[str, ...] | None = None
    description: str | None = None
    dependencies: tuple[str, ...] | None = None
    build_dependencies: tuple[str, ...] | None = None
    provides: str | None = None


@dataclass(frozen=True)
class Source:
    """源码地址与构建/安装脚本

    build / install 为 shell 命令模板，可引用 ${source} 与 ${binary}。
    """

    url: str
    install: str
    checksum: str | None = None  # 十六进制 SHA-512，None 表示不校验
    build: str | None = None


# =========================================================================
# 本地安装状态
# =========================================================================


class InstallKind(str, Enum):
    NOT_INSTALLED = "not_installed"
    AUTOMATICALLY = "automatically"
    MANUALLY = "manually"


@dataclass(frozen=True)
class InstallState:
    """包是否安装、安装版本及来源（自动/手动）"""

    kind: InstallKind = InstallKind.NOT_INSTALLED
    version: Version | None = None

    @classmethod
    def not_installed(cls) -> InstallState:
        return cls()

    @classmethod
    def automatically(cls, version: Version) -> InstallState:
        return cls(InstallKind.AUTOMATICALLY, version)

    @classmethod
    def manually(cls, version: Version) -> InstallState:
        return cls(InstallKind.MANUALLY, version)

    @property
    def is_installed(self) -> bool:
        return self.kind is not InstallKind.NOT_INSTALLED

    def update(self, new: InstallState) -> InstallState:
        """用新状态合并当前状态。

        规则:
          - 新状态为未安装 → 未安装（显式卸载）
          - 当前为未安装或自动安装 → 直接采用新状态
          - 当前为手动安装 → 保持手动，版本取新状态的版本
        """
        if not new.is_installed:
            return InstallState.not_installed()
        if self.kind is InstallKind.MANUALLY:
            return InstallState.manually(new.version)  # type: ignore[arg-type]
        return new

    def __str__(self) -> str:
        if not self.is_installed:
            return "未安装"
        label = "手动" if self.kind is InstallKind.MANUALLY else "自动"
        return f"{label} {self.version}"


@dataclass(frozen=True)
class Local:
    """包的本地状态"""

    installed: InstallState = field(default_factory=InstallState.not_installed)
    added: bool = False  # 元信息是否来自用户提供的定义文件


# =========================================================================
# 包
# =========================================================================


@dataclass(frozen=True)
class PackageDefinition:
    """包定义文件的内容（无本地状态）"""

    info: PackageInfo
    source: Source

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def version(self) -> Version:
        return self.info.version


@dataclass(frozen=True)
class Package:
    """完整的包记录 = 元信息 + 源码信息 + 本地状态"""

    info: PackageInfo
    source: Source
    local: Local = field(default_factory=Local)

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def definition(self) -> PackageDefinition:
        return PackageDefinition(info=self.info, source=self.source)

    @classmethod
    def from_definition(cls, definition: PackageDefinition, local: Local) -> Package:
        return cls(info=definition.info, source=definition.source, local=local)

    def with_local(self, local: Local) -> Package:
        return replace(self, local=local)

    def to_record(self) -> PackageRecord:
        info, source, local = self.info, self.source, self.local
        state = local.installed
        return PackageRecord(
            name=info.name,
            version=str(info.version),
            license=info.license,
            repository=info.repository or "",
            authors=list(info.authors or ()),
            description=info.description or "",
            dependencies=list(info.dependencies or ()),
            build_dependencies=list(info.build_dependencies or ()),
            provides=info.provides or "",
            url=source.url,
            checksum=source.checksum or "",
            build=source.build or "",
            install=source.install,
            installed={
                "kind": state.kind.value,
                "version": str(state.version) if state.version is not None else "",
            },
            added=local.added,
        )

    @classmethod
    def from_record(cls, record: PackageRecord) -> Package:
        """线上记录 → 包；版本号非法时抛 ValueError"""
        state = record.installed or {}
        kind = InstallKind(state.get("kind", InstallKind.NOT_INSTALLED.value))
        installed_version = state.get("version") or ""
        if kind is InstallKind.NOT_INSTALLED:
            installed = InstallState.not_installed()
        else:
            installed = InstallState(kind, Version.parse(installed_version))

        return cls(
            info=PackageInfo(
                name=record.name,
                version=Version.parse(record.version),
                license=record.license,
                repository=_str_or_none(record.repository),
                authors=_tuple_or_none(record.authors),
                description=_str_or_none(record.description),
                dependencies=_tuple_or_none(record.dependencies),
                build_dependencies=_tuple_or_none(record.build_dependencies),
                provides=_str_or_none(record.provides),
            ),
            source=Source(
                url=record.url,
                install=record.install,
                checksum=_str_or_none(record.checksum),
                build=_str_or_none(record.build),
            ),
            local=Local(installed=installed, added=record.added),
        )


def _str_or_none(value: str) -> str | None:
    return value or None


def _tuple_or_none(values: list[str]) -> tuple[str, ...] | None:
    return tuple(values) if values else None


# =========================================================================
# 线上记录
# =========================================================================


@dataclass
class PackageRecord:
    """数据库中存储的包记录（扁平化，可选字段以空值表示）"""

    name: str
    version: str
    license: str
    url: str
    install: str
    repository: str = ""
    authors: list[str] = field(default_factory=list)
    description: str = ""
    dependencies: list[str] = field(default_factory=list)
    build_dependencies: list[str] = field(default_factory=list)
    provides: str = ""
    checksum: str = ""
    build: str = ""
    installed: dict[str, str] = field(
        default_factory=lambda: {"kind": InstallKind.NOT_INSTALLED.value, "version": ""},
    )
    added: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageRecord:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})
