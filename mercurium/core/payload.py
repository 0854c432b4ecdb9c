"""依赖展开 - 构建一次安装的工作集（Payload）

职责:
- 按包名或定义文件加入待安装的包
- 向目录批量查询声明的依赖（只展开一层）
- 记录来源: 是否被显式请求（manually_selected），是否来自定义文件（manually_added）

工作集以包名为键、保持插入顺序；依赖先于依赖它的包插入，
因此插入顺序即可作为一层依赖下的构建顺序。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, replace

from mercurium.core.exceptions import (
    DependencyNotFoundError,
    PackageNotFoundError,
    PackageNotInstalledError,
)
from mercurium.core.models import InstallKind, PackageDefinition
from mercurium.core.store import PackageStore, Table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayloadPackage:
    """工作集中的一个包及其来源标记"""

    definition: PackageDefinition
    manually_selected: bool
    manually_added: bool

    @property
    def name(self) -> str:
        return self.definition.name


class Payload:
    """去重、带来源标记的待安装工作集"""

    def __init__(self, store: PackageStore) -> None:
        self.store = store
        self._packages: dict[str, PayloadPackage] = {}

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[PayloadPackage]:
        return iter(list(self._packages.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def get(self, name: str) -> PayloadPackage | None:
        return self._packages.get(name)

    def names(self) -> list[str]:
        return list(self._packages)

    def packages(self) -> list[PayloadPackage]:
        return list(self._packages.values())

    def discard(self, name: str) -> None:
        self._packages.pop(name, None)

    def _insert(self, entry: PayloadPackage) -> None:
        """同名包只保留首次插入的定义，来源标记取并集"""
        existing = self._packages.get(entry.name)
        if existing is None:
            self._packages[entry.name] = entry
            return
        if existing.definition != entry.definition:
            logger.warning(
                "工作集中 %s 的定义冲突 (%s vs %s)，保留先加入的版本",
                entry.name, existing.definition.version, entry.definition.version,
            )
        self._packages[entry.name] = replace(
            existing,
            manually_selected=existing.manually_selected or entry.manually_selected,
            manually_added=existing.manually_added or entry.manually_added,
        )

    def _add_dependencies(self, definition: PackageDefinition) -> None:
        deps = definition.info.dependencies or ()
        if not deps:
            return
        found = self.store.get_many(Table.ALL, deps)
        for dep_name, dep in zip(deps, found):
            if dep is None:
                raise DependencyNotFoundError(dep_name, package=definition.name)
        for dep in found:
            self._insert(PayloadPackage(
                definition=dep.definition,  # type: ignore[union-attr]
                manually_selected=False,
                manually_added=False,
            ))
        logger.debug("%s 的依赖已加入: %s", definition.name, ", ".join(deps))

    def add_by_name(self, name: str) -> None:
        """按包名从目录加入（标记为手动选择）"""
        pkg = self.store.get(Table.ALL, name)
        if pkg is None:
            raise PackageNotFoundError(name)
        self._add_dependencies(pkg.definition)
        self._insert(PayloadPackage(
            definition=pkg.definition, manually_selected=True, manually_added=False,
        ))

    def add_by_definition(self, definition: PackageDefinition) -> None:
        """按定义文件加入（标记为手动选择 + 手动添加）"""
        self._add_dependencies(definition)
        self._insert(PayloadPackage(
            definition=definition, manually_selected=True, manually_added=True,
        ))

    def add_for_update(self, name: str) -> None:
        """更新已安装的包：使用目录中的定义，保留当前的安装来源"""
        pkg = self.store.get(Table.ALL, name)
        if pkg is None or not pkg.local.installed.is_installed:
            raise PackageNotInstalledError(name)
        self._add_dependencies(pkg.definition)
        self._insert(PayloadPackage(
            definition=pkg.definition,
            manually_selected=pkg.local.installed.kind is InstallKind.MANUALLY,
            manually_added=pkg.local.added,
        ))
