"""包数据库 - 基于 SQLite 的事务型键值存储

两张逻辑表（均以包名为键，值为 JSON 序列化的 PackageRecord）:
  - all_pkgs:       已知的全部包（目录）
  - installed_pkgs: 已安装子集，是目录中已安装条目的镜像

所有写操作都在独立事务中完成：要么全部提交，要么全部回滚。
多键读取通过 get_many 在同一事务内批量完成。
需要跨表原子更新时使用 transaction() 获取 StoreTransaction。

用法:
    store = PackageStore(config.packages_dir / "packages.db")
    store.init_tables()
    pkg = store.get(Table.ALL, "ripgrep")

    with store.transaction() as txn:
        entry = txn.modify(Table.ALL, "ripgrep", mark_installed)
        sync_installed(txn, "ripgrep", entry)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from mercurium.core.exceptions import StorageError
from mercurium.core.models import Package, PackageRecord

logger = logging.getLogger(__name__)

DB_FILENAME = "packages.db"

Modifier = Callable[[Package | None], Package | None]


class Table(str, Enum):
    ALL = "all_pkgs"
    INSTALLED = "installed_pkgs"


def _encode(package: Package) -> str:
    return json.dumps(package.to_record().to_dict(), ensure_ascii=False)


def _decode(name: str, raw: str) -> Package:
    try:
        return Package.from_record(PackageRecord.from_dict(json.loads(raw)))
    except (ValueError, TypeError, KeyError) as e:
        raise StorageError(f"包记录已损坏: {name} - {e}") from e


class StoreTransaction:
    """单个 SQLite 事务内的表操作（由 PackageStore.transaction 创建）"""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def init_table(self, table: Table) -> None:
        self._conn.execute(
            f"CREATE TABLE IF NOT EXISTS {Table(table).value} "
            "(name TEXT PRIMARY KEY, record TEXT NOT NULL)"
        )

    def get(self, table: Table, name: str) -> Package | None:
        row = self._conn.execute(
            f"SELECT record FROM {Table(table).value} WHERE name = ?", (name,),
        ).fetchone()
        return _decode(name, row[0]) if row else None

    def get_many(self, table: Table, names: Iterable[str]) -> list[Package | None]:
        return [self.get(table, name) for name in names]

    def set(self, table: Table, name: str, package: Package) -> None:
        self._conn.execute(
            f"INSERT INTO {Table(table).value} (name, record) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET record = excluded.record",
            (name, _encode(package)),
        )

    def remove(self, table: Table, name: str) -> Package | None:
        previous = self.get(table, name)
        if previous is not None:
            self._conn.execute(
                f"DELETE FROM {Table(table).value} WHERE name = ?", (name,),
            )
        return previous

    def modify(self, table: Table, name: str, func: Modifier) -> Package | None:
        """读-改-写: func 返回包则写入，返回 None 则删除该键"""
        current = self.get(table, name)
        updated = func(current)
        if updated is None:
            if current is not None:
                self.remove(table, name)
            return None
        self.set(table, name, updated)
        return updated

    def items(self, table: Table) -> list[tuple[str, Package]]:
        rows = self._conn.execute(
            f"SELECT name, record FROM {Table(table).value} ORDER BY name",
        ).fetchall()
        return [(name, _decode(name, raw)) for name, raw in rows]


def sync_installed(txn: StoreTransaction, name: str, entry: Package | None) -> None:
    """按目录条目刷新已安装镜像表：已安装则写入，否则删除"""
    if entry is not None and entry.local.installed.is_installed:
        txn.set(Table.INSTALLED, name, entry)
    else:
        txn.remove(Table.INSTALLED, name)


class PackageStore:
    """包数据库 - 每次调用独立事务，失败统一转换为 StorageError"""

    def __init__(self, path: str | Path, timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: 事务边界由 BEGIN/COMMIT 显式控制
        return sqlite3.connect(str(self.path), timeout=self.timeout, isolation_level=None)

    @contextmanager
    def transaction(self, *, write: bool = True) -> Iterator[StoreTransaction]:
        """开启事务；正常退出提交，任何异常回滚后继续抛出"""
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"无法打开包数据库 {self.path}: {e}") from e
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield StoreTransaction(conn)
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"包数据库操作失败: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # 表初始化
    # ------------------------------------------------------------------

    def init_table(self, table: Table) -> None:
        """创建表（已存在时无操作）"""
        with self.transaction() as txn:
            txn.init_table(table)

    def init_tables(self) -> None:
        with self.transaction() as txn:
            for table in Table:
                txn.init_table(table)
        logger.debug("包数据库就绪: %s", self.path)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def get(self, table: Table, name: str) -> Package | None:
        with self.transaction(write=False) as txn:
            return txn.get(table, name)

    def get_many(self, table: Table, names: Iterable[str]) -> list[Package | None]:
        """批量读取，保持输入顺序，未命中位置为 None"""
        with self.transaction(write=False) as txn:
            return txn.get_many(table, names)

    def contains(self, table: Table, name: str) -> bool:
        return self.get(table, name) is not None

    def items(self, table: Table) -> list[tuple[str, Package]]:
        """按名称排序返回全部条目"""
        with self.transaction(write=False) as txn:
            return txn.items(table)

    def names(self, table: Table) -> list[str]:
        return [name for name, _ in self.items(table)]

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def set(self, table: Table, name: str, package: Package) -> None:
        with self.transaction() as txn:
            txn.set(table, name, package)

    def set_many(self, table: Table, entries: Iterable[tuple[str, Package]]) -> None:
        with self.transaction() as txn:
            for name, package in entries:
                txn.set(table, name, package)

    def remove(self, table: Table, name: str) -> Package | None:
        """删除并返回旧值"""
        with self.transaction() as txn:
            return txn.remove(table, name)

    def remove_many(self, table: Table, names: Iterable[str]) -> list[Package | None]:
        with self.transaction() as txn:
            return [txn.remove(table, name) for name in names]

    def modify(self, table: Table, name: str, func: Modifier) -> Package | None:
        """原子读-改-写，返回写入后的值（删除时为 None）"""
        with self.transaction() as txn:
            return txn.modify(table, name, func)
