"""store.py 单元测试: 事务型键值存储"""

from __future__ import annotations

import sqlite3

import pytest
from semver import Version

from mercurium.core.exceptions import StorageError
from mercurium.core.models import InstallState, Local, Package
from mercurium.core.store import PackageStore, Table, sync_installed


def _pkg(make_definition, name: str, version: str = "1.0.0", installed: bool = False) -> Package:
    state = InstallState.manually(Version.parse(version)) if installed else InstallState.not_installed()
    return Package.from_definition(make_definition(name, version), Local(installed=state))


class TestTables:
    def test_init_idempotent(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a"))
        store.init_tables()
        store.init_table(Table.ALL)
        assert store.contains(Table.ALL, "a")

    def test_tables_independent(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a"))
        assert store.get(Table.INSTALLED, "a") is None


class TestReadWrite:
    def test_get_missing(self, store: PackageStore) -> None:
        assert store.get(Table.ALL, "nope") is None

    def test_set_then_get(self, store: PackageStore, make_definition) -> None:
        pkg = _pkg(make_definition, "ripgrep", "14.1.0")
        store.set(Table.ALL, "ripgrep", pkg)
        assert store.get(Table.ALL, "ripgrep") == pkg

    def test_set_overwrites(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a", "1.0.0"))
        store.set(Table.ALL, "a", _pkg(make_definition, "a", "2.0.0"))
        assert str(store.get(Table.ALL, "a").info.version) == "2.0.0"

    def test_get_many_preserves_order(self, store: PackageStore, make_definition) -> None:
        store.set_many(Table.ALL, [
            ("a", _pkg(make_definition, "a")),
            ("c", _pkg(make_definition, "c")),
        ])
        result = store.get_many(Table.ALL, ["c", "b", "a"])
        assert [p.name if p else None for p in result] == ["c", None, "a"]

    def test_remove_returns_previous(self, store: PackageStore, make_definition) -> None:
        pkg = _pkg(make_definition, "a")
        store.set(Table.ALL, "a", pkg)
        assert store.remove(Table.ALL, "a") == pkg
        assert store.remove(Table.ALL, "a") is None

    def test_remove_many(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a"))
        removed = store.remove_many(Table.ALL, ["a", "b"])
        assert removed[0] is not None and removed[1] is None
        assert store.names(Table.ALL) == []

    def test_items_sorted(self, store: PackageStore, make_definition) -> None:
        for name in ("zz", "aa", "mm"):
            store.set(Table.ALL, name, _pkg(make_definition, name))
        assert store.names(Table.ALL) == ["aa", "mm", "zz"]


class TestModify:
    def test_modify_existing(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a"))
        result = store.modify(
            Table.ALL, "a", lambda p: p.with_local(Local(added=True)),
        )
        assert result.local.added
        assert store.get(Table.ALL, "a").local.added

    def test_modify_absent_creates(self, store: PackageStore, make_definition) -> None:
        seen = []

        def func(current):
            seen.append(current)
            return _pkg(make_definition, "new")

        store.modify(Table.ALL, "new", func)
        assert seen == [None]
        assert store.contains(Table.ALL, "new")

    def test_modify_none_deletes(self, store: PackageStore, make_definition) -> None:
        store.set(Table.ALL, "a", _pkg(make_definition, "a"))
        assert store.modify(Table.ALL, "a", lambda p: None) is None
        assert not store.contains(Table.ALL, "a")


class TestTransaction:
    def test_rollback_on_error(self, store: PackageStore, make_definition) -> None:
        """事务内任一步失败，全部写入回滚"""
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.set(Table.ALL, "a", _pkg(make_definition, "a"))
                txn.set(Table.INSTALLED, "a", _pkg(make_definition, "a", installed=True))
                raise RuntimeError("boom")
        assert store.get(Table.ALL, "a") is None
        assert store.get(Table.INSTALLED, "a") is None

    def test_modifier_error_leaves_value(self, store: PackageStore, make_definition) -> None:
        pkg = _pkg(make_definition, "a")
        store.set(Table.ALL, "a", pkg)

        def bad(current):
            raise ValueError("bad modifier")

        with pytest.raises(ValueError):
            store.modify(Table.ALL, "a", bad)
        assert store.get(Table.ALL, "a") == pkg

    def test_sync_installed(self, store: PackageStore, make_definition) -> None:
        installed = _pkg(make_definition, "a", installed=True)
        with store.transaction() as txn:
            txn.set(Table.ALL, "a", installed)
            sync_installed(txn, "a", installed)
        assert store.get(Table.INSTALLED, "a") == installed

        with store.transaction() as txn:
            sync_installed(txn, "a", _pkg(make_definition, "a"))
        assert store.get(Table.INSTALLED, "a") is None


class TestErrors:
    def test_corrupted_record(self, store: PackageStore) -> None:
        conn = sqlite3.connect(str(store.path))
        conn.execute("INSERT INTO all_pkgs (name, record) VALUES (?, ?)", ("x", "{not json"))
        conn.commit()
        conn.close()
        with pytest.raises(StorageError, match="x"):
            store.get(Table.ALL, "x")

    def test_missing_table(self, tmp_path) -> None:
        s = PackageStore(tmp_path / "empty.db")
        with pytest.raises(StorageError):
            s.get(Table.ALL, "a")

    def test_unopenable_path(self, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        s = PackageStore(blocker / "sub" / "packages.db")
        with pytest.raises(StorageError):
            s.init_tables()
