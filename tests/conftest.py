"""公共测试夹具: 临时包数据库、包定义工厂、源码包工厂"""

from __future__ import annotations

import hashlib
import io
import tarfile
from pathlib import Path

import pytest
from semver import Version

from mercurium.core.config import Config
from mercurium.core.models import PackageDefinition, PackageInfo, Source
from mercurium.core.store import PackageStore

INSTALL_RECIPE = 'mkdir -p "${binary}/bin" && cp "${source}/bin/"* "${binary}/bin/"'


@pytest.fixture()
def store(tmp_path: Path) -> PackageStore:
    s = PackageStore(tmp_path / "db" / "packages.db")
    s.init_tables()
    return s


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    return Config(
        sources_dir=tmp_path / "sources",
        builds_dir=tmp_path / "builds",
        binaries_dir=tmp_path / "binaries",
        packages_dir=tmp_path / "packages",
    ).resolved()


@pytest.fixture()
def make_definition():
    """包定义工厂"""

    def _make(
        name: str,
        version: str = "1.0.0",
        *,
        dependencies: tuple[str, ...] | None = None,
        url: str | None = None,
        checksum: str | None = None,
        build: str | None = None,
        install: str = INSTALL_RECIPE,
        description: str | None = None,
    ) -> PackageDefinition:
        return PackageDefinition(
            info=PackageInfo(
                name=name,
                version=Version.parse(version),
                license="MIT",
                description=description,
                dependencies=dependencies,
            ),
            source=Source(
                url=url or f"file:///nonexistent/{name}-{version}.tar.gz",
                install=install,
                checksum=checksum,
                build=build,
            ),
        )

    return _make


@pytest.fixture()
def make_tarball(tmp_path: Path):
    """源码包工厂: 生成含 bin/<name> 的 tar.gz，返回 (file:// URL, SHA-512 十六进制)"""
    out_dir = tmp_path / "upstream"
    out_dir.mkdir(exist_ok=True)

    def _make(name: str, version: str = "1.0.0", files: dict[str, bytes] | None = None) -> tuple[str, str]:
        contents = files if files is not None else {f"bin/{name}": b"#!/bin/sh\necho " + name.encode() + b"\n"}
        path = out_dir / f"{name}-{version}.tar.gz"
        with tarfile.open(path, "w:gz") as tf:
            for arcname, data in contents.items():
                info = tarfile.TarInfo(arcname)
                info.size = len(data)
                info.mode = 0o755
                tf.addfile(info, io.BytesIO(data))
        digest = hashlib.sha512(path.read_bytes()).hexdigest()
        return path.as_uri(), digest

    return _make
