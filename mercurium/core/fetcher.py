"""源码包拉取器

职责:
- 计算源码包与构建目录的确定性路径（由包名 + 版本决定）
- 并发下载全部源码包，逐包记录成功/失败
- SHA-512 校验
- gzip + tar 解压
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import tarfile
import urllib.error
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from mercurium.core.exceptions import (
    ChecksumMismatchError,
    ExtractionError,
    NetworkError,
    ValidationError,
)
from mercurium.core.models import PackageDefinition
from mercurium.utils.net import download_file, validate_url_scheme

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset(("http", "https", "file"))

DownloadResult = Path | NetworkError
DoneFn = Callable[[str, DownloadResult], None]


def _contained(base: Path, leaf: str) -> Path:
    """base / leaf，解析后必须仍位于 base 之下"""
    path = base / leaf
    if not path.resolve().is_relative_to(base.resolve()):
        raise ValidationError(f"路径越出工作目录 {base}: {leaf}")
    return path


class SourceFetcher:
    """源码包下载 / 校验 / 解压"""

    def __init__(
        self,
        sources_dir: Path,
        builds_dir: Path,
        timeout: float = 300,
    ) -> None:
        self.sources_dir = Path(sources_dir)
        self.builds_dir = Path(builds_dir)
        self.timeout = timeout

    # ------------------------------------------------------------------
    # 路径
    # ------------------------------------------------------------------

    def tarball_path(self, definition: PackageDefinition) -> Path:
        return _contained(self.sources_dir, f"{definition.name}_{definition.version}.tar.gz")

    def build_path(self, definition: PackageDefinition) -> Path:
        return _contained(self.builds_dir, f"{definition.name}_{definition.version}")

    # ------------------------------------------------------------------
    # 下载
    # ------------------------------------------------------------------

    def download(self, definition: PackageDefinition) -> Path:
        """下载单个源码包，失败抛 NetworkError"""
        url = definition.source.url
        try:
            validate_url_scheme(url, context=f"source {definition.name}", allowed=ALLOWED_SCHEMES)
            dest = self.tarball_path(definition)
        except ValidationError as e:
            raise NetworkError(definition.name, e.message) from e

        logger.info("下载 %s: %s", definition.name, url)
        try:
            download_file(url, dest, timeout=self.timeout)
        except (urllib.error.URLError, OSError, ValueError, http.client.HTTPException) as e:
            raise NetworkError(definition.name, f"下载失败: {url} - {e}") from e
        return dest

    def download_all(
        self, definitions: list[PackageDefinition], on_done: DoneFn | None = None,
    ) -> dict[str, DownloadResult]:
        """并发下载全部源码包，等待全部完成后返回 {name: path | error}

        单个包失败不影响其它下载；并发数等于包数量。
        on_done 在每个包下载结束（成功或失败）时于调用线程中回调，用于逐包进度输出。
        """
        if not definitions:
            return {}
        self.sources_dir.mkdir(parents=True, exist_ok=True)

        results: dict[str, DownloadResult] = {}
        with ThreadPoolExecutor(max_workers=len(definitions)) as executor:
            futures = {executor.submit(self.download, d): d for d in definitions}
            for future in as_completed(futures):
                name = futures[future].name
                try:
                    results[name] = future.result()
                except NetworkError as e:
                    logger.error("下载失败: %s", e)
                    results[name] = e
                if on_done is not None:
                    on_done(name, results[name])

        failed = [n for n, r in results.items() if isinstance(r, NetworkError)]
        logger.info(
            "下载汇总: %d 成功, %d 失败%s",
            len(results) - len(failed), len(failed),
            f" ({', '.join(failed)})" if failed else "",
        )
        return results

    # ------------------------------------------------------------------
    # 校验
    # ------------------------------------------------------------------

    @staticmethod
    def sha512_of(path: Path) -> bytes:
        sha512 = hashlib.sha512()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                sha512.update(chunk)
        return sha512.digest()

    def verify(self, definition: PackageDefinition, path: Path) -> None:
        """校验 SHA-512；未声明校验和时跳过"""
        expected_hex = definition.source.checksum
        if not expected_hex:
            logger.info("  %s 未声明校验和，跳过校验", definition.name)
            return
        try:
            expected = bytes.fromhex(expected_hex)
        except ValueError as e:
            raise ChecksumMismatchError(definition.name, f"校验和格式无效: {expected_hex}") from e

        actual = self.sha512_of(path)
        if actual != expected:
            raise ChecksumMismatchError(
                definition.name,
                f"校验和不匹配 {path.name}: 期望 {expected_hex}, 实际 {actual.hex()}",
            )
        logger.info("  校验和通过: %s", path.name)

    # ------------------------------------------------------------------
    # 解压
    # ------------------------------------------------------------------

    def extract(self, definition: PackageDefinition, path: Path) -> Path:
        """解压到该包该版本独立的构建目录，返回目录路径"""
        try:
            dest = self.build_path(definition)
        except ValidationError as e:
            raise ExtractionError(definition.name, e.message) from e
        try:
            dest.mkdir(parents=True, exist_ok=True)
            with tarfile.open(path, "r:gz") as tf:
                tf.extractall(path=str(dest), filter="data")
        except (OSError, tarfile.TarError) as e:
            raise ExtractionError(definition.name, f"解压失败 {path}: {e}") from e
        logger.info("  已解压: %s -> %s", path.name, dest)
        return dest
