"""安装流水线

按阶段处理整个工作集（每个阶段处理完全部包后才进入下一阶段）:

  1. filter      过滤已安装且版本不低于候选的包
  2. confirm     用户确认
  3. download    并发下载（全部结束后才继续）
  4. checksum    SHA-512 校验
  5. extract     解压到独立构建目录
  6. build       执行构建脚本（可选，顺序执行）
  7. install     执行安装脚本（顺序执行）
  8. write_back  逐包事务写回安装状态，并刷新已安装镜像表

失败策略（Config.abort_on_failure）:
  - True:  任一阶段出现失败，完成当前阶段后停止，不再进入后续阶段
  - False: 失败的包从工作集中剔除，其余包继续
  无论哪种策略，已成功安装的包都会写回数据库。

进度: 可选的 progress 回调逐包接收一行文本（下载完成 / 下载失败 / 构建 / 安装）。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from mercurium.core.exceptions import (
    BuildFailedError,
    InstallFailedError,
    MercuriumError,
    PackageNotInstalledError,
    PipelineError,
)
from mercurium.core.config import Config
from mercurium.core.fetcher import DownloadResult, SourceFetcher
from mercurium.core.models import InstallState, Local, Package
from mercurium.core.payload import Payload, PayloadPackage
from mercurium.core.store import PackageStore, Table, sync_installed
from mercurium.utils.logger import package_logger
from mercurium.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[list[str]], bool]
ProgressFn = Callable[[str], None]

_STDERR_TAIL = 500


@dataclass
class PackageFailure:
    """归属于单个包的失败"""

    name: str
    stage: str
    error: MercuriumError

    def __str__(self) -> str:
        return f"{self.name} [{self.stage}] {self.error}"


@dataclass
class InstallReport:
    """一次流水线执行的结果"""

    status: str = "completed"  # nothing_to_do / aborted / completed / failed
    candidates: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)
    failures: list[PackageFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return self.failures[0].error.exit_code if self.failures else 0


class InstallPipeline:
    """工作集 → 下载 / 校验 / 解压 / 构建 / 安装 / 写回"""

    def __init__(
        self,
        config: Config,
        store: PackageStore,
        executor: CommandExecutor,
        confirm: ConfirmFn | None = None,
        fetcher: SourceFetcher | None = None,
        progress: ProgressFn | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.executor = executor
        self.confirm = confirm or (lambda names: True)
        self.progress = progress or (lambda message: None)
        self.fetcher = fetcher or SourceFetcher(
            config.sources_dir, config.builds_dir, timeout=config.download_timeout,
        )
        self.binaries_dir = Path(config.binaries_dir)
        self.abort_on_failure = config.abort_on_failure

    # ------------------------------------------------------------------
    # 入口
    # ------------------------------------------------------------------

    def run(self, payload: Payload) -> InstallReport:
        report = InstallReport()

        self.filter_stale(payload)
        if not len(payload):
            logger.info("所有包均已安装且为最新")
            report.status = "nothing_to_do"
            return report

        report.candidates = payload.names()
        if not self.confirm(payload.names()):
            logger.info("用户取消安装")
            report.status = "aborted"
            return report

        pending = payload.packages()
        installed: list[PayloadPackage] = []
        try:
            tarballs = self._download(pending, report)
            pending = self._keep(pending, tarballs)
            if self._should_stop(report):
                return self._finish(report)

            self._stage(pending, "checksum", report, lambda p: self.fetcher.verify(p.definition, tarballs[p.name]))
            pending = [p for p in pending if not self._failed(p, report)]
            if self._should_stop(report):
                return self._finish(report)

            workdirs: dict[str, Path] = {}

            def _extract(p: PayloadPackage) -> None:
                workdirs[p.name] = self.fetcher.extract(p.definition, tarballs[p.name])

            self._stage(pending, "extract", report, _extract)
            pending = [p for p in pending if not self._failed(p, report)]
            if self._should_stop(report):
                return self._finish(report)

            self._stage(pending, "build", report, lambda p: self.build(p, workdirs[p.name]))
            pending = [p for p in pending if not self._failed(p, report)]
            if self._should_stop(report):
                return self._finish(report)

            self.binaries_dir.mkdir(parents=True, exist_ok=True)
            for pkg in pending:
                try:
                    self.install(pkg, workdirs[pkg.name])
                except PipelineError as e:
                    report.failures.append(PackageFailure(pkg.name, "install", e))
                    package_logger(logger, pkg.name, "install").error("%s", e)
                    if self.abort_on_failure:
                        break
                    continue
                installed.append(pkg)
        finally:
            # 已安装的包始终写回，存储错误直接上抛
            for pkg in installed:
                self.write_back(pkg)
                report.installed.append(pkg.name)

        return self._finish(report)

    # ------------------------------------------------------------------
    # 阶段
    # ------------------------------------------------------------------

    def filter_stale(self, payload: Payload) -> None:
        """剔除已安装版本 >= 候选版本的包"""
        names = payload.names()
        current = self.store.get_many(Table.INSTALLED, names)
        for name, pkg in zip(names, current):
            if pkg is None:
                continue
            installed_version = pkg.local.installed.version
            if installed_version is None:
                installed_version = pkg.info.version
            candidate = payload.get(name)
            if candidate is not None and installed_version >= candidate.definition.version:
                logger.info("跳过 %s: 已安装 %s", name, installed_version)
                payload.discard(name)

    def _download(
        self, pending: list[PayloadPackage], report: InstallReport,
    ) -> dict[str, Path]:
        results = self.fetcher.download_all(
            [p.definition for p in pending], on_done=self._download_done,
        )
        tarballs: dict[str, Path] = {}
        for pkg in pending:
            result = results[pkg.name]
            if isinstance(result, Path):
                tarballs[pkg.name] = result
            else:
                report.failures.append(PackageFailure(pkg.name, "download", result))
        return tarballs

    def build(self, pkg: PayloadPackage, workdir: Path) -> None:
        cmd = pkg.definition.source.build
        if not cmd:
            return
        package_logger(logger, pkg.name, "build").info("执行构建脚本")
        self.progress(f"构建 {pkg.name}")
        result = self.executor.execute(
            cmd, cwd=str(workdir), env=self._env(source=workdir),
        )
        if not result.success:
            raise BuildFailedError(
                pkg.name, f"构建失败 (rc={result.returncode}): {result.stderr[-_STDERR_TAIL:]}",
            )

    def install(self, pkg: PayloadPackage, workdir: Path) -> None:
        package_logger(logger, pkg.name, "install").info("执行安装脚本")
        self.progress(f"安装 {pkg.name}")
        result = self.executor.execute(
            pkg.definition.source.install,
            cwd=str(workdir),
            env=self._env(source=workdir, binary=self.binaries_dir),
        )
        if not result.success:
            raise InstallFailedError(
                pkg.name, f"安装失败 (rc={result.returncode}): {result.stderr[-_STDERR_TAIL:]}",
            )

    def write_back(self, pkg: PayloadPackage) -> Package:
        """合并新的安装状态到目录，并在同一事务内刷新已安装镜像表"""
        definition = pkg.definition
        if pkg.manually_selected:
            new_state = InstallState.manually(definition.version)
        else:
            new_state = InstallState.automatically(definition.version)

        def _merge(current: Package | None) -> Package:
            if current is None:
                local = Local(installed=new_state, added=pkg.manually_added)
            else:
                local = Local(
                    installed=current.local.installed.update(new_state),
                    added=current.local.added or pkg.manually_added,
                )
            return Package.from_definition(definition, local)

        with self.store.transaction() as txn:
            entry = txn.modify(Table.ALL, pkg.name, _merge)
            sync_installed(txn, pkg.name, entry)
        package_logger(logger, pkg.name, "write_back").info(
            "已记录: %s", entry.local.installed,  # type: ignore[union-attr]
        )
        return entry  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # 辅助
    # ------------------------------------------------------------------

    def _stage(
        self,
        pending: list[PayloadPackage],
        stage: str,
        report: InstallReport,
        action: Callable[[PayloadPackage], None],
    ) -> None:
        for pkg in pending:
            try:
                action(pkg)
            except PipelineError as e:
                package_logger(logger, pkg.name, stage).error("%s", e)
                report.failures.append(PackageFailure(pkg.name, stage, e))

    def _download_done(self, name: str, result: DownloadResult) -> None:
        if isinstance(result, Path):
            self.progress(f"下载完成 {name}")
        else:
            self.progress(f"下载失败 {name}")

    @staticmethod
    def _failed(pkg: PayloadPackage, report: InstallReport) -> bool:
        return any(f.name == pkg.name for f in report.failures)

    @staticmethod
    def _keep(pending: list[PayloadPackage], done: dict[str, Path]) -> list[PayloadPackage]:
        return [p for p in pending if p.name in done]

    def _should_stop(self, report: InstallReport) -> bool:
        return self.abort_on_failure and bool(report.failures)

    @staticmethod
    def _finish(report: InstallReport) -> InstallReport:
        report.status = "failed" if report.failures else "completed"
        return report

    @staticmethod
    def _env(**bindings: Path) -> dict[str, str]:
        env = dict(os.environ)
        env.update({k: str(v) for k, v in bindings.items()})
        return env


def uninstall(store: PackageStore, names: list[str]) -> list[Package]:
    """标记为未安装并移出已安装表（安装脚本放置的文件不会被删除）"""
    removed: list[Package] = []
    for name in names:
        with store.transaction() as txn:
            current = txn.get(Table.ALL, name)
            if current is None or not current.local.installed.is_installed:
                raise PackageNotInstalledError(name)
            entry = txn.modify(
                Table.ALL, name,
                lambda pkg: pkg.with_local(Local(  # type: ignore[union-attr]
                    installed=pkg.local.installed.update(InstallState.not_installed()),  # type: ignore[union-attr]
                    added=pkg.local.added,  # type: ignore[union-attr]
                )),
            )
            sync_installed(txn, name, entry)
        logger.info("已卸载: %s", name)
        removed.append(entry)  # type: ignore[arg-type]
    return removed


__all__ = [
    "InstallPipeline",
    "InstallReport",
    "PackageFailure",
    "uninstall",
]
