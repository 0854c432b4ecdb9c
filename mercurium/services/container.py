"""服务容器 — 统一依赖注入

CLI 启动时根据配置构造一个容器，并显式传递给各命令；不设全局单例。

依赖关系图（→ 表示依赖）:
  pipeline → store, executor, fetcher

用法:
    cfg = Config.from_file("config.yml")
    container = ServiceContainer(cfg)
    store = container.store                  # 懒加载，首次访问时建表
    pipeline = container.pipeline(confirm, progress=click.echo)  # 每次调用新建
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mercurium.core.config import Config
    from mercurium.core.fetcher import SourceFetcher
    from mercurium.core.installer import ConfirmFn, InstallPipeline, ProgressFn
    from mercurium.core.store import PackageStore
    from mercurium.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器 — 每个实例持有一组共享的存储与执行组件"""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._instances: dict[str, object] = {}

    @property
    def config(self) -> Config:
        return self._config

    @property
    def store(self) -> PackageStore:
        if "store" not in self._instances:
            from mercurium.core.store import PackageStore
            self._config.packages_dir.mkdir(parents=True, exist_ok=True)
            store = PackageStore(self._config.database_path)
            store.init_tables()
            logger.debug("包数据库: %s", self._config.database_path)
            self._instances["store"] = store
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def executor(self) -> CommandExecutor:
        if "executor" not in self._instances:
            from mercurium.utils.shell import LocalExecutor
            self._instances["executor"] = LocalExecutor()
        return self._instances["executor"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> SourceFetcher:
        if "fetcher" not in self._instances:
            from mercurium.core.fetcher import SourceFetcher
            self._instances["fetcher"] = SourceFetcher(
                sources_dir=self._config.sources_dir,
                builds_dir=self._config.builds_dir,
                timeout=self._config.download_timeout,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    def pipeline(
        self, confirm: ConfirmFn | None = None, progress: ProgressFn | None = None,
    ) -> InstallPipeline:
        from mercurium.core.installer import InstallPipeline
        return InstallPipeline(
            self._config, self.store, self.executor,
            confirm=confirm, fetcher=self.fetcher, progress=progress,
        )
