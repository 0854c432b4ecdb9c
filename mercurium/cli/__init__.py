"""mercurium 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
服务容器在 group 回调中构造，通过 click 上下文（ctx.obj）传给各命令。
"""

import os
from collections.abc import Callable
from typing import Any

import click

from mercurium import __version__
from mercurium.core.config import Config, default_config_path
from mercurium.core.exceptions import MercuriumError
from mercurium.services.container import ServiceContainer
from mercurium.utils.logger import setup_logging


class MercuriumGroup(click.Group):
    """在命令边界统一处理业务异常: 输出错误信息并以对应退出码退出"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except MercuriumError as e:
            click.echo(f"错误 [{e.code}]: {e.message}", err=True)
            ctx.exit(e.exit_code)


def _confirm(yes: bool) -> Callable[[list[str]], bool]:
    """构造安装前的确认回调"""

    def ask(names: list[str]) -> bool:
        click.echo("将安装以下包:")
        for name in names:
            click.echo(f"  {name}")
        if yes:
            return True
        return click.confirm("是否继续?", default=False)

    return ask


def _format_package(pkg: Any) -> str:
    desc = pkg.info.description or ""
    return f"  {pkg.name:20s} {str(pkg.info.version):12s} {str(pkg.local.installed):16s} {desc}".rstrip()


@click.group(cls=MercuriumGroup)
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="配置文件路径（默认 $MERCURIUM_CONFIG 或 XDG 配置目录）")
@click.option("--verbose", "-v", is_flag=True, help="输出调试日志")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """mercurium - 基于源码的轻量包管理器"""
    setup_logging(
        level="DEBUG" if verbose else os.getenv("MERCURIUM_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("MERCURIUM_LOG_JSON", "") == "1",
    )
    config = Config.from_file(config_path or default_config_path())
    config.ensure_dirs()
    ctx.obj = ServiceContainer(config)


# 注册各领域子命令
from mercurium.cli.cmd_install import register as _reg_install  # noqa: E402
from mercurium.cli.cmd_query import register as _reg_query  # noqa: E402

_reg_install(main)
_reg_query(main)
