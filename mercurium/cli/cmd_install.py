"""CLI — 安装 / 添加 / 卸载 / 更新"""

from __future__ import annotations

import click

from mercurium.cli import _confirm
from mercurium.core.installer import InstallReport, uninstall
from mercurium.core.payload import Payload
from mercurium.core.pkgfile import add_to_catalog, load_definition
from mercurium.core.store import Table
from mercurium.services.container import ServiceContainer


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(add)
    group.add_command(remove)
    group.add_command(update)


def _show_report(ctx: click.Context, report: InstallReport) -> None:
    if report.status == "nothing_to_do":
        click.echo("所有包均已安装且为最新。")
        return
    if report.status == "aborted":
        click.echo("已取消。")
        return
    for name in report.installed:
        click.echo(f"已安装: {name}")
    if not report.success:
        for failure in report.failures:
            click.echo(f"失败: {failure.name} [{failure.stage}] {failure.error.message}", err=True)
        ctx.exit(report.exit_code)


@click.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--local", "-l", is_flag=True, help="参数为本地定义文件路径")
@click.option("--yes", "-y", is_flag=True, help="跳过确认")
@click.pass_context
def install(ctx: click.Context, names: tuple[str, ...], local: bool, yes: bool) -> None:
    """安装包（连同一层依赖）"""
    container: ServiceContainer = ctx.obj
    payload = Payload(container.store)
    for name in names:
        if local:
            payload.add_by_definition(load_definition(name))
        else:
            payload.add_by_name(name)
    report = container.pipeline(_confirm(yes), progress=click.echo).run(payload)
    _show_report(ctx, report)


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.pass_obj
def add(container: ServiceContainer, paths: tuple[str, ...]) -> None:
    """将定义文件加入目录（不安装）"""
    for path in paths:
        pkg = add_to_catalog(container.store, load_definition(path))
        click.echo(f"已添加: {pkg.name} {pkg.info.version}")


@click.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def remove(container: ServiceContainer, names: tuple[str, ...]) -> None:
    """标记包为未安装（不删除安装脚本放置的文件）"""
    for pkg in uninstall(container.store, list(names)):
        click.echo(f"已卸载: {pkg.name}")


@click.command()
@click.argument("names", nargs=-1)
@click.option("--yes", "-y", is_flag=True, help="跳过确认")
@click.pass_context
def update(ctx: click.Context, names: tuple[str, ...], yes: bool) -> None:
    """将已安装的包更新到目录中的版本（不指定则更新全部）"""
    container: ServiceContainer = ctx.obj
    targets = list(names) or container.store.names(Table.INSTALLED)
    if not targets:
        click.echo("没有已安装的包。")
        return
    payload = Payload(container.store)
    for name in targets:
        payload.add_for_update(name)
    report = container.pipeline(_confirm(yes), progress=click.echo).run(payload)
    _show_report(ctx, report)
