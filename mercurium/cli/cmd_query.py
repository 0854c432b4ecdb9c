"""CLI — 搜索与列表"""

from __future__ import annotations

import click

from mercurium.cli import _format_package
from mercurium.core.catalog import list_packages, search
from mercurium.services.container import ServiceContainer


def register(group: click.Group) -> None:
    group.add_command(search_cmd)
    group.add_command(list_cmd)


@click.command(name="search")
@click.argument("query")
@click.option("--installed", "-i", is_flag=True, help="只搜索已安装的包")
@click.pass_obj
def search_cmd(container: ServiceContainer, query: str, installed: bool) -> None:
    """按名称模糊搜索包"""
    results = search(container.store, query, installed_only=installed)
    if not results:
        click.echo("没有匹配的包。")
        return
    for pkg in results:
        click.echo(_format_package(pkg))


@click.command(name="list")
@click.option("--all", "-a", "all_packages", is_flag=True, help="列出整个目录")
@click.pass_obj
def list_cmd(container: ServiceContainer, all_packages: bool) -> None:
    """列出已安装的包"""
    packages = list_packages(container.store, all_packages=all_packages)
    if not packages:
        click.echo("目录为空。" if all_packages else "没有已安装的包。")
        return
    for pkg in packages:
        click.echo(_format_package(pkg))
