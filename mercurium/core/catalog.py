"""目录查询: 搜索与列表"""

from __future__ import annotations

import difflib
import logging

from mercurium.core.models import Package
from mercurium.core.store import PackageStore, Table

logger = logging.getLogger(__name__)

_FUZZY_CUTOFF = 0.6


def list_packages(store: PackageStore, all_packages: bool = False) -> list[Package]:
    """已安装的包（all_packages=True 时为整个目录），按名称排序"""
    table = Table.ALL if all_packages else Table.INSTALLED
    return [pkg for _, pkg in store.items(table)]


def search(
    store: PackageStore, query: str, installed_only: bool = False,
) -> list[Package]:
    """按名称模糊搜索（忽略大小写）

    先取包含查询串的名称（完全相等 > 前缀 > 子串），
    再追加 difflib 近似匹配，按相似度降序。
    """
    table = Table.INSTALLED if installed_only else Table.ALL
    packages = dict(store.items(table))
    needle = query.strip().lower()
    if not needle:
        return []

    def _rank(name: str) -> tuple[int, float, str]:
        lowered = name.lower()
        if lowered == needle:
            tier = 0
        elif lowered.startswith(needle):
            tier = 1
        else:
            tier = 2
        ratio = difflib.SequenceMatcher(None, needle, lowered).ratio()
        return tier, -ratio, name

    direct = sorted((n for n in packages if needle in n.lower()), key=_rank)

    lowered_names = {n.lower(): n for n in packages if n not in direct}
    close = difflib.get_close_matches(
        needle, list(lowered_names), n=len(lowered_names) or 1, cutoff=_FUZZY_CUTOFF,
    )
    fuzzy = [lowered_names[n] for n in close]

    logger.debug("搜索 %r: %d 个子串匹配, %d 个近似匹配", query, len(direct), len(fuzzy))
    return [packages[n] for n in direct + fuzzy]
