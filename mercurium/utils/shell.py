"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，安装流水线只依赖协议，
测试时可注入 mock 实现，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "/bin/sh"


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 — 命令字符串 + 环境变量 → 退出码 + 输出"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


# =========================================================================
# 默认实现: 本地 Shell 执行器
# =========================================================================

class LocalExecutor:
    """本地 Shell 命令执行器

    字符串命令交给 `sh -c` 解释（构建/安装脚本依赖 shell 展开 ${source} 等变量），
    列表命令直接执行。
    """

    def __init__(self, shell: str = DEFAULT_SHELL) -> None:
        self.shell = shell

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = [self.shell, "-c", cmd] if isinstance(cmd, str) else cmd
        logger.debug("执行命令: %s (cwd=%s)", cmd, cwd)
        r = subprocess.run(
            args, capture_output=True, text=True, encoding="utf-8", errors="replace",
            cwd=cwd, env=env, check=False, timeout=timeout,
        )
        if r.stderr:
            logger.warning("命令 stderr: %s", r.stderr.rstrip())
        if r.stdout:
            logger.debug("命令 stdout: %s", r.stdout.rstrip())
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )
