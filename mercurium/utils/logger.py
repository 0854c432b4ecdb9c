"""mercurium 日志配置

安装流水线的日志记录可携带包上下文（package / stage），
文本格式渲染为 `[name/stage]` 前缀，JSON 格式输出为独立字段。

    log = package_logger(logger, "ripgrep", "build")
    log.warning("构建失败")    # ... [ripgrep/build] 构建失败
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

CONTEXT_FIELDS = ("package", "stage")
TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(context)s%(message)s"


def _context(record: logging.LogRecord) -> dict[str, str]:
    return {k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None)}


class PackageLogAdapter(logging.LoggerAdapter):
    """为每条记录附加 package / stage 字段"""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}  # type: ignore[dict-item]
        return msg, kwargs


def package_logger(logger: logging.Logger, package: str, stage: str = "") -> PackageLogAdapter:
    return PackageLogAdapter(logger, {"package": package, "stage": stage})


class TextFormatter(logging.Formatter):
    """人类可读格式；带包上下文的记录加 [name/stage] 前缀"""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        ctx = _context(record)
        record.context = f"[{'/'.join(ctx.values())}] " if ctx else ""
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """每条记录一行 JSON: timestamp, level, logger, [package, stage], message[, exception]"""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            **_context(record),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """配置根日志器: 输出到 stderr（stdout 留给命令输出），替换已有 handlers"""
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """清理根日志器的全部 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
