"""网络工具 — URL 校验与流式下载"""

from __future__ import annotations

import logging
import os
import urllib.error
import urllib.request
from pathlib import Path
from urllib.parse import urlparse

from mercurium.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMES = frozenset(("http", "https"))
CHUNK_SIZE = 64 * 1024
USER_AGENT = "mercurium"


def validate_url_scheme(
    url: str, *, context: str = "", allowed: frozenset[str] = DEFAULT_SCHEMES,
) -> None:
    """校验 URL 协议在白名单内，防止非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in allowed:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 {'/'.join(sorted(allowed))}: {url}"
        )


def download_file(url: str, dest: Path, *, timeout: float = 300) -> int:
    """流式下载 url 到 dest，返回写入字节数

    先写入同目录的 .part 文件，完成后原子替换目标文件；
    响应体短于 Content-Length 时抛 ContentTooShortError。
    任何失败都会清理临时文件并抛出 OSError（HTTP 错误为其子类 URLError/HTTPError），
    连接层协议错误（如分块传输中断）抛 http.client.HTTPException。
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".part")
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    written = 0
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp, open(tmp, "wb") as f:  # nosec B310
            status = getattr(resp, "status", None)
            if status is not None and not 200 <= status < 300:
                raise urllib.error.HTTPError(url, status, f"HTTP {status}", resp.headers, None)
            expected = resp.headers.get("Content-Length")
            for chunk in iter(lambda: resp.read(CHUNK_SIZE), b""):
                f.write(chunk)
                written += len(chunk)
            if expected is not None and expected.isdigit() and written < int(expected):
                raise urllib.error.ContentTooShortError(
                    f"下载不完整: {url} ({written}/{expected} 字节)", None,
                )
        os.replace(tmp, dest)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("已下载 %s -> %s (%d 字节)", url, dest, written)
    return written
