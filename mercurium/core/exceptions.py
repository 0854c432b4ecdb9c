"""统一异常体系

所有业务异常继承 MercuriumError，替代散落的 ValueError / RuntimeError。
每个异常携带 code（机器可读）和 exit_code（sysexits 退出码），
CLI 层在最外层据此输出友好提示并退出，核心层从不直接调用 sys.exit。
"""

from __future__ import annotations


class MercuriumError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"
    exit_code: int = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(MercuriumError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"
    exit_code = 78  # EX_CONFIG


class ValidationError(MercuriumError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"
    exit_code = 64  # EX_USAGE


# =========================================================================
# 查找类
# =========================================================================

class NotFoundError(MercuriumError):
    """包或依赖不在目录中"""

    code = "NOT_FOUND"
    exit_code = 65  # EX_DATAERR


class PackageNotFoundError(NotFoundError):
    """请求的包不在目录中"""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, name: str) -> None:
        super().__init__(f"包 '{name}' 不存在")
        self.name = name


class DependencyNotFoundError(NotFoundError):
    """声明的依赖不在目录中"""

    code = "DEPENDENCY_NOT_FOUND"

    def __init__(self, dependency: str, package: str = "") -> None:
        owner = f"（{package} 的依赖）" if package else ""
        super().__init__(f"依赖 '{dependency}'{owner} 不存在")
        self.dependency = dependency
        self.package = package


class PackageNotInstalledError(NotFoundError):
    """包未安装，无法卸载或更新"""

    code = "PACKAGE_NOT_INSTALLED"

    def __init__(self, name: str) -> None:
        super().__init__(f"包 '{name}' 未安装")
        self.name = name


# =========================================================================
# 定义文件 / 存储
# =========================================================================

class InvalidDefinitionError(MercuriumError):
    """包定义文件解析失败或结构无效"""

    code = "INVALID_DEFINITION"
    exit_code = 65  # EX_DATAERR

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class StorageError(MercuriumError):
    """包数据库读写失败（IO、损坏、打开表失败）"""

    code = "STORAGE_ERROR"
    exit_code = 74  # EX_IOERR


# =========================================================================
# 安装流水线
# =========================================================================

class PipelineError(MercuriumError):
    """安装流水线中归属于单个包的失败"""

    code = "PIPELINE_ERROR"
    exit_code = 70  # EX_SOFTWARE

    def __init__(self, package: str, message: str) -> None:
        super().__init__(f"[{package}] {message}")
        self.package = package


class NetworkError(PipelineError):
    """下载传输失败或响应非成功状态"""

    code = "NETWORK_ERROR"
    exit_code = 69  # EX_UNAVAILABLE


class ChecksumMismatchError(PipelineError):
    """下载产物的 SHA-512 与声明值不一致"""

    code = "CHECKSUM_MISMATCH"


class ExtractionError(PipelineError):
    """源码包解压失败"""

    code = "EXTRACTION_ERROR"
    exit_code = 74  # EX_IOERR


class BuildFailedError(PipelineError):
    """构建脚本返回非零"""

    code = "BUILD_FAILED"


class InstallFailedError(PipelineError):
    """安装脚本返回非零"""

    code = "INSTALL_FAILED"
