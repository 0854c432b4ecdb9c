"""mercurium - 基于源码的轻量包管理器"""

__version__ = "0.1.0"
