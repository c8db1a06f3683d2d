"""cicache - 多包源码构建的 CI 构建缓存与报告合并工具"""

__version__ = "0.3.0"
