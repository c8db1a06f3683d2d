"""统一异常体系

所有业务异常继承 CICacheError，CLI 层可据此输出友好提示。

注意: 缓存未命中不是异常，由 PullMiss 结果值表示。
"""

from __future__ import annotations


class CICacheError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(CICacheError):
    """配置文件或包清单缺失必要字段、内容无效"""

    code = "CONFIG_ERROR"


class ReportError(ConfigError):
    """阶段报告存在但内容无法解析"""

    code = "REPORT_ERROR"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class CorruptedEntryError(CICacheError):
    """缓存条目损坏（元数据无法解析或归档解压失败）

    仅在 CacheStore 内部流转，pull 捕获后删除条目并降级为未命中。
    """

    code = "CORRUPTED_ENTRY"


class ArchiveError(CICacheError):
    """外部归档命令执行失败"""

    code = "ARCHIVE_ERROR"

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class FingerprintError(CICacheError):
    """包指纹计算失败"""

    code = "FINGERPRINT_ERROR"
