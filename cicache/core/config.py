"""集中配置管理

替代各模块散落的默认路径常量，提供统一的配置入口。
支持从 YAML 文件加载 + 编程式覆盖。

配置对象由 CLI 入口创建后显式传入服务层，不使用进程级单例，
同一进程内的多个运行（例如测试）互不干扰。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from cicache.core.exceptions import ConfigError
from cicache.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1_000_000_000


@dataclass
class Config:
    """全局配置"""

    # 工作区
    workspace_file: str = "workspace.yml"

    # 报告文件
    cache_pull_report: str = "cache-pull.json"
    cache_push_report: str = "cache-push.json"
    import_report: str = "install/log/import_report.json"
    build_report: str = "install/log/build_report.json"
    test_report: str = "install/log/test_report.json"

    # 缓存
    max_cache_size_gb: float = 10

    # 归档
    tar_command: str = "tar"
    archive_timeout: int | None = None

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "cicache.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无法解析: {path} - {e}") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件无效: {path} - {e}") from e
        cfg.extra = extra
        logger.info("配置已加载: %s", path)
        return cfg

    @staticmethod
    def anchor(path: str | Path, root: Path | None = None) -> Path:
        """相对路径按 root（工作区根目录）解析；root 为空时保持原样"""
        p = Path(path)
        if root is None or p.is_absolute():
            return p
        return root / p

    def phase_report_paths(self, root: Path | None = None) -> dict[str, Path]:
        """阶段名 -> 阶段报告路径（键顺序即阶段执行顺序）"""
        return {
            "import": self.anchor(self.import_report, root),
            "build": self.anchor(self.build_report, root),
            "test": self.anchor(self.test_report, root),
        }

    @property
    def max_cache_size_bytes(self) -> int:
        return int(self.max_cache_size_gb * BYTES_PER_GB)
