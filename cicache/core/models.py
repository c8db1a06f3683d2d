"""核心数据模型

缓存存储、报告合并、状态判定共用的数据类集中定义于此。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

# 阶段执行顺序；报告合并按此顺序覆盖
PHASES = ("import", "build", "test")

# 状态判定时按逆序寻找最后一个被调用的阶段
PHASE_INVERSE_ORDER = ("test", "build", "import")


# =========================================================================
# 包定义
# =========================================================================


@dataclass(frozen=True)
class PackageRef:
    """单个包在本次运行中的定义（由工作区清单解析，运行期不可变）"""

    name: str
    prefix: Path                 # 构建产物安装目录
    logdir: Path                 # 日志目录
    tests_enabled: bool = False
    srcdir: Path | None = None   # 源码目录，默认指纹器使用
    depends: tuple[str, ...] = ()
    fingerprint: str = ""        # 外部提供的指纹，为空则由指纹器计算


# =========================================================================
# 缓存存储结果
# =========================================================================


@dataclass
class CacheState:
    """缓存条目探测结果（只做 stat，不读内容）"""

    path: Path
    cached: bool
    metadata: bool
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "cached": self.cached,
            "metadata": self.metadata,
            "fingerprint": self.fingerprint,
        }


@dataclass
class PullHit:
    """命中: 归档已解压到 prefix"""

    fingerprint: str
    metadata: dict[str, Any] = field(default_factory=dict)
    hit: bool = field(default=True, init=False)


@dataclass
class PullMiss:
    """未命中: 条目不存在，或因测试门控不可用"""

    fingerprint: str
    reason: str = ""
    hit: bool = field(default=False, init=False)

    @property
    def metadata(self) -> dict[str, Any]:
        return {}


@dataclass
class PullCorrupted:
    """条目损坏，已被删除；对调用方而言等同未命中"""

    fingerprint: str
    reason: str = ""
    hit: bool = field(default=False, init=False)

    @property
    def metadata(self) -> dict[str, Any]:
        return {}


PullResult = Union[PullHit, PullMiss, PullCorrupted]


@dataclass
class PushResult:
    """推送结果: updated=False 表示已有归档被复用"""

    updated: bool
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return {"updated": self.updated, "fingerprint": self.fingerprint}


# =========================================================================
# 包最终状态
# =========================================================================


class PackageStatus(str, Enum):
    """包的最终状态"""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class PackageState:
    """单个包的判定结果"""

    name: str
    phase: str | None
    state: PackageStatus
    cached: bool = False

    @property
    def success(self) -> bool:
        return self.state == PackageStatus.SUCCESS

    @property
    def failure(self) -> bool:
        return self.state == PackageStatus.FAILURE

    @property
    def skipped(self) -> bool:
        return self.state == PackageStatus.SKIPPED
