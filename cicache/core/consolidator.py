"""阶段报告合并

以 cache-pull 报告为基线（哪些包的哪些阶段来自缓存），
再用 import / build / test 各阶段报告（实际执行了什么）逐阶段覆盖，
得到每个包、每个阶段独立的权威结果。

合并规则:
  1. 基线只保留 cached=true 的包，其携带的每个阶段记录标记 cached=true
  2. 阶段报告中 invoked=true 的记录整体替换该包该阶段，标记 cached=false
     并带上该阶段报告的 timestamp
  3. invoked=false 的记录不会抹掉基线中的缓存信息
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from cicache.core.config import Config
from cicache.core.exceptions import ReportError
from cicache.core.models import PHASES

logger = logging.getLogger(__name__)


def empty_report() -> dict[str, Any]:
    return {"packages": {}}


def load_report(path: str | Path, root_name: str) -> dict[str, Any]:
    """读取报告文件中 root_name 下的内容

    文件不存在返回空报告；文件存在但格式错误抛 ReportError。
    """
    p = Path(path)
    try:
        with open(p, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return empty_report()
    except (OSError, ValueError) as e:
        raise ReportError(f"无法解析报告 {p}: {e}", path=str(p)) from e

    if not isinstance(data, dict) or root_name not in data:
        raise ReportError(f"报告 {p} 缺少根键 '{root_name}'", path=str(p))
    report = data[root_name]
    if not isinstance(report, dict):
        raise ReportError(f"报告 {p} 的 '{root_name}' 不是映射", path=str(p))
    packages = report.setdefault("packages", {})
    if not isinstance(packages, dict):
        raise ReportError(f"报告 {p} 的 packages 不是映射", path=str(p))
    return report


def consolidate(
    cache_pull_packages: Mapping[str, Any],
    phase_reports: Mapping[str, Mapping[str, Any]],
) -> dict[str, Any]:
    """合并 cache-pull 基线与各阶段报告，不修改输入

    参数:
        cache_pull_packages: cache-pull 报告的 packages 映射
        phase_reports: 阶段名 -> 阶段报告（含 timestamp 与 packages）
    """
    result: dict[str, dict[str, Any]] = {}
    for name, info in cache_pull_packages.items():
        if not isinstance(info, dict) or not info.get("cached"):
            continue
        phases: dict[str, Any] = {}
        for phase_name in PHASES:
            phase_info = info.get(phase_name)
            if isinstance(phase_info, dict):
                phases[phase_name] = {**copy.deepcopy(phase_info), "cached": True}
        result[name] = phases

    for phase_name in PHASES:
        report = phase_reports.get(phase_name)
        if not report:
            continue
        timestamp = report.get("timestamp")
        for name, pkg_info in report.get("packages", {}).items():
            entry = result.setdefault(name, {})
            if isinstance(pkg_info, dict) and pkg_info.get("invoked"):
                entry[phase_name] = {
                    **copy.deepcopy(pkg_info),
                    "cached": False,
                    "timestamp": timestamp,
                }

    return {"packages": result}


class ReportConsolidator:
    """从配置的报告路径加载并合并

    相对报告路径按 root 解析，root 通常是工作区根目录。
    """

    def __init__(self, config: Config, root: Path | None = None) -> None:
        self.config = config
        self.root = root

    def load_phase_reports(self) -> dict[str, dict[str, Any]]:
        return {
            phase_name: load_report(path, f"{phase_name}_report")
            for phase_name, path in self.config.phase_report_paths(self.root).items()
        }

    def consolidated_report(self) -> dict[str, Any]:
        cache_pull = load_report(
            self.config.anchor(self.config.cache_pull_report, self.root), "cache_pull_report",
        )
        report = consolidate(cache_pull["packages"], self.load_phase_reports())
        logger.debug("报告已合并: %d 个包", len(report["packages"]))
        return report
