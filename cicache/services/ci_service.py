"""CI 服务：缓存拉取 / 推送 / 清理、报告生成与结果判定

一次 CI 运行的典型流程:
  1. cache_pull: 对全部包从共享缓存拉取产物，写 cache-pull 报告
  2. 外部构建系统只构建未命中的包，写 import / build / test 阶段报告
  3. cache_push: 把本次新构建且成功的包推送到缓存
  4. create_report: 合并报告写入 report.json，并收集日志
  5. result: 根据合并报告判定 CI 退出码

每个操作使用独立的 FingerprintMemo，同一操作内的指纹只计算一次。
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cicache.core import classifier
from cicache.core.archive import Archiver, TarArchiver
from cicache.core.cache_store import CacheStore
from cicache.core.config import Config
from cicache.core.consolidator import ReportConsolidator
from cicache.core.evictor import CacheEvictor
from cicache.core.exceptions import ReportError
from cicache.core.fingerprint import FingerprintMemo, FingerprintProvider, SourceFingerprinter
from cicache.core.models import PHASES, PackageRef, PackageState
from cicache.core.workspace import Workspace
from cicache.utils.yaml_io import load_json, save_json

logger = logging.getLogger(__name__)

REPORT_FILE = "report.json"
LOGS_DIR = "logs"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _strip_cached_flags(pkg_metadata: dict[str, Any]) -> dict[str, Any]:
    """写入缓存前去掉各阶段记录中的 cached 标记"""
    stripped: dict[str, Any] = {}
    for key, value in pkg_metadata.items():
        if key in PHASES and isinstance(value, dict):
            value = {k: v for k, v in value.items() if k != "cached"}
        stripped[key] = value
    return stripped


class CIService:
    """CI 缓存与报告服务"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        workspace: Workspace | None = None,
        fingerprinter: FingerprintProvider | None = None,
        archiver: Archiver | None = None,
    ) -> None:
        self.config = config or Config()
        self._workspace = workspace
        self._fingerprinter = fingerprinter
        self.archiver = archiver or TarArchiver(
            tar_command=self.config.tar_command,
            timeout=self.config.archive_timeout,
        )

    # ---- 工作区 ----

    @property
    def workspace(self) -> Workspace:
        if self._workspace is None:
            self._workspace = Workspace(self.config.workspace_file)
        return self._workspace

    @property
    def fingerprinter(self) -> FingerprintProvider:
        if self._fingerprinter is None:
            self._fingerprinter = SourceFingerprinter(
                {pkg.name: pkg for pkg in self.workspace.packages()}
            )
        return self._fingerprinter

    def resolve_packages(self) -> list[PackageRef]:
        return self.workspace.packages()

    def store(self, cache_dir: str | Path) -> CacheStore:
        return CacheStore(cache_dir, self.fingerprinter, self.archiver)

    def report_path(self, path: str | Path) -> Path:
        """报告路径，相对路径按工作区根目录解析（与当前目录无关）"""
        return self.config.anchor(path, self.workspace.root)

    # ---- 缓存状态 ----

    def cache_state(
        self, cache_dir: str | Path, ignore: list[str] | None = None,
    ) -> dict[str, dict[str, Any]]:
        """各包的缓存命中情况；被忽略的包视为未命中"""
        ignore = ignore or []
        store = self.store(cache_dir)
        memo = FingerprintMemo()
        results: dict[str, dict[str, Any]] = {}
        for pkg in self.resolve_packages():
            state = store.state(pkg, memo).to_dict()
            if pkg.name in ignore:
                state.update(cached=False, metadata=False)
            results[pkg.name] = state
        return results

    # ---- 拉取 ----

    def cache_pull(
        self,
        cache_dir: str | Path,
        ignore: list[str] | None = None,
        report: str | Path | None = None,
    ) -> dict[str, dict[str, Any]]:
        """从缓存拉取全部包，返回并写出 cache-pull 报告

        参数:
            report: 报告路径，相对路径按工作区根目录解析；None 使用配置中的路径，空字符串表示不写报告
        """
        ignore = ignore or []
        store = self.store(cache_dir)
        memo = FingerprintMemo()
        results: dict[str, dict[str, Any]] = {}
        for pkg in self.resolve_packages():
            if pkg.name in ignore:
                logger.info("%s: 命令行指定忽略", pkg.name)
                fingerprint = self.fingerprinter.fingerprint(pkg, memo)
                results[pkg.name] = {"cached": False, "fingerprint": fingerprint}
                continue

            pulled = store.pull(pkg, memo)
            if pulled.hit:
                logger.info("%s: 已拉取 %s", pkg.name, pulled.fingerprint)
            else:
                logger.info("%s: %s 不在缓存中或未拉取", pkg.name, pulled.fingerprint)
            results[pkg.name] = {
                **pulled.metadata,
                "cached": pulled.hit,
                "fingerprint": pulled.fingerprint,
            }

        hit = sum(1 for info in results.values() if info["cached"])
        logger.info("%d hits, %d misses", hit, len(results) - hit)

        report_path = self.config.cache_pull_report if report is None else report
        if report_path:
            save_json(self.report_path(report_path), {
                "cache_pull_report": {"timestamp": _now(), "packages": results},
            })
        return results

    # ---- 推送 ----

    def cache_push(
        self, cache_dir: str | Path, report: str | Path | None = None,
    ) -> dict[str, dict[str, Any]]:
        """推送本次新构建且成功的包，返回并写出 cache-push 报告

        从缓存拉取的包、构建失败的包都不推送，失败的构建不会覆盖已有的好条目。
        """
        metadata = self.consolidated_report()["packages"]
        store = self.store(cache_dir)
        memo = FingerprintMemo()
        results: dict[str, dict[str, Any]] = {}
        for pkg in self.resolve_packages():
            pkg_metadata = metadata.get(pkg.name)
            if not pkg_metadata:
                logger.info("%s: 构建报告中没有元数据", pkg.name)
                continue
            build_info = pkg_metadata.get("build")
            if not build_info:
                logger.info("%s: 构建报告中没有构建信息", pkg.name)
                continue
            if build_info.get("cached"):
                logger.info("%s: 从缓存拉取，不推送", pkg.name)
                continue
            if not build_info.get("success"):
                logger.info("%s: 构建失败，不推送", pkg.name)
                continue

            pushed = store.push(
                pkg, _strip_cached_flags(pkg_metadata), force=True, memo=memo,
            )
            if pushed.updated:
                logger.info("%s: 已推送 %s", pkg.name, pushed.fingerprint)
            else:
                logger.info("%s: %s 已在缓存中", pkg.name, pushed.fingerprint)
            results[pkg.name] = pushed.to_dict()

        updated = sum(1 for info in results.values() if info["updated"])
        logger.info("%d updated packages, %d reused entries", updated, len(results) - updated)

        report_path = self.config.cache_push_report if report is None else report
        if report_path:
            save_json(self.report_path(report_path), {
                "cache_push_report": {"timestamp": _now(), "packages": results},
            })
        return results

    # ---- 清理 ----

    def cleanup(self, cache_dir: str | Path, size_limit: int | None = None) -> int:
        """LRU 清理缓存，size_limit 为字节数，默认取配置"""
        if size_limit is None:
            size_limit = self.config.max_cache_size_bytes
        return CacheEvictor(cache_dir).cleanup(size_limit)

    # ---- 报告 ----

    def consolidated_report(self) -> dict[str, Any]:
        return ReportConsolidator(self.config, self.workspace.root).consolidated_report()

    def built_packages(self) -> list[str]:
        """本次新构建且成功的包，作为外部测试步骤的输入"""
        return [
            name for name, info in self.consolidated_report()["packages"].items()
            if info.get("build") and not info["build"].get("cached")
            and info["build"].get("success")
        ]

    def create_report(self, report_dir: str | Path) -> Path:
        """把合并报告和各包日志收集到 report_dir"""
        report_dir = Path(report_dir)
        report = self.consolidated_report()
        output = report_dir / REPORT_FILE
        save_json(output, report)

        # 预先创建 logs 目录，保证拷贝行为与目录是否存在无关
        logs = report_dir / LOGS_DIR
        logs.mkdir(parents=True, exist_ok=True)
        for pkg in self.resolve_packages():
            if not pkg.logdir.is_dir():
                continue
            for item in pkg.logdir.iterdir():
                if item.is_dir():
                    shutil.copytree(item, logs / item.name, dirs_exist_ok=True)
                else:
                    shutil.copy2(item, logs / item.name)

        logger.info("报告已生成: %s", output)
        return output

    @staticmethod
    def load_report_dir(report_dir: str | Path) -> dict[str, Any]:
        """读取 create_report 生成的 report.json"""
        path = Path(report_dir) / REPORT_FILE
        try:
            data = load_json(path)
        except (OSError, ValueError) as e:
            raise ReportError(f"无法读取合并报告 {path}: {e}", path=str(path)) from e
        if not isinstance(data, dict) or not isinstance(data.get("packages"), dict):
            raise ReportError(f"合并报告 {path} 缺少 packages", path=str(path))
        return data

    def failures(self, report_dir: str | Path) -> list[PackageState]:
        return classifier.failures(self.load_report_dir(report_dir))

