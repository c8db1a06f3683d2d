"""内容寻址的构建缓存存储

目录布局:
  <root>/<包名>/<指纹>          产物归档（prefix 目录的 tar.gz）
  <root>/<包名>/<指纹>.json     元数据（阶段名 -> 阶段记录）
  <root>/<包名>/<指纹>.logs     日志目录归档（可选）

缓存策略:
  - 只有产物文件存在才算命中；元数据缺失视为空元数据
  - 同一指纹非 force 推送不覆盖已有产物
  - 条目只会被清理器或损坏自愈删除

并发:
  - 多个 CI 进程可共享同一缓存目录，不加锁
  - 所有写入经唯一临时文件 + 原子 rename；相同指纹的内容等价，后到者覆盖无害
  - 读取不与写入同步，检查与打开之间文件消失按未命中或损坏处理
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from cicache.core.archive import Archiver, TarArchiver
from cicache.core.exceptions import ArchiveError, CorruptedEntryError
from cicache.core.fingerprint import FingerprintMemo, FingerprintProvider
from cicache.core.models import (
    CacheState,
    PackageRef,
    PullCorrupted,
    PullHit,
    PullMiss,
    PullResult,
    PushResult,
)
from cicache.utils.yaml_io import save_json, unique_temp_path

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".json"
LOGS_SUFFIX = ".logs"


def metadata_path(artifact: Path) -> Path:
    return artifact.with_name(artifact.name + METADATA_SUFFIX)


def logs_path(artifact: Path) -> Path:
    return artifact.with_name(artifact.name + LOGS_SUFFIX)


def touch_existing(path: Path) -> None:
    """刷新修改时间，不创建文件；文件已被并发删除时忽略"""
    try:
        os.utime(path)
    except OSError:
        pass


class CacheStore:
    """构建缓存存储"""

    def __init__(
        self,
        root: str | Path,
        fingerprinter: FingerprintProvider,
        archiver: Archiver | None = None,
    ) -> None:
        self.root = Path(root)
        self.fingerprinter = fingerprinter
        self.archiver = archiver or TarArchiver()

    def entry_path(self, pkg_name: str, fingerprint: str) -> Path:
        """条目产物文件路径"""
        return self.root / pkg_name / fingerprint

    def _fingerprint(self, pkg: PackageRef, memo: FingerprintMemo | None) -> str:
        return self.fingerprinter.fingerprint(pkg, memo if memo is not None else FingerprintMemo())

    # ---- 查询 ----

    def state(self, pkg: PackageRef, memo: FingerprintMemo | None = None) -> CacheState:
        """探测条目是否存在（仅 stat）"""
        fingerprint = self._fingerprint(pkg, memo)
        path = self.entry_path(pkg.name, fingerprint)
        return CacheState(
            path=path,
            cached=path.is_file(),
            metadata=metadata_path(path).is_file(),
            fingerprint=fingerprint,
        )

    # ---- 拉取 ----

    def pull(self, pkg: PackageRef, memo: FingerprintMemo | None = None) -> PullResult:
        """把条目解压到包的 prefix / 日志目录

        返回 PullHit / PullMiss / PullCorrupted，未命中与损坏都不抛异常。
        """
        fingerprint = self._fingerprint(pkg, memo)
        path = self.entry_path(pkg.name, fingerprint)
        if not path.is_file():
            return PullMiss(fingerprint, reason="not in cache")

        meta_path = metadata_path(path)
        try:
            metadata = self._load_metadata(pkg, meta_path)

            # 测试从未执行过的条目不能用于跳过必须执行的测试
            if pkg.tests_enabled and not _tests_invoked(metadata):
                logger.info("%s: 测试从未执行过，不从缓存拉取", pkg.name)
                return PullMiss(fingerprint, reason="tests never invoked")

            self._extract(pkg, path, pkg.prefix)
            pkg_logs = logs_path(path)
            if pkg_logs.is_file():
                self._extract(pkg, pkg_logs, pkg.logdir)
        except CorruptedEntryError as e:
            logger.warning(
                "%s 的缓存条目 %s 似乎已损坏，删除: %s", pkg.name, fingerprint, e,
                extra={"package": pkg.name},
            )
            self.remove_entry(pkg.name, fingerprint)
            return PullCorrupted(fingerprint, reason=str(e))

        # 修改时间是清理器唯一的 LRU 依据
        touch_existing(meta_path)
        touch_existing(path)
        return PullHit(fingerprint, metadata)

    def _load_metadata(self, pkg: PackageRef, path: Path) -> dict[str, Any]:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            # 早于元数据机制写入的条目没有 .json
            return {}
        except (OSError, ValueError) as e:
            raise CorruptedEntryError(f"加载 {pkg.name} 的元数据失败: {e}") from e
        if not isinstance(data, dict):
            raise CorruptedEntryError(
                f"{pkg.name} 的元数据不是映射 (实际类型: {type(data).__name__})"
            )
        return data

    def _extract(self, pkg: PackageRef, archive: Path, target_dir: Path) -> None:
        try:
            self.archiver.extract(archive, target_dir)
        except ArchiveError as e:
            raise CorruptedEntryError(f"为 {pkg.name} 解包 {archive} 失败: {e}") from e

    # ---- 推送 ----

    def push(
        self,
        pkg: PackageRef,
        metadata: dict[str, Any],
        *,
        force: bool = False,
        memo: FingerprintMemo | None = None,
    ) -> PushResult:
        """把包的 prefix（及日志目录）写入缓存

        异常:
            ArchiveError: 打包失败，调用方不能把该包视为已推送
        """
        fingerprint = self._fingerprint(pkg, memo)
        path = self.entry_path(pkg.name, fingerprint)
        path.parent.mkdir(parents=True, exist_ok=True)

        meta_path = metadata_path(path)
        if force or not meta_path.is_file():
            save_json(meta_path, metadata)

        if not force and path.is_file():
            # 复用已有产物，只刷新修改时间供清理器参考
            touch_existing(path)
            return PushResult(updated=False, fingerprint=fingerprint)

        self._archive(pkg, pkg.prefix, path)
        if pkg.logdir.is_dir():
            self._archive(pkg, pkg.logdir, logs_path(path))
        return PushResult(updated=True, fingerprint=fingerprint)

    def _archive(self, pkg: PackageRef, source_dir: Path, dest: Path) -> None:
        tmp = unique_temp_path(dest)
        try:
            self.archiver.create(source_dir, tmp)
            os.replace(tmp, dest)
        except ArchiveError as e:
            tmp.unlink(missing_ok=True)
            raise ArchiveError(
                f"缓存 {pkg.name} 的 {source_dir} 失败: {e}", returncode=e.returncode,
            ) from e
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    # ---- 删除 ----

    def remove_entry(self, pkg_name: str, fingerprint: str) -> None:
        """删除条目的全部文件，不存在的忽略"""
        path = self.entry_path(pkg_name, fingerprint)
        for p in (path, metadata_path(path), logs_path(path)):
            p.unlink(missing_ok=True)


def _tests_invoked(metadata: dict[str, Any]) -> bool:
    test = metadata.get("test")
    return isinstance(test, dict) and bool(test.get("invoked"))
