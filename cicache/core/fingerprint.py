"""包指纹计算

指纹是包构建输入的稳定标识: 相同指纹 ⇒ 相同构建产物。

FingerprintMemo 由调用方为一次运行创建并显式传入，
同一包的重复查询在首次计算后为 O(1)。
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from cicache.core.exceptions import FingerprintError
from cicache.core.models import PackageRef

logger = logging.getLogger(__name__)

# 不参与指纹计算的目录
IGNORED_DIRS = frozenset({".git", ".svn", ".hg", "__pycache__"})


class FingerprintMemo:
    """一次运行内的指纹缓存"""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def put(self, name: str, fingerprint: str) -> None:
        self._values[name] = fingerprint

    def __contains__(self, name: object) -> bool:
        return name in self._values


class FingerprintProvider(Protocol):
    """指纹提供者协议"""

    def fingerprint(self, pkg: PackageRef, memo: FingerprintMemo) -> str:
        """返回包的指纹，失败抛 FingerprintError"""
        ...


class SourceFingerprinter:
    """默认指纹器: 源码树内容 + 依赖指纹的 SHA-256

    包定义中显式给出 fingerprint 时直接使用，不读取源码。
    """

    def __init__(self, packages: Mapping[str, PackageRef]) -> None:
        self.packages = packages

    def fingerprint(self, pkg: PackageRef, memo: FingerprintMemo) -> str:
        cached = memo.get(pkg.name)
        if cached is not None:
            return cached

        if pkg.fingerprint:
            value = pkg.fingerprint
        else:
            value = self._compute(pkg, memo)
        memo.put(pkg.name, value)
        return value

    def _compute(self, pkg: PackageRef, memo: FingerprintMemo) -> str:
        if pkg.srcdir is None or not pkg.srcdir.is_dir():
            raise FingerprintError(
                f"无法计算 '{pkg.name}' 的指纹: 源码目录不存在 ({pkg.srcdir})"
            )

        sha256 = hashlib.sha256()
        sha256.update(f"package:{pkg.name}\n".encode())
        for dep_name in sorted(pkg.depends):
            dep = self.packages.get(dep_name)
            if dep is None:
                raise FingerprintError(f"包 '{pkg.name}' 依赖未知的包 '{dep_name}'")
            sha256.update(f"depend:{dep_name}:{self.fingerprint(dep, memo)}\n".encode())

        try:
            for path in _iter_source_files(pkg.srcdir):
                rel = path.relative_to(pkg.srcdir).as_posix()
                sha256.update(f"file:{rel}\n".encode())
                with open(path, "rb") as f:
                    for chunk in iter(lambda: f.read(65536), b""):
                        sha256.update(chunk)
        except OSError as e:
            raise FingerprintError(f"读取 '{pkg.name}' 源码失败: {e}") from e

        value = sha256.hexdigest()
        logger.debug("指纹: %s -> %s", pkg.name, value)
        return value


def _iter_source_files(root: Path) -> list[Path]:
    """按相对路径排序列出 root 下所有普通文件"""
    files = []
    for path in root.rglob("*"):
        if any(part in IGNORED_DIRS for part in path.relative_to(root).parts):
            continue
        if path.is_file() and not path.is_symlink():
            files.append(path)
    return sorted(files, key=lambda p: p.relative_to(root).as_posix())
