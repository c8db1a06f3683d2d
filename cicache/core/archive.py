"""目录归档器

缓存条目的产物与日志都是目录的 tar.gz 归档。
打包/解包通过外部 tar 命令完成，经 CommandExecutor 调用以便测试注入故障。
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from cicache.core.exceptions import ArchiveError
from cicache.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)


class Archiver(Protocol):
    """归档器协议"""

    def create(self, source_dir: Path, dest: Path) -> None:
        """把 source_dir 的内容打包到 dest，失败抛 ArchiveError"""
        ...

    def extract(self, archive: Path, target_dir: Path) -> None:
        """把 archive 解包到 target_dir，失败抛 ArchiveError"""
        ...


class TarArchiver:
    """基于 tar 命令的归档器"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        tar_command: str = "tar",
        timeout: int | None = None,
    ) -> None:
        self.executor = executor or LocalExecutor()
        self.tar_command = tar_command
        self.timeout = timeout

    def _run(self, args: list[str], cwd: Path, what: str) -> None:
        try:
            r = self.executor.execute(
                [self.tar_command, *args], cwd=str(cwd), timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ArchiveError(f"{what}超时 ({e.timeout}s)") from e
        if not r.success:
            raise ArchiveError(f"{what}失败 ({r.error_summary()})", returncode=r.returncode)

    def create(self, source_dir: Path, dest: Path) -> None:
        self._run(
            ["czf", str(dest.resolve()), "."],
            cwd=source_dir, what=f"打包 {source_dir}",
        )

    def extract(self, archive: Path, target_dir: Path) -> None:
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # 例如目标路径已被普通文件占用
            raise ArchiveError(f"解包 {archive} 失败: 无法创建目录 {target_dir}: {e}") from e
        self._run(
            ["xzf", str(archive.resolve())],
            cwd=target_dir, what=f"解包 {archive}",
        )
