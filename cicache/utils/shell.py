"""外部命令执行

归档器通过 CommandExecutor 调用 tar。测试可以注入返回失败或超时的执行器，
不必真的破坏磁盘上的归档。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

# 命令不存在时使用 shell 的约定退出码
COMMAND_NOT_FOUND = 127

# 错误信息中保留的 stderr 长度
STDERR_TAIL = 500


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def error_summary(self) -> str:
        """失败信息: 退出码 + stderr 末尾（tar 把真正的错误写在最后几行）"""
        tail = self.stderr.strip()[-STDERR_TAIL:]
        return f"rc={self.returncode}: {tail}" if tail else f"rc={self.returncode}"


class CommandExecutor(Protocol):
    """命令执行器协议

    超时直接抛出 subprocess.TimeoutExpired，由调用方决定如何报告。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """在本机以子进程执行命令"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        logger.debug("执行: %s (cwd=%s)", shlex.join(args), cwd)
        try:
            proc = subprocess.run(
                args, capture_output=True, text=True, errors="replace",
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except FileNotFoundError as e:
            # 命令本身不存在（例如未安装 tar），或 cwd 已被并发删除
            return CommandResult(COMMAND_NOT_FOUND, "", str(e))
        if proc.returncode != 0:
            logger.debug("%s 退出码 %d", args[0], proc.returncode)
        return CommandResult(proc.returncode, proc.stdout, proc.stderr)
