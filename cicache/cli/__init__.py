"""cicache 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any

import click

from cicache import __version__
from cicache.core.config import Config
from cicache.core.exceptions import CICacheError
from cicache.services.ci_service import CIService
from cicache.utils.logger import setup_logging_from_env


def _svc() -> CIService:
    """从当前 click 上下文获取服务实例"""
    ctx = click.get_current_context()
    obj = ctx.find_root().obj
    if obj.get("service") is None:
        obj["service"] = CIService(obj["config"])
    return obj["service"]


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """把业务异常转换为 click 友好错误输出（退出码 1）"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CICacheError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="cicache.yml",
              help="配置文件路径（不存在则使用默认配置）")
@click.option("--workspace", "-w", default=None, help="工作区包清单路径（覆盖配置）")
@click.pass_context
def main(ctx: click.Context, config_path: str, workspace: str | None) -> None:
    """cicache - 多包构建的 CI 构建缓存与报告工具"""
    setup_logging_from_env()
    ctx.ensure_object(dict)
    # 调用方（测试）可通过 obj 预先注入配置
    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = Config.from_file(config_path)
        except CICacheError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e
    if workspace:
        ctx.obj["config"].workspace_file = workspace
    ctx.obj.setdefault("service", None)


# 注册各领域子命令
from cicache.cli.cmd_cache import register as _reg_cache  # noqa: E402
from cicache.cli.cmd_report import register as _reg_report  # noqa: E402

_reg_cache(main)
_reg_report(main)
