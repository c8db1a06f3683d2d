"""CLI：构建缓存命令（状态、拉取、推送、清理）"""

from __future__ import annotations

from pathlib import Path

import click

from cicache.cli import _svc, handle_errors
from cicache.core.config import BYTES_PER_GB


def register(group: click.Group) -> None:
    group.add_command(status)
    group.add_command(cache_pull)
    group.add_command(cache_push)
    group.add_command(build_cache_cleanup)


def _abspath(path: str) -> Path:
    return Path(path).expanduser().resolve()


def _report_arg(report: str | None) -> str | Path | None:
    """命令行给出的报告路径相对当前目录；未给出时由服务按工作区根目录解析"""
    return _abspath(report) if report else report


# ---- 状态 ----

@click.command()
@click.argument("cache_dir")
@click.option("--ignore", multiple=True, help="视为未命中的包（可多次指定）")
@handle_errors
def status(cache_dir: str, ignore: tuple[str, ...]) -> None:
    """显示各包的缓存命中情况"""
    results = _svc().cache_state(_abspath(cache_dir), ignore=list(ignore))
    for name in sorted(results):
        state = results[name]
        if state["cached"]:
            hit = click.style("cache hit", fg="green")
        else:
            hit = click.style("cache miss", fg="red")
        click.echo(f"{name}: {hit}, fingerprint={state['fingerprint']}")


# ---- 拉取 ----

@click.command(name="cache-pull")
@click.argument("cache_dir")
@click.option("--ignore", multiple=True, help="不从缓存拉取的包（可多次指定）")
@click.option("--report", default=None, help="拉取报告路径（默认写到工作区根目录，空字符串表示不写）")
@handle_errors
def cache_pull(cache_dir: str, ignore: tuple[str, ...], report: str | None) -> None:
    """从构建缓存拉取产物，填充当前工作区的 prefix

    应在工作区完整检出之后执行。
    """
    results = _svc().cache_pull(
        _abspath(cache_dir), ignore=list(ignore), report=_report_arg(report),
    )
    hit = sum(1 for info in results.values() if info["cached"])
    click.echo(f"{hit} hits, {len(results) - hit} misses")


# ---- 推送 ----

@click.command(name="cache-push")
@click.argument("cache_dir")
@click.option("--report", default=None, help="推送报告路径（空字符串表示不写）")
@handle_errors
def cache_push(cache_dir: str, report: str | None) -> None:
    """把上次构建中成功构建的包写入构建缓存"""
    results = _svc().cache_push(_abspath(cache_dir), report=_report_arg(report))
    updated = sum(1 for info in results.values() if info["updated"])
    click.echo(f"{updated} updated packages, {len(results) - updated} reused entries")


# ---- 清理 ----

@click.command(name="build-cache-cleanup")
@click.argument("cache_dir")
@click.option("--max-size", type=float, default=None,
              help="缓存大小上限（GB），默认取配置（10）")
@handle_errors
def build_cache_cleanup(cache_dir: str, max_size: float | None) -> None:
    """删除最旧的缓存条目，直到缓存小于给定上限"""
    size_limit = None if max_size is None else int(max_size * BYTES_PER_GB)
    total = _svc().cleanup(_abspath(cache_dir), size_limit)
    click.echo(f"当前构建缓存大小: {total / BYTES_PER_GB:.1f} GB")
