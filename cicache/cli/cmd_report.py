"""CLI：报告命令（生成报告、结果判定、构建列表）"""

from __future__ import annotations

from pathlib import Path

import click

from cicache.cli import _svc, handle_errors


def register(group: click.Group) -> None:
    group.add_command(create_report)
    group.add_command(result)
    group.add_command(built_packages)


@click.command(name="create-report")
@click.argument("report_dir")
@handle_errors
def create_report(report_dir: str) -> None:
    """生成包含合并报告与各包日志的目录"""
    output = _svc().create_report(Path(report_dir).expanduser().resolve())
    click.echo(f"报告已生成: {output}")


@click.command()
@click.argument("report_dir")
@click.option("--exit-code", default=1, show_default=True, help="存在失败包时的退出码")
@click.pass_context
@handle_errors
def result(ctx: click.Context, report_dir: str, exit_code: int) -> None:
    """根据 create-report 生成的报告判定退出码"""
    failed = _svc().failures(Path(report_dir).expanduser().resolve())
    if not failed:
        click.echo("All packages built and tested successfully")
        ctx.exit(0)

    for pkg_state in failed:
        from_cache = " (from cache)" if pkg_state.cached else ""
        click.echo(f"{pkg_state.name} failed during {pkg_state.phase} phase{from_cache}")
    ctx.exit(exit_code)


@click.command(name="built-packages")
@handle_errors
def built_packages() -> None:
    """列出本次新构建且成功的包（供测试步骤选择）"""
    for name in _svc().built_packages():
        click.echo(name)
