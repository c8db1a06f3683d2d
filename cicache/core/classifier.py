"""包最终状态判定

按 test -> build -> import 的逆序找到第一个被调用的阶段，
以它的 success 决定包的成败；没有任何阶段被调用则为 skipped。
"""

from __future__ import annotations

from typing import Any

from cicache.core.models import PHASE_INVERSE_ORDER, PackageState, PackageStatus


def classify_package(name: str, phases: dict[str, Any]) -> PackageState:
    for phase_name in PHASE_INVERSE_ORDER:
        phase = phases.get(phase_name)
        if isinstance(phase, dict) and phase.get("invoked"):
            state = PackageStatus.SUCCESS if phase.get("success") else PackageStatus.FAILURE
            return PackageState(name, phase_name, state, bool(phase.get("cached")))
    return PackageState(name, None, PackageStatus.SKIPPED, False)


def packages_states(consolidated_report: dict[str, Any]) -> list[PackageState]:
    """对合并报告中的每个包给出最终状态"""
    return [
        classify_package(name, phases or {})
        for name, phases in consolidated_report.get("packages", {}).items()
    ]


def failures(consolidated_report: dict[str, Any]) -> list[PackageState]:
    """失败的包，按名称排序"""
    return sorted(
        (s for s in packages_states(consolidated_report) if s.failure),
        key=lambda s: s.name,
    )
