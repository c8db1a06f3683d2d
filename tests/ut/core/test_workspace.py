"""工作区清单单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write_manifest

from cicache.core.exceptions import ConfigError
from cicache.core.workspace import Workspace


class TestWorkspace:
    def test_defaults(self, ws_root: Path) -> None:
        ws = Workspace(write_manifest(ws_root, {"base/types": {}}))
        pkg = ws.get("base/types")
        assert pkg is not None
        root = ws_root.resolve()
        assert pkg.prefix == root / "install" / "base/types"
        assert pkg.logdir == root / "install" / "log" / "base/types"
        assert pkg.tests_enabled is False
        assert pkg.srcdir is None
        assert pkg.fingerprint == ""

    def test_explicit_fields(self, ws_root: Path) -> None:
        ws = Workspace(write_manifest(
            ws_root,
            {
                "a": {"srcdir": "src/a", "tests": True, "fingerprint": "abc"},
                "b": {"prefix": "/opt/b", "logdir": "logs/b", "depends": ["a"]},
            },
            prefix_root="build/install",
        ))
        root = ws_root.resolve()
        a, b = ws.packages()
        assert a.name == "a" and b.name == "b"
        assert a.srcdir == root / "src/a"
        assert a.tests_enabled is True
        assert a.prefix == root / "build/install" / "a"
        assert b.prefix == Path("/opt/b")
        assert b.logdir == root / "logs/b"
        assert b.depends == ("a",)
        assert len(ws) == 2

    def test_missing_manifest(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="不存在"):
            Workspace(tmp_path / "workspace.yml")

    def test_unknown_dependency(self, ws_root: Path) -> None:
        with pytest.raises(ConfigError, match="未定义"):
            Workspace(write_manifest(ws_root, {"a": {"depends": ["nope"]}}))

    def test_dependency_cycle(self, ws_root: Path) -> None:
        with pytest.raises(ConfigError, match="环"):
            Workspace(write_manifest(ws_root, {
                "a": {"depends": ["b"]}, "b": {"depends": ["a"]},
            }))

    def test_invalid_yaml(self, ws_root: Path) -> None:
        ws_root.mkdir()
        path = ws_root / "workspace.yml"
        path.write_text("packages: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError):
            Workspace(path)
