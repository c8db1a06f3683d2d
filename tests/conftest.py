"""测试共享 fixture：工作区清单、缓存条目与阶段报告的构造工具"""

from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Any

import pytest
import yaml

from cicache.core.config import Config
from cicache.core.workspace import Workspace


def write_manifest(root: Path, packages: dict[str, dict[str, Any]], **top: Any) -> Path:
    """在 root 下写入 workspace.yml"""
    root.mkdir(parents=True, exist_ok=True)
    path = root / "workspace.yml"
    path.write_text(yaml.safe_dump({**top, "packages": packages}), encoding="utf-8")
    return path


def make_tarball(path: Path, files: dict[str, str]) -> Path:
    """生成 tar.gz 归档，files 为 {相对路径: 内容}"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


def make_archive(cache_dir: Path, name: str, fingerprint: str, contents: str = "archive") -> Path:
    return make_tarball(cache_dir / name / fingerprint, {"contents": contents})


def make_metadata(cache_dir: Path, name: str, fingerprint: str, **phases: Any) -> Path:
    path = cache_dir / name / f"{fingerprint}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(phases), encoding="utf-8")
    return path


def make_prefix(prefix: Path, contents: str = "prefix") -> Path:
    prefix.mkdir(parents=True, exist_ok=True)
    (prefix / "contents").write_text(contents, encoding="utf-8")
    return prefix


def write_report(path: Path, root_name: str, packages: dict[str, Any], timestamp: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    report: dict[str, Any] = {"packages": packages}
    if timestamp:
        report["timestamp"] = timestamp
    path.write_text(json.dumps({root_name: report}), encoding="utf-8")
    return path


@pytest.fixture()
def ws_root(tmp_path: Path) -> Path:
    return tmp_path / "ws"


@pytest.fixture()
def manifest(ws_root: Path) -> Path:
    """单包工作区: 包 a，固定指纹 TEST"""
    return write_manifest(ws_root, {"a": {"fingerprint": "TEST"}})


@pytest.fixture()
def workspace(manifest: Path) -> Workspace:
    return Workspace(manifest)


@pytest.fixture()
def config(ws_root: Path, manifest: Path) -> Config:
    log = ws_root / "install" / "log"
    return Config(
        workspace_file=str(manifest),
        cache_pull_report=str(ws_root / "cache-pull.json"),
        cache_push_report=str(ws_root / "cache-push.json"),
        import_report=str(log / "import_report.json"),
        build_report=str(log / "build_report.json"),
        test_report=str(log / "test_report.json"),
    )


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    d = tmp_path / "cache"
    d.mkdir()
    return d
