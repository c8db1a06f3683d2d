"""CacheEvictor 单元测试"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from cicache.core.evictor import CacheEvictor


def _entry(cache_dir: Path, name: str, fingerprint: str, mtime: float, size: int = 1024) -> Path:
    d = cache_dir / name
    d.mkdir(parents=True, exist_ok=True)
    artifact = d / fingerprint
    artifact.write_bytes(b"\0" * size)
    (d / f"{fingerprint}.json").write_text("{}", encoding="utf-8")
    os.utime(artifact, (mtime, mtime))
    return artifact


@pytest.fixture()
def four_entries(cache_dir: Path) -> list[Path]:
    return [
        _entry(cache_dir, "a", "A", 1000),
        _entry(cache_dir, "b", "B", 2000),
        _entry(cache_dir, "c", "C", 3000),
        _entry(cache_dir, "d", "D", 4000),
    ]


class TestCleanup:
    def test_under_limit_keeps_everything(self, cache_dir: Path, four_entries: list[Path]) -> None:
        assert CacheEvictor(cache_dir).cleanup(10_000) == 4096
        assert all(p.exists() for p in four_entries)

    def test_removes_single_oldest(self, cache_dir: Path, four_entries: list[Path]) -> None:
        total = CacheEvictor(cache_dir).cleanup(3072)
        assert total == 3072
        oldest = four_entries[0]
        assert not oldest.exists()
        assert not oldest.with_name("A.json").exists()
        assert all(p.exists() for p in four_entries[1:])

    def test_removes_until_under_limit(self, cache_dir: Path, four_entries: list[Path]) -> None:
        total = CacheEvictor(cache_dir).cleanup(3000)
        assert total == 2048
        assert [p.exists() for p in four_entries] == [False, False, True, True]

    def test_recency_follows_mtime(self, cache_dir: Path, four_entries: list[Path]) -> None:
        # a 被最近使用过，最旧的变成 b
        os.utime(four_entries[0], (5000, 5000))
        CacheEvictor(cache_dir).cleanup(3072)
        assert [p.exists() for p in four_entries] == [True, False, True, True]

    def test_ignores_artifacts_without_metadata(self, cache_dir: Path) -> None:
        _entry(cache_dir, "a", "A", 1000)
        orphan = cache_dir / "b" / "B"
        orphan.parent.mkdir()
        orphan.write_bytes(b"\0" * 4096)
        os.utime(orphan, (1, 1))

        assert CacheEvictor(cache_dir).cleanup(2048) == 1024
        assert orphan.exists()

    def test_removes_logs_with_entry(self, cache_dir: Path) -> None:
        artifact = _entry(cache_dir, "a", "A", 1000)
        logs = cache_dir / "a" / "A.logs"
        logs.write_bytes(b"logs")
        _entry(cache_dir, "b", "B", 2000)

        CacheEvictor(cache_dir).cleanup(1024)
        assert not artifact.exists()
        assert not logs.exists()

    def test_missing_cache_dir(self, tmp_path: Path) -> None:
        assert CacheEvictor(tmp_path / "nope").cleanup(0) == 0

    def test_scan_lists_only_tracked_entries(self, cache_dir: Path, four_entries: list[Path]) -> None:
        # 写入中的临时文件没有对应的 .json
        (cache_dir / "a" / "A.1234.deadbeef").write_bytes(b"partial")
        entries = CacheEvictor(cache_dir).scan()
        assert sorted(e.path.name for e in entries) == ["A", "B", "C", "D"]
        assert {e.size for e in entries} == {1024}
