"""构建缓存清理

按 LRU 删除最旧的整条缓存条目，直到总大小不超过上限。

只统计带 .json 元数据的产物文件，写到一半的临时文件与孤立产物不参与。
修改时间即最近使用时间: pull 命中和 push 都会刷新它。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cicache.core.cache_store import logs_path, metadata_path
from cicache.core.config import BYTES_PER_GB

logger = logging.getLogger(__name__)


@dataclass
class CacheIndexEntry:
    """清理器内部使用的条目索引"""

    path: Path
    size: int
    mtime: float


class CacheEvictor:
    """缓存清理器"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def scan(self) -> list[CacheIndexEntry]:
        """列出所有带元数据的产物文件"""
        entries: list[CacheIndexEntry] = []
        if not self.root.is_dir():
            return entries
        for dirpath, _dirnames, filenames in os.walk(self.root):
            names = set(filenames)
            for name in filenames:
                if name + ".json" not in names:
                    continue
                path = Path(dirpath) / name
                try:
                    st = path.stat()
                except FileNotFoundError:
                    # 遍历期间被其他进程删除
                    continue
                entries.append(CacheIndexEntry(path=path, size=st.st_size, mtime=st.st_mtime))
        return entries

    def cleanup(self, size_limit: int) -> int:
        """删除最旧的条目直到总大小 <= size_limit，返回清理后的总大小"""
        entries = self.scan()
        total_size = sum(e.size for e in entries)

        if total_size > size_limit:
            # sorted 是稳定排序，同一时间戳的条目在一次调用内顺序固定
            lru = sorted(entries, key=lambda e: e.mtime)
            for entry in lru:
                if total_size <= size_limit:
                    break
                logger.info(
                    "删除 %s (size=%d, mtime=%s)",
                    entry.path, entry.size,
                    datetime.fromtimestamp(entry.mtime).isoformat(timespec="seconds"),
                )
                for p in (entry.path, metadata_path(entry.path), logs_path(entry.path)):
                    p.unlink(missing_ok=True)
                total_size -= entry.size

        logger.info("当前构建缓存大小: %.1f GB", total_size / BYTES_PER_GB)
        return total_size
