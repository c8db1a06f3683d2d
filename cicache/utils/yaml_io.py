"""YAML / JSON 文件统一读写工具

集中管理配置、包清单与报告文件的序列化/反序列化。
统一 encoding="utf-8"、空值保护、目录自动创建、原子写入。

缓存目录被多个 CI 进程共享，所有权威文件的写入都经过
"唯一临时文件 + os.replace" 完成，不做原地写入。
"""

from __future__ import annotations

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# YAML 文件最大大小限制 (10MB)，防止异常大文件导致内存耗尽
MAX_YAML_SIZE = 10 * 1024 * 1024


def unique_temp_path(path: Path) -> Path:
    """生成与 path 同目录的临时文件名: <name>.<pid>.<随机后缀>

    同目录保证 os.replace 是同一文件系统上的原子 rename；
    pid + 随机后缀避免并发写入者之间的临时文件冲突。
    """
    return path.with_name(f"{path.name}.{os.getpid()}.{secrets.token_hex(4)}")


def atomic_write(path: Path, content: str) -> None:
    """原子写入文件：先写临时文件再 rename，防止中途崩溃导致损坏

    异常:
        OSError: 文件写入或移动失败
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = unique_temp_path(path)
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except Exception:
        # 只捕获普通异常，不拦截 KeyboardInterrupt/SystemExit
        tmp.unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """安全读取 YAML 文件

    返回:
        dict: 解析后的字典。文件不存在、为空或内容不是字典类型时返回空字典

    异常:
        yaml.YAMLError: YAML 格式错误
        ValueError: 文件过大（超过 MAX_YAML_SIZE）
    """
    p = Path(path)
    if not p.exists():
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML 文件过大: {p} ({file_size} 字节), "
            f"超过限制 {MAX_YAML_SIZE} 字节"
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("解析 YAML 文件失败: %s, 错误: %s", path, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s 内容不是字典类型 (实际类型: %s)，返回空字典",
            path, type(result).__name__,
        )
        return {}
    return result


def load_json(path: str | Path) -> Any:
    """读取 JSON 文件，格式错误时抛出 json.JSONDecodeError"""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def save_json(path: str | Path, data: Any) -> None:
    """原子写入 JSON 文件"""
    atomic_write(Path(path), json.dumps(data, ensure_ascii=False))
