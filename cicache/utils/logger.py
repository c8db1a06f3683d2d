"""cicache 日志配置

日志统一写 stderr，stdout 只留给 status / result 等命令的结果输出，
CI 脚本可以直接解析命令输出。

环境变量:
    CICACHE_LOG_LEVEL  日志级别，默认 INFO
    CICACHE_LOG_JSON   为 1 时输出 JSON 行，便于日志平台采集
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import datetime, timezone

LOG_LEVEL_ENV = "CICACHE_LOG_LEVEL"
LOG_JSON_ENV = "CICACHE_LOG_JSON"

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """每条记录输出一行 JSON

    通过 ``logger.info(..., extra={"package": name})`` 传入的包名
    会作为 package 字段输出。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        package = getattr(record, "package", None)
        if package:
            entry["package"] = package
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，重复调用只保留一个 handler"""
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)


def setup_logging_from_env(environ: Mapping[str, str] | None = None) -> None:
    environ = os.environ if environ is None else environ
    setup_logging(
        level=environ.get(LOG_LEVEL_ENV, "INFO"),
        json_output=environ.get(LOG_JSON_ENV, "") == "1",
    )


def reset_logging() -> None:
    """移除根日志器上的全部 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
