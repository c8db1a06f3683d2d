"""配置、日志、文件读写与命令执行工具测试"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from cicache.core.config import Config
from cicache.core.exceptions import CICacheError, ConfigError, ReportError
from cicache.utils.logger import (
    JSONFormatter,
    reset_logging,
    setup_logging,
    setup_logging_from_env,
)
from cicache.utils.shell import COMMAND_NOT_FOUND, CommandResult, LocalExecutor
from cicache.utils.yaml_io import atomic_write, load_yaml, save_json, unique_temp_path

# =========================================================================
# config.py
# =========================================================================


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = Config.from_file(str(tmp_path / "none.yml"))
        assert cfg.max_cache_size_gb == 10
        assert cfg.max_cache_size_bytes == 10_000_000_000
        assert list(cfg.phase_report_paths()) == ["import", "build", "test"]

    def test_load_with_extra(self, tmp_path: Path) -> None:
        path = tmp_path / "cicache.yml"
        path.write_text(
            "max_cache_size_gb: 0.5\nbuild_report: out/build.json\nslack_channel: ci\n",
            encoding="utf-8",
        )
        cfg = Config.from_file(str(path))
        assert cfg.max_cache_size_bytes == 500_000_000
        assert cfg.phase_report_paths()["build"] == Path("out/build.json")
        assert cfg.extra == {"slack_channel": "ci"}

    def test_report_paths_anchored_on_root(self, tmp_path: Path) -> None:
        cfg = Config(build_report="log/build.json", test_report=str(tmp_path / "abs.json"))
        paths = cfg.phase_report_paths(tmp_path / "ws")
        assert paths["build"] == tmp_path / "ws" / "log" / "build.json"
        assert paths["test"] == tmp_path / "abs.json"
        assert cfg.phase_report_paths()["build"] == Path("log/build.json")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "cicache.yml"
        path.write_text("a: [1,", encoding="utf-8")
        with pytest.raises(ConfigError):
            Config.from_file(str(path))


# =========================================================================
# exceptions.py
# =========================================================================


class TestExceptions:
    def test_hierarchy_and_codes(self) -> None:
        err = ReportError("bad", path="r.json")
        assert isinstance(err, ConfigError) and isinstance(err, CICacheError)
        assert err.code == "REPORT_ERROR"
        assert err.path == "r.json"


# =========================================================================
# yaml_io.py
# =========================================================================


class TestFileIO:
    def test_unique_temp_path(self, tmp_path: Path) -> None:
        target = tmp_path / "TEST.json"
        a, b = unique_temp_path(target), unique_temp_path(target)
        assert a != b
        assert a.parent == tmp_path
        assert a.name.startswith("TEST.json.")

    def test_atomic_write_leaves_no_temp(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "f.txt"
        atomic_write(target, "one")
        atomic_write(target, "two")
        assert target.read_text() == "two"
        assert [p.name for p in target.parent.iterdir()] == ["f.txt"]

    def test_save_json(self, tmp_path: Path) -> None:
        save_json(tmp_path / "r.json", {"packages": {"a": {"cached": True}}})
        assert json.loads((tmp_path / "r.json").read_text()) == {"packages": {"a": {"cached": True}}}

    def test_load_yaml_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml(path) == {}


# =========================================================================
# logger.py
# =========================================================================


class TestLogging:
    def test_json_formatter(self) -> None:
        record = logging.LogRecord("cicache.test", logging.WARNING, __file__, 1, "损坏: %s", ("TEST",), None)
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "WARNING"
        assert data["message"] == "损坏: TEST"
        assert data["logger"] == "cicache.test"
        assert "package" not in data

    def test_json_formatter_package_field(self) -> None:
        record = logging.LogRecord("cicache.test", logging.INFO, __file__, 1, "ok", (), None)
        record.package = "base/types"
        assert json.loads(JSONFormatter().format(record))["package"] == "base/types"

    def test_setup_replaces_handlers(self) -> None:
        root = logging.getLogger()
        saved_level, saved = root.level, root.handlers[:]
        try:
            setup_logging("DEBUG", json_output=True)
            setup_logging("DEBUG", json_output=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert root.level == logging.DEBUG
        finally:
            reset_logging()
            root.setLevel(saved_level)
            for h in saved:
                root.addHandler(h)

    def test_setup_from_env(self) -> None:
        root = logging.getLogger()
        saved_level, saved = root.level, root.handlers[:]
        try:
            setup_logging_from_env({"CICACHE_LOG_LEVEL": "warning", "CICACHE_LOG_JSON": "1"})
            assert root.level == logging.WARNING
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            reset_logging()
            root.setLevel(saved_level)
            for h in saved:
                root.addHandler(h)


# =========================================================================
# shell.py
# =========================================================================


class TestLocalExecutor:
    def test_success(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute("echo hello", cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_failure(self, tmp_path: Path) -> None:
        assert not LocalExecutor().execute(["false"], cwd=str(tmp_path)).success

    def test_missing_command(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute(["definitely-not-a-command-xyz"], cwd=str(tmp_path))
        assert r.returncode == COMMAND_NOT_FOUND

    def test_undecodable_stderr(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute(
            ["sh", "-c", "printf '\\377\\376' >&2; exit 2"], cwd=str(tmp_path),
        )
        assert r.returncode == 2
        assert r.stderr

    def test_error_summary_keeps_stderr_tail(self) -> None:
        r = CommandResult(2, "", "x" * 600 + "tar: Unexpected EOF\n")
        summary = r.error_summary()
        assert summary.startswith("rc=2: ")
        assert summary.endswith("tar: Unexpected EOF")
        assert CommandResult(1, "", "").error_summary() == "rc=1"
