"""工作区包清单

从 YAML 清单解析本次运行涉及的全部包，生成不可变的 PackageRef 列表。

清单格式:
  prefix_root: install
  log_root: install/log
  packages:
    base/types:
      srcdir: base/types
      depends: [base/cmake]
      tests: true

相对路径一律相对清单文件所在目录解析。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from cicache.core.exceptions import ConfigError
from cicache.core.models import PackageRef
from cicache.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


class Workspace:
    """工作区包清单"""

    section_key = "packages"

    def __init__(self, manifest_file: str | Path) -> None:
        self.manifest_file = Path(manifest_file)
        if not self.manifest_file.is_file():
            raise ConfigError(f"工作区清单不存在: {self.manifest_file}")
        self.root = self.manifest_file.resolve().parent
        try:
            self._data: dict[str, Any] = load_yaml(self.manifest_file)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"工作区清单无法解析: {self.manifest_file} - {e}") from e
        self._packages = self._parse()

    def _resolve(self, value: str | None, default: Path) -> Path:
        if not value:
            return default
        path = Path(value)
        return path if path.is_absolute() else self.root / path

    def _section(self) -> dict[str, dict[str, Any]]:
        section = self._data.get(self.section_key) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"{self.manifest_file}: '{self.section_key}' 必须是映射")
        return section

    def _parse(self) -> dict[str, PackageRef]:
        prefix_root = self._resolve(self._data.get("prefix_root"), self.root / "install")
        log_root = self._resolve(self._data.get("log_root"), prefix_root / "log")

        packages: dict[str, PackageRef] = {}
        for name, entry in self._section().items():
            entry = entry or {}
            if not isinstance(entry, dict):
                raise ConfigError(f"包 '{name}' 的定义必须是映射")
            srcdir = entry.get("srcdir")
            packages[name] = PackageRef(
                name=name,
                prefix=self._resolve(entry.get("prefix"), prefix_root / name),
                logdir=self._resolve(entry.get("logdir"), log_root / name),
                tests_enabled=bool(entry.get("tests", False)),
                srcdir=self._resolve(srcdir, self.root) if srcdir else None,
                depends=tuple(entry.get("depends") or ()),
                fingerprint=str(entry.get("fingerprint") or ""),
            )

        self._check_dependencies(packages)
        logger.debug("工作区清单已加载: %s (%d 个包)", self.manifest_file, len(packages))
        return packages

    @staticmethod
    def _check_dependencies(packages: dict[str, PackageRef]) -> None:
        """校验依赖名存在且无环"""
        for pkg in packages.values():
            unknown = [d for d in pkg.depends if d not in packages]
            if unknown:
                raise ConfigError(f"包 '{pkg.name}' 依赖未定义的包: {unknown}")

        visiting: set[str] = set()
        done: set[str] = set()

        def visit(name: str, chain: list[str]) -> None:
            if name in done:
                return
            if name in visiting:
                raise ConfigError(f"依赖存在环: {' -> '.join([*chain, name])}")
            visiting.add(name)
            for dep in packages[name].depends:
                visit(dep, [*chain, name])
            visiting.discard(name)
            done.add(name)

        for name in packages:
            visit(name, [])

    def packages(self) -> list[PackageRef]:
        """全部包，保持清单中的顺序"""
        return list(self._packages.values())

    def get(self, name: str) -> PackageRef | None:
        return self._packages.get(name)

    def __len__(self) -> int:
        return len(self._packages)
