"""Cargo.toml reading and dependency version resolution.

A dependency entry in ``[dependencies]`` is either a bare requirement string
(``anchor-lang = "0.27.0"``) or a table (``anchor-lang = { version = "0.27.0",
features = [...] }``). Both encodings are normalized into
:class:`ManifestDependency` once, when the manifest is parsed.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .types import ManifestParseError, ManifestReadError, MissingDependencyError

logger = logging.getLogger("processes.idl.manifest")


@dataclass(frozen=True)
class ManifestDependency:
    kind: Literal["version", "table"]
    version: str | None
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_toml(cls, name: str, value: Any) -> ManifestDependency:
        if isinstance(value, str):
            return cls(kind="version", version=value)
        if isinstance(value, Mapping):
            extras = {k: v for k, v in value.items() if k != "version"}
            version = value.get("version")
            if version is not None and not isinstance(version, str):
                raise ManifestParseError(f"dependency '{name}' has a non-string version: {version!r}")
            return cls(kind="table", version=version, extras=extras)
        raise ManifestParseError(
            f"dependency '{name}' must be a version string or a table, got {type(value).__name__}"
        )


@dataclass(frozen=True)
class Manifest:
    path: Path
    text: str
    dependencies: dict[str, ManifestDependency]


def parse_manifest(text: str, path: Path) -> Manifest:
    try:
        parsed = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.error("Failed to parse Cargo.toml at %s:\n%s\n%s", path, text, e)
        raise ManifestParseError(f"Failed to parse {path}: {e}", {"path": str(path)}) from e

    section = parsed.get("dependencies", {})
    if not isinstance(section, Mapping):
        raise ManifestParseError(f"[dependencies] in {path} must be a table", {"path": str(path)})
    deps = {name: ManifestDependency.from_toml(name, value) for name, value in section.items()}
    return Manifest(path=path, text=text, dependencies=deps)


def read_manifest(path: Path) -> Manifest:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error('Failed to read Cargo.toml at "%s": %s', path, e)
        raise ManifestReadError(f"Failed to read {path}: {e}", {"path": str(path)}) from e
    return parse_manifest(text, path)


def resolve_dependency_version(manifest: Manifest, dependency_name: str) -> str:
    dep = manifest.dependencies.get(dependency_name)
    if dep is None:
        raise MissingDependencyError(
            f"{dependency_name} not found as dependency in {manifest.path}",
            dependency=dependency_name,
            manifest_path=manifest.path,
        )
    if dep.version is None:
        # git/path dependencies carry no version to reconcile against
        raise MissingDependencyError(
            f"{dependency_name} in {manifest.path} declares no version",
            dependency=dependency_name,
            manifest_path=manifest.path,
        )
    return dep.version


def get_version_in_manifest(path: Path, dependency_name: str) -> str:
    return resolve_dependency_version(read_manifest(path), dependency_name)
