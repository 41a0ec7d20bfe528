from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

IdlGenerator = Literal["anchor", "shank"]
Idl = dict[str, Any]


class ErrorCodes(str, Enum):
    MANIFEST_READ = "MANIFEST_READ"
    MANIFEST_PARSE = "MANIFEST_PARSE"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    VERSION_PARSE = "VERSION_PARSE"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    INSTALL_FAILED = "INSTALL_FAILED"
    INSTALL_RESOLUTION = "INSTALL_RESOLUTION"
    SPAWN_FAILED = "SPAWN_FAILED"
    IDL_GENERATION = "IDL_GENERATION"


class IdlError(Exception):
    code: ErrorCodes = ErrorCodes.IDL_GENERATION

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ManifestReadError(IdlError):
    code = ErrorCodes.MANIFEST_READ


class ManifestParseError(IdlError):
    code = ErrorCodes.MANIFEST_PARSE


class MissingDependencyError(IdlError):
    code = ErrorCodes.MISSING_DEPENDENCY

    def __init__(self, message: str, *, dependency: str, manifest_path: Path) -> None:
        super().__init__(
            message,
            {"dependency": dependency, "manifest_path": str(manifest_path)},
        )
        self.dependency = dependency
        self.manifest_path = manifest_path


class VersionParseError(IdlError):
    code = ErrorCodes.VERSION_PARSE


class VersionMismatchError(IdlError):
    code = ErrorCodes.VERSION_MISMATCH

    def __init__(self, message: str, *, bin_version: str, lib_version: str) -> None:
        super().__init__(message, {"bin_version": bin_version, "lib_version": lib_version})
        self.bin_version = bin_version
        self.lib_version = lib_version


class InstallError(IdlError):
    code = ErrorCodes.INSTALL_FAILED


class InstallResolutionError(IdlError):
    code = ErrorCodes.INSTALL_RESOLUTION


class SpawnError(IdlError):
    code = ErrorCodes.SPAWN_FAILED

    def __init__(self, message: str, *, executable: str, not_installed: bool) -> None:
        super().__init__(message, {"executable": executable, "not_installed": not_installed})
        self.executable = executable
        self.not_installed = not_installed


class IdlGenerationError(IdlError):
    code = ErrorCodes.IDL_GENERATION


class ProjectConfig(BaseModel):
    """Settings for one program whose IDL and SDK are generated together."""

    model_config = ConfigDict(frozen=True)

    program_name: str
    idl_generator: IdlGenerator
    idl_dir: Path
    program_dir: Path
    sdk_dir: Path
    binary_install_dir: Path = Path(".crates")
    program_id: str | None = None
    remove_existing_idl: bool = False
    type_aliases: dict[str, str] | None = None
    serializers: dict[str, str] | None = None
    anchor_remaining_accounts: bool | None = None

    @property
    def idl_path(self) -> Path:
        return self.idl_dir / f"{self.program_name}.json"

    @property
    def cargo_toml(self) -> Path:
        return self.program_dir / "Cargo.toml"


@dataclass(frozen=True)
class InstallConfig:
    root_dir: Path
    binary_name: str
    binary_crate_name: str
    lib_name: str
    cargo_toml: Path
    # False means the install really happens instead of only being reported
    dry_run: bool = False


@dataclass(frozen=True)
class BinaryMatchResult:
    full_path_to_binary: Path
    # None when no installed binary could be found or probed
    bin_version: str | None
    lib_version: str


@dataclass(frozen=True)
class ConfirmInstallArgs:
    binary_name: str
    lib_version: str
    lib_name: str
    bin_version: str | None
    full_path_to_binary: Path


@dataclass(frozen=True)
class ProcessOutcome:
    executable: str
    args: list[str] = field(default_factory=list)
    returncode: int = 0

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


ConfirmInstallFn = Callable[[ConfirmInstallArgs], Awaitable[bool]]
InstallBinaryFn = Callable[[InstallConfig, str], Awaitable[None]]
EnhanceIdlFn = Callable[[ProjectConfig, str, str], Idl]
GenerateSdkFn = Callable[
    [Idl, Path, Mapping[str, Any] | None, dict[str, str] | None, dict[str, str] | None, bool | None],
    None,
]
