"""Resolve a versioned tool binary under a local install root, installing it on demand.

The binary lives at ``<root_dir>/bin/<binary_name>``. Its version is probed
with ``--version`` and checked against the requirement that ``lib_name``
declares in ``Cargo.toml``. When it is missing or incompatible, the confirm
hook is asked for approval and the installer capability (``cargo install``
by default) puts the matching version in place.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Callable
from pathlib import Path

from . import runner
from .manifest import get_version_in_manifest
from .types import (
    BinaryMatchResult,
    ConfirmInstallArgs,
    ConfirmInstallFn,
    InstallBinaryFn,
    InstallConfig,
    InstallError,
    SpawnError,
    VersionParseError,
)

logger = logging.getLogger("processes.idl.installer")

_COMPARATOR = re.compile(
    r"^(?P<op>=|\^|~|>=|<=|>|<)?\s*"
    r"(?P<major>\*|\d+)(?:\.(?P<minor>\*|\d+))?(?:\.(?P<patch>\*|\d+))?"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def _version_core(version: str) -> tuple[int, int, int]:
    match = runner.SEMVER_PATTERN.search(version)
    if match is None:
        raise ValueError(f"not a semantic version: {version!r}")
    major, minor, patch = match.group(1).split("-", 1)[0].split(".")
    return int(major), int(minor), int(patch)


def _comparator_matches(version: tuple[int, int, int], comparator: str) -> bool:
    m = _COMPARATOR.match(comparator.strip())
    if m is None:
        raise ValueError(f"invalid version requirement: {comparator!r}")
    parts: list[int] = []
    wildcard = False
    for raw in (m.group("major"), m.group("minor"), m.group("patch")):
        if raw is None:
            break
        if raw == "*":
            wildcard = True
            break
        parts.append(int(raw))
    op = m.group("op") or ("=" if wildcard else "^")
    n = len(parts)
    if n == 0:
        return True

    lower = tuple(parts + [0] * (3 - n))
    head = version[:n]
    if op == "=":
        return head == tuple(parts)
    if op == ">=":
        return version >= lower
    if op == "<":
        return version < lower
    if op == ">":
        return head > tuple(parts)
    if op == "<=":
        return head <= tuple(parts)
    if op == "~":
        upper = (parts[0] + 1, 0, 0) if n == 1 else (parts[0], parts[1] + 1, 0)
        return lower <= version < upper
    # caret: the left-most non-zero component must not change
    if n == 1 or parts[0] > 0:
        upper = (parts[0] + 1, 0, 0)
    elif n == 2 or parts[1] > 0:
        upper = (0, parts[1] + 1, 0)
    else:
        upper = (0, 0, parts[2] + 1)
    return lower <= version < upper


def version_satisfies(version: str, requirement: str) -> bool:
    """Check ``version`` against a Cargo-style requirement such as ``"0.1"`` or ``">=1.2, <2"``."""
    core = _version_core(version)
    return all(_comparator_matches(core, c) for c in requirement.split(","))


def _is_compatible(bin_version: str, lib_version: str) -> bool:
    try:
        return version_satisfies(bin_version, lib_version)
    except ValueError as e:
        logger.warning("Cannot compare %s against requirement %r: %s", bin_version, lib_version, e)
        return False


def binary_path(config: InstallConfig) -> Path:
    name = config.binary_name + (".exe" if sys.platform == "win32" else "")
    return config.root_dir / "bin" / name


async def installed_version(full_path: Path) -> str | None:
    if not full_path.exists():
        return None
    try:
        return await runner.probe_version(full_path)
    except (SpawnError, VersionParseError) as e:
        logger.warning("Unable to determine version of %s: %s", full_path, e)
        return None


async def cargo_install(config: InstallConfig, lib_version: str) -> None:
    args = [
        "install",
        config.binary_crate_name,
        "--version",
        lib_version,
        "--root",
        str(config.root_dir),
        "--force",
    ]
    logger.info("Installing %s %s into %s", config.binary_crate_name, lib_version, config.root_dir)
    outcome = await runner.run("cargo", args)
    if not outcome.succeeded:
        raise InstallError(
            f"cargo install {config.binary_crate_name} {lib_version} failed (exit={outcome.returncode})",
            {"crate": config.binary_crate_name, "version": lib_version},
        )


async def confirm_auto_message_log(
    args: ConfirmInstallArgs, log: Callable[[str], None] | None = None
) -> bool:
    emit = log or logger.info
    if args.bin_version is None:
        emit(f"No existing version found for {args.binary_name}.")
    else:
        emit(f"Version for {args.binary_name}: {args.bin_version}")
    emit(
        f"Will install version matching \"{args.lib_name}: '{args.lib_version}'\" "
        f"to {args.full_path_to_binary}"
    )
    return True


async def resolve_or_install(
    config: InstallConfig,
    confirm: ConfirmInstallFn = confirm_auto_message_log,
    *,
    installer: InstallBinaryFn = cargo_install,
) -> BinaryMatchResult:
    full_path = binary_path(config)
    lib_version = get_version_in_manifest(config.cargo_toml, config.lib_name)
    bin_version = await installed_version(full_path)

    if bin_version is not None and _is_compatible(bin_version, lib_version):
        logger.info("%s %s satisfies %s '%s'", config.binary_name, bin_version, config.lib_name, lib_version)
        return BinaryMatchResult(full_path, bin_version, lib_version)

    approved = await confirm(
        ConfirmInstallArgs(
            binary_name=config.binary_name,
            lib_version=lib_version,
            lib_name=config.lib_name,
            bin_version=bin_version,
            full_path_to_binary=full_path,
        )
    )
    if not approved:
        raise InstallError(
            f"Installation of {config.binary_name} matching {config.lib_name} '{lib_version}' was declined",
            {"binary": config.binary_name, "lib_version": lib_version},
        )
    if config.dry_run:
        logger.info("Dry run: not installing %s %s", config.binary_crate_name, lib_version)
        # whatever is installed does not satisfy the requirement
        return BinaryMatchResult(full_path, None, lib_version)

    config.root_dir.mkdir(parents=True, exist_ok=True)
    await installer(config, lib_version)

    bin_version = await installed_version(full_path)
    if bin_version is None:
        raise InstallError(
            f"Unable to determine installed version of {config.binary_name} at {full_path}, "
            "it may not have been installed correctly.",
            {"binary": config.binary_name, "path": str(full_path)},
        )
    return BinaryMatchResult(full_path, bin_version, lib_version)
